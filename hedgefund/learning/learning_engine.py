"""
Learning Engine - Feeds trade outcomes back into strategy performance
"""
import asyncio
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from loguru import logger

from hedgefund.core.errors import PersistenceFailure, PortTimeout
from hedgefund.core.ports import PersistencePort, call_with_timeout
from hedgefund.core.types import Action, CycleStatus, StrategyPerformance, TradeCycleResult, TradeOutcome, utc_now
from hedgefund.learning.performance_book import PerformanceBook


@dataclass
class SignalLearning:
    """Signal-level accuracy for one strategy"""
    strategy_id: str
    total_signals: int = 0
    successful_signals: int = 0
    accuracy: float = 0.0  # percent
    average_confidence: float = 0.0
    average_pnl: float = 0.0
    closed_trades: int = 0
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy_id": self.strategy_id,
            "total_signals": self.total_signals,
            "successful_signals": self.successful_signals,
            "accuracy": round(self.accuracy, 2),
            "average_confidence": round(self.average_confidence, 4),
            "average_pnl": round(self.average_pnl, 2),
            "closed_trades": self.closed_trades,
            "recommendations": list(self.recommendations),
        }


def sharpe_ratio(pnls: Sequence[float]) -> float:
    """Annualized Sharpe of per-trade P&L, 0 until it is defined"""
    if len(pnls) < 2:
        return 0.0
    values = np.asarray(pnls, dtype=float)
    std = float(values.std())
    if std == 0:
        return 0.0
    return float(values.mean() / std * math.sqrt(252 / len(values)))


def predicted_outcome(action: Action, confidence: float) -> float:
    if action == Action.BUY:
        return confidence
    if action == Action.SELL:
        return -confidence
    return 0.0


def signal_accuracy(predicted: float, actual: float) -> float:
    if predicted * actual > 0:
        return 1.0
    if predicted * actual < 0:
        return 0.0
    return 0.5


class LearningEngine:
    """
    Closes the loop from "strategy predicted X" to "strategy weighting
    reflects whether X happened".

    Updates for one strategy are serialized with a per-strategy asyncio.Lock;
    different strategies update in parallel. Readers (the scorer) only ever
    see snapshots committed to the shared PerformanceBook.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        performance_book: PerformanceBook,
        test_pass_win_rate: float = 0.40,
        test_pass_profit_min: float = 0.0,
        history_window: int = 100,
        signal_history_limit: int = 1000,
        persistence_timeout: float = 15.0,
        strategy_names: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize learning engine

        Args:
            persistence: Store for StrategyPerformance records
            performance_book: Shared last-committed snapshots
            test_pass_win_rate: Probation win rate needed to pass
            test_pass_profit_min: Probation P&L needed to pass
            history_window: Trades kept in the P&L window for Sharpe/consistency
            signal_history_limit: Signal records kept per strategy
            persistence_timeout: Seconds before a store call is abandoned
            strategy_names: Display names keyed by strategy id
        """
        self.persistence = persistence
        self.performance_book = performance_book
        self.test_pass_win_rate = test_pass_win_rate
        self.test_pass_profit_min = test_pass_profit_min
        self.history_window = history_window
        self.signal_history_limit = signal_history_limit
        self.persistence_timeout = persistence_timeout
        self.strategy_names = strategy_names or {}

        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.pending_writes: List[Dict[str, Any]] = []
        self.signal_history: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.signal_learning: Dict[str, SignalLearning] = {}

        logger.info("Learning engine initialized")

    # ------------------------------------------------------------------
    # Closed trades
    # ------------------------------------------------------------------

    async def record_outcome(self, strategy_id: str, trade_result: TradeOutcome) -> StrategyPerformance:
        """
        Apply one closed trade to a strategy's performance.

        Returns:
            The committed StrategyPerformance, already visible to the scorer
        """
        async with self._locks[strategy_id]:
            performance = await self._load_for_update(strategy_id)
            self.apply_outcome(performance, trade_result)
            self.performance_book.commit(performance)

            outcome = "WIN" if trade_result.is_win else "LOSS" if trade_result.is_loss else "FLAT"
            logger.info(
                f"{strategy_id}: {outcome} ${trade_result.pnl:+.2f} | trades {performance.total_trades}, "
                f"win rate {performance.win_rate:.1%}, P&L ${performance.total_pnl:.2f}"
            )

            await self._persist_performance(performance)

        self._note_closed_pnl(strategy_id, trade_result.pnl)
        return performance

    def apply_outcome(self, performance: StrategyPerformance, trade_result: TradeOutcome) -> StrategyPerformance:
        """Mutate a working copy with one closed trade"""
        pnl = float(trade_result.pnl)
        previous_peak = performance.total_pnl + performance.current_drawdown

        performance.total_trades += 1
        performance.total_pnl += pnl
        if trade_result.is_win:
            performance.winning_trades += 1
            performance.consecutive_wins += 1
            performance.consecutive_losses = 0
        elif trade_result.is_loss:
            performance.losing_trades += 1
            performance.consecutive_losses += 1
            performance.consecutive_wins = 0

        performance.pnl_history.append(pnl)
        if len(performance.pnl_history) > self.history_window:
            performance.pnl_history = performance.pnl_history[-self.history_window:]

        performance.win_rate = performance.winning_trades / performance.total_trades
        performance.avg_pnl = performance.total_pnl / performance.total_trades
        performance.sharpe_ratio = sharpe_ratio(performance.pnl_history)
        performance.consistency = sum(1 for p in performance.pnl_history if p > 0) / len(performance.pnl_history)

        # Drawdown on cumulative P&L, measured from its running peak (starts at 0)
        peak = max(previous_peak, performance.total_pnl, 0.0)
        performance.current_drawdown = peak - performance.total_pnl
        performance.max_drawdown = max(performance.max_drawdown, performance.current_drawdown)
        performance.last_trade_time = trade_result.closed_at

        if performance.testing_mode:
            self._update_probation(performance, trade_result)

        return performance

    def _update_probation(self, performance: StrategyPerformance, trade_result: TradeOutcome) -> None:
        performance.test_trades_completed += 1
        performance.test_pnl += trade_result.pnl
        if trade_result.is_win:
            performance.test_wins += 1
        performance.test_win_rate = performance.test_wins / performance.test_trades_completed

        if performance.test_trades_completed < performance.test_trades_required:
            return

        passed = (
            performance.test_win_rate >= self.test_pass_win_rate
            and performance.test_pnl >= self.test_pass_profit_min
        )
        performance.test_passed = passed
        performance.testing_mode = False
        if passed:
            logger.info(
                f"{performance.strategy_id} PASSED testing: {performance.test_win_rate:.1%} win rate, "
                f"${performance.test_pnl:.2f} P&L"
            )
        else:
            logger.warning(
                f"{performance.strategy_id} FAILED testing: {performance.test_win_rate:.1%} win rate, "
                f"${performance.test_pnl:.2f} P&L"
            )

    async def _load_for_update(self, strategy_id: str) -> StrategyPerformance:
        """
        Raises:
            PersistenceFailure, PortTimeout: the stored record could not be read,
                so there is nothing safe to apply the trade to
        """
        name = self.strategy_names.get(strategy_id, strategy_id)
        if strategy_id in self.performance_book:
            return self.performance_book.working_copy(strategy_id, name)

        loaded = await self._fetch_performance(strategy_id)
        if loaded is not None:
            return loaded
        return self.performance_book.working_copy(strategy_id, name)

    async def _fetch_performance(self, strategy_id: str) -> Optional[StrategyPerformance]:
        try:
            record = await call_with_timeout(
                self.persistence.load_strategy_performance(strategy_id),
                self.persistence_timeout,
                f"load performance for {strategy_id}",
            )
        except (PersistenceFailure, PortTimeout) as e:
            logger.error(f"Could not load performance for {strategy_id}: {e}")
            raise
        if not record:
            return None
        return StrategyPerformance.from_record(record)

    async def load_performance(self, strategy_id: str) -> Optional[StrategyPerformance]:
        """Load a persisted record; store failures degrade to None"""
        try:
            return await self._fetch_performance(strategy_id)
        except (PersistenceFailure, PortTimeout):
            logger.warning(f"Starting {strategy_id} without its stored performance")
            return None

    async def warm_start(self, strategy_ids: Sequence[str]) -> int:
        """Commit persisted records into the book before trading starts"""
        loaded = 0
        for strategy_id in strategy_ids:
            async with self._locks[strategy_id]:
                if strategy_id in self.performance_book:
                    continue
                performance = await self.load_performance(strategy_id)
                if performance is not None:
                    self.performance_book.commit(performance)
                    loaded += 1
        logger.info(f"Warm start loaded {loaded}/{len(strategy_ids)} strategy records")
        return loaded

    async def _persist_performance(self, performance: StrategyPerformance) -> None:
        record = performance.to_record()
        try:
            await call_with_timeout(
                self.persistence.save_strategy_performance(record),
                self.persistence_timeout,
                f"save performance for {performance.strategy_id}",
            )
        except (PersistenceFailure, PortTimeout) as e:
            logger.error(f"Failed to persist performance for {performance.strategy_id}: {e}")
            self.pending_writes.append(record)

    async def flush_pending(self) -> int:
        """Retry queued performance writes; returns how many succeeded"""
        queued, self.pending_writes = self.pending_writes, []
        flushed = 0
        for record in queued:
            try:
                await call_with_timeout(
                    self.persistence.save_strategy_performance(record),
                    self.persistence_timeout,
                    f"retry performance for {record.get('strategy_id')}",
                )
                flushed += 1
            except (PersistenceFailure, PortTimeout) as e:
                logger.warning(f"Performance write still failing: {e}")
                self.pending_writes.append(record)
        return flushed

    # ------------------------------------------------------------------
    # Signal-level learning
    # ------------------------------------------------------------------

    def record_signal(self, result: TradeCycleResult) -> Optional[Dict[str, Any]]:
        """Track whether an acted-on signal got executed as predicted"""
        signal = result.signal
        if signal is None or not signal.is_actionable:
            return None

        success = result.status == CycleStatus.EXECUTED
        predicted = predicted_outcome(signal.action, signal.confidence)
        actual = 1.0 if success else -1.0
        entry = {
            "symbol": signal.symbol,
            "strategy_id": signal.strategy_id,
            "action": signal.action.value,
            "confidence": signal.confidence,
            "execution_success": success,
            "risk_score": result.risk.risk_score if result.risk else None,
            "predicted_outcome": predicted,
            "actual_outcome": actual,
            "accuracy": signal_accuracy(predicted, actual),
            "timestamp": utc_now().isoformat(),
        }

        history = self.signal_history[signal.strategy_id]
        history.append(entry)
        if len(history) > self.signal_history_limit:
            del history[: len(history) - self.signal_history_limit]

        learning = self.signal_learning.get(signal.strategy_id) or SignalLearning(signal.strategy_id)
        learning.average_confidence = (
            learning.average_confidence * learning.total_signals + signal.confidence
        ) / (learning.total_signals + 1)
        learning.total_signals += 1
        learning.successful_signals += 1 if success else 0
        learning.accuracy = learning.successful_signals / learning.total_signals * 100
        learning.recommendations = self.generate_recommendations(
            learning.accuracy, learning.average_confidence, learning.average_pnl
        )
        self.signal_learning[signal.strategy_id] = learning
        return entry

    def _note_closed_pnl(self, strategy_id: str, pnl: float) -> None:
        learning = self.signal_learning.get(strategy_id) or SignalLearning(strategy_id)
        learning.average_pnl = (learning.average_pnl * learning.closed_trades + pnl) / (learning.closed_trades + 1)
        learning.closed_trades += 1
        learning.recommendations = self.generate_recommendations(
            learning.accuracy, learning.average_confidence, learning.average_pnl
        )
        self.signal_learning[strategy_id] = learning

    @staticmethod
    def generate_recommendations(accuracy: float, average_confidence: float, average_pnl: float) -> List[str]:
        recommendations = []
        if accuracy < 50:
            recommendations.append("Consider reviewing strategy parameters - accuracy below 50%")
        if average_confidence < 0.6:
            recommendations.append("Signal confidence is low - consider stronger entry thresholds")
        if average_pnl < 0:
            recommendations.append("Strategy is losing money - consider disabling or adjusting risk parameters")
        elif average_pnl > 0:
            recommendations.append("Strategy is profitable - consider increasing position sizes")
        if accuracy > 70 and average_pnl > 0:
            recommendations.append("Excellent performance - strategy is working well")
        return recommendations

    def get_recommendations(self, strategy_id: str) -> List[str]:
        learning = self.signal_learning.get(strategy_id)
        if learning is None:
            return ["No learning data yet for this strategy"]
        return list(learning.recommendations)

    def compare_strategies(self) -> List[Dict[str, Any]]:
        """Signal-level learning for every strategy, most accurate first"""
        return [
            learning.to_dict()
            for learning in sorted(self.signal_learning.values(), key=lambda item: item.accuracy, reverse=True)
        ]

    def get_signal_history(self, strategy_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return list(self.signal_history.get(strategy_id, [])[-limit:])
