"""
Multi-Strategy Scorer - Runs every evaluator, builds consensus and ranks strategies
"""
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from hedgefund.core.errors import InsufficientData
from hedgefund.core.types import Action, Bar, Signal, StrategyPerformance
from hedgefund.learning.performance_book import PerformanceBook
from hedgefund.strategies import BaseStrategy, StrategyKind, build_all_strategies, build_strategy


def composite_score(performance: Optional[StrategyPerformance]) -> float:
    """
    Rank score for a strategy.

    Below 10 trades a strategy only earns a bootstrap score of trades x 5 so
    new strategies are not judged on noise.
    """
    if performance is None:
        return 0.0
    if performance.total_trades < 10:
        return performance.total_trades * 5.0

    win_rate_score = performance.win_rate * 25
    profit_score = min((performance.avg_pnl / 10) * 20, 20)
    sharpe_score = min(performance.sharpe_ratio * 10, 20)
    consistency_score = performance.consistency * 15
    drawdown_score = max(0.0, (1 - performance.max_drawdown / 1000) * 10)
    volume_score = min(performance.total_trades / 10, 10)

    return win_rate_score + profit_score + sharpe_score + consistency_score + drawdown_score + volume_score


def performance_weight(performance: StrategyPerformance) -> float:
    """Vote weight for the performance-weighted view (0-1)"""
    sharpe_weight = min(max(performance.sharpe_ratio / 2, 0.0), 1.0)
    profit_weight = 1.0 if performance.total_pnl > 0 else 0.5
    return (
        performance.win_rate * 0.35
        + sharpe_weight * 0.25
        + performance.consistency * 0.25
        + profit_weight * 0.15
    )


@dataclass
class MultiStrategyAnalysis:
    """Result of running all strategies over one bar series"""
    symbol: str
    all_signals: List[Signal]
    recommended_signal: Signal
    consensus: float
    majority_action: Action
    votes: Dict[str, int] = field(default_factory=dict)
    average_confidence: float = 0.0
    weighted_action: Action = Action.HOLD
    weighted_confidence: float = 0.0
    best_strategy_id: Optional[str] = None
    skipped: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "recommended_signal": self.recommended_signal.to_dict(),
            "all_signals": [s.to_dict() for s in self.all_signals],
            "consensus": round(self.consensus, 4),
            "majority_action": self.majority_action.value,
            "votes": dict(self.votes),
            "average_confidence": round(self.average_confidence, 4),
            "weighted_action": self.weighted_action.value,
            "weighted_confidence": round(self.weighted_confidence, 4),
            "best_strategy_id": self.best_strategy_id,
            "skipped": dict(self.skipped),
        }


@dataclass
class SwitchDecision:
    switched: bool
    from_strategy: Optional[str] = None
    to_strategy: Optional[str] = None
    reason: str = ""


class MultiStrategyScorer:
    """Aggregates evaluator signals and tracks which strategy should lead"""

    def __init__(
        self,
        performance_book: PerformanceBook,
        strategies: Optional[Sequence[BaseStrategy]] = None,
        min_confidence: float = 0.60,
        switch_threshold: float = 10.0,
        min_trades_before_switch: int = 20,
        auto_switch_enabled: bool = True,
    ):
        """
        Initialize the scorer

        Args:
            performance_book: Shared last-committed strategy performance
            strategies: Evaluators to run (defaults to every StrategyKind)
            min_confidence: Below this no BUY/SELL recommendation is made
            switch_threshold: Score lead needed before auto-switching
            min_trades_before_switch: Trades the challenger needs before a switch
            auto_switch_enabled: Allow automatic switching of the active strategy
        """
        self.performance_book = performance_book
        self.strategies: Dict[str, BaseStrategy] = {
            s.strategy_id: s for s in (strategies if strategies is not None else build_all_strategies())
        }
        self.enabled: Dict[str, bool] = {sid: True for sid in self.strategies}
        self.manual_weights: Dict[str, float] = {}
        self.min_confidence = min_confidence
        self.switch_threshold = switch_threshold
        self.min_trades_before_switch = min_trades_before_switch
        self.auto_switch_enabled = auto_switch_enabled
        self.active_strategy_id: Optional[str] = None
        logger.info(f"Multi-strategy scorer initialized with {len(self.strategies)} strategies")

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_all_strategies(self, symbol: str, bars: Sequence[Bar]) -> MultiStrategyAnalysis:
        """
        Run every enabled evaluator over the same bars.

        Raises:
            InsufficientData: no evaluator produced a usable signal
        """
        signals: List[Signal] = []
        skipped: Dict[str, str] = {}

        for strategy_id, strategy in self.strategies.items():
            if not self.enabled.get(strategy_id, True):
                continue
            try:
                signals.append(strategy.evaluate(symbol, bars))
            except InsufficientData as e:
                logger.debug(f"Skipping {strategy_id} for {symbol}: {e}")
                skipped[strategy_id] = str(e)

        if not signals:
            raise InsufficientData(
                f"No strategy produced a usable signal for {symbol} ({len(bars)} bars)",
                available=len(bars),
            )

        return self._aggregate(symbol, signals, skipped)

    def analyze_strategy(self, kind: StrategyKind, symbol: str, bars: Sequence[Bar]) -> MultiStrategyAnalysis:
        """Evaluate a single explicitly requested strategy"""
        kind = StrategyKind(kind)
        strategy = self.strategies.get(kind.value) or build_strategy(kind)
        signal = strategy.evaluate(symbol, bars)

        recommended = signal
        if signal.is_actionable and signal.confidence < self.min_confidence:
            recommended = self._forced_hold(signal)

        return MultiStrategyAnalysis(
            symbol=symbol,
            all_signals=[signal],
            recommended_signal=recommended,
            consensus=1.0,
            majority_action=signal.action,
            votes={signal.action.value: 1},
            average_confidence=signal.confidence,
            weighted_action=signal.action,
            weighted_confidence=signal.confidence,
            best_strategy_id=kind.value,
        )

    def _aggregate(self, symbol: str, signals: List[Signal], skipped: Dict[str, str]) -> MultiStrategyAnalysis:
        votes = {action.value: 0 for action in Action}
        for s in signals:
            votes[s.action.value] += 1

        top = max(votes.values())
        leaders = [action for action in Action if votes[action.value] == top]
        # Split vote is treated as no consensus to act
        majority = leaders[0] if len(leaders) == 1 else Action.HOLD
        consensus = top / len(signals)

        agreeing = [s for s in signals if s.action == majority]
        candidates = agreeing or signals
        recommended = max(
            candidates,
            key=lambda s: (composite_score(self.performance_book.get(s.strategy_id)), s.confidence),
        )
        if recommended.action != majority:
            recommended = self._forced_hold(recommended, "Strategies split with no majority")

        if recommended.is_actionable and not any(
            s.is_actionable and s.confidence >= self.min_confidence for s in signals
        ):
            recommended = self._forced_hold(recommended)

        weighted_action, weighted_confidence = self._weighted_signal(signals)
        best_id, _ = self.get_best_strategy()

        analysis = MultiStrategyAnalysis(
            symbol=symbol,
            all_signals=signals,
            recommended_signal=recommended,
            consensus=consensus,
            majority_action=majority,
            votes=votes,
            average_confidence=sum(s.confidence for s in signals) / len(signals),
            weighted_action=weighted_action,
            weighted_confidence=weighted_confidence,
            best_strategy_id=best_id,
            skipped=skipped,
        )
        logger.info(
            f"{symbol}: {recommended.action.value} via {recommended.strategy_id} "
            f"(conf {recommended.confidence:.2f}, consensus {consensus:.0%}, votes {votes})"
        )
        return analysis

    def _forced_hold(self, signal: Signal, why: str = "") -> Signal:
        reason = why or f"No strategy reached minimum confidence {self.min_confidence:.2f}"
        return replace(
            signal,
            action=Action.HOLD,
            stop_loss=None,
            take_profit=None,
            reasoning=f"{reason}; {signal.reasoning}" if signal.reasoning else reason,
        )

    def _weighted_signal(self, signals: List[Signal]) -> tuple:
        """Performance-weighted vote; better strategies count for more"""
        weights: Dict[str, float] = {}
        for s in signals:
            perf = self.performance_book.get(s.strategy_id)
            if s.strategy_id in self.manual_weights:
                weights[s.strategy_id] = self.manual_weights[s.strategy_id]
            elif perf is not None and perf.total_trades >= 10:
                weights[s.strategy_id] = performance_weight(perf)
            else:
                weights[s.strategy_id] = 1.0

        total = sum(weights.values())
        tallies = {action: 0.0 for action in Action}
        confidence = 0.0
        for s in signals:
            w = weights[s.strategy_id] / total if total > 0 else 1 / len(signals)
            tallies[s.action] += w
            confidence += s.confidence * w

        top = max(tallies.values())
        if tallies[Action.BUY] == top:
            action = Action.BUY
        elif tallies[Action.SELL] == top:
            action = Action.SELL
        else:
            action = Action.HOLD
        return action, confidence

    # ------------------------------------------------------------------
    # Ranking and switching
    # ------------------------------------------------------------------

    def score(self, strategy_id: str) -> float:
        return composite_score(self.performance_book.get(strategy_id))

    def get_best_strategy(self) -> tuple:
        """(strategy_id, score) of the best enabled strategy"""
        best_id: Optional[str] = None
        best_score = float("-inf")
        for strategy_id in self.strategies:
            if not self.enabled.get(strategy_id, True):
                continue
            current = self.score(strategy_id)
            if current > best_score:
                best_id, best_score = strategy_id, current
        return best_id, (best_score if best_id is not None else 0.0)

    def auto_switch_to_best(self) -> SwitchDecision:
        """Switch the active strategy when a challenger clearly outperforms it"""
        if not self.auto_switch_enabled:
            return SwitchDecision(False, reason="Auto-switching disabled")

        best_id, best_score = self.get_best_strategy()
        if best_id is None:
            return SwitchDecision(False, reason="No enabled strategies")

        if self.active_strategy_id is None:
            self.active_strategy_id = best_id
            logger.info(f"Initialized with best strategy: {best_id}")
            return SwitchDecision(True, to_strategy=best_id, reason="Initial strategy selection")

        best_perf = self.performance_book.get(best_id)
        best_trades = best_perf.total_trades if best_perf else 0
        if best_trades < self.min_trades_before_switch:
            return SwitchDecision(
                False,
                reason=f"Best strategy needs more trades ({best_trades}/{self.min_trades_before_switch})",
            )

        current_score = self.score(self.active_strategy_id)
        diff = best_score - current_score
        if best_id != self.active_strategy_id and diff >= self.switch_threshold:
            previous = self.active_strategy_id
            self.active_strategy_id = best_id
            logger.info(
                f"AUTO-SWITCHED STRATEGY: {previous} ({current_score:.1f}) -> {best_id} ({best_score:.1f}), +{diff:.1f} points"
            )
            return SwitchDecision(True, previous, best_id, f"Performance improvement: +{diff:.1f} points")

        return SwitchDecision(False, reason=f"Current strategy still optimal (score diff: {diff:.1f})")

    def set_active_strategy(self, strategy_id: str) -> bool:
        if strategy_id not in self.strategies:
            logger.warning(f"Strategy {strategy_id} not found")
            return False
        self.active_strategy_id = strategy_id
        logger.info(f"Active strategy set to: {strategy_id}")
        return True

    def set_strategy_enabled(self, strategy_id: str, enabled: bool) -> None:
        if strategy_id in self.enabled:
            self.enabled[strategy_id] = enabled
            logger.info(f"Strategy {strategy_id} {'enabled' if enabled else 'disabled'}")

    def set_strategy_weight(self, strategy_id: str, weight: float) -> None:
        if strategy_id in self.strategies:
            self.manual_weights[strategy_id] = max(0.0, min(1.0, weight))

    def set_switch_threshold(self, threshold: float) -> None:
        self.switch_threshold = max(5.0, threshold)

    def get_switching_stats(self) -> Dict[str, Any]:
        best_id, _ = self.get_best_strategy()
        best_perf = self.performance_book.get(best_id) if best_id else None
        return {
            "auto_switch_enabled": self.auto_switch_enabled,
            "current_strategy": self.active_strategy_id,
            "switch_threshold": self.switch_threshold,
            "min_trades_required": self.min_trades_before_switch,
            "can_switch_now": bool(best_perf and best_perf.total_trades >= self.min_trades_before_switch),
        }

    def get_strategy_comparison(self) -> Dict[str, Any]:
        """Ranking of all strategies by composite score with a recommendation"""
        ranked = sorted(
            (
                (sid, self.score(sid), self.performance_book.get_or_empty(sid, self.strategies[sid].name))
                for sid in self.strategies
            ),
            key=lambda item: item[1],
            reverse=True,
        )
        ranking = []
        for rank, (sid, value, perf) in enumerate(ranked, start=1):
            ranking.append({
                "rank": rank,
                "strategy_id": sid,
                "score": round(value, 2),
                "enabled": self.enabled.get(sid, True),
                "total_trades": perf.total_trades,
                "win_rate": round(perf.win_rate * 100, 1),
                "total_pnl": round(perf.total_pnl, 2),
                "testing_mode": perf.testing_mode,
                "test_passed": perf.test_passed,
            })

        return {
            "top_strategy": ranking[0]["strategy_id"] if ranking else None,
            "ranking": ranking,
            "recommendation": self._recommendation(ranked),
        }

    @staticmethod
    def _recommendation(ranked: List[tuple]) -> str:
        if not ranked:
            return "No strategies initialized yet. Start trading to collect performance data."

        strategy_id, value, perf = ranked[0]
        if perf.total_trades < 10:
            return f"Collecting data for {strategy_id}. Need more trades for accurate comparison."
        if value > 70:
            return (
                f"{strategy_id} is performing exceptionally well with {perf.win_rate * 100:.1f}% win rate "
                f"and ${perf.total_pnl:.2f} total P&L. Continue using this strategy."
            )
        if value > 50:
            return (
                f"{strategy_id} is showing solid performance. Win rate: {perf.win_rate * 100:.1f}%. "
                "Monitor closely for optimization opportunities."
            )
        return (
            f"{strategy_id} is currently leading but performance is below optimal. "
            "Consider reviewing strategy parameters or market conditions."
        )
