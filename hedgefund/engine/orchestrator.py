"""
Trading Cycle Orchestrator - signal, risk check, execute, record
"""
import asyncio
import functools
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set, Tuple

from loguru import logger

from hedgefund.analysis.multi_strategy_scorer import MultiStrategyAnalysis, MultiStrategyScorer, SwitchDecision
from hedgefund.analytics.analytics_recorder import AnalyticsRecorder
from hedgefund.core.errors import BrokerRejected
from hedgefund.core.ports import AccountPort, MarketDataPort, PersistencePort, call_with_timeout
from hedgefund.core.types import (
    Account,
    CycleRequest,
    CycleStage,
    CycleStatus,
    OrderStatus,
    RiskAssessment,
    Signal,
    StrategyPerformance,
    TradeCycleResult,
    TradeOutcome,
    TradeProposal,
)
from hedgefund.execution.execution_router import ExecutionResult, ExecutionRouter
from hedgefund.learning.evaluator import DailyEvaluation, run_daily_evaluation
from hedgefund.learning.learning_engine import LearningEngine
from hedgefund.learning.outcomes import outcome_for_signal
from hedgefund.risk.risk_engine import RiskEngine
from hedgefund.strategies import StrategyKind


class TradingCycleOrchestrator:
    """
    Runs one trading cycle per request as a straight sequence:
    Signaling -> RiskChecking -> Executing -> Recording -> Done.

    HOLD and risk rejection end the cycle early. Any unexpected failure ends
    it with status=error; nothing is retried here.
    """

    def __init__(
        self,
        market_data: MarketDataPort,
        account: AccountPort,
        scorer: MultiStrategyScorer,
        risk_engine: RiskEngine,
        router: ExecutionRouter,
        recorder: AnalyticsRecorder,
        learning: LearningEngine,
        persistence: Optional[PersistencePort] = None,
        port_timeout: float = 15.0,
        bars_timeframe: str = "1Day",
        bars_limit: int = 100,
        default_notional: Optional[float] = None,
        dry_run: bool = False,
        mode: str = "paper",
        session_id: Optional[str] = None,
    ):
        self.market_data = market_data
        self.account = account
        self.scorer = scorer
        self.risk_engine = risk_engine
        self.router = router
        self.recorder = recorder
        self.learning = learning
        self.persistence = persistence
        self.port_timeout = port_timeout
        self.bars_timeframe = bars_timeframe
        self.bars_limit = bars_limit
        self.default_notional = default_notional
        self.dry_run = dry_run
        self.mode = mode
        self.session_id = session_id

        self.peak_equity: Optional[float] = None
        self.cycles_run = 0
        self.active_cycles = 0
        self.last_result: Optional[TradeCycleResult] = None
        self._inflight_submissions: List[asyncio.Task] = []
        self._detached_recordings: Set[asyncio.Task] = set()

        logger.info(f"Trading cycle orchestrator initialized ({mode} mode{', dry run' if dry_run else ''})")

    # ------------------------------------------------------------------
    # Trading cycle
    # ------------------------------------------------------------------

    def validate_request(self, request: CycleRequest) -> None:
        """
        Raises:
            ValueError: the request itself is malformed
        """
        if not request.symbol or not request.symbol.strip():
            raise ValueError("symbol is required")
        if request.notional_amount is not None and request.quantity is not None:
            raise ValueError("Set either notional_amount or quantity, not both")
        if request.notional_amount is not None and request.notional_amount <= 0:
            raise ValueError("notional_amount must be positive")
        if request.quantity is not None and request.quantity <= 0:
            raise ValueError("quantity must be positive")
        if request.strategy is not None:
            StrategyKind(request.strategy)

    async def run_cycle(self, request: CycleRequest) -> TradeCycleResult:
        """
        Run one cycle for a symbol.

        Raises:
            ValueError: malformed request (nothing was attempted)
        """
        self.validate_request(request)
        symbol = request.symbol.strip().upper()
        dry_run = request.dry_run or self.dry_run
        start = time.monotonic()

        stage = CycleStage.SIGNALING
        signal: Optional[Signal] = None
        risk: Optional[RiskAssessment] = None
        analysis: Optional[MultiStrategyAnalysis] = None
        execution: Optional[ExecutionResult] = None
        result: Optional[TradeCycleResult] = None

        self.active_cycles += 1
        self.cycles_run += 1
        logger.info(f"Cycle started: {symbol}{' [DRY RUN]' if dry_run else ''}")
        try:
            # Signaling
            bars = await call_with_timeout(
                self.market_data.get_bars(symbol, self.bars_timeframe, self.bars_limit),
                self.port_timeout,
                f"get bars for {symbol}",
            )
            if request.strategy:
                analysis = self.scorer.analyze_strategy(StrategyKind(request.strategy), symbol, bars)
            else:
                analysis = self.scorer.analyze_all_strategies(symbol, bars)
            signal = analysis.recommended_signal

            if not signal.is_actionable:
                result = TradeCycleResult(
                    status=CycleStatus.HOLD,
                    signal=signal,
                    reason=signal.reasoning or "No actionable signal",
                    dry_run=dry_run,
                    stage_reached=CycleStage.DONE,
                    consensus=analysis.consensus,
                )
                return result

            # RiskChecking
            stage = CycleStage.RISK_CHECKING
            account = await call_with_timeout(self.account.get_account(), self.port_timeout, "get account")
            positions = await call_with_timeout(self.account.get_positions(), self.port_timeout, "get positions")
            account = self._track_peak(account)

            notional, quantity = self._trade_size(request, signal, account)
            risk = self.risk_engine.assess_trade_risk(TradeProposal(signal, notional, quantity), account, positions)
            if not risk.approved:
                result = TradeCycleResult(
                    status=CycleStatus.REJECTED,
                    signal=signal,
                    risk=risk,
                    reason="; ".join(risk.reasons),
                    dry_run=dry_run,
                    stage_reached=CycleStage.DONE,
                    consensus=analysis.consensus,
                )
                return result

            # Executing
            stage = CycleStage.EXECUTING
            try:
                execution = await self._submit(signal, risk, dry_run, analysis.consensus, start)
                result = self._executed_result(signal, risk, execution, dry_run, analysis.consensus)
            except BrokerRejected as e:
                result = self._broker_rejected_result(signal, risk, e, dry_run, analysis.consensus)

            # Recording
            stage = CycleStage.RECORDING
            result.stage_reached = CycleStage.RECORDING
            try:
                self.learning.record_signal(result)
            except Exception as e:
                logger.error(f"Failed to record signal learning for {symbol}: {e}")
            result.stage_reached = CycleStage.DONE
            return result

        except asyncio.CancelledError:
            logger.warning(f"Cycle for {symbol} cancelled by caller during {stage.value}")
            raise
        except Exception as e:
            logger.error(f"Cycle failed for {symbol} during {stage.value}: {e}")
            result = TradeCycleResult(
                status=CycleStatus.ERROR,
                signal=signal,
                risk=risk,
                reason=f"Failed during {stage.value}",
                error=f"{type(e).__name__}: {e}",
                dry_run=dry_run,
                stage_reached=stage,
                consensus=analysis.consensus if analysis else None,
            )
            return result
        finally:
            self.active_cycles -= 1
            if result is not None:
                result.latency_ms = (time.monotonic() - start) * 1000
                self.last_result = result
                await self.recorder.record_cycle(
                    result, execution, {"session_id": self.session_id, "symbol": symbol}
                )
                logger.info(
                    f"Cycle finished: {symbol} {result.status.value.upper()}"
                    f"{' ' + result.order_id if result.order_id else ''} in {result.latency_ms:.0f}ms"
                )

    @staticmethod
    def _executed_result(
        signal: Signal, risk: RiskAssessment, execution: ExecutionResult, dry_run: bool, consensus: Optional[float]
    ) -> TradeCycleResult:
        return TradeCycleResult(
            status=CycleStatus.EXECUTED,
            signal=signal,
            risk=risk,
            order_id=execution.order_id,
            order_status=execution.status,
            reason=execution.message,
            dry_run=dry_run,
            consensus=consensus,
        )

    @staticmethod
    def _broker_rejected_result(
        signal: Signal, risk: RiskAssessment, error: BrokerRejected, dry_run: bool, consensus: Optional[float]
    ) -> TradeCycleResult:
        return TradeCycleResult(
            status=CycleStatus.ERROR,
            signal=signal,
            risk=risk,
            order_status=OrderStatus.REJECTED,
            reason="Broker rejected the order",
            error=str(error),
            dry_run=dry_run,
            consensus=consensus,
        )

    async def _submit(
        self, signal: Signal, risk: RiskAssessment, dry_run: bool, consensus: Optional[float], started: float
    ) -> ExecutionResult:
        """Submission runs to completion even if the caller goes away"""
        task = asyncio.ensure_future(
            self.router.execute(signal, risk.sizing, quantity=risk.quantity, dry_run=dry_run)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            logger.warning(f"Caller left during order submission for {signal.symbol}; order left to complete")
            if not task.done():
                self._inflight_submissions.append(task)
            task.add_done_callback(
                functools.partial(self._submission_finished, signal, risk, dry_run, consensus, started)
            )
            raise

    def _submission_finished(
        self,
        signal: Signal,
        risk: RiskAssessment,
        dry_run: bool,
        consensus: Optional[float],
        started: float,
        task: asyncio.Task,
    ) -> None:
        """Record a submission whose caller was cancelled, once the broker has answered"""
        if task in self._inflight_submissions:
            self._inflight_submissions.remove(task)
        if task.cancelled():
            return

        execution: Optional[ExecutionResult] = None
        error = task.exception()
        if error is None:
            execution = task.result()
            result = self._executed_result(signal, risk, execution, dry_run, consensus)
            logger.warning(f"Detached order submission completed: {execution.order_id} ({execution.status.value})")
        elif isinstance(error, BrokerRejected):
            result = self._broker_rejected_result(signal, risk, error, dry_run, consensus)
            logger.error(f"Detached order submission rejected: {error}")
        else:
            result = TradeCycleResult(
                status=CycleStatus.ERROR,
                signal=signal,
                risk=risk,
                reason=f"Failed during {CycleStage.EXECUTING.value}",
                error=f"{type(error).__name__}: {error}",
                dry_run=dry_run,
                stage_reached=CycleStage.EXECUTING,
                consensus=consensus,
            )
            logger.error(f"Detached order submission failed: {error}")

        result.latency_ms = (time.monotonic() - started) * 1000
        recording = asyncio.ensure_future(self._record_detached(result, execution))
        self._detached_recordings.add(recording)
        recording.add_done_callback(self._detached_recordings.discard)

    async def _record_detached(self, result: TradeCycleResult, execution: Optional[ExecutionResult]) -> None:
        if result.status != CycleStatus.ERROR or result.order_status == OrderStatus.REJECTED:
            try:
                self.learning.record_signal(result)
            except Exception as e:
                logger.error(f"Failed to record signal learning for {result.signal.symbol}: {e}")
            result.stage_reached = CycleStage.DONE
        await self.recorder.record_cycle(
            result, execution, {"session_id": self.session_id, "symbol": result.signal.symbol}
        )

    def _track_peak(self, account: Account) -> Account:
        candidates = [account.equity, account.last_equity or 0.0, account.peak_equity or 0.0, self.peak_equity or 0.0]
        self.peak_equity = max(candidates)
        return replace(account, peak_equity=self.peak_equity)

    def _trade_size(self, request: CycleRequest, signal: Signal, account: Account) -> Tuple[Optional[float], Optional[float]]:
        if request.quantity is not None:
            return None, request.quantity
        if request.notional_amount is not None:
            return request.notional_amount, None
        if self.default_notional is not None:
            return self.default_notional, None
        return self.risk_engine.kelly_position_size(signal.confidence, account.cash, account.equity), None

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def record_trade_outcome(self, outcome: TradeOutcome) -> Tuple[StrategyPerformance, SwitchDecision]:
        """Feed a closed trade back and let the scorer reconsider the active strategy"""
        performance = await self.learning.record_outcome(outcome.strategy_id, outcome)
        decision = self.scorer.auto_switch_to_best()
        if decision.switched and decision.from_strategy:
            await self._log_event({
                "type": "system",
                "message": f"Active strategy switched {decision.from_strategy} -> {decision.to_strategy}: {decision.reason}",
                "status": "completed",
            })
        return performance, decision

    async def settle_signal(self, signal: Signal, quantity: float = 1.0) -> Tuple[StrategyPerformance, SwitchDecision]:
        """Close a signal's position against the bars that followed it"""
        bars = await call_with_timeout(
            self.market_data.get_bars(signal.symbol, self.bars_timeframe, self.bars_limit),
            self.port_timeout,
            f"get bars for {signal.symbol}",
        )
        future = [bar for bar in bars if bar.timestamp > signal.timestamp]
        outcome = outcome_for_signal(signal, future, quantity)
        return await self.record_trade_outcome(outcome)

    async def daily_evaluation(self) -> DailyEvaluation:
        account = await call_with_timeout(self.account.get_account(), self.port_timeout, "get account")
        return await run_daily_evaluation(
            self.learning.performance_book,
            self.scorer,
            self._track_peak(account),
            self.persistence,
            self.port_timeout,
        )

    async def flush_pending(self) -> Dict[str, int]:
        return {
            "analytics": await self.recorder.flush_pending(),
            "learning": await self.learning.flush_pending(),
        }

    async def _log_event(self, event: Dict[str, Any]) -> None:
        if self.persistence is None:
            return
        try:
            await call_with_timeout(self.persistence.log_activity(event), self.port_timeout, "log activity")
        except Exception as e:
            logger.error(f"Failed to log activity: {e}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def cancel_order(self, order_id: str) -> bool:
        return await self.router.cancel_order(order_id)

    async def get_order_status(self, order_id: str) -> Dict[str, Any]:
        return await self.router.get_order_status(order_id)

    async def test_connections(self) -> Dict[str, Any]:
        """healthy: broker and store up; degraded: store down; offline: broker down"""
        broker = await self.router.test_connection()
        database = False
        if self.persistence is not None and hasattr(self.persistence, "health_check"):
            database = await self.persistence.health_check()

        if not broker.get("connected"):
            status = "offline"
        elif not database:
            status = "degraded"
        else:
            status = "healthy"
        return {"status": status, "broker": broker, "database": database}

    def update_config(
        self,
        risk: Optional[Dict[str, Any]] = None,
        strategy: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Apply runtime changes.

        ``strategy`` accepts min_confidence, switch_threshold,
        min_trades_before_switch, auto_switch_enabled, active_strategy and
        enabled (strategy id -> bool).
        """
        if risk:
            self.risk_engine.update_config(**risk)
        if strategy:
            strategy = dict(strategy)
            if "min_confidence" in strategy:
                self.scorer.min_confidence = float(strategy.pop("min_confidence"))
            if "switch_threshold" in strategy:
                self.scorer.set_switch_threshold(float(strategy.pop("switch_threshold")))
            if "min_trades_before_switch" in strategy:
                self.scorer.min_trades_before_switch = int(strategy.pop("min_trades_before_switch"))
            if "auto_switch_enabled" in strategy:
                self.scorer.auto_switch_enabled = bool(strategy.pop("auto_switch_enabled"))
            if "active_strategy" in strategy:
                active = strategy.pop("active_strategy")
                if not self.scorer.set_active_strategy(active):
                    raise ValueError(f"Unknown strategy: {active}")
            for strategy_id, enabled in (strategy.pop("enabled", None) or {}).items():
                self.scorer.set_strategy_enabled(strategy_id, bool(enabled))
            if strategy:
                raise ValueError(f"Unknown strategy settings: {', '.join(sorted(strategy))}")
        return self.get_config()

    def get_config(self) -> Dict[str, Any]:
        return {
            "risk": self.risk_engine.get_config(),
            "strategy": {
                "min_confidence": self.scorer.min_confidence,
                **self.scorer.get_switching_stats(),
                "enabled": dict(self.scorer.enabled),
            },
            "mode": self.mode,
            "dry_run": self.dry_run,
        }

    def get_status(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "dry_run": self.dry_run,
            "session_id": self.session_id,
            "cycles_run": self.cycles_run,
            "active_cycles": self.active_cycles,
            "inflight_submissions": len(self._inflight_submissions),
            "trading_halted": self.risk_engine.trading_halted,
            "active_strategy": self.scorer.active_strategy_id,
            "last_result": self.last_result.to_dict() if self.last_result else None,
            "pending_writes": len(self.recorder.pending) + len(self.learning.pending_writes),
        }

    async def close(self) -> None:
        """Release adapter sessions once detached submissions and their recordings settle"""
        if self._inflight_submissions:
            await asyncio.gather(*self._inflight_submissions, return_exceptions=True)
        if self._detached_recordings:
            await asyncio.gather(*list(self._detached_recordings), return_exceptions=True)
        closed = set()
        for port in (self.market_data, self.account, self.router.orders):
            if id(port) in closed:
                continue
            closed.add(id(port))
            close = getattr(port, "close", None)
            if close is not None:
                await close()
        logger.info("Trading cycle orchestrator closed")
