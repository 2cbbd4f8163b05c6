"""
Analytics Recorder - Trade history, activity log and session metrics
"""
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from loguru import logger

from hedgefund.core.ports import PersistencePort, call_with_timeout
from hedgefund.core.types import CycleStatus, OrderStatus, TradeCycleResult, utc_now
from hedgefund.execution.execution_router import ExecutionQuality, ExecutionResult, grade_execution


class AnalyticsRecorder:
    """
    Records every cycle. Store failures never reach the caller: they are
    logged and queued for ``flush_pending``.
    """

    def __init__(
        self,
        persistence: PersistencePort,
        timeout: float = 15.0,
        recent_limit: int = 100,
        max_pending: int = 1000,
        mode: str = "paper",
    ):
        self.persistence = persistence
        self.timeout = timeout
        self.mode = mode
        self.max_pending = max_pending
        self.pending: List[Tuple[str, Dict[str, Any]]] = []
        self.recent: Deque[Dict[str, Any]] = deque(maxlen=recent_limit)

        self.total_cycles = 0
        self.status_counts: Dict[str, int] = defaultdict(int)
        self.trade_attempts = 0
        self.successful_trades = 0
        self.total_volume = 0.0
        self.total_latency_ms = 0.0
        self.strategy_breakdown: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {"cycles": 0, "executed": 0, "rejected": 0, "hold": 0, "error": 0}
        )
        self.quality_counts: Dict[str, int] = defaultdict(int)
        logger.info("Analytics recorder initialized")

    @staticmethod
    def attempted_execution(result: TradeCycleResult) -> bool:
        """Cycles that got past risk approval produce a trade record"""
        if result.status == CycleStatus.EXECUTED:
            return True
        return result.status == CycleStatus.ERROR and result.risk is not None and result.risk.approved

    @staticmethod
    def trade_status(result: TradeCycleResult) -> str:
        if result.status == CycleStatus.EXECUTED:
            if result.dry_run:
                return "DRY_RUN"
            return (result.order_status or OrderStatus.PENDING).value.upper()
        if result.order_status == OrderStatus.REJECTED:
            return "REJECTED"
        return "ERROR"

    async def record_cycle(
        self,
        result: TradeCycleResult,
        execution: Optional[ExecutionResult] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Record one finished cycle.

        Returns:
            The trade record when one was written or queued, else None
        """
        context = context or {}
        signal = result.signal
        strategy_id = signal.strategy_id if signal else context.get("strategy", "unknown")
        symbol = signal.symbol if signal else context.get("symbol", "")

        quality = None
        if self.attempted_execution(result):
            if result.status == CycleStatus.EXECUTED and execution is not None:
                quality = execution.quality
            elif result.status == CycleStatus.EXECUTED:
                quality = grade_execution(result.latency_ms)
            else:
                quality = ExecutionQuality.POOR
        self._update_metrics(result, strategy_id, quality)

        summary = {
            "symbol": symbol,
            "strategy": strategy_id,
            "status": result.status.value,
            "order_id": result.order_id,
            "latency_ms": round(result.latency_ms, 2),
            "timestamp": result.timestamp.isoformat(),
            "reason": result.reason,
        }
        self.recent.append(summary)

        trade_record = None
        if self.attempted_execution(result):
            trade_record = self._trade_record(result, execution, strategy_id, symbol, quality, context)
            await self._write("trade", trade_record)

        await self._write("activity", self._activity_event(result, strategy_id, symbol))
        return trade_record

    def _trade_record(
        self,
        result: TradeCycleResult,
        execution: Optional[ExecutionResult],
        strategy_id: str,
        symbol: str,
        quality: Optional[ExecutionQuality],
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        signal = result.signal
        risk = result.risk
        price = (execution.filled_avg_price if execution else None) or (signal.price if signal else 0.0)
        return {
            "symbol": symbol,
            "side": signal.action.value.lower() if signal else None,
            "quantity": risk.quantity if risk else None,
            "notional": risk.sizing if risk else None,
            "price": price,
            "status": self.trade_status(result),
            "order_id": result.order_id,
            "strategy": strategy_id,
            "ai_confidence": signal.confidence if signal else None,
            "risk_score": risk.risk_score if risk else None,
            "latency_ms": round(result.latency_ms, 2),
            "slippage_pct": execution.slippage_pct if execution else None,
            "execution_quality": quality.value if quality else None,
            "error": result.error,
            "mode": self.mode,
            "dry_run": result.dry_run,
            "session_id": context.get("session_id"),
            "timestamp": result.timestamp.isoformat(),
        }

    @staticmethod
    def _activity_event(result: TradeCycleResult, strategy_id: str, symbol: str) -> Dict[str, Any]:
        signal = result.signal
        if result.status == CycleStatus.EXECUTED:
            prefix = "[DRY RUN] " if result.dry_run else ""
            message = f"{prefix}{signal.action.value} {symbol} ({result.order_id})"
            event_type, status = "trade", "completed"
        elif result.status == CycleStatus.REJECTED:
            message = f"Risk rejected {signal.action.value} {symbol}: {'; '.join(result.risk.reasons)}"
            event_type, status = "risk", "completed"
        elif result.status == CycleStatus.HOLD:
            message = f"HOLD {symbol}"
            event_type, status = "info", "completed"
        else:
            message = f"Cycle failed for {symbol}: {result.error}"
            event_type, status = "error", "failed"

        return {
            "type": event_type,
            "symbol": symbol,
            "message": message,
            "status": status,
            "details": {
                "order_id": result.order_id,
                "latency_ms": round(result.latency_ms, 2),
                "strategy": strategy_id,
                "confidence": signal.confidence if signal else None,
                "risk_score": result.risk.risk_score if result.risk else None,
                "stage_reached": result.stage_reached.value,
            },
            "timestamp": result.timestamp.isoformat(),
        }

    def _update_metrics(self, result: TradeCycleResult, strategy_id: str, quality: Optional[ExecutionQuality]) -> None:
        self.total_cycles += 1
        self.status_counts[result.status.value] += 1
        self.total_latency_ms += result.latency_ms

        breakdown = self.strategy_breakdown[strategy_id]
        breakdown["cycles"] += 1
        breakdown[result.status.value] += 1

        if self.attempted_execution(result):
            self.trade_attempts += 1
            if result.status == CycleStatus.EXECUTED:
                self.successful_trades += 1
                self.total_volume += result.risk.sizing if result.risk else 0.0
        if quality is not None:
            self.quality_counts[quality.value] += 1

    async def _write(self, kind: str, record: Dict[str, Any]) -> bool:
        try:
            if kind == "trade":
                await call_with_timeout(self.persistence.save_trade(record), self.timeout, "save trade")
            else:
                await call_with_timeout(self.persistence.log_activity(record), self.timeout, "log activity")
            return True
        except Exception as e:
            logger.error(f"Failed to record {kind}: {e}")
            self.pending.append((kind, record))
            if len(self.pending) > self.max_pending:
                dropped = self.pending.pop(0)
                logger.warning(f"Analytics retry queue full, dropped oldest {dropped[0]} record")
            return False

    async def flush_pending(self) -> int:
        """Retry queued writes; returns how many succeeded"""
        queued, self.pending = self.pending, []
        flushed = 0
        for kind, record in queued:
            if await self._write(kind, record):
                flushed += 1
        if queued:
            logger.info(f"Flushed {flushed}/{len(queued)} queued analytics records")
        return flushed

    def get_performance_metrics(self) -> Dict[str, Any]:
        """Session metrics since the recorder was created"""
        success_rate = self.successful_trades / self.trade_attempts * 100 if self.trade_attempts else 0.0
        return {
            "total_cycles": self.total_cycles,
            "executed": self.status_counts.get(CycleStatus.EXECUTED.value, 0),
            "rejected": self.status_counts.get(CycleStatus.REJECTED.value, 0),
            "hold": self.status_counts.get(CycleStatus.HOLD.value, 0),
            "errors": self.status_counts.get(CycleStatus.ERROR.value, 0),
            "trade_attempts": self.trade_attempts,
            "successful_trades": self.successful_trades,
            "success_rate": round(success_rate, 2),
            "total_volume": round(self.total_volume, 2),
            "average_latency_ms": round(self.total_latency_ms / self.total_cycles, 2) if self.total_cycles else 0.0,
            "execution_quality": dict(self.quality_counts),
            "strategy_breakdown": {k: dict(v) for k, v in self.strategy_breakdown.items()},
            "pending_writes": len(self.pending),
            "generated_at": utc_now().isoformat(),
        }

    def get_recent_results(self, limit: int = 20) -> List[Dict[str, Any]]:
        return list(self.recent)[-limit:][::-1]
