"""
Execution Router - The only component that places real orders
"""
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from loguru import logger

from hedgefund.core.errors import BrokerRejected
from hedgefund.core.ports import AccountPort, OrderPort, call_with_timeout
from hedgefund.core.types import Action, OrderRequest, OrderResult, OrderStatus, Signal, utc_now

FILLED_STATUSES = {"filled"}
REJECTED_STATUSES = {"rejected", "canceled", "cancelled", "expired", "suspended"}


class ExecutionQuality(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


def classify_order_status(broker_status: str) -> OrderStatus:
    """Collapse broker order states into filled / pending / rejected"""
    status = (broker_status or "").lower()
    if status in FILLED_STATUSES:
        return OrderStatus.FILLED
    if status in REJECTED_STATUSES:
        return OrderStatus.REJECTED
    # new, accepted, partially_filled, pending_new, held, ...
    return OrderStatus.PENDING


def grade_execution(latency_ms: float, slippage_pct: Optional[float] = None) -> ExecutionQuality:
    slippage = abs(slippage_pct or 0.0)
    if latency_ms < 500 and slippage < 0.5:
        return ExecutionQuality.EXCELLENT
    if latency_ms < 1000 and slippage < 1.0:
        return ExecutionQuality.GOOD
    if latency_ms < 2000 and slippage < 2.0:
        return ExecutionQuality.FAIR
    return ExecutionQuality.POOR


def is_crypto_symbol(symbol: str) -> bool:
    return "/" in symbol


@dataclass
class ExecutionResult:
    """What happened when a signal was routed to the broker"""
    order_id: str
    status: OrderStatus
    dry_run: bool = False
    submitted_at: datetime = field(default_factory=utc_now)
    latency_ms: float = 0.0
    filled_qty: float = 0.0
    filled_avg_price: Optional[float] = None
    broker_status: str = ""
    message: str = ""
    slippage_pct: Optional[float] = None
    quality: ExecutionQuality = ExecutionQuality.GOOD
    order: Optional[OrderRequest] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "status": self.status.value,
            "dry_run": self.dry_run,
            "submitted_at": self.submitted_at.isoformat(),
            "latency_ms": round(self.latency_ms, 2),
            "filled_qty": self.filled_qty,
            "filled_avg_price": self.filled_avg_price,
            "broker_status": self.broker_status,
            "message": self.message,
            "slippage_pct": self.slippage_pct,
            "quality": self.quality.value,
            "order": self.order.to_payload() if self.order else None,
        }


class ExecutionRouter:
    """Builds orders from approved signals and submits them"""

    def __init__(
        self,
        orders: OrderPort,
        account: Optional[AccountPort] = None,
        timeout: float = 15.0,
        use_brackets: bool = False,
        mode: str = "paper",
    ):
        """
        Initialize execution router

        Args:
            orders: Broker order port
            account: Account port, used for connection tests
            timeout: Seconds to wait for the broker
            use_brackets: Attach stop loss / take profit legs when the signal has them
            mode: paper or live, for logging
        """
        self.orders = orders
        self.account = account
        self.timeout = timeout
        self.use_brackets = use_brackets
        self.mode = mode
        logger.info(f"Execution router initialized ({mode} mode)")

    def build_order(self, signal: Signal, sizing: float, quantity: Optional[float] = None) -> OrderRequest:
        """
        Market order for a signal.

        A quantity wins over the notional ``sizing``. Notional and fractional
        equity orders are day orders; everything else is good-til-cancelled.
        """
        if not signal.is_actionable:
            raise ValueError(f"Cannot execute a {signal.action.value} signal")
        if (quantity is None or quantity <= 0) and sizing <= 0:
            raise ValueError("Order needs a positive notional or quantity")

        side = "buy" if signal.action == Action.BUY else "sell"
        request = OrderRequest(
            symbol=signal.symbol,
            side=side,
            order_type="market",
            client_order_id=f"hf-{uuid.uuid4().hex[:24]}",
        )
        if quantity is not None and quantity > 0:
            request.quantity = quantity
        else:
            request.notional = round(sizing, 2)

        fractional = request.notional is not None or not float(request.quantity).is_integer()
        request.time_in_force = "day" if fractional and not is_crypto_symbol(signal.symbol) else "gtc"

        if self.use_brackets and signal.stop_loss is not None and signal.take_profit is not None:
            # Bracket legs need a whole share count
            if request.quantity:
                whole = int(request.quantity)
            else:
                whole = int(sizing // signal.price) if signal.price > 0 else 0
            if whole >= 1 and not is_crypto_symbol(signal.symbol):
                request.quantity, request.notional = float(whole), None
                request.stop_loss, request.take_profit = signal.stop_loss, signal.take_profit
                request.time_in_force = "gtc"
        return request

    async def execute(
        self,
        signal: Signal,
        sizing: float,
        quantity: Optional[float] = None,
        dry_run: bool = False,
    ) -> ExecutionResult:
        """
        Route one approved signal.

        Raises:
            ValueError: HOLD signal or no size
            BrokerRejected: the broker refused the order (never retried here)
            PortTimeout: the broker did not answer in time
        """
        start = time.monotonic()
        request = self.build_order(signal, sizing, quantity)

        if dry_run:
            order_id = f"dry-run-{uuid.uuid4()}"
            logger.info(
                f"[DRY RUN] Would {request.side.upper()} {signal.symbol} "
                f"{'$' + str(request.notional) if request.notional is not None else request.quantity}"
            )
            return ExecutionResult(
                order_id=order_id,
                status=OrderStatus.PENDING,
                dry_run=True,
                latency_ms=(time.monotonic() - start) * 1000,
                broker_status="dry_run",
                message="Dry run: order built but not submitted",
                quality=ExecutionQuality.EXCELLENT,
                order=request,
            )

        logger.info(f"Submitting {request.side.upper()} {signal.symbol} ({self.mode}): {request.to_payload()}")
        try:
            result: OrderResult = await call_with_timeout(
                self.orders.submit(request), self.timeout, f"submit {request.side} {signal.symbol}"
            )
        except BrokerRejected as e:
            logger.error(f"Order rejected by broker for {signal.symbol}: {e}")
            raise

        latency_ms = (time.monotonic() - start) * 1000
        if not result.order_id:
            raise BrokerRejected(f"Broker returned no order id for {signal.symbol}", symbol=signal.symbol)

        status = classify_order_status(result.status)
        slippage = None
        if result.filled_avg_price and signal.price:
            slippage = abs(result.filled_avg_price - signal.price) / signal.price * 100

        execution = ExecutionResult(
            order_id=result.order_id,
            status=status,
            submitted_at=result.submitted_at or utc_now(),
            latency_ms=latency_ms,
            filled_qty=result.filled_qty,
            filled_avg_price=result.filled_avg_price,
            broker_status=result.status,
            message=f"Order {result.status}",
            slippage_pct=slippage,
            quality=grade_execution(latency_ms, slippage),
            order=request,
        )
        logger.info(
            f"Order {execution.order_id} {status.value} ({result.status}) in {latency_ms:.0f}ms "
            f"[{execution.quality.value}]"
        )
        return execution

    async def cancel_order(self, order_id: str) -> bool:
        """Explicit cancellation; never done implicitly by the engine"""
        cancelled = await call_with_timeout(self.orders.cancel(order_id), self.timeout, f"cancel order {order_id}")
        logger.info(f"Cancel order {order_id}: {'ok' if cancelled else 'not cancelled'}")
        return cancelled

    async def get_order_status(self, order_id: str) -> Dict[str, Any]:
        result = await call_with_timeout(self.orders.get_order(order_id), self.timeout, f"get order {order_id}")
        return {
            "order_id": result.order_id,
            "status": classify_order_status(result.status).value,
            "broker_status": result.status,
            "symbol": result.symbol,
            "side": result.side,
            "filled_qty": result.filled_qty,
            "filled_avg_price": result.filled_avg_price,
        }

    async def test_connection(self) -> Dict[str, Any]:
        """Broker reachability through the account endpoint"""
        if self.account is None:
            return {"connected": False, "mode": self.mode, "error": "No account port configured"}

        start = time.monotonic()
        try:
            account = await call_with_timeout(self.account.get_account(), self.timeout, "broker connection test")
        except Exception as e:
            logger.error(f"Connection test failed: {e}")
            return {"connected": False, "mode": self.mode, "error": str(e)}

        return {
            "connected": True,
            "mode": self.mode,
            "trading_blocked": account.trading_blocked,
            "equity": account.equity,
            "latency_ms": round((time.monotonic() - start) * 1000, 2),
        }
