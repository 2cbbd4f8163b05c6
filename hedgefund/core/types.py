"""
Typed structures shared by the trading-cycle pipeline.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class CycleStatus(str, Enum):
    EXECUTED = "executed"
    REJECTED = "rejected"
    HOLD = "hold"
    ERROR = "error"


class CycleStage(str, Enum):
    IDLE = "Idle"
    SIGNALING = "Signaling"
    RISK_CHECKING = "RiskChecking"
    EXECUTING = "Executing"
    RECORDING = "Recording"
    DONE = "Done"
    ERROR = "Error"


class OrderStatus(str, Enum):
    FILLED = "filled"
    PENDING = "pending"
    REJECTED = "rejected"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class Bar:
    """One OHLCV bar"""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Signal:
    """One strategy's directional opinion for a symbol. Never mutated."""
    symbol: str
    action: Action
    confidence: float
    strategy_id: str
    timestamp: datetime = field(default_factory=utc_now)
    indicators: Dict[str, float] = field(default_factory=dict)
    reasoning: str = ""
    price: float = 0.0
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    @property
    def is_actionable(self) -> bool:
        return self.action != Action.HOLD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "action": self.action.value,
            "confidence": self.confidence,
            "strategy_id": self.strategy_id,
            "timestamp": self.timestamp.isoformat(),
            "indicators": dict(self.indicators),
            "reasoning": self.reasoning,
            "price": self.price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
        }


@dataclass
class StrategyPerformance:
    """Running statistics for one strategy, keyed by strategy_id."""
    strategy_id: str
    strategy_name: str = ""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_pnl: float = 0.0
    win_rate: float = 0.0
    avg_pnl: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0
    current_drawdown: float = 0.0
    consistency: float = 0.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0

    # Probation window
    testing_mode: bool = True
    test_trades_completed: int = 0
    test_trades_required: int = 7
    test_pnl: float = 0.0
    test_wins: int = 0
    test_win_rate: float = 0.0
    test_passed: Optional[bool] = None

    pnl_history: List[float] = field(default_factory=list)
    last_trade_time: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["last_trade_time"] = self.last_trade_time.isoformat() if self.last_trade_time else None
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "StrategyPerformance":
        known = {name for name in cls.__dataclass_fields__}
        data = {k: v for k, v in record.items() if k in known}
        last_trade = data.get("last_trade_time")
        if isinstance(last_trade, str):
            data["last_trade_time"] = datetime.fromisoformat(last_trade)
        data["pnl_history"] = [float(x) for x in data.get("pnl_history") or []]
        return cls(**data)


@dataclass
class RiskAssessment:
    """Verdict for one proposed trade"""
    approved: bool
    risk_score: float = 0.0
    reasons: List[str] = field(default_factory=list)
    sizing: float = 0.0
    quantity: Optional[float] = None
    risk_level: RiskLevel = RiskLevel.LOW
    metrics: Dict[str, float] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approved": self.approved,
            "risk_score": self.risk_score,
            "reasons": list(self.reasons),
            "sizing": self.sizing,
            "quantity": self.quantity,
            "risk_level": self.risk_level.value,
            "metrics": dict(self.metrics),
            "recommendations": list(self.recommendations),
        }


@dataclass
class TradeProposal:
    """A signal plus the size the caller wants to trade"""
    signal: Signal
    notional: Optional[float] = None
    quantity: Optional[float] = None

    def proposed_notional(self) -> float:
        if self.notional is not None:
            return float(self.notional)
        if self.quantity is not None:
            return float(self.quantity) * float(self.signal.price or 0.0)
        return 0.0


@dataclass
class Account:
    equity: float
    cash: float
    buying_power: float
    last_equity: Optional[float] = None
    peak_equity: Optional[float] = None
    trading_blocked: bool = False


@dataclass
class Position:
    symbol: str
    quantity: float
    avg_entry_price: float
    unrealized_pnl: float = 0.0
    market_value: Optional[float] = None

    @property
    def exposure(self) -> float:
        if self.market_value is not None:
            return abs(float(self.market_value))
        return abs(self.quantity * self.avg_entry_price)


@dataclass
class OrderRequest:
    symbol: str
    side: str  # buy | sell
    order_type: str = "market"
    time_in_force: str = "gtc"
    quantity: Optional[float] = None
    notional: Optional[float] = None
    limit_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    client_order_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "symbol": self.symbol,
            "side": self.side,
            "type": self.order_type,
            "time_in_force": self.time_in_force,
        }
        if self.notional is not None:
            payload["notional"] = str(round(self.notional, 2))
        elif self.quantity is not None:
            payload["qty"] = str(self.quantity)
        if self.limit_price is not None:
            payload["limit_price"] = str(self.limit_price)
        if self.stop_loss is not None and self.take_profit is not None:
            payload["order_class"] = "bracket"
            payload["stop_loss"] = {"stop_price": str(round(self.stop_loss, 2))}
            payload["take_profit"] = {"limit_price": str(round(self.take_profit, 2))}
        if self.client_order_id:
            payload["client_order_id"] = self.client_order_id
        return payload


@dataclass
class OrderResult:
    """Normalized broker order response"""
    order_id: str
    status: str
    symbol: str = ""
    side: str = ""
    filled_qty: float = 0.0
    filled_avg_price: Optional[float] = None
    submitted_at: Optional[datetime] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TradeOutcome:
    """A closed trade fed back into learning"""
    strategy_id: str
    symbol: str
    side: str
    pnl: float
    entry_price: float = 0.0
    exit_price: Optional[float] = None
    quantity: float = 0.0
    closed_at: datetime = field(default_factory=utc_now)

    @property
    def is_win(self) -> bool:
        return self.pnl > 0

    @property
    def is_loss(self) -> bool:
        return self.pnl < 0


@dataclass
class CycleRequest:
    symbol: str
    strategy: Optional[str] = None
    notional_amount: Optional[float] = None
    quantity: Optional[float] = None
    dry_run: bool = False


@dataclass
class TradeCycleResult:
    """Outcome of one orchestrator run"""
    status: CycleStatus
    signal: Optional[Signal] = None
    risk: Optional[RiskAssessment] = None
    order_id: Optional[str] = None
    order_status: Optional[OrderStatus] = None
    latency_ms: float = 0.0
    timestamp: datetime = field(default_factory=utc_now)
    reason: str = ""
    error: Optional[str] = None
    dry_run: bool = False
    stage_reached: CycleStage = CycleStage.IDLE
    consensus: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "signal": self.signal.to_dict() if self.signal else None,
            "risk": self.risk.to_dict() if self.risk else None,
            "order_id": self.order_id,
            "order_status": self.order_status.value if self.order_status else None,
            "latency_ms": round(self.latency_ms, 2),
            "timestamp": self.timestamp.isoformat(),
            "reason": self.reason,
            "error": self.error,
            "dry_run": self.dry_run,
            "stage_reached": self.stage_reached.value,
            "consensus": self.consensus,
        }
