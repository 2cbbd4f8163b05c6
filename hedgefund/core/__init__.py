"""Core data model, errors and ports"""
from .errors import (
    BrokerRejected,
    DataUnavailable,
    HedgeFundError,
    InsufficientData,
    PersistenceFailure,
    PortTimeout,
)
from .types import (
    Account,
    Action,
    Bar,
    CycleRequest,
    CycleStage,
    CycleStatus,
    OrderRequest,
    OrderResult,
    OrderStatus,
    Position,
    RiskAssessment,
    RiskLevel,
    Signal,
    StrategyPerformance,
    TradeCycleResult,
    TradeOutcome,
    TradeProposal,
)

__all__ = [
    "Account",
    "Action",
    "Bar",
    "BrokerRejected",
    "CycleRequest",
    "CycleStage",
    "CycleStatus",
    "DataUnavailable",
    "HedgeFundError",
    "InsufficientData",
    "OrderRequest",
    "OrderResult",
    "OrderStatus",
    "PersistenceFailure",
    "PortTimeout",
    "Position",
    "RiskAssessment",
    "RiskLevel",
    "Signal",
    "StrategyPerformance",
    "TradeCycleResult",
    "TradeOutcome",
    "TradeProposal",
]
