"""
Error taxonomy for the trading cycle.

Risk rejection is deliberately absent: a rejected trade is a normal
``CycleStatus.REJECTED`` outcome, not an exception.
"""
from typing import Optional


class HedgeFundError(Exception):
    """Base class for engine errors"""


class InsufficientData(HedgeFundError):
    """Fewer bars than an evaluator needs for indicator warmup"""

    def __init__(self, message: str, required: int = 0, available: int = 0):
        super().__init__(message)
        self.required = required
        self.available = available


class DataUnavailable(HedgeFundError):
    """Market data could not be obtained for the symbol/window"""


class PortTimeout(HedgeFundError):
    """A broker or database call did not finish within its timeout"""


class BrokerRejected(HedgeFundError):
    """The broker refused an order submission"""

    def __init__(self, message: str, status_code: Optional[int] = None, symbol: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.symbol = symbol


class PersistenceFailure(HedgeFundError):
    """A write to the analytics/performance store failed"""
