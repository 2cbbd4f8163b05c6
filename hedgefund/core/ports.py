"""
Collaborator contracts the engine depends on.

Adapters live in ``hedgefund.exchange`` (broker) and ``hedgefund.database``
(persistence). Every call made through these ports by the engine is wrapped
in ``call_with_timeout``.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from loguru import logger

from hedgefund.core.errors import PortTimeout
from hedgefund.core.types import Account, Bar, OrderRequest, OrderResult, Position

T = TypeVar("T")


async def call_with_timeout(awaitable: Awaitable[T], timeout: float, what: str) -> T:
    """Await a port call, converting expiry into PortTimeout"""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"Timed out after {timeout}s: {what}")
        raise PortTimeout(f"{what} timed out after {timeout}s")


class MarketDataPort(ABC):
    @abstractmethod
    async def get_bars(self, symbol: str, timeframe: str, limit: int) -> List[Bar]:
        """Return bars ascending by time; raise DataUnavailable when there are none."""


class AccountPort(ABC):
    @abstractmethod
    async def get_account(self) -> Account:
        ...

    @abstractmethod
    async def get_positions(self) -> List[Position]:
        ...


class OrderPort(ABC):
    @abstractmethod
    async def submit(self, order: OrderRequest) -> OrderResult:
        """Submit an order; raise BrokerRejected when the broker refuses it."""

    @abstractmethod
    async def cancel(self, order_id: str) -> bool:
        ...

    @abstractmethod
    async def get_order(self, order_id: str) -> OrderResult:
        ...


class PersistencePort(ABC):
    @abstractmethod
    async def save_trade(self, record: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def save_strategy_performance(self, record: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def load_strategy_performance(self, strategy_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def log_activity(self, event: Dict[str, Any]) -> None:
        ...
