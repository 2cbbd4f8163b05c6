"""Shared test fixtures."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

import pytest

from hedgefund.analysis.multi_strategy_scorer import MultiStrategyScorer
from hedgefund.analytics.analytics_recorder import AnalyticsRecorder
from hedgefund.core.errors import BrokerRejected, DataUnavailable, PersistenceFailure
from hedgefund.core.ports import AccountPort, MarketDataPort, OrderPort
from hedgefund.core.types import Account, Action, Bar, OrderRequest, OrderResult, Position
from hedgefund.database.memory_store import InMemoryStore
from hedgefund.engine.orchestrator import TradingCycleOrchestrator
from hedgefund.execution.execution_router import ExecutionRouter
from hedgefund.learning.learning_engine import LearningEngine
from hedgefund.learning.performance_book import PerformanceBook
from hedgefund.risk.risk_engine import RiskEngine
from hedgefund.strategies import BaseStrategy, StrategyKind

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_bars(closes: Sequence[float], volumes: Optional[Sequence[float]] = None, spread: float = 1.0) -> List[Bar]:
    """Daily bars around the given closes, high/low +/- spread"""
    volumes = volumes or [1000.0] * len(closes)
    return [
        Bar(
            timestamp=START + timedelta(days=i),
            open=close - spread / 2,
            high=close + spread,
            low=close - spread,
            close=close,
            volume=volume,
        )
        for i, (close, volume) in enumerate(zip(closes, volumes))
    ]


@pytest.fixture
def rising_bars():
    """60 bars climbing one point per bar from 100"""
    return make_bars([100.0 + i for i in range(60)])


@pytest.fixture
def falling_bars():
    return make_bars([200.0 - i for i in range(60)])


@pytest.fixture
def flat_bars():
    return make_bars([100.0] * 60)


class StubStrategy(BaseStrategy):
    """Evaluator returning a fixed action/confidence, for scorer and engine tests"""

    def __init__(self, kind: StrategyKind, action: Action, confidence: float = 0.8, min_bars: int = 1):
        self.kind = kind
        super().__init__(name=f"Stub-{kind.value}", description="Fixed signal", min_bars=min_bars)
        self.action = action
        self.confidence = confidence
        self.calls = 0

    def analyze(self, symbol, frame):
        self.calls += 1
        price = float(frame["close"].iloc[-1])
        stop_loss, take_profit = self.atr_levels(self.action, price, 2.0, 2.0, 3.0)
        return self._signal(
            symbol, self.action, self.confidence, {"price": price}, ["stub"], price, stop_loss, take_profit
        )


@pytest.fixture
def stub():
    return StubStrategy


class FakeMarketData(MarketDataPort):
    def __init__(self, bars: List[Bar], delay: float = 0.0, unavailable: bool = False):
        self.bars = bars
        self.delay = delay
        self.unavailable = unavailable
        self.calls = 0

    async def get_bars(self, symbol, timeframe, limit):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.unavailable:
            raise DataUnavailable(f"No market data for {symbol}")
        return list(self.bars[-limit:])


class FakeBroker(AccountPort, OrderPort):
    """Account and order port with call counters and failure switches"""

    def __init__(
        self,
        equity: float = 10000.0,
        buying_power: float = 20000.0,
        positions: Optional[List[Position]] = None,
        status: str = "filled",
        fill_price: Optional[float] = None,
        reject: bool = False,
        submit_delay: float = 0.0,
        cancellable: bool = True,
    ):
        self.account = Account(equity=equity, cash=equity, buying_power=buying_power, last_equity=equity)
        self.positions = positions or []
        self.status = status
        self.fill_price = fill_price
        self.reject = reject
        self.submit_delay = submit_delay
        self.cancellable = cancellable
        self.account_calls = 0
        self.submit_calls = 0
        self.submitted: List[OrderRequest] = []
        self.completed = 0

    async def get_account(self):
        self.account_calls += 1
        return self.account

    async def get_positions(self):
        return list(self.positions)

    async def submit(self, order: OrderRequest) -> OrderResult:
        self.submit_calls += 1
        self.submitted.append(order)
        if self.submit_delay:
            await asyncio.sleep(self.submit_delay)
        if self.reject:
            raise BrokerRejected("insufficient qty available for order", status_code=403, symbol=order.symbol)
        self.completed += 1
        return OrderResult(
            order_id=f"order-{self.submit_calls}",
            status=self.status,
            symbol=order.symbol,
            side=order.side,
            filled_qty=order.quantity or 0.0,
            filled_avg_price=self.fill_price,
            submitted_at=START,
        )

    async def cancel(self, order_id):
        return self.cancellable

    async def get_order(self, order_id):
        return OrderResult(order_id=order_id, status="partially_filled", symbol="AAPL", side="buy", filled_qty=1.0)


class FlakyStore(InMemoryStore):
    """In-memory store whose writes fail while ``failing`` is set; the next ``load_failures`` reads fail too"""

    def __init__(self, failing: bool = False, delay: float = 0.0, load_failures: int = 0):
        super().__init__()
        self.failing = failing
        self.delay = delay
        self.load_failures = load_failures

    async def _maybe_fail(self):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failing:
            raise PersistenceFailure("database unavailable")

    async def save_trade(self, record):
        await self._maybe_fail()
        await super().save_trade(record)

    async def save_strategy_performance(self, record):
        await self._maybe_fail()
        await super().save_strategy_performance(record)

    async def load_strategy_performance(self, strategy_id):
        if self.load_failures > 0:
            self.load_failures -= 1
            raise PersistenceFailure("read timed out")
        return await super().load_strategy_performance(strategy_id)

    async def log_activity(self, event):
        await self._maybe_fail()
        await super().log_activity(event)

    async def health_check(self):
        return not self.failing


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def make_engine(rising_bars):
    """Factory wiring an orchestrator around fakes and the given evaluators"""

    def _make(
        strategies: List[BaseStrategy],
        broker: Optional[FakeBroker] = None,
        store: Optional[InMemoryStore] = None,
        market_data: Optional[MarketDataPort] = None,
        port_timeout: float = 1.0,
        **kwargs,
    ) -> TradingCycleOrchestrator:
        broker = broker or FakeBroker()
        store = store if store is not None else FlakyStore()
        book = PerformanceBook()
        return TradingCycleOrchestrator(
            market_data=market_data or FakeMarketData(rising_bars),
            account=broker,
            scorer=MultiStrategyScorer(book, strategies=strategies),
            risk_engine=RiskEngine(),
            router=ExecutionRouter(broker, account=broker, timeout=port_timeout),
            recorder=AnalyticsRecorder(store, timeout=port_timeout),
            learning=LearningEngine(store, book, persistence_timeout=port_timeout),
            persistence=store,
            port_timeout=port_timeout,
            **kwargs,
        )

    return _make
