"""Tests for the trading cycle orchestrator."""

import asyncio
from dataclasses import replace

import pytest

from conftest import FakeBroker, FakeMarketData, FlakyStore, StubStrategy
from hedgefund.core.types import (
    Action,
    CycleRequest,
    CycleStage,
    CycleStatus,
    OrderStatus,
    Position,
    Signal,
    TradeOutcome,
)
from hedgefund.strategies import StrategyKind

MOM, MR, BO = StrategyKind.MOMENTUM, StrategyKind.MEAN_REVERSION, StrategyKind.BREAKOUT


def _buyers():
    return [StubStrategy(MOM, Action.BUY, 0.80), StubStrategy(MR, Action.BUY, 0.70)]


def assert_cycle_invariant(result):
    """Terminal state is consistent with what the cycle did"""
    assert result.status in set(CycleStatus)
    if result.status == CycleStatus.EXECUTED:
        assert result.order_id is not None
        assert result.risk is not None and result.risk.approved
    if result.status == CycleStatus.REJECTED:
        assert result.risk is not None and not result.risk.approved
        assert result.order_id is None
    if result.status == CycleStatus.HOLD:
        assert result.risk is None and result.order_id is None
    if result.status == CycleStatus.ERROR:
        assert result.error


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_executed(self, make_engine, broker, store):
        engine = make_engine(_buyers(), broker=broker, store=store)
        result = await engine.run_cycle(CycleRequest(symbol="aapl", notional_amount=500.0))

        assert_cycle_invariant(result)
        assert result.status == CycleStatus.EXECUTED
        assert result.order_status == OrderStatus.FILLED
        assert result.stage_reached == CycleStage.DONE
        assert result.signal.symbol == "AAPL"
        assert result.consensus == 1.0
        assert result.risk.sizing == 500.0
        assert broker.submit_calls == 1
        assert broker.submitted[0].notional == 500.0
        assert len(store.trades) == 1
        assert store.trades[0]["status"] == "FILLED"
        assert store.activity[-1]["type"] == "trade"
        assert result.latency_ms >= 0

    @pytest.mark.asyncio
    async def test_hold_skips_risk_and_broker(self, make_engine, broker, store):
        engine = make_engine([StubStrategy(MOM, Action.HOLD, 0.3)], broker=broker, store=store)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=500.0))

        assert_cycle_invariant(result)
        assert result.status == CycleStatus.HOLD
        assert result.stage_reached == CycleStage.DONE
        assert broker.account_calls == 0
        assert broker.submit_calls == 0
        assert store.trades == []
        assert store.activity[-1]["type"] == "info"

    @pytest.mark.asyncio
    async def test_rejection_is_idempotent(self, make_engine, broker):
        engine = make_engine(_buyers(), broker=broker)
        request = CycleRequest(symbol="AAPL", notional_amount=6000.0)

        first = await engine.run_cycle(request)
        second = await engine.run_cycle(request)

        for result in (first, second):
            assert_cycle_invariant(result)
            assert result.status == CycleStatus.REJECTED
            assert result.stage_reached == CycleStage.DONE
        assert first.risk.to_dict() == second.risk.to_dict()
        assert "Exposure too high" in first.reason
        assert broker.submit_calls == 0

    @pytest.mark.asyncio
    async def test_dry_run(self, make_engine, broker, store):
        engine = make_engine(_buyers(), broker=broker, store=store)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=500.0, dry_run=True))

        assert_cycle_invariant(result)
        assert result.status == CycleStatus.EXECUTED
        assert result.dry_run
        assert result.order_id.startswith("dry-run-")
        assert broker.submit_calls == 0
        assert store.trades[0]["status"] == "DRY_RUN"

    @pytest.mark.asyncio
    async def test_engine_wide_dry_run(self, make_engine, broker):
        engine = make_engine(_buyers(), broker=broker, dry_run=True)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=500.0))
        assert result.dry_run
        assert broker.submit_calls == 0

    @pytest.mark.asyncio
    async def test_broker_rejection(self, make_engine, store):
        broker = FakeBroker(reject=True)
        engine = make_engine(_buyers(), broker=broker, store=store)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=500.0))

        assert_cycle_invariant(result)
        assert result.status == CycleStatus.ERROR
        assert result.order_status == OrderStatus.REJECTED
        assert "insufficient qty" in result.error
        assert result.stage_reached == CycleStage.DONE
        assert broker.submit_calls == 1
        assert store.trades[0]["status"] == "REJECTED"

    @pytest.mark.asyncio
    async def test_market_data_timeout(self, make_engine, rising_bars, broker):
        engine = make_engine(
            _buyers(), broker=broker, market_data=FakeMarketData(rising_bars, delay=0.5), port_timeout=0.05
        )
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=500.0))

        assert_cycle_invariant(result)
        assert result.status == CycleStatus.ERROR
        assert result.stage_reached == CycleStage.SIGNALING
        assert result.error.startswith("PortTimeout")
        assert broker.submit_calls == 0

    @pytest.mark.asyncio
    async def test_data_unavailable(self, make_engine, rising_bars):
        engine = make_engine(_buyers(), market_data=FakeMarketData(rising_bars, unavailable=True))
        result = await engine.run_cycle(CycleRequest(symbol="ZZZZ", notional_amount=500.0))
        assert result.status == CycleStatus.ERROR
        assert result.error.startswith("DataUnavailable")

    @pytest.mark.asyncio
    async def test_submit_timeout(self, make_engine):
        broker = FakeBroker(submit_delay=0.5)
        engine = make_engine(_buyers(), broker=broker, port_timeout=0.05)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=500.0))

        assert result.status == CycleStatus.ERROR
        assert result.stage_reached == CycleStage.EXECUTING
        assert result.risk.approved

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_fail_cycle(self, make_engine):
        store = FlakyStore(failing=True)
        engine = make_engine(_buyers(), store=store)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=500.0))

        assert result.status == CycleStatus.EXECUTED
        assert [kind for kind, _ in engine.recorder.pending] == ["trade", "activity"]

        store.failing = False
        assert (await engine.flush_pending())["analytics"] == 2
        assert len(store.trades) == 1

    @pytest.mark.asyncio
    async def test_explicit_strategy_override(self, make_engine):
        strategies = [StubStrategy(MOM, Action.SELL, 0.9), StubStrategy(MR, Action.SELL, 0.9), StubStrategy(BO, Action.BUY, 0.7)]
        engine = make_engine(strategies)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", strategy="breakout", notional_amount=500.0))

        assert result.signal.strategy_id == "breakout"
        assert result.signal.action == Action.BUY
        assert result.consensus == 1.0

    @pytest.mark.asyncio
    async def test_default_size_from_kelly(self, make_engine):
        engine = make_engine(_buyers())
        result = await engine.run_cycle(CycleRequest(symbol="AAPL"))

        # 2500 Kelly suggestion clamped to 10% of equity
        assert result.status == CycleStatus.EXECUTED
        assert result.risk.sizing == 1000.0

    @pytest.mark.asyncio
    async def test_quantity_request(self, make_engine, broker):
        engine = make_engine(_buyers(), broker=broker)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", quantity=2))
        assert result.status == CycleStatus.EXECUTED
        assert broker.submitted[0].quantity == 2

    @pytest.mark.asyncio
    async def test_exit_allowed_during_drawdown(self, make_engine):
        broker = FakeBroker(equity=8000.0, positions=[Position("AAPL", 10, 150.0)])
        broker.account = replace(broker.account, last_equity=10000.0)
        engine = make_engine([StubStrategy(MOM, Action.SELL, 0.8)], broker=broker)
        result = await engine.run_cycle(CycleRequest(symbol="AAPL", quantity=10))
        assert result.status == CycleStatus.EXECUTED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "request_kwargs",
        [
            {"symbol": ""},
            {"symbol": "   "},
            {"symbol": "AAPL", "notional_amount": 100.0, "quantity": 1.0},
            {"symbol": "AAPL", "notional_amount": -5.0},
            {"symbol": "AAPL", "strategy": "astrology"},
        ],
    )
    async def test_invalid_request(self, make_engine, request_kwargs):
        engine = make_engine(_buyers())
        with pytest.raises(ValueError):
            await engine.run_cycle(CycleRequest(**request_kwargs))
        assert engine.cycles_run == 0

    @pytest.mark.asyncio
    async def test_concurrent_cycles(self, make_engine, broker):
        engine = make_engine(_buyers(), broker=broker)
        results = await asyncio.gather(
            *(engine.run_cycle(CycleRequest(symbol=s, notional_amount=100.0)) for s in ("AAPL", "MSFT", "NVDA"))
        )
        assert [r.status for r in results] == [CycleStatus.EXECUTED] * 3
        assert engine.active_cycles == 0
        assert engine.get_status()["cycles_run"] == 3

    @pytest.mark.asyncio
    async def test_cancel_mid_submission_leaves_order_running(self, make_engine, store):
        broker = FakeBroker(submit_delay=0.2)
        engine = make_engine(_buyers(), broker=broker, store=store)
        task = asyncio.ensure_future(engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=100.0)))

        while broker.submit_calls == 0:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert engine.get_status()["inflight_submissions"] == 1
        assert store.trades == []
        await asyncio.sleep(0.3)
        assert broker.completed == 1
        assert engine.get_status()["inflight_submissions"] == 0

        # the order that reached the broker still lands in the trade log
        assert len(store.trades) == broker.completed
        assert store.trades[0]["order_id"] is not None
        assert store.activity[-1]["type"] == "trade"
        history = engine.learning.get_signal_history("momentum")
        assert len(history) == 1 and history[0]["execution_success"]

    @pytest.mark.asyncio
    async def test_close_waits_for_detached_submission(self, make_engine, store):
        broker = FakeBroker(submit_delay=0.2)
        engine = make_engine(_buyers(), broker=broker, store=store)
        task = asyncio.ensure_future(engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=100.0)))

        while broker.submit_calls == 0:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await engine.close()
        assert broker.completed == 1
        assert len(store.trades) == 1


class TestFeedback:
    @pytest.mark.asyncio
    async def test_record_trade_outcome(self, make_engine):
        engine = make_engine(_buyers())
        perf, decision = await engine.record_trade_outcome(
            TradeOutcome(strategy_id="momentum", symbol="AAPL", side="buy", pnl=12.5)
        )
        assert perf.total_trades == 1
        assert decision.switched
        assert engine.scorer.active_strategy_id == "momentum"

    @pytest.mark.asyncio
    async def test_settle_signal(self, make_engine, rising_bars):
        engine = make_engine(_buyers())
        entry = rising_bars[-4]
        signal = Signal(
            symbol="AAPL",
            action=Action.BUY,
            confidence=0.8,
            strategy_id="momentum",
            timestamp=entry.timestamp,
            price=entry.close,
        )
        perf, _ = await engine.settle_signal(signal, quantity=2)
        # three more bars at +1 each
        assert perf.total_pnl == pytest.approx(6.0)
        assert perf.winning_trades == 1

    @pytest.mark.asyncio
    async def test_daily_evaluation(self, make_engine, store):
        engine = make_engine(_buyers(), store=store)
        evaluation = await engine.daily_evaluation()
        assert evaluation.mode == "simulation"
        assert store.activity


class TestOperations:
    @pytest.mark.asyncio
    async def test_connections_healthy(self, make_engine):
        assert (await make_engine(_buyers()).test_connections())["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_connections_degraded(self, make_engine):
        engine = make_engine(_buyers(), store=FlakyStore(failing=True))
        assert (await engine.test_connections())["status"] == "degraded"

    def test_update_config(self, make_engine):
        engine = make_engine(_buyers())
        config = engine.update_config(
            risk={"max_exposure": 0.3},
            strategy={"min_confidence": 0.7, "enabled": {"mean_reversion": False}, "active_strategy": "momentum"},
        )
        assert config["risk"]["max_exposure"] == 0.3
        assert config["strategy"]["min_confidence"] == 0.7
        assert config["strategy"]["enabled"]["mean_reversion"] is False
        assert config["strategy"]["current_strategy"] == "momentum"

    def test_update_config_unknown_key(self, make_engine):
        engine = make_engine(_buyers())
        with pytest.raises(ValueError):
            engine.update_config(strategy={"leverage": 5})
        with pytest.raises(ValueError):
            engine.update_config(strategy={"active_strategy": "astrology"})

    @pytest.mark.asyncio
    async def test_status_after_cycle(self, make_engine):
        engine = make_engine(_buyers())
        await engine.run_cycle(CycleRequest(symbol="AAPL", notional_amount=100.0))
        status = engine.get_status()
        assert status["last_result"]["status"] == "executed"
        assert status["pending_writes"] == 0
