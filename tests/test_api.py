"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeBroker, StubStrategy
from hedgefund.api.server import create_app
from hedgefund.core.types import Action
from hedgefund.strategies import StrategyKind


@pytest.fixture
def broker():
    return FakeBroker(cancellable=False)


@pytest.fixture
def client(make_engine, broker, store):
    engine = make_engine(
        [StubStrategy(StrategyKind.MOMENTUM, Action.BUY, 0.8), StubStrategy(StrategyKind.BREAKOUT, Action.BUY, 0.7)],
        broker=broker,
        store=store,
    )
    with TestClient(create_app(engine=engine)) as test_client:
        yield test_client


class TestRunCycle:
    def test_missing_symbol(self, client):
        response = client.post("/api/hedge-fund/run-cycle", json={"notionalAmount": 100})
        assert response.status_code == 400
        assert response.json()["detail"] == "Symbol is required"

    def test_executed(self, client, broker):
        response = client.post("/api/hedge-fund/run-cycle", json={"symbol": "aapl", "notionalAmount": 500})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "executed"
        assert body["order_id"] == "order-1"
        assert body["signal"]["symbol"] == "AAPL"
        assert body["risk"]["approved"] is True
        assert broker.submit_calls == 1

    def test_dry_run(self, client, broker):
        response = client.post(
            "/api/hedge-fund/run-cycle", json={"symbol": "AAPL", "notionalAmount": 500, "dryRun": True}
        )
        assert response.json()["order_id"].startswith("dry-run-")
        assert broker.submit_calls == 0

    def test_both_sizes(self, client):
        response = client.post("/api/hedge-fund/run-cycle", json={"symbol": "AAPL", "notionalAmount": 500, "quantity": 2})
        assert response.status_code == 400

    def test_unknown_strategy(self, client):
        response = client.post("/api/hedge-fund/run-cycle", json={"symbol": "AAPL", "strategy": "astrology"})
        assert response.status_code == 422

    def test_rejected_is_still_200(self, client):
        response = client.post("/api/hedge-fund/run-cycle", json={"symbol": "AAPL", "notionalAmount": 6000})
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"


class TestOutcomes:
    def test_hold_side_refused(self, client):
        response = client.post(
            "/api/strategies/outcomes", json={"strategy_id": "momentum", "symbol": "AAPL", "side": "HOLD", "pnl": 5}
        )
        assert response.status_code == 400

    def test_unreadable_history_refused(self, client, store):
        store.load_failures = 1
        response = client.post(
            "/api/strategies/outcomes", json={"strategy_id": "momentum", "symbol": "AAPL", "side": "BUY", "pnl": 5}
        )
        assert response.status_code == 503
        assert "momentum" not in store.performance

    def test_pnl_from_prices(self, client):
        response = client.post(
            "/api/strategies/outcomes",
            json={
                "strategy_id": "momentum",
                "symbol": "aapl",
                "side": "SELL",
                "entry_price": 100.0,
                "exit_price": 90.0,
                "quantity": 2,
            },
        )
        assert response.status_code == 200
        body = response.json()
        assert body["performance"]["total_pnl"] == pytest.approx(20.0)
        assert body["performance"]["winning_trades"] == 1
        assert body["switch"]["switched"] is True

    def test_missing_pnl_and_prices(self, client):
        response = client.post(
            "/api/strategies/outcomes", json={"strategy_id": "momentum", "symbol": "AAPL", "side": "BUY"}
        )
        assert response.status_code == 400


class TestReadEndpoints:
    def test_root(self, client):
        assert client.get("/").json()["name"] == "hedgefund"

    def test_status(self, client):
        body = client.get("/api/hedge-fund/status").json()
        assert body["connections"]["status"] == "healthy"
        assert body["cycles_run"] == 0
        assert body["config"]["risk"]["max_exposure"] == 0.5

    def test_analytics_after_cycle(self, client):
        client.post("/api/hedge-fund/run-cycle", json={"symbol": "AAPL", "notionalAmount": 100})
        body = client.get("/api/hedge-fund/analytics").json()
        assert body["metrics"]["executed"] == 1
        assert body["recent"][0]["symbol"] == "AAPL"
        assert body["learning"][0]["strategy_id"] == "momentum"

    def test_comparison(self, client):
        body = client.get("/api/strategies/comparison").json()
        assert "switching" in body
        assert body["switching"]["auto_switch_enabled"] is True

    def test_recommendations(self, client):
        response = client.get("/api/strategies/momentum/recommendations")
        assert response.json() == ["No learning data yet for this strategy"]

    def test_evaluate(self, client):
        assert client.post("/api/hedge-fund/evaluate").json()["mode"] == "simulation"

    def test_backtest(self, client):
        response = client.post("/api/hedge-fund/backtest", json={"strategy": "momentum", "symbol": "aapl", "limit": 60})
        assert response.status_code == 200
        body = response.json()
        assert body["symbol"] == "AAPL"
        assert body["trades_executed"] > 0


class TestConfigAndOrders:
    def test_update_config(self, client):
        response = client.post("/api/hedge-fund/config", json={"risk": {"max_exposure": 0.3}})
        assert response.status_code == 200
        assert response.json()["risk"]["max_exposure"] == 0.3

    def test_invalid_config(self, client):
        assert client.post("/api/hedge-fund/config", json={"strategy": {"leverage": 5}}).status_code == 400
        assert client.post("/api/hedge-fund/config", json={"risk": {"leverage": 5}}).status_code == 400

    def test_order_status(self, client):
        body = client.get("/api/orders/abc").json()
        assert body["order_id"] == "abc"
        assert body["status"] == "pending"

    def test_cancel_refused(self, client):
        assert client.post("/api/orders/abc/cancel").status_code == 409
