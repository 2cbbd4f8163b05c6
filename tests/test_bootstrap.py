"""Tests for settings loading and engine wiring."""

import pytest

from conftest import FakeBroker, FakeMarketData, FlakyStore
from hedgefund.config.settings import Settings
from hedgefund.database.memory_store import InMemoryStore
from hedgefund.engine.bootstrap import build_engine, build_persistence
from hedgefund.exchange.alpaca_client import AlpacaClient

CREDENTIAL_VARS = ("ALPACA_API_KEY", "ALPACA_API_SECRET", "SUPABASE_URL", "SUPABASE_KEY")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # Keep a developer's .env and shell credentials out of these tests
    monkeypatch.chdir(tmp_path)
    for name in CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.load()
    assert settings.alpaca.paper is True
    assert settings.alpaca.configured is False
    assert settings.risk.max_exposure == 0.5
    assert settings.engine.port_timeout_seconds == 15.0


def test_env_overrides(monkeypatch, rising_bars):
    monkeypatch.setenv("RISK_MAX_EXPOSURE", "0.3")
    monkeypatch.setenv("STRATEGY_MIN_BARS", "60")
    monkeypatch.setenv("STRATEGY_MIN_CONFIDENCE", "0.7")
    monkeypatch.setenv("ENGINE_DRY_RUN", "true")
    monkeypatch.setenv("ENGINE_SESSION_ID", "session-42")
    broker = FakeBroker()

    engine = build_engine(
        Settings.load(),
        market_data=FakeMarketData(rising_bars),
        account=broker,
        orders=broker,
        persistence=FlakyStore(),
    )

    assert engine.risk_engine.limits.max_exposure == 0.3
    assert engine.scorer.min_confidence == 0.7
    assert all(s.min_bars >= 60 for s in engine.scorer.strategies.values())
    assert len(engine.scorer.strategies) == 5
    assert engine.dry_run is True
    assert engine.session_id == "session-42"
    assert engine.mode == "paper"


def test_invalid_env_value(monkeypatch):
    monkeypatch.setenv("RISK_MAX_EXPOSURE", "1.5")
    with pytest.raises(ValueError):
        Settings.load()


def test_missing_credentials_without_ports():
    with pytest.raises(ValueError):
        build_engine(Settings.load())


def test_alpaca_built_from_credentials(monkeypatch):
    monkeypatch.setenv("ALPACA_API_KEY", "key")
    monkeypatch.setenv("ALPACA_API_SECRET", "secret")
    monkeypatch.setenv("ALPACA_PAPER", "false")

    engine = build_engine(Settings.load())

    assert isinstance(engine.market_data, AlpacaClient)
    assert engine.market_data is engine.account is engine.router.orders
    assert engine.market_data.base_url == "https://api.alpaca.markets"
    assert engine.mode == "live"
    assert isinstance(engine.persistence, InMemoryStore)


def test_persistence_falls_back_to_memory():
    assert isinstance(build_persistence(Settings.load()), InMemoryStore)
