"""Tests for the walk-forward backtest."""

import pytest

from conftest import StubStrategy, make_bars
from hedgefund.analytics.backtest import run_backtest
from hedgefund.core.types import Action
from hedgefund.learning.outcomes import EXIT_HORIZON, EXIT_TAKE_PROFIT
from hedgefund.strategies import StrategyKind


class TestRunBacktest:
    def test_always_buy_on_rising_bars(self):
        bars = make_bars([100.0 + i for i in range(30)])
        strategy = StubStrategy(StrategyKind.MOMENTUM, Action.BUY)

        result = run_backtest(StrategyKind.MOMENTUM, "AAPL", bars, strategy=strategy)

        # every bar but the last opens a trade
        assert result.trades_executed == 29
        assert result.wins == 29
        assert result.losses == 0
        assert result.win_rate == 1.0
        assert result.max_drawdown == 0.0
        assert result.trades[0].exit_reason == EXIT_TAKE_PROFIT
        assert result.trades[-1].exit_reason == EXIT_HORIZON
        assert result.avg_confidence == pytest.approx(0.8)

    def test_hold_never_trades(self):
        bars = make_bars([100.0] * 20)
        result = run_backtest(
            StrategyKind.MOMENTUM, "AAPL", bars, strategy=StubStrategy(StrategyKind.MOMENTUM, Action.HOLD, 0.3)
        )
        assert result.trades_executed == 0
        assert result.win_rate == 0.0
        assert result.to_dict()["total_pnl"] == 0.0

    def test_losing_shorts_tracked_as_drawdown(self):
        bars = make_bars([100.0 + i for i in range(10)])
        result = run_backtest(
            StrategyKind.MOMENTUM, "AAPL", bars, strategy=StubStrategy(StrategyKind.MOMENTUM, Action.SELL)
        )
        assert result.losses == result.trades_executed == 9
        assert result.total_pnl < 0
        assert result.max_drawdown == -result.total_pnl

    def test_flat_exits_are_neither_wins_nor_losses(self):
        bars = make_bars([100.0] * 20)
        result = run_backtest(
            StrategyKind.MOMENTUM, "AAPL", bars, strategy=StubStrategy(StrategyKind.MOMENTUM, Action.BUY)
        )
        assert result.trades_executed == 19
        assert all(trade.exit_reason == EXIT_HORIZON and trade.pnl == 0.0 for trade in result.trades)
        assert result.wins == 0
        assert result.losses == 0
        assert result.win_rate == 0.0
        assert result.max_drawdown == 0.0

    def test_real_strategy(self, rising_bars):
        result = run_backtest(StrategyKind.MOMENTUM, "AAPL", rising_bars)
        assert result.strategy_id == "momentum"
        assert result.trades_executed > 0
        assert "trades" in result.to_dict(include_trades=True)

    def test_too_few_bars(self):
        result = run_backtest(StrategyKind.MOMENTUM, "AAPL", make_bars([100.0] * 10))
        assert result.trades_executed == 0
