"""Trade analytics and backtesting"""
from .analytics_recorder import AnalyticsRecorder
from .backtest import BacktestResult, BacktestTrade, run_backtest

__all__ = ["AnalyticsRecorder", "BacktestResult", "BacktestTrade", "run_backtest"]
