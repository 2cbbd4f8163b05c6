"""
Walk-forward backtest of a single strategy over historical bars
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from hedgefund.core.types import Bar
from hedgefund.learning.outcomes import classify_outcome
from hedgefund.strategies import BaseStrategy, StrategyKind, build_strategy


@dataclass
class BacktestTrade:
    index: int
    action: str
    entry_price: float
    exit_price: float
    exit_reason: str
    bars_held: int
    pnl: float
    confidence: float


@dataclass
class BacktestResult:
    strategy_id: str
    symbol: str
    trades_executed: int = 0
    wins: int = 0
    losses: int = 0
    win_rate: float = 0.0
    total_pnl: float = 0.0
    max_drawdown: float = 0.0
    avg_confidence: float = 0.0
    trades: List[BacktestTrade] = field(default_factory=list)

    def to_dict(self, include_trades: bool = False) -> Dict[str, Any]:
        data = {
            "strategy_id": self.strategy_id,
            "symbol": self.symbol,
            "trades_executed": self.trades_executed,
            "wins": self.wins,
            "losses": self.losses,
            "win_rate": round(self.win_rate, 4),
            "total_pnl": round(self.total_pnl, 4),
            "max_drawdown": round(self.max_drawdown, 4),
            "avg_confidence": round(self.avg_confidence, 4),
        }
        if include_trades:
            data["trades"] = [trade.__dict__ for trade in self.trades]
        return data


def run_backtest(
    kind: StrategyKind,
    symbol: str,
    bars: Sequence[Bar],
    horizon: int = 10,
    quantity: float = 1.0,
    strategy: Optional[BaseStrategy] = None,
) -> BacktestResult:
    """
    Evaluate a strategy at every bar once it has enough history.

    Each BUY/SELL opens a position at that bar's close which is closed by
    the shared stop/target classification over the next ``horizon`` bars,
    the same routine used when settling live signals.
    """
    strategy = strategy or build_strategy(kind)
    result = BacktestResult(strategy_id=strategy.strategy_id, symbol=symbol)

    cumulative = 0.0
    peak = 0.0
    confidences: List[float] = []

    for i in range(strategy.min_bars - 1, len(bars) - 1):
        signal = strategy.evaluate(symbol, bars[: i + 1])
        if not signal.is_actionable:
            continue

        future = bars[i + 1 : i + 1 + horizon]
        outcome = classify_outcome(
            signal.action,
            signal.price,
            future,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            quantity=quantity,
        )
        pnl = outcome.pnl
        cumulative += pnl
        peak = max(peak, cumulative)
        result.max_drawdown = max(result.max_drawdown, peak - cumulative)
        if pnl > 0:
            result.wins += 1
        elif pnl < 0:
            result.losses += 1
        confidences.append(signal.confidence)
        result.trades.append(BacktestTrade(
            index=i,
            action=signal.action.value,
            entry_price=signal.price,
            exit_price=outcome.exit_price,
            exit_reason=outcome.exit_reason,
            bars_held=outcome.bars_held,
            pnl=pnl,
            confidence=signal.confidence,
        ))

    result.trades_executed = len(result.trades)
    result.total_pnl = cumulative
    if result.trades_executed:
        result.win_rate = result.wins / result.trades_executed
        result.avg_confidence = sum(confidences) / len(confidences)

    logger.info(
        f"Backtest {result.strategy_id} on {symbol}: {result.trades_executed} trades, "
        f"win rate {result.win_rate:.1%}, P&L {result.total_pnl:.2f}, max DD {result.max_drawdown:.2f}"
    )
    return result
