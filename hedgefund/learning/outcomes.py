"""
Trade outcome classification shared by live settlement and backtesting.

A position opened on a signal is walked forward bar by bar: the first bar
that touches the stop loss or take profit closes it at that level. When both
levels sit inside one bar the stop is assumed to fill first. A position that
touches neither is closed at the last available close.
"""
from dataclasses import dataclass
from typing import Optional, Sequence

from hedgefund.core.types import Action, Bar, Signal, TradeOutcome

EXIT_STOP_LOSS = "stop_loss"
EXIT_TAKE_PROFIT = "take_profit"
EXIT_HORIZON = "horizon"


@dataclass
class ClassifiedOutcome:
    action: Action
    entry_price: float
    exit_price: float
    exit_reason: str
    bars_held: int
    quantity: float = 1.0

    @property
    def return_pct(self) -> float:
        if self.entry_price <= 0:
            return 0.0
        move = (self.exit_price - self.entry_price) / self.entry_price
        return move if self.action == Action.BUY else -move

    @property
    def pnl(self) -> float:
        return realized_pnl(self.action, self.entry_price, self.exit_price, self.quantity)

    @property
    def is_win(self) -> bool:
        return self.pnl > 0


def realized_pnl(action: Action, entry_price: float, exit_price: float, quantity: float) -> float:
    """Dollar P&L of a closed long (BUY) or short (SELL) position"""
    direction = 1.0 if Action(action) == Action.BUY else -1.0
    return (exit_price - entry_price) * quantity * direction


def classify_outcome(
    action: Action,
    entry_price: float,
    future_bars: Sequence[Bar],
    stop_loss: Optional[float] = None,
    take_profit: Optional[float] = None,
    quantity: float = 1.0,
) -> ClassifiedOutcome:
    """
    Close a position against the bars that followed its entry.

    Args:
        action: BUY (long) or SELL (short)
        entry_price: Fill price at entry
        future_bars: Bars after entry, ascending
        stop_loss: Protective stop price, if any
        take_profit: Target price, if any
        quantity: Position size for the P&L figure

    Raises:
        ValueError: HOLD action or no bars to walk
    """
    action = Action(action)
    if action == Action.HOLD:
        raise ValueError("HOLD signals do not open positions")
    if not future_bars:
        raise ValueError("No bars after entry to classify the outcome")

    is_long = action == Action.BUY
    for held, bar in enumerate(future_bars, start=1):
        if stop_loss is not None:
            stopped = bar.low <= stop_loss if is_long else bar.high >= stop_loss
            if stopped:
                return ClassifiedOutcome(action, entry_price, stop_loss, EXIT_STOP_LOSS, held, quantity)
        if take_profit is not None:
            hit = bar.high >= take_profit if is_long else bar.low <= take_profit
            if hit:
                return ClassifiedOutcome(action, entry_price, take_profit, EXIT_TAKE_PROFIT, held, quantity)

    return ClassifiedOutcome(
        action, entry_price, future_bars[-1].close, EXIT_HORIZON, len(future_bars), quantity
    )


def outcome_for_signal(signal: Signal, future_bars: Sequence[Bar], quantity: float = 1.0) -> TradeOutcome:
    """Classify a signal's position and express it as a closed TradeOutcome"""
    classified = classify_outcome(
        signal.action,
        signal.price,
        future_bars,
        stop_loss=signal.stop_loss,
        take_profit=signal.take_profit,
        quantity=quantity,
    )
    closed_at = future_bars[classified.bars_held - 1].timestamp
    return TradeOutcome(
        strategy_id=signal.strategy_id,
        symbol=signal.symbol,
        side=signal.action.value.lower(),
        pnl=classified.pnl,
        entry_price=signal.price,
        exit_price=classified.exit_price,
        quantity=quantity,
        closed_at=closed_at,
    )
