"""
Breakout Strategy - Captures channel breakouts with volume confirmation
"""
import pandas as pd

from hedgefund.analysis import indicators as ta
from hedgefund.core.types import Action, Signal
from .base_strategy import BaseStrategy, StrategyKind


class BreakoutStrategy(BaseStrategy):
    """
    Breakout strategy targeting range breaks.

    Entry Conditions:
    - Close above the highest high of the prior channel window (long)
    - Close below the lowest low of the prior channel window (short)

    Exit Strategy:
    - ATR-based stop (wider than mean reversion)
    - 2:1 reward/risk
    """

    kind = StrategyKind.BREAKOUT

    def __init__(self, channel: int = 20):
        super().__init__(
            name="Breakout",
            description="Channel breakout strategy with volume confirmation and ATR-based exits.",
        )
        self.channel = channel

    def analyze(self, symbol: str, frame: pd.DataFrame) -> Signal:
        snap = ta.snapshot(frame)
        price = snap["price"]

        # Channel excludes the current bar
        prior = frame.iloc[-self.channel - 1:-1]
        upper = float(prior["high"].max())
        lower = float(prior["low"].min())
        snap["channel_high"] = upper
        snap["channel_low"] = lower

        action = Action.HOLD
        reasoning = []
        if price > upper:
            action = Action.BUY
            reasoning.append(f"Close {price:.2f} broke {self.channel}-bar high {upper:.2f}")
        elif price < lower:
            action = Action.SELL
            reasoning.append(f"Close {price:.2f} broke {self.channel}-bar low {lower:.2f}")
        else:
            reasoning.append(f"Inside channel {lower:.2f}-{upper:.2f}")

        confidence = 0.3
        if action != Action.HOLD:
            confidence = 0.5
            if snap["volume_ratio"] > 1.5:
                confidence += 0.10
                reasoning.append(f"Volume spike: {snap['volume_ratio']:.1f}x average")
            above_trend = price > snap["sma50"]
            if (action == Action.BUY and above_trend) or (action == Action.SELL and not above_trend):
                confidence += 0.10
                reasoning.append("Breakout with SMA50 trend")
            # Don't chase exhausted moves
            if action == Action.BUY and snap["rsi"] > 80:
                confidence -= 0.10
                reasoning.append("RSI overextended")
            elif action == Action.SELL and snap["rsi"] < 20:
                confidence -= 0.10
                reasoning.append("RSI overextended")

        stop_loss, take_profit = self.atr_levels(action, price, snap["atr"], 2.0, 4.0)
        return self._signal(symbol, action, confidence, snap, reasoning, price, stop_loss, take_profit)
