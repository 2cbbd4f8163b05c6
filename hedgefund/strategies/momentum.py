"""
Momentum Strategy - Rides established moves confirmed by EMA alignment and rate of change
"""
import pandas as pd

from hedgefund.analysis import indicators as ta
from hedgefund.core.types import Action, Signal
from .base_strategy import BaseStrategy, StrategyKind


class MomentumStrategy(BaseStrategy):
    """
    Momentum strategy following the prevailing direction.

    Entry Conditions:
    - EMA(12) above EMA(26) with positive 10-bar rate of change (long)
    - EMA(12) below EMA(26) with negative 10-bar rate of change (short)

    Confidence bonuses:
    - Price on the same side of SMA(50) as the move
    - Volume 1.5x+ average
    - Strong rate of change (over 5%)
    """

    kind = StrategyKind.MOMENTUM

    def __init__(self, roc_period: int = 10, strong_roc: float = 0.05):
        super().__init__(
            name="Momentum",
            description="Trend-following momentum with EMA alignment and volume confirmation.",
        )
        self.roc_period = roc_period
        self.strong_roc = strong_roc

    def analyze(self, symbol: str, frame: pd.DataFrame) -> Signal:
        closes = frame["close"]
        snap = ta.snapshot(frame)
        price = snap["price"]
        roc = ta.rate_of_change(closes, self.roc_period)
        snap["roc"] = roc

        action = Action.HOLD
        reasoning = []
        if snap["ema12"] > snap["ema26"] and roc > 0:
            action = Action.BUY
            reasoning.append(f"EMA12 above EMA26, {self.roc_period}-bar ROC +{roc:.2%}")
        elif snap["ema12"] < snap["ema26"] and roc < 0:
            action = Action.SELL
            reasoning.append(f"EMA12 below EMA26, {self.roc_period}-bar ROC {roc:.2%}")
        else:
            reasoning.append("No aligned momentum")

        confidence = 0.5
        if action != Action.HOLD:
            above_trend = price > snap["sma50"]
            if (action == Action.BUY and above_trend) or (action == Action.SELL and not above_trend):
                confidence += 0.10
                reasoning.append("Trend agrees with SMA50")
            if snap["volume_ratio"] > 1.5:
                confidence += 0.10
                reasoning.append(f"Volume {snap['volume_ratio']:.1f}x average")
            if abs(roc) > self.strong_roc:
                confidence += 0.10
                reasoning.append("Strong rate of change")
        else:
            confidence = 0.3

        stop_loss, take_profit = self.atr_levels(action, price, snap["atr"], 2.0, 3.0)
        return self._signal(symbol, action, confidence, snap, reasoning, price, stop_loss, take_profit)
