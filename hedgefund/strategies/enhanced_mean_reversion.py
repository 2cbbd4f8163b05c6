"""
Enhanced Mean Reversion - Volatility-regime aware thresholds and exhaustion filter
"""
from typing import Dict

import pandas as pd

from hedgefund.analysis import indicators as ta
from hedgefund.core.types import Action, Signal
from .base_strategy import BaseStrategy, StrategyKind

THRESHOLDS: Dict[str, float] = {"LOW": 1.5, "MEDIUM": 2.0, "HIGH": 2.5}
LOOKBACKS: Dict[str, int] = {"LOW": 15, "MEDIUM": 20, "HIGH": 30}
STOP_PCT: Dict[str, float] = {"LOW": 0.015, "MEDIUM": 0.02, "HIGH": 0.03}
TARGET_PCT: Dict[str, float] = {"LOW": 0.025, "MEDIUM": 0.03, "HIGH": 0.04}


class EnhancedMeanReversionStrategy(BaseStrategy):
    """
    Mean reversion that adapts to the volatility regime.

    - Annualized 20-bar volatility classifies the regime (LOW/MEDIUM/HIGH)
    - Regime picks the z-score threshold and lookback
    - Strong 10-bar momentum (over 15%) means reversion is exhausted: hold
    """

    kind = StrategyKind.ENHANCED_MEAN_REVERSION

    def __init__(self, exhaustion_momentum: float = 0.15):
        super().__init__(
            name="EnhancedMeanReversion",
            description="Dynamic mean reversion with volatility regime adaptation.",
        )
        self.exhaustion_momentum = exhaustion_momentum

    @staticmethod
    def volatility_regime(volatility: float) -> str:
        if volatility < 0.15:
            return "LOW"
        if volatility < 0.30:
            return "MEDIUM"
        return "HIGH"

    def analyze(self, symbol: str, frame: pd.DataFrame) -> Signal:
        closes = frame["close"]
        snap = ta.snapshot(frame)
        price = snap["price"]

        volatility = ta.annualized_volatility(closes, 20)
        regime = self.volatility_regime(volatility)
        threshold = THRESHOLDS[regime]
        z = ta.zscore(closes, LOOKBACKS[regime])

        # Momentum over the last 10 bars, first to last
        recent = closes.iloc[-10:]
        momentum = (float(recent.iloc[-1]) - float(recent.iloc[0])) / float(recent.iloc[0]) if float(recent.iloc[0]) else 0.0
        exhausted = abs(momentum) > self.exhaustion_momentum

        snap.update({"zscore": z, "volatility": volatility, "momentum": momentum, "threshold": threshold})

        if exhausted or abs(z) < threshold:
            reasoning = [f"Holding: Z-score {z:.2f}, Volatility: {regime}"]
            if exhausted:
                reasoning.append(f"Momentum {momentum:.1%} exhausts reversion")
            return self._signal(symbol, Action.HOLD, 0.3, snap, reasoning, price)

        action = Action.BUY if z < 0 else Action.SELL
        rsi = snap["rsi"]

        confidence = 0.5 + min(1.0, abs(z) / 3.0) * 0.3
        if (action == Action.BUY and rsi <= 30) or (action == Action.SELL and rsi >= 70):
            confidence += 0.2
        if regime == "LOW":
            confidence += 0.1
        elif regime == "HIGH":
            confidence -= 0.1

        stop_pct = STOP_PCT[regime]
        target_pct = TARGET_PCT[regime]
        if action == Action.BUY:
            stop_loss, take_profit = price * (1 - stop_pct), price * (1 + target_pct)
        else:
            stop_loss, take_profit = price * (1 + stop_pct), price * (1 - target_pct)

        reasoning = [f"Enhanced {action.value}: Z={z:.2f}, RSI={rsi:.1f}, Vol={regime}"]
        return self._signal(symbol, action, confidence, snap, reasoning, price, stop_loss, take_profit)
