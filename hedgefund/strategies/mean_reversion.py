import pandas as pd

from hedgefund.analysis import indicators as ta
from hedgefund.core.types import Action, Signal
from .base_strategy import BaseStrategy, StrategyKind


class MeanReversionStrategy(BaseStrategy):
    kind = StrategyKind.MEAN_REVERSION

    def __init__(self, lookback: int = 20, z_threshold: float = 2.0):
        super().__init__(
            name="MeanReversion",
            description="Counter-trend strategy targeting z-score extremes around SMA20 with RSI confirmation.",
        )
        self.lookback = lookback
        self.z_threshold = z_threshold

    def analyze(self, symbol: str, frame: pd.DataFrame) -> Signal:
        """
        Analyze a symbol's bars for a mean reversion setup.
        """
        snap = ta.snapshot(frame)
        price = snap["price"]
        z = ta.zscore(frame["close"], self.lookback)
        snap["zscore"] = z
        rsi = snap["rsi"]

        action = Action.HOLD
        reasoning = []

        # Long setup (stretched below the mean)
        if z <= -self.z_threshold:
            action = Action.BUY
            reasoning.append(f"Price {abs(z):.2f} std below SMA{self.lookback}")
        # Short setup (stretched above the mean)
        elif z >= self.z_threshold:
            action = Action.SELL
            reasoning.append(f"Price {z:.2f} std above SMA{self.lookback}")
        else:
            reasoning.append(f"Z-score {z:.2f} inside +/-{self.z_threshold}")

        confidence = 0.3
        if action != Action.HOLD:
            confidence = 0.5
            if action == Action.BUY:
                if rsi < 25:
                    confidence += 0.15
                elif rsi < 35:
                    confidence += 0.10
            else:
                if rsi > 75:
                    confidence += 0.15
                elif rsi > 65:
                    confidence += 0.10
            if abs(z) > self.z_threshold + 0.5:
                confidence += 0.10
                reasoning.append("Extreme stretch")
            if snap["volume_ratio"] > 1.5:
                confidence += 0.10
                reasoning.append(f"Volume {snap['volume_ratio']:.1f}x average")
            reasoning.append(f"RSI {rsi:.1f}")

        # Tighter stop for mean reversion
        stop_loss, take_profit = self.atr_levels(action, price, snap["atr"], 1.5, 2.0)
        return self._signal(symbol, action, confidence, snap, reasoning, price, stop_loss, take_profit)
