"""
Technical Composite Strategy - RSI / MACD / moving-average vote
"""
from typing import Dict

import pandas as pd

from hedgefund.analysis import indicators as ta
from hedgefund.core.types import Action, Signal
from .base_strategy import BaseStrategy, StrategyKind


class TechnicalStrategy(BaseStrategy):
    """
    Composite of RSI, MACD, SMA crossover, trend and volume.

    Each indicator votes; confidence starts at 0.5 and gains fixed bonuses.
    A trade needs confidence of at least ``action_threshold`` and a clear
    BUY/SELL vote majority.
    """

    kind = StrategyKind.TECHNICAL

    def __init__(self, action_threshold: float = 0.60):
        super().__init__(
            name="Technical",
            description="RSI/MACD composite with SMA trend and volume confirmation.",
        )
        self.action_threshold = action_threshold

    @staticmethod
    def _side(value: float, reference: float) -> str:
        if value > reference:
            return "BUY"
        if value < reference:
            return "SELL"
        return "NEUTRAL"

    @classmethod
    def _votes(cls, snap: Dict[str, float]) -> Dict[str, str]:
        rsi = snap["rsi"]
        return {
            "rsi": "BUY" if rsi < 30 else "SELL" if rsi > 70 else "NEUTRAL",
            # Histogram sits against EMA26, so its sign carries no direction; vote on the MACD line
            "macd": cls._side(snap["macd"], 0.0),
            "sma": cls._side(snap["sma20"], snap["sma50"]),
            "trend": cls._side(snap["price"], snap["sma50"]),
            "volume": "STRONG" if snap["volume_ratio"] > 1.5 else "WEAK",
        }

    def analyze(self, symbol: str, frame: pd.DataFrame) -> Signal:
        snap = ta.snapshot(frame)
        price = snap["price"]
        votes = self._votes(snap)

        rsi_direction = votes["rsi"] if votes["rsi"] != "NEUTRAL" else ""
        confidence = 0.5 + ta.confidence_bonus(
            rsi_direction,
            snap["rsi"],
            snap["macd_histogram"],
            votes["trend"] == votes["sma"],
            snap["volume_ratio"],
        )

        buys = sum(1 for v in votes.values() if v == "BUY")
        sells = sum(1 for v in votes.values() if v == "SELL")

        action = Action.HOLD
        if confidence >= self.action_threshold:
            if buys > sells:
                action = Action.BUY
            elif sells > buys:
                action = Action.SELL

        reasoning = [f"Votes BUY={buys} SELL={sells}", f"RSI {snap['rsi']:.1f}"]
        reasoning.append(f"MACD {snap['macd']:.2f} (histogram {snap['macd_histogram']:.2f})")
        if votes["volume"] == "STRONG":
            reasoning.append(f"High volume ({snap['volume_ratio']:.1f}x average)")
        if votes["trend"] != "NEUTRAL":
            reasoning.append("Price above 50 SMA" if votes["trend"] == "BUY" else "Price below 50 SMA")

        # 2 ATR stop, 2.5 reward/risk
        stop_loss, take_profit = self.atr_levels(action, price, snap["atr"], 2.0, 5.0)
        return self._signal(symbol, action, confidence, snap, reasoning, price, stop_loss, take_profit)
