from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence

import pandas as pd

from hedgefund.analysis.indicators import bars_to_frame
from hedgefund.core.errors import InsufficientData
from hedgefund.core.types import Action, Bar, Signal

MIN_BARS = 50
MIN_CONFIDENCE = 0.30
MAX_CONFIDENCE = 0.95


class StrategyKind(str, Enum):
    """Closed set of strategy algorithms"""
    MOMENTUM = "momentum"
    MEAN_REVERSION = "mean_reversion"
    BREAKOUT = "breakout"
    TECHNICAL = "technical"
    ENHANCED_MEAN_REVERSION = "enhanced_mean_reversion"


def clamp_confidence(value: float) -> float:
    return round(min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, value)), 4)


class BaseStrategy(ABC):
    """Abstract base class for all trading strategies"""

    kind: StrategyKind

    def __init__(self, name: str, description: str, min_bars: int = MIN_BARS):
        self.name = name
        self.description = description
        self.min_bars = min_bars

    @property
    def strategy_id(self) -> str:
        return self.kind.value

    def evaluate(self, symbol: str, bars: Sequence[Bar]) -> Signal:
        """
        Evaluate a bar series and return exactly one signal.

        Pure function of ``bars`` and the strategy parameters: identical input
        gives identical output (timestamp aside).

        Raises:
            InsufficientData: fewer than ``min_bars`` bars were given
        """
        if len(bars) < self.min_bars:
            raise InsufficientData(
                f"{self.name} needs {self.min_bars} bars, got {len(bars)}",
                required=self.min_bars,
                available=len(bars),
            )
        return self.analyze(symbol, bars_to_frame(bars))

    @abstractmethod
    def analyze(self, symbol: str, frame: pd.DataFrame) -> Signal:
        """
        Analyze an ascending OHLCV frame and return a signal.

        Args:
            symbol: Trading symbol
            frame: Bars as a DataFrame with at least ``min_bars`` rows

        Returns:
            Signal with confidence already clamped
        """

    def _signal(
        self,
        symbol: str,
        action: Action,
        confidence: float,
        indicators: Dict[str, float],
        reasoning: List[str],
        price: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> Signal:
        return Signal(
            symbol=symbol,
            action=action,
            confidence=clamp_confidence(confidence),
            strategy_id=self.strategy_id,
            indicators={k: round(float(v), 6) for k, v in indicators.items()},
            reasoning="; ".join(reasoning),
            price=price,
            stop_loss=round(stop_loss, 4) if stop_loss is not None else None,
            take_profit=round(take_profit, 4) if take_profit is not None else None,
        )

    @staticmethod
    def atr_levels(
        action: Action, price: float, atr_value: float, stop_mult: float, target_mult: float
    ) -> tuple:
        """ATR-based stop loss / take profit for a direction"""
        if action == Action.HOLD or atr_value <= 0:
            return None, None
        if action == Action.BUY:
            return price - stop_mult * atr_value, price + target_mult * atr_value
        return price + stop_mult * atr_value, price - target_mult * atr_value
