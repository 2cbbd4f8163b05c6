"""Strategy evaluators"""
from typing import Dict, List, Type

from .base_strategy import BaseStrategy, StrategyKind, clamp_confidence
from .breakout_strategy import BreakoutStrategy
from .enhanced_mean_reversion import EnhancedMeanReversionStrategy
from .mean_reversion import MeanReversionStrategy
from .momentum import MomentumStrategy
from .technical import TechnicalStrategy

STRATEGY_CLASSES: Dict[StrategyKind, Type[BaseStrategy]] = {
    StrategyKind.MOMENTUM: MomentumStrategy,
    StrategyKind.MEAN_REVERSION: MeanReversionStrategy,
    StrategyKind.BREAKOUT: BreakoutStrategy,
    StrategyKind.TECHNICAL: TechnicalStrategy,
    StrategyKind.ENHANCED_MEAN_REVERSION: EnhancedMeanReversionStrategy,
}


def build_strategy(kind: StrategyKind) -> BaseStrategy:
    return STRATEGY_CLASSES[StrategyKind(kind)]()


def build_all_strategies() -> List[BaseStrategy]:
    return [build_strategy(kind) for kind in StrategyKind]


__all__ = [
    "BaseStrategy",
    "BreakoutStrategy",
    "EnhancedMeanReversionStrategy",
    "MeanReversionStrategy",
    "MomentumStrategy",
    "STRATEGY_CLASSES",
    "StrategyKind",
    "TechnicalStrategy",
    "build_all_strategies",
    "build_strategy",
    "clamp_confidence",
]
