"""Outcome feedback: performance tracking, signal learning and daily evaluation"""
from .learning_engine import LearningEngine, SignalLearning, sharpe_ratio
from .outcomes import ClassifiedOutcome, classify_outcome, outcome_for_signal, realized_pnl
from .performance_book import PerformanceBook

__all__ = [
    "ClassifiedOutcome",
    "LearningEngine",
    "PerformanceBook",
    "SignalLearning",
    "classify_outcome",
    "outcome_for_signal",
    "realized_pnl",
    "sharpe_ratio",
]
