"""Engine configuration"""
from .settings import (
    AlpacaSettings,
    ApiSettings,
    DatabaseSettings,
    EngineSettings,
    LearningSettings,
    LoggingSettings,
    RiskSettings,
    Settings,
    StrategySettings,
)

__all__ = [
    "AlpacaSettings",
    "ApiSettings",
    "DatabaseSettings",
    "EngineSettings",
    "LearningSettings",
    "LoggingSettings",
    "RiskSettings",
    "Settings",
    "StrategySettings",
]
