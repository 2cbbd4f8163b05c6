"""Risk management"""
from .risk_engine import RiskEngine, RiskLimits

__all__ = ["RiskEngine", "RiskLimits"]
