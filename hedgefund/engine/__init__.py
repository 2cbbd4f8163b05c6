"""Trading cycle orchestration and wiring"""
from .bootstrap import build_engine, build_persistence, setup_logging
from .orchestrator import TradingCycleOrchestrator

__all__ = ["TradingCycleOrchestrator", "build_engine", "build_persistence", "setup_logging"]
