"""Order routing"""
from .execution_router import (
    ExecutionQuality,
    ExecutionResult,
    ExecutionRouter,
    classify_order_status,
    grade_execution,
)

__all__ = [
    "ExecutionQuality",
    "ExecutionResult",
    "ExecutionRouter",
    "classify_order_status",
    "grade_execution",
]
