"""
In-process persistence for dry runs, tests and setups without Supabase
"""
import copy
from typing import Any, Dict, List, Optional

from loguru import logger

from hedgefund.core.ports import PersistencePort


class InMemoryStore(PersistencePort):
    """Keeps every record in memory; lost on restart"""

    def __init__(self, max_records: int = 10000):
        self.max_records = max_records
        self.trades: List[Dict[str, Any]] = []
        self.activity: List[Dict[str, Any]] = []
        self.performance: Dict[str, Dict[str, Any]] = {}
        logger.info("In-memory store initialized")

    def _append(self, bucket: List[Dict[str, Any]], record: Dict[str, Any]) -> None:
        bucket.append(copy.deepcopy(record))
        if len(bucket) > self.max_records:
            del bucket[: len(bucket) - self.max_records]

    async def save_trade(self, record: Dict[str, Any]) -> None:
        self._append(self.trades, record)

    async def save_strategy_performance(self, record: Dict[str, Any]) -> None:
        self.performance[record["strategy_id"]] = copy.deepcopy(record)

    async def load_strategy_performance(self, strategy_id: str) -> Optional[Dict[str, Any]]:
        record = self.performance.get(strategy_id)
        return copy.deepcopy(record) if record is not None else None

    async def log_activity(self, event: Dict[str, Any]) -> None:
        self._append(self.activity, event)

    async def get_recent_trades(self, limit: int = 50) -> List[Dict[str, Any]]:
        return [copy.deepcopy(t) for t in reversed(self.trades[-limit:])]

    async def health_check(self) -> bool:
        return True
