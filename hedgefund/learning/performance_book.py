"""
Last-committed StrategyPerformance snapshots shared between learning and scoring
"""
import copy
from typing import Dict, List, Optional

from hedgefund.core.types import StrategyPerformance


class PerformanceBook:
    """
    Holds one committed snapshot per strategy.

    Writers build a new snapshot and swap it in with ``commit``; readers get
    whatever was last committed and never see a half-applied update.
    Committed objects are treated as read-only.
    """

    def __init__(self, probation_trades: int = 7):
        self.probation_trades = probation_trades
        self._snapshots: Dict[str, StrategyPerformance] = {}

    def get(self, strategy_id: str) -> Optional[StrategyPerformance]:
        return self._snapshots.get(strategy_id)

    def get_or_empty(self, strategy_id: str, strategy_name: str = "") -> StrategyPerformance:
        existing = self._snapshots.get(strategy_id)
        if existing is not None:
            return existing
        return StrategyPerformance(
            strategy_id=strategy_id,
            strategy_name=strategy_name or strategy_id,
            test_trades_required=self.probation_trades,
        )

    def working_copy(self, strategy_id: str, strategy_name: str = "") -> StrategyPerformance:
        """Detached copy for a writer to mutate before committing"""
        return copy.deepcopy(self.get_or_empty(strategy_id, strategy_name))

    def commit(self, performance: StrategyPerformance) -> None:
        self._snapshots[performance.strategy_id] = performance

    def reset(self, strategy_id: str) -> None:
        self._snapshots.pop(strategy_id, None)

    def all(self) -> List[StrategyPerformance]:
        return list(self._snapshots.values())

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._snapshots
