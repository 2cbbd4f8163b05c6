"""
Daily evaluation - picks the engine mode and halts strategies in drawdown breach
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from hedgefund.analysis.multi_strategy_scorer import MultiStrategyScorer
from hedgefund.core.errors import PersistenceFailure, PortTimeout
from hedgefund.core.ports import PersistencePort, call_with_timeout
from hedgefund.core.types import Account, utc_now
from hedgefund.learning.performance_book import PerformanceBook

LIVE_WIN_RATE = 0.7
LIVE_MAX_DRAWDOWN = 0.1
PAPER_WIN_RATE = 0.6
RETRAIN_WIN_RATE = 0.4
STRATEGY_HALT_DRAWDOWN = 0.15


@dataclass
class DailyEvaluation:
    mode: str  # live | paper | simulation
    win_rate: float
    drawdown: float
    retrain: bool = False
    halted: List[str] = field(default_factory=list)
    strategies: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "win_rate": round(self.win_rate, 4),
            "drawdown": round(self.drawdown, 4),
            "retrain": self.retrain,
            "halted": list(self.halted),
            "strategies": self.strategies,
        }


def recommend_mode(win_rate: float, drawdown: float) -> str:
    if win_rate > LIVE_WIN_RATE and drawdown < LIVE_MAX_DRAWDOWN:
        return "live"
    if win_rate > PAPER_WIN_RATE:
        return "paper"
    return "simulation"


def account_drawdown(account: Account) -> float:
    peak = account.peak_equity or account.equity
    if peak <= 0:
        return 0.0
    return max(0.0, (peak - account.equity) / peak)


async def run_daily_evaluation(
    performance_book: PerformanceBook,
    scorer: MultiStrategyScorer,
    account: Account,
    persistence: Optional[PersistencePort] = None,
    persistence_timeout: float = 15.0,
) -> DailyEvaluation:
    """
    Evaluate the day's results.

    Strategy drawdown is the strategy's max P&L drawdown as a fraction of
    account equity; a breach disables the strategy in the scorer.
    """
    performances = performance_book.all()
    total = sum(p.total_trades for p in performances)
    wins = sum(p.winning_trades for p in performances)
    win_rate = wins / total if total else 0.0
    drawdown = account_drawdown(account)

    evaluation = DailyEvaluation(
        mode=recommend_mode(win_rate, drawdown),
        win_rate=win_rate,
        drawdown=drawdown,
        retrain=win_rate < RETRAIN_WIN_RATE,
    )
    events: List[Dict[str, Any]] = [
        {"type": "system", "message": f"Engine mode switched to {evaluation.mode.upper()}"}
    ]
    if evaluation.retrain:
        events.append({"type": "info", "message": "Retraining triggered due to low win rate"})

    capital = account.peak_equity or account.equity
    for performance in performances:
        fraction = performance.max_drawdown / capital if capital > 0 else 0.0
        evaluation.strategies.append({
            "strategy_id": performance.strategy_id,
            "win_rate": round(performance.win_rate, 4),
            "drawdown": round(fraction, 4),
            "total_pnl": round(performance.total_pnl, 2),
        })
        if fraction > STRATEGY_HALT_DRAWDOWN:
            scorer.set_strategy_enabled(performance.strategy_id, False)
            evaluation.halted.append(performance.strategy_id)
            events.append({
                "type": "risk",
                "symbol": performance.strategy_id,
                "message": f"Strategy {performance.strategy_id} halted due to drawdown breach",
            })

    logger.info(
        f"Daily evaluation: mode={evaluation.mode}, win rate {win_rate:.1%}, "
        f"drawdown {drawdown:.1%}, halted {evaluation.halted or 'none'}"
    )

    if persistence is not None:
        for event in events:
            event.update({"timestamp": utc_now().isoformat(), "status": "completed"})
            try:
                await call_with_timeout(persistence.log_activity(event), persistence_timeout, "log daily evaluation")
            except (PersistenceFailure, PortTimeout) as e:
                logger.error(f"Failed to log daily evaluation event: {e}")

    return evaluation
