"""
Risk Engine - Validates proposed trades against portfolio limits
"""
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from hedgefund.core.types import (
    Account,
    Action,
    Position,
    RiskAssessment,
    RiskLevel,
    TradeProposal,
)

# Weights of each limit's utilization in the 0-100 risk score
SCORE_WEIGHTS: Dict[str, float] = {
    "exposure": 30.0,
    "position_size": 25.0,
    "daily_loss": 15.0,
    "drawdown": 15.0,
    "open_positions": 10.0,
    "confidence": 5.0,
}


@dataclass
class RiskLimits:
    """Configured limits; fractions are of account equity"""
    min_confidence: float = 0.60
    max_open_positions: int = 10
    max_exposure: float = 0.50
    max_position_size: float = 0.10
    max_daily_loss: float = 0.05
    max_drawdown: float = 0.15
    require_stop_loss: bool = True
    min_buying_power: float = 0.0


def _utilization(value: float, limit: float) -> float:
    if limit <= 0:
        return 1.0
    return min(1.0, max(0.0, value / limit))


class RiskEngine:
    """Pre-trade risk checks and position sizing"""

    def __init__(self, limits: Optional[RiskLimits] = None):
        """
        Initialize risk engine

        Args:
            limits: Risk limits (defaults: 60% confidence, 10 positions,
                50% exposure, 10% per trade, 5% daily loss, 15% drawdown)
        """
        self.limits = limits or RiskLimits()
        self.trading_halted = False
        self.halt_reason: Optional[str] = None
        logger.info("Risk engine initialized")

    def assess_trade_risk(
        self,
        proposal: TradeProposal,
        account: Account,
        positions: Sequence[Position],
    ) -> RiskAssessment:
        """
        Assess one proposed trade.

        Checks run in a fixed order and the first hard failure ends the
        assessment. Oversized trades are clamped rather than rejected.

        Args:
            proposal: Signal plus requested notional or quantity
            account: Current account state
            positions: Open positions

        Returns:
            RiskAssessment with ordered reasons and approved sizing
        """
        limits = self.limits
        signal = proposal.signal
        equity = float(account.equity)
        requested = proposal.proposed_notional()

        open_positions = [p for p in positions if p.quantity != 0]
        held = next((p for p in open_positions if p.symbol == signal.symbol), None)
        # Selling against a held long reduces risk; circuit breakers let it through
        is_exit = signal.action == Action.SELL and held is not None and held.quantity > 0

        existing_exposure = sum(p.exposure for p in open_positions)
        daily_loss = self._daily_loss(account, open_positions)
        drawdown = self._drawdown(account)

        metrics: Dict[str, float] = {
            "equity": equity,
            "requested_notional": requested,
            "existing_exposure": existing_exposure,
            "exposure": existing_exposure / equity if equity > 0 else 0.0,
            "projected_exposure": (existing_exposure + requested) / equity if equity > 0 else 0.0,
            "position_size": requested / equity if equity > 0 else 0.0,
            "daily_loss": daily_loss,
            "drawdown": drawdown,
            "open_positions": float(len(open_positions)),
            "buying_power": float(account.buying_power),
        }
        score = self.risk_score(signal.confidence, metrics, len(open_positions))

        def reject(reason: str, level: Optional[RiskLevel] = None, recommendations: Optional[List[str]] = None):
            assessment = RiskAssessment(
                approved=False,
                risk_score=score,
                reasons=reasons + [reason],
                sizing=0.0,
                quantity=None,
                risk_level=level or self.risk_level(score, metrics),
                metrics=metrics,
                recommendations=recommendations or [],
            )
            logger.warning(f"Trade rejected: {signal.symbol} {signal.action.value} - {reason}")
            return assessment

        reasons: List[str] = []

        if signal.action == Action.HOLD:
            return reject("Signal recommends HOLD", RiskLevel.LOW, ["Wait for clearer market conditions"])
        if self.trading_halted and not is_exit:
            return reject(f"Trading halted: {self.halt_reason}", RiskLevel.CRITICAL)
        if account.trading_blocked:
            return reject("Trading blocked on account", RiskLevel.CRITICAL, ["Contact broker support"])
        if equity <= 0:
            return reject("Account equity is not positive", RiskLevel.CRITICAL)
        if requested <= 0:
            return reject("No trade size given: set a notional amount or quantity")

        # 1. Confidence floor
        if signal.confidence < limits.min_confidence:
            return reject(
                f"confidence below threshold ({signal.confidence:.2f} < {limits.min_confidence:.2f})",
                recommendations=["Consider waiting for stronger signal"],
            )

        # 2. Position count
        if not is_exit and held is None and len(open_positions) >= limits.max_open_positions:
            return reject(
                f"Maximum open positions reached: {len(open_positions)}/{limits.max_open_positions}",
                recommendations=["Close some positions before opening new ones"],
            )

        # 3. Exposure
        if not is_exit and metrics["projected_exposure"] >= limits.max_exposure:
            return reject(
                f"Exposure too high: {metrics['projected_exposure']:.2%} would reach max {limits.max_exposure:.0%}",
                RiskLevel.CRITICAL,
                ["Close some positions", "Reduce position sizes"],
            )

        # 4. Per-trade size (soft cap)
        sizing = requested
        recommendations: List[str] = []
        max_notional = limits.max_position_size * equity
        if sizing > max_notional:
            sizing = max_notional
            reasons.append(
                f"Position size {metrics['position_size']:.2%} exceeds max {limits.max_position_size:.0%}; "
                f"clamped to ${sizing:.2f}"
            )
            recommendations.append(f"Reduce position to max {limits.max_position_size:.0%}")

        # 5. Daily loss circuit breaker
        if not is_exit and daily_loss >= limits.max_daily_loss:
            return reject(
                f"Daily loss limit reached: {daily_loss:.2%} loss",
                RiskLevel.CRITICAL,
                ["Stop trading for today", "Review strategy performance"],
            )

        # 6. Drawdown circuit breaker
        if not is_exit and drawdown >= limits.max_drawdown:
            return reject(
                f"Drawdown breach: {drawdown:.2%} exceeds max {limits.max_drawdown:.0%}",
                RiskLevel.CRITICAL,
                ["Reduce position sizes", "Review stop losses", "Wait for market recovery"],
            )

        if not is_exit and sizing > float(account.buying_power) - limits.min_buying_power:
            return reject(
                "Insufficient buying power",
                RiskLevel.HIGH,
                ["Reduce position size", "Close losing positions to free up capital"],
            )

        if limits.require_stop_loss and signal.stop_loss is None:
            reasons.append("No stop loss defined")
            recommendations.append("Add stop loss protection")

        quantity = proposal.quantity
        if quantity is not None and sizing < requested and signal.price > 0:
            quantity = sizing / signal.price

        assessment = RiskAssessment(
            approved=True,
            risk_score=score,
            reasons=reasons,
            sizing=round(sizing, 2),
            quantity=quantity,
            risk_level=self.risk_level(score, metrics),
            metrics=metrics,
            recommendations=recommendations or ["Trade within normal parameters"],
        )
        logger.info(
            f"Trade validated: {signal.symbol} {signal.action.value} ${assessment.sizing:.2f} "
            f"risk score {score:.1f} ({assessment.risk_level.value})"
        )
        if reasons:
            logger.warning(f"Warnings: {', '.join(reasons)}")
        return assessment

    def risk_score(self, confidence: float, metrics: Dict[str, float], open_count: int) -> float:
        """0-100 composite of how close the trade sits to each limit"""
        limits = self.limits
        shortfall = max(0.0, limits.min_confidence - confidence)
        parts = {
            "exposure": _utilization(metrics["projected_exposure"], limits.max_exposure),
            "position_size": _utilization(metrics["position_size"], limits.max_position_size),
            "daily_loss": _utilization(metrics["daily_loss"], limits.max_daily_loss),
            "drawdown": _utilization(metrics["drawdown"], limits.max_drawdown),
            "open_positions": _utilization(open_count, limits.max_open_positions),
            "confidence": _utilization(shortfall, limits.min_confidence),
        }
        return round(sum(SCORE_WEIGHTS[name] * value for name, value in parts.items()), 2)

    def risk_level(self, score: float, metrics: Dict[str, float]) -> RiskLevel:
        limits = self.limits
        if score >= 75:
            level = RiskLevel.CRITICAL
        elif score >= 50:
            level = RiskLevel.HIGH
        elif score >= 25:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW

        # Proximity to the drawdown or exposure limit raises the floor
        exposure, drawdown = metrics["exposure"], metrics["drawdown"]
        if level == RiskLevel.LOW or level == RiskLevel.MEDIUM:
            if drawdown > limits.max_drawdown * 0.8 or exposure > limits.max_exposure * 0.8:
                level = RiskLevel.HIGH
            elif level == RiskLevel.LOW and (
                drawdown > limits.max_drawdown * 0.6 or exposure > limits.max_exposure * 0.6
            ):
                level = RiskLevel.MEDIUM
        return level

    @staticmethod
    def _daily_loss(account: Account, positions: Sequence[Position]) -> float:
        """Today's loss as a fraction of the prior close equity (0 when up)"""
        if account.last_equity:
            base = float(account.last_equity)
            loss = base - float(account.equity)
        else:
            # No prior close: fall back to open unrealized losses
            base = float(account.equity)
            loss = -sum(min(0.0, p.unrealized_pnl) for p in positions)
        if base <= 0:
            return 0.0
        return max(0.0, loss / base)

    @staticmethod
    def _drawdown(account: Account) -> float:
        peak = max(float(account.peak_equity or 0.0), float(account.last_equity or 0.0), float(account.equity))
        if peak <= 0:
            return 0.0
        return max(0.0, (peak - float(account.equity)) / peak)

    @staticmethod
    def kelly_position_size(confidence: float, cash: float, equity: Optional[float] = None) -> float:
        """
        Suggested notional from a simplified Kelly fraction (2c - 1).

        The fraction is held between 10% and 25% of the portfolio and the
        result never uses more than 80% of cash.
        """
        kelly = 2 * confidence - 1
        fraction = max(0.10, min(kelly, 0.25))
        portfolio = equity if equity is not None else cash
        return round(min(portfolio * fraction, cash * 0.8), 2)

    def emergency_stop(self, reason: str = "Manual emergency stop") -> None:
        """Reject every new entry until resumed"""
        self.trading_halted = True
        self.halt_reason = reason
        logger.critical(f"EMERGENCY STOP: {reason}")

    def resume_trading(self) -> None:
        self.trading_halted = False
        self.halt_reason = None
        logger.info("Trading resumed")

    def update_config(self, **changes: Any) -> RiskLimits:
        known = {f.name for f in fields(RiskLimits)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown risk settings: {', '.join(sorted(unknown))}")
        for name, value in changes.items():
            setattr(self.limits, name, value)
        logger.info(f"Risk config updated: {changes}")
        return self.limits

    def get_config(self) -> Dict[str, Any]:
        return asdict(self.limits)
