"""
Health Evaluator: Turns an account snapshot into a liquidation verdict and
estimates liquidation amounts.

The collateral estimate is a fixed 110%-of-debt heuristic. It is an
order-of-magnitude signal, not the protocol's liquidation bonus math.
"""
from datetime import datetime
from decimal import Decimal, localcontext
from agents.liquidation.config import (
    LIQUIDATION_HF_THRESHOLD, COLLATERAL_BONUS_ESTIMATE,
)
from agents.liquidation.models.schemas import (
    AccountSnapshot, HealthVerdict, LiquidationCandidate, ReserveDebt,
)


def is_liquidatable(health_factor: int) -> bool:
    # Strict: a health factor of exactly 1.0 is not eligible
    return health_factor < LIQUIDATION_HF_THRESHOLD


def evaluate_health(snapshot: AccountSnapshot) -> HealthVerdict:
    return HealthVerdict(
        user=snapshot.user,
        eligible=is_liquidatable(snapshot.health_factor),
        health_factor=snapshot.health_factor,
    )


def estimate_collateral_seized(debt_to_cover: int) -> Decimal:
    """Heuristic: debt_to_cover * 1.10, exact decimal arithmetic."""
    with localcontext() as ctx:
        # wei amounts overflow the default 28-digit precision
        ctx.prec = len(str(abs(debt_to_cover))) + 8
        return Decimal(debt_to_cover) * COLLATERAL_BONUS_ESTIMATE


def estimate_liquidation(
    verdict: HealthVerdict,
    asset: str,
    debt: ReserveDebt,
    block_number: int,
    detected_at: datetime,
    trigger_tx: str | None = None,
    snapshot: AccountSnapshot | None = None,
) -> LiquidationCandidate | None:
    """Build a candidate for one debt asset; None if not eligible or no debt there."""
    if not verdict.eligible:
        return None
    debt_to_cover = debt.total
    if debt_to_cover <= 0:
        return None
    return LiquidationCandidate(
        user=verdict.user,
        asset=asset,
        debt_to_cover=debt_to_cover,
        debt_decimals=debt.decimals,
        estimated_collateral_seized=estimate_collateral_seized(debt_to_cover),
        detected_at_block=block_number,
        detected_at_time=detected_at,
        health_factor=verdict.health_factor,
        total_collateral=snapshot.total_collateral if snapshot else None,
        total_debt=snapshot.total_debt if snapshot else None,
        trigger_tx=trigger_tx,
    )


def format_fixed(value: int, decimals: int = 18, places: int = 4) -> str:
    """Render a fixed-point integer, e.g. a 1e18-scaled health factor."""
    scaled = Decimal(value) / (Decimal(10) ** decimals)
    return f"{scaled:,.{places}f}"
