import math
from typing import Optional
from pydantic import BaseModel, Field

from . import config


class StakeResult(BaseModel):
    kelly_fraction: float = Field(..., description="Raw Kelly fraction (f*)")
    recommended_stake: float = Field(..., description="Final stake in cash after all adjustments")
    was_zeroed: bool = Field(default=False, description="True if stake was forced to 0")


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def implied_probability(ev_percent: float, odds: float) -> float:
    """
    Recover the win probability implied by an EV% quoted at given odds.

    Inverts EV = p * odds - 1, so p = (EV/100 + 1) / odds.
    """
    return (ev_percent / 100 + 1) / odds


def calculate_kelly(ev_percent: float, odds: float) -> float:
    """
    Calculate raw Kelly fraction from an edge percentage.

    Formula: f* = (b * p - q) / b  with b = odds - 1, q = 1 - p

    This represents the optimal fraction of bankroll to wager.
    """
    if odds <= 1.0:
        return 0.0

    b = odds - 1
    p = implied_probability(ev_percent, odds)
    q = 1 - p

    return (b * p - q) / b


def calculate_stake(
    ev_percent: Optional[float],
    odds: Optional[float],
    available_cash: float,
    fractional_kelly: float = config.FRACTIONAL_KELLY,
) -> StakeResult:
    """
    Calculate stake using Fractional Kelly Criterion.

    Args:
        ev_percent: Edge as a percentage (e.g., 4.5 for +4.5% EV)
        odds: Decimal odds (e.g., 1.90, 2.50)
        available_cash: Cash currently free for new positions
        fractional_kelly: Fraction of Kelly to use (0.25 = quarter Kelly)

    Returns:
        StakeResult with recommended stake truncated to cents
    """
    # Not actionable: missing edge, missing odds, or odds with no payout
    if not ev_percent or not odds or not _is_number(ev_percent) or not _is_number(odds) or odds <= 1.0:
        return StakeResult(kelly_fraction=0.0, recommended_stake=0.0, was_zeroed=True)

    if not _is_number(available_cash) or available_cash <= 0:
        return StakeResult(kelly_fraction=0.0, recommended_stake=0.0, was_zeroed=True)

    kelly = calculate_kelly(ev_percent, odds)

    # Negative edges floor to 0 stake
    fraction = max(0.0, kelly * fractional_kelly)

    scaled = available_cash * fraction * config.MONEY_QUANTUM
    if not math.isfinite(scaled) or scaled < 1:
        return StakeResult(kelly_fraction=kelly if math.isfinite(kelly) else 0.0, recommended_stake=0.0, was_zeroed=True)

    # Truncate, never round up
    stake = math.floor(scaled) / config.MONEY_QUANTUM

    return StakeResult(
        kelly_fraction=kelly,
        recommended_stake=stake,
        was_zeroed=False
    )


def compute_stake(ev_percent: Optional[float], odds: Optional[float], available_cash: float) -> float:
    """Quarter-Kelly stake in cash. Always finite and >= 0."""
    return calculate_stake(ev_percent, odds, available_cash).recommended_stake
