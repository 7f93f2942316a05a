"""
Usage Formatting - display rules for quota numbers.

Rounding matches JavaScript's Number.prototype.toFixed: half-up on the
exact binary value of the float, so 1.25 -> "1.3" and 1.005 -> "1.00".
"""

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from app.models.api import PlanInterval, PlanType

_PLAN_DISPLAY_NAMES: dict[str, str] = {
    PlanType.FREE.value: "Free Plan",
    PlanType.MONTHLY.value: "Monthly",
    PlanType.SIX_MONTH.value: "6-Month",
    PlanType.ANNUAL.value: "Annual",
}

_INTERVAL_SUFFIXES: dict[PlanInterval, str] = {
    PlanInterval.MONTH: "/mo",
    PlanInterval.SIX_MONTHS: "/6mo",
    PlanInterval.YEAR: "/yr",
}

_MIN_VISIBLE_PERCENTAGE = 0.001
_SECONDS_PER_DAY = 86_400


def _to_fixed(value: float, digits: int) -> str:
    quantum = Decimal(1).scaleb(-digits)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))


def format_count(n: int) -> str:
    """
    Compact token count: 999 -> "999", 1500 -> "1.5K", 2_500_000 -> "2.5M".

    Thousands whose fractional part is within 0.01 of a whole number are
    shown with three decimals ("2.000K", "1.995K").
    """
    if n >= 1_000_000:
        return f"{_to_fixed(n / 1_000_000, 1)}M"
    if n >= 1_000:
        thousands = n / 1_000
        fraction = thousands % 1
        if fraction > 0.99 or fraction < 0.01:
            return f"{_to_fixed(thousands, 3)}K"
        return f"{_to_fixed(thousands, 1)}K"
    return str(n)


def usage_percentage(used: int, limit: int) -> float:
    """
    Share of the allotment consumed, in percent.

    0 when nothing is used or there is no allotment; otherwise never
    below 0.001 so tiny usage does not read as "0%".
    """
    if limit == 0 or used == 0:
        return 0.0
    return max(_MIN_VISIBLE_PERCENTAGE, used / limit * 100)


def format_percentage(p: float) -> str:
    if p < 0.01:
        return f"{_to_fixed(p, 3)}%"
    if p < 1:
        return f"{_to_fixed(p, 2)}%"
    return f"{_to_fixed(p, 1)}%"


def days_until(period_end: datetime, now: datetime) -> int:
    """Whole days left in the period, rounded up; 0 once it has passed."""
    seconds = (period_end - now).total_seconds()
    return max(0, math.ceil(seconds / _SECONDS_PER_DAY))


def plan_display_name(plan_type: PlanType | str) -> str:
    """Human name for a plan type; unknown values are shown as-is."""
    value = plan_type.value if isinstance(plan_type, PlanType) else plan_type
    return _PLAN_DISPLAY_NAMES.get(value, value)


def interval_suffix(interval: PlanInterval) -> str:
    """Price suffix for a billing interval, e.g. "/mo"."""
    return _INTERVAL_SUFFIXES[interval]
