"""
Billing Period Arithmetic.

Calendar-aware interval addition for subscription periods.
"""

import calendar
from datetime import UTC, datetime

from app.models.api import PlanInterval, PlanType

_INTERVAL_MONTHS: dict[PlanInterval, int] = {
    PlanInterval.MONTH: 1,
    PlanInterval.SIX_MONTHS: 6,
    PlanInterval.YEAR: 12,
}

# Free subscriptions roll monthly
_PLAN_TYPE_INTERVALS: dict[PlanType, PlanInterval] = {
    PlanType.FREE: PlanInterval.MONTH,
    PlanType.MONTHLY: PlanInterval.MONTH,
    PlanType.SIX_MONTH: PlanInterval.SIX_MONTHS,
    PlanType.ANNUAL: PlanInterval.YEAR,
}


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def add_months(start: datetime, months: int) -> datetime:
    """
    Add calendar months to a timestamp.

    The day is clamped to the last day of the target month, so
    Jan 31 + 1 month is Feb 28 (or 29). Time of day and tzinfo are kept.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def add_interval(start: datetime, interval: PlanInterval) -> datetime:
    """Return the end of a period of the given interval starting at `start`."""
    return add_months(start, _INTERVAL_MONTHS[interval])


def interval_for_plan_type(plan_type: PlanType) -> PlanInterval:
    """Map a subscription plan type to its billing interval."""
    return _PLAN_TYPE_INTERVALS[plan_type]


def is_period_lapsed(period_end: datetime, now: datetime | None = None) -> bool:
    """True once `now` has passed the end of the billing window."""
    return (now or utc_now()) > period_end


def next_period_end(now: datetime, previous_end: datetime, interval: PlanInterval) -> datetime:
    """
    End of a period starting at `now`, always later than `previous_end`.

    Month-end clamping can map a later start onto an earlier end (Jan 30 10:00
    and Jan 31 09:00 both land on Feb 28); in that case the period is rolled
    one interval past `previous_end` instead.
    """
    period_end = add_interval(now, interval)
    if period_end <= previous_end:
        return add_interval(previous_end, interval)
    return period_end
