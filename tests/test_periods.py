"""
Tests for billing period arithmetic.
"""

from datetime import UTC, datetime, timedelta

import pytest

from app.models.api import PlanInterval, PlanType
from app.services.periods import (
    add_interval,
    add_months,
    interval_for_plan_type,
    is_period_lapsed,
    next_period_end,
)


class TestAddMonths:
    """Tests for calendar month addition."""

    def test_simple(self):
        start = datetime(2026, 3, 15, 10, 30, tzinfo=UTC)
        assert add_months(start, 1) == datetime(2026, 4, 15, 10, 30, tzinfo=UTC)

    def test_clamps_to_month_end(self):
        start = datetime(2026, 1, 31, tzinfo=UTC)
        assert add_months(start, 1) == datetime(2026, 2, 28, tzinfo=UTC)

    def test_leap_year(self):
        start = datetime(2028, 1, 31, tzinfo=UTC)
        assert add_months(start, 1) == datetime(2028, 2, 29, tzinfo=UTC)

    def test_crosses_year(self):
        start = datetime(2026, 11, 30, tzinfo=UTC)
        assert add_months(start, 6) == datetime(2027, 5, 30, tzinfo=UTC)


class TestAddInterval:
    """Tests for plan interval addition."""

    @pytest.mark.parametrize(
        ("interval", "expected"),
        [
            (PlanInterval.MONTH, datetime(2026, 2, 10, tzinfo=UTC)),
            (PlanInterval.SIX_MONTHS, datetime(2026, 7, 10, tzinfo=UTC)),
            (PlanInterval.YEAR, datetime(2027, 1, 10, tzinfo=UTC)),
        ],
    )
    def test_intervals(self, interval, expected):
        assert add_interval(datetime(2026, 1, 10, tzinfo=UTC), interval) == expected

    def test_leap_day_annual(self):
        start = datetime(2028, 2, 29, tzinfo=UTC)
        assert add_interval(start, PlanInterval.YEAR) == datetime(2029, 2, 28, tzinfo=UTC)


class TestPlanTypeIntervals:
    """Tests for plan type to interval mapping."""

    @pytest.mark.parametrize(
        ("plan_type", "interval"),
        [
            (PlanType.FREE, PlanInterval.MONTH),
            (PlanType.MONTHLY, PlanInterval.MONTH),
            (PlanType.SIX_MONTH, PlanInterval.SIX_MONTHS),
            (PlanType.ANNUAL, PlanInterval.YEAR),
        ],
    )
    def test_mapping(self, plan_type, interval):
        assert interval_for_plan_type(plan_type) == interval


class TestIsPeriodLapsed:
    """Tests for lapse detection."""

    def test_future_end_not_lapsed(self):
        now = datetime(2026, 5, 1, tzinfo=UTC)
        assert is_period_lapsed(now + timedelta(seconds=1), now) is False

    def test_end_equal_to_now_not_lapsed(self):
        now = datetime(2026, 5, 1, tzinfo=UTC)
        assert is_period_lapsed(now, now) is False

    def test_past_end_lapsed(self):
        now = datetime(2026, 5, 1, tzinfo=UTC)
        assert is_period_lapsed(now - timedelta(seconds=1), now) is True

    def test_defaults_to_current_time(self):
        assert is_period_lapsed(datetime.now(UTC) - timedelta(days=1)) is True


class TestNextPeriodEnd:
    """Tests for the reset period end."""

    def test_rolls_from_now(self):
        now = datetime(2026, 5, 10, tzinfo=UTC)
        previous_end = datetime(2026, 5, 1, tzinfo=UTC)
        assert next_period_end(now, previous_end, PlanInterval.MONTH) == datetime(
            2026, 6, 10, tzinfo=UTC
        )

    def test_clamped_end_before_previous_rolls_past_it(self):
        now = datetime(2026, 1, 31, 9, 0, tzinfo=UTC)
        previous_end = datetime(2026, 2, 28, 10, 0, tzinfo=UTC)
        assert next_period_end(now, previous_end, PlanInterval.MONTH) == datetime(
            2026, 3, 28, 10, 0, tzinfo=UTC
        )

    def test_equal_end_rolls_past_it(self):
        now = datetime(2026, 1, 28, tzinfo=UTC)
        previous_end = datetime(2026, 2, 28, tzinfo=UTC)
        assert next_period_end(now, previous_end, PlanInterval.MONTH) > previous_end
