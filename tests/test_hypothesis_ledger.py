"""
Property-based tests for ledger arithmetic and period math.

Uses Hypothesis to check balance invariants over generated subscriptions.
"""

from datetime import UTC, datetime, timedelta

from conftest import InMemorySubscriptionStore, make_subscription
from hypothesis import given, settings
from hypothesis import strategies as st

from app.exceptions import InsufficientTokensError
from app.models.api import PlanInterval, PlanType, TransactionType
from app.services.ledger import TokenLedger, compute_balance, has_enough_tokens
from app.services.notifications import BalanceNotifier
from app.services.periods import add_interval, add_months, next_period_end

# ============================================================================
# Strategies
# ============================================================================

token_amounts = st.integers(min_value=0, max_value=1_000_000)
reasons = st.text(min_size=1, max_size=100).filter(lambda x: x.strip())
plan_types = st.sampled_from(list(PlanType))
timestamps = st.datetimes(
    min_value=datetime(2020, 1, 1),
    max_value=datetime(2035, 12, 31),
    timezones=st.just(UTC),
)


@st.composite
def subscriptions(draw):
    """Generate subscriptions whose usage never exceeds the limit."""
    limit = draw(token_amounts)
    used = draw(st.integers(min_value=0, max_value=limit))
    # Period already over so any reset lands strictly later
    now = datetime.now(UTC)
    return make_subscription(
        plan_type=draw(plan_types),
        tokens_limit=limit,
        tokens_used=used,
        period_start=now - timedelta(days=40),
        period_end=now - timedelta(days=10),
    )


# ============================================================================
# Pure Functions
# ============================================================================


class TestBalanceProperties:
    """Property-based tests for compute_balance / has_enough_tokens."""

    @given(subscriptions())
    @settings(max_examples=200)
    def test_balance_parts_add_up(self, sub):
        balance = compute_balance(sub)
        assert balance.remaining + balance.used == balance.limit
        assert balance.remaining >= 0

    @given(subscriptions(), token_amounts)
    @settings(max_examples=200)
    def test_has_enough_matches_remaining(self, sub, required):
        assert has_enough_tokens(sub, required) == (required <= sub.tokens_limit - sub.tokens_used)


# ============================================================================
# Ledger Operations
# ============================================================================


class TestDeductProperties:
    """deduct succeeds iff amount <= limit - used."""

    @given(subscriptions(), token_amounts, reasons)
    @settings(max_examples=150)
    async def test_deduct_iff_affordable(self, sub, amount, reason):
        store = InMemorySubscriptionStore([sub])
        ledger = TokenLedger(store, BalanceNotifier())
        affordable = amount <= sub.tokens_limit - sub.tokens_used

        try:
            result = await ledger.deduct(sub.user_id, amount, reason)
        except InsufficientTokensError:
            assert not affordable
            assert store.subscriptions[sub.user_id].tokens_used == sub.tokens_used
            assert store.transactions == []
        else:
            assert affordable
            assert result.tokens_used == sub.tokens_used + amount
            assert result.balance_after == sub.tokens_limit - result.tokens_used
            (tx,) = store.transactions
            assert tx.amount == -amount
            assert tx.transaction_type == TransactionType.DEDUCT


class TestGrantProperties:
    """Grants never drive usage below zero."""

    @given(subscriptions(), st.lists(token_amounts, min_size=1, max_size=5))
    @settings(max_examples=100)
    async def test_grants_saturate_at_zero(self, sub, amounts):
        store = InMemorySubscriptionStore([sub])
        ledger = TokenLedger(store, BalanceNotifier())

        for amount in amounts:
            result = await ledger.grant(sub.user_id, amount, "Refund")
            assert result.tokens_used >= 0
            assert result.balance_after <= sub.tokens_limit

        assert result.tokens_used == max(0, sub.tokens_used - sum(amounts))


class TestResetProperties:
    """Resets always zero usage and move the period forward."""

    @given(subscriptions())
    @settings(max_examples=100)
    async def test_reset_zeroes_usage(self, sub):
        store = InMemorySubscriptionStore([sub])

        result = await TokenLedger(store, BalanceNotifier()).reset_period(sub.user_id)

        assert store.subscriptions[sub.user_id].tokens_used == 0
        assert result.current_period_end > sub.current_period_end
        assert result.tokens_limit == sub.tokens_limit


# ============================================================================
# Period Math
# ============================================================================


class TestPeriodProperties:
    """Calendar month arithmetic."""

    @given(timestamps, st.integers(min_value=1, max_value=24))
    @settings(max_examples=200)
    def test_add_months_moves_forward(self, start, months):
        end = add_months(start, months)
        assert end > start
        assert (end.year - start.year) * 12 + end.month - start.month == months
        assert end.day <= start.day
        assert end.time() == start.time()

    @given(timestamps, st.sampled_from(list(PlanInterval)))
    @settings(max_examples=100)
    def test_intervals_are_ordered(self, start, interval):
        assert add_interval(start, interval) >= add_interval(start, PlanInterval.MONTH)

    @given(timestamps, timestamps, st.sampled_from(list(PlanInterval)))
    @settings(max_examples=200)
    def test_next_period_end_always_moves_forward(self, now, previous_end, interval):
        end = next_period_end(now, previous_end, interval)
        assert end > previous_end
        assert end > now
