"""
Subscription Lifecycle - plan activation, cancellation and reactivation.

States:
    free                 default allotment, created on first access
    active + plan        tokens granted for the current period
    cancelled + plan     tokens usable until current_period_end, no renewal

Period expiry (moving a lapsed subscription back to free) is run by an
external scheduled job; this service only exposes the period dates.
"""

from uuid import UUID

from structlog import get_logger

from app.config import settings
from app.db.repository import SubscriptionStore
from app.exceptions import InvalidPlanError, SubscriptionNotFoundError
from app.models.api import PlanInterval, PlanType, SubscriptionStatus, TransactionType
from app.models.domain import PlanData, SubscriptionData, TransactionEntry
from app.observability.metrics import metrics
from app.services.ledger import TokenLedger
from app.services.notifications import BalanceNotifier
from app.services.periods import add_interval, is_period_lapsed, utc_now

logger = get_logger(__name__)


class SubscriptionLifecycle:
    """
    Subscription state machine over a SubscriptionStore.

    Every transition on a missing subscription raises
    SubscriptionNotFoundError; nothing is silently ignored.
    """

    def __init__(
        self, store: SubscriptionStore, notifier: BalanceNotifier | None = None
    ) -> None:
        """Initialize lifecycle with its persistence collaborator."""
        self.store = store
        self.ledger = TokenLedger(store, notifier)

    async def get_subscription(self, user_id: UUID) -> SubscriptionData:
        """
        Get the user's subscription.

        Raises:
            SubscriptionNotFoundError: No subscription for user
        """
        subscription = await self.store.get_subscription(user_id)
        if subscription is None:
            raise SubscriptionNotFoundError(user_id)
        return subscription

    async def ensure_subscription(self, user_id: UUID) -> SubscriptionData:
        """
        Get the user's subscription, creating the free default on first access.

        An existing subscription is returned untouched.
        """
        existing = await self.store.get_subscription(user_id)
        if existing is not None:
            return existing

        free_plan = await self.store.get_plan(PlanType.FREE.value)
        tokens_limit = (
            free_plan.tokens_per_period if free_plan is not None else settings.free_plan_tokens
        )
        now = utc_now()

        subscription = await self.store.create_subscription_if_missing(
            user_id,
            plan_type=PlanType.FREE,
            status=SubscriptionStatus.ACTIVE,
            tokens_limit=tokens_limit,
            tokens_used=0,
            current_period_start=now,
            current_period_end=add_interval(now, PlanInterval.MONTH),
        )

        logger.info(
            "subscription_created",
            user_id=str(user_id),
            plan_type=subscription.plan_type.value,
            tokens_limit=subscription.tokens_limit,
        )
        metrics.record_transition("created", subscription.plan_type.value)
        return subscription

    async def list_plans(self) -> list[PlanData]:
        """Active catalog plans, cheapest first."""
        return await self.store.list_active_plans()

    async def activate(self, user_id: UUID, plan_id: str) -> SubscriptionData:
        """
        Put the user on `plan_id` with a fresh period and full allotment.

        Overwrites any existing subscription unconditionally (no proration).

        Raises:
            InvalidPlanError: plan_id is not in the catalog
        """
        plan = await self.store.get_plan(plan_id)
        if plan is None:
            raise InvalidPlanError(plan_id)

        try:
            plan_type = PlanType(plan.plan_id)
        except ValueError as exc:
            raise InvalidPlanError(plan_id) from exc

        now = utc_now()
        subscription = await self.store.upsert_subscription(
            user_id,
            plan_type=plan_type,
            status=SubscriptionStatus.ACTIVE,
            tokens_limit=plan.tokens_per_period,
            tokens_used=0,
            current_period_start=now,
            current_period_end=add_interval(now, plan.interval),
        )

        logger.info(
            "subscription_activated",
            user_id=str(user_id),
            plan_id=plan.plan_id,
            tokens_limit=subscription.tokens_limit,
            current_period_end=subscription.current_period_end.isoformat(),
        )
        metrics.record_transition("activated", plan_type.value)

        reason = f"Subscription activated: {plan.name}"
        await self.ledger.record_transaction(
            TransactionEntry(
                user_id=user_id,
                amount=plan.tokens_per_period,
                transaction_type=TransactionType.GRANT,
                reason=reason,
                balance_after=plan.tokens_per_period,
            )
        )
        self.ledger.publish_change(subscription, TransactionType.GRANT, reason)
        return subscription

    async def cancel(self, user_id: UUID) -> SubscriptionData:
        """
        Mark the subscription cancelled.

        Limits, usage and period end are left as they are, so tokens stay
        spendable until current_period_end. Repeating cancel has no further effect.
        """
        subscription = await self.store.update_subscription(
            user_id, status=SubscriptionStatus.CANCELLED
        )
        if subscription is None:
            raise SubscriptionNotFoundError(user_id)

        logger.info(
            "subscription_cancelled",
            user_id=str(user_id),
            plan_type=subscription.plan_type.value,
            current_period_end=subscription.current_period_end.isoformat(),
        )
        metrics.record_transition("cancelled", subscription.plan_type.value)
        return subscription

    async def reactivate(self, user_id: UUID) -> SubscriptionData:
        """
        Undo a cancellation.

        Within the current period only the status flips back to active.
        Once the period has lapsed, reactivation also starts a fresh period
        (tokens_used = 0, dates rolled from now) through the ledger reset.
        """
        current = await self.get_subscription(user_id)
        lapsed = is_period_lapsed(current.current_period_end)

        subscription = await self.store.update_subscription(
            user_id, status=SubscriptionStatus.ACTIVE
        )
        if subscription is None:
            raise SubscriptionNotFoundError(user_id)

        if lapsed:
            await self.ledger.reset_period(user_id, reason="Subscription reactivated")
            subscription = await self.get_subscription(user_id)

        logger.info(
            "subscription_reactivated",
            user_id=str(user_id),
            plan_type=subscription.plan_type.value,
            period_restarted=lapsed,
            current_period_end=subscription.current_period_end.isoformat(),
        )
        metrics.record_transition("reactivated", subscription.plan_type.value)
        return subscription
