"""
Subscription Store - Persistence collaborator for the ledger and lifecycle.

All balance mutations are single conditional UPDATE statements so that
concurrent callers cannot double-spend a read-then-write window.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import Subscription, SubscriptionPlan, TokenTransaction
from app.exceptions import DatabaseError, WriteVerificationError
from app.models.api import PlanInterval, PlanType, SubscriptionStatus, TransactionType
from app.models.domain import PlanData, SubscriptionData, TransactionData, TransactionEntry

# Columns callers may write through update/upsert
_WRITABLE_FIELDS = frozenset(
    {
        "plan_type",
        "status",
        "tokens_limit",
        "tokens_used",
        "current_period_start",
        "current_period_end",
    }
)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, (PlanType, SubscriptionStatus)) else value


def _clean_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - _WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")
    return {key: _enum_value(value) for key, value in fields.items()}


class SubscriptionStore:
    """
    Async SQLAlchemy implementation of the persistence collaborator.

    Methods that mutate subscriptions commit before returning; the audit
    log append commits separately so its failure never rolls back a
    balance change.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize store with database session."""
        self.session = session

    # ========================================================================
    # Subscriptions
    # ========================================================================

    async def get_subscription(self, user_id: UUID) -> SubscriptionData | None:
        """Fetch the user's subscription, or None if no row exists."""
        stmt = select(Subscription).where(Subscription.user_id == user_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._subscription_to_domain(row) if row is not None else None

    async def update_subscription(self, user_id: UUID, **fields: Any) -> SubscriptionData | None:
        """
        Apply a partial update. Returns None if the user has no subscription.
        """
        values = _clean_fields(fields)
        stmt = (
            update(Subscription)
            .where(Subscription.user_id == user_id)
            .values(**values)
            .returning(Subscription)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            await self.session.rollback()
            return None
        await self._commit()
        return self._subscription_to_domain(row)

    async def upsert_subscription(self, user_id: UUID, **fields: Any) -> SubscriptionData:
        """Insert or overwrite the user's subscription (conflict on user_id)."""
        values = _clean_fields(fields)
        stmt = (
            pg_insert(Subscription)
            .values(user_id=user_id, **values)
            .on_conflict_do_update(
                index_elements=[Subscription.user_id],
                set_={**values, "updated_at": func.now()},
            )
            .returning(Subscription)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            await self.session.rollback()
            raise WriteVerificationError(f"Subscription upsert for {user_id} returned no row")
        await self._commit()
        return self._subscription_to_domain(row)

    async def create_subscription_if_missing(
        self, user_id: UUID, **fields: Any
    ) -> SubscriptionData:
        """Create the subscription unless one exists; never overwrites."""
        values = _clean_fields(fields)
        stmt = (
            pg_insert(Subscription)
            .values(user_id=user_id, **values)
            .on_conflict_do_nothing(index_elements=[Subscription.user_id])
        )
        await self.session.execute(stmt)
        await self._commit()

        subscription = await self.get_subscription(user_id)
        if subscription is None:
            raise WriteVerificationError(f"Subscription for {user_id} not found after insert")
        return subscription

    async def apply_deduction(self, user_id: UUID, amount: int) -> SubscriptionData | None:
        """
        Atomically add `amount` to tokens_used if the balance stays non-negative.

        Returns None when the guard rejects the update (insufficient
        tokens) or no subscription exists.
        """
        stmt = (
            update(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.tokens_limit - Subscription.tokens_used - amount >= 0,
            )
            .values(tokens_used=Subscription.tokens_used + amount)
            .returning(Subscription)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            await self.session.rollback()
            return None
        await self._commit()
        return self._subscription_to_domain(row)

    async def apply_grant(self, user_id: UUID, amount: int) -> SubscriptionData | None:
        """Atomically subtract `amount` from tokens_used, flooring at zero."""
        stmt = (
            update(Subscription)
            .where(Subscription.user_id == user_id)
            .values(tokens_used=func.greatest(Subscription.tokens_used - amount, 0))
            .returning(Subscription)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            await self.session.rollback()
            return None
        await self._commit()
        return self._subscription_to_domain(row)

    # ========================================================================
    # Plans
    # ========================================================================

    async def get_plan(self, plan_id: str) -> PlanData | None:
        """Fetch a catalog plan by id."""
        plan = await self.session.get(SubscriptionPlan, plan_id)
        return self._plan_to_domain(plan) if plan is not None else None

    async def list_active_plans(self) -> list[PlanData]:
        """Active catalog plans, cheapest first."""
        stmt = (
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.price.asc(), SubscriptionPlan.id.asc())
        )
        result = await self.session.execute(stmt)
        return [self._plan_to_domain(plan) for plan in result.scalars().all()]

    # ========================================================================
    # Audit log
    # ========================================================================

    async def append_transaction(self, entry: TransactionEntry) -> TransactionData:
        """Insert an audit row and commit it on its own."""
        row = TokenTransaction(
            user_id=entry.user_id,
            amount=entry.amount,
            type=entry.transaction_type.value,
            reason=entry.reason,
            balance_after=entry.balance_after,
        )
        self.session.add(row)
        await self.session.flush()
        await self._commit()
        return self._transaction_to_domain(row)

    async def list_transactions(self, user_id: UUID, limit: int) -> list[TransactionData]:
        """Audit rows for a user, newest first."""
        stmt = (
            select(TokenTransaction)
            .where(TokenTransaction.user_id == user_id)
            .order_by(TokenTransaction.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._transaction_to_domain(row) for row in result.scalars().all()]

    async def rollback(self) -> None:
        """Discard the session's pending state after a failed write."""
        await self.session.rollback()

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _commit(self) -> None:
        """Commit, converting driver failures into DatabaseError."""
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise DatabaseError(f"Commit failed: {exc}") from exc

    def _subscription_to_domain(self, row: Subscription) -> SubscriptionData:
        """Convert ORM subscription to domain model."""
        return SubscriptionData(
            user_id=row.user_id,
            plan_type=PlanType(row.plan_type),
            status=SubscriptionStatus(row.status),
            tokens_limit=row.tokens_limit,
            tokens_used=row.tokens_used,
            current_period_start=row.current_period_start,
            current_period_end=row.current_period_end,
        )

    def _plan_to_domain(self, plan: SubscriptionPlan) -> PlanData:
        """Convert ORM plan to domain model."""
        return PlanData(
            plan_id=plan.id,
            name=plan.name,
            price=plan.price,
            interval=PlanInterval(plan.interval),
            tokens_per_period=plan.tokens_per_period,
        )

    def _transaction_to_domain(self, row: TokenTransaction) -> TransactionData:
        """Convert ORM audit row to domain model."""
        return TransactionData(
            transaction_id=row.id,
            user_id=row.user_id,
            amount=row.amount,
            transaction_type=TransactionType(row.type),
            reason=row.reason,
            balance_after=row.balance_after,
            created_at=row.created_at,
        )
