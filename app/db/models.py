"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Subscription(Base):
    """
    ORM model for subscriptions table.

    One row per user. tokens_used only moves through the ledger's
    conditional updates, activation and period resets.
    """

    __tablename__ = "subscriptions"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    # Owner
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, unique=True)

    # Plan and lifecycle state
    plan_type: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    # Token quota for the current period
    tokens_limit: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    tokens_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Billing window
    current_period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    current_period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Audit timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("tokens_limit >= 0", name="ck_tokens_limit_non_negative"),
        CheckConstraint("tokens_used >= 0", name="ck_tokens_used_non_negative"),
        CheckConstraint(
            "plan_type IN ('free', 'monthly', 'sixMonth', 'annual')",
            name="ck_subscription_plan_type",
        ),
        CheckConstraint("status IN ('active', 'cancelled')", name="ck_subscription_status"),
        Index("idx_subscriptions_status", "status"),
        Index("idx_subscriptions_period_end", "current_period_end"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Subscription(user_id={self.user_id}, plan_type={self.plan_type}, "
            f"status={self.status}, used={self.tokens_used}/{self.tokens_limit})>"
        )


class SubscriptionPlan(Base):
    """
    ORM model for subscription_plans table.

    Reference catalog - read-only from the service's perspective.
    """

    __tablename__ = "subscription_plans"

    # Primary Key is the plan id used by callers ("monthly", "annual", ...)
    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    interval: Mapped[str] = mapped_column(String(20), nullable=False)
    tokens_per_period: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_plan_price_non_negative"),
        CheckConstraint("tokens_per_period >= 0", name="ck_plan_tokens_non_negative"),
        CheckConstraint("interval IN ('month', '6months', 'year')", name="ck_plan_interval"),
        Index("idx_subscription_plans_active_price", "is_active", "price"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<SubscriptionPlan(id={self.id}, interval={self.interval}, tokens={self.tokens_per_period})>"


class TokenTransaction(Base):
    """
    ORM model for token_transactions table.

    Append-only audit log. Rows are never updated after insert.
    """

    __tablename__ = "token_transactions"

    # Primary Key
    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)

    # Signed: negative for deduct, positive for grant/reset
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        CheckConstraint("type IN ('deduct', 'grant', 'reset')", name="ck_token_transaction_type"),
        Index("idx_token_transactions_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<TokenTransaction(id={self.id}, user_id={self.user_id}, "
            f"type={self.type}, amount={self.amount}, balance_after={self.balance_after})>"
        )
