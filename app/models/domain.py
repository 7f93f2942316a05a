"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from app.models.api import PlanInterval, PlanType, SubscriptionStatus, TransactionType


@dataclass(frozen=True)
class SubscriptionData:
    """Immutable subscription snapshot - one per user."""

    user_id: UUID
    plan_type: PlanType
    status: SubscriptionStatus
    tokens_limit: int
    tokens_used: int
    current_period_start: datetime
    current_period_end: datetime

    def __post_init__(self) -> None:
        """Validate subscription constraints."""
        if self.tokens_limit < 0:
            raise ValueError(f"tokens_limit cannot be negative: {self.tokens_limit}")
        if self.tokens_used < 0:
            raise ValueError(f"tokens_used cannot be negative: {self.tokens_used}")


@dataclass(frozen=True)
class PlanData:
    """Immutable catalog plan."""

    plan_id: str
    name: str
    price: Decimal
    interval: PlanInterval
    tokens_per_period: int

    def __post_init__(self) -> None:
        """Validate plan constraints."""
        if self.tokens_per_period < 0:
            raise ValueError(f"tokens_per_period cannot be negative: {self.tokens_per_period}")
        if self.price < 0:
            raise ValueError(f"Plan price cannot be negative: {self.price}")


@dataclass(frozen=True)
class TokenBalance:
    """Balance derived from a subscription."""

    remaining: int
    used: int
    limit: int


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a successful deduct or grant."""

    balance_after: int
    tokens_used: int
    tokens_limit: int


@dataclass(frozen=True)
class ResetResult:
    """Outcome of a period reset."""

    success: bool
    tokens_limit: int
    current_period_start: datetime
    current_period_end: datetime


@dataclass(frozen=True)
class TransactionEntry:
    """Audit log entry before persistence - immutable intent."""

    user_id: UUID
    amount: int
    transaction_type: TransactionType
    reason: str
    balance_after: int

    def __post_init__(self) -> None:
        """Validate sign convention: deductions are negative, grants and resets are not."""
        if self.transaction_type == TransactionType.DEDUCT and self.amount > 0:
            raise ValueError(f"Deduct amount must be recorded as non-positive: {self.amount}")
        if self.transaction_type != TransactionType.DEDUCT and self.amount < 0:
            raise ValueError(
                f"{self.transaction_type.value} amount cannot be negative: {self.amount}"
            )
        if not self.reason:
            raise ValueError("Reason cannot be empty")


@dataclass(frozen=True)
class TransactionData:
    """Immutable audit log entry after persistence."""

    transaction_id: UUID
    user_id: UUID
    amount: int
    transaction_type: TransactionType
    reason: str
    balance_after: int
    created_at: datetime


@dataclass(frozen=True)
class TokenBalanceChanged:
    """Published after every successful balance mutation."""

    user_id: UUID
    transaction_type: TransactionType
    reason: str
    balance_after: int
    tokens_used: int
    tokens_limit: int
    occurred_at: datetime
