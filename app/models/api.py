"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class PlanType(str, Enum):
    """Subscription plan type enumeration."""

    FREE = "free"
    MONTHLY = "monthly"
    SIX_MONTH = "sixMonth"
    ANNUAL = "annual"


class SubscriptionStatus(str, Enum):
    """Subscription status enumeration."""

    ACTIVE = "active"
    CANCELLED = "cancelled"


class PlanInterval(str, Enum):
    """Billing interval of a catalog plan."""

    MONTH = "month"
    SIX_MONTHS = "6months"
    YEAR = "year"


class TransactionType(str, Enum):
    """Token transaction type enumeration."""

    DEDUCT = "deduct"
    GRANT = "grant"
    RESET = "reset"


# ============================================================================
# Plan Models
# ============================================================================


class PlanResponse(BaseModel):
    """Catalog plan entry."""

    id: str
    name: str
    price: float
    interval: PlanInterval
    interval_display: str
    tokens_per_period: int


class PlanListResponse(BaseModel):
    """GET /v1/plans response."""

    plans: list[PlanResponse]


# ============================================================================
# Subscription Models
# ============================================================================


class ActivateSubscriptionRequest(BaseModel):
    """POST /v1/subscriptions/{user_id}/activate request body."""

    plan_id: str = Field(..., min_length=1, max_length=50)

    @field_validator("plan_id")
    @classmethod
    def strip_plan_id(cls, v: str) -> str:
        """Plan ids are matched exactly; surrounding whitespace is dropped."""
        v = v.strip()
        if not v:
            raise ValueError("plan_id cannot be blank")
        return v


class SubscriptionResponse(BaseModel):
    """Subscription record as exposed to callers."""

    user_id: UUID
    plan_type: PlanType
    status: SubscriptionStatus
    tokens_limit: int
    tokens_used: int
    tokens_remaining: int
    current_period_start: str
    current_period_end: str


# ============================================================================
# Token Ledger Models
# ============================================================================


class TokenAmountRequest(BaseModel):
    """POST /v1/tokens/{user_id}/deduct and /grant request body."""

    amount: int = Field(..., ge=0, le=1_000_000_000)
    reason: str = Field(..., min_length=1, max_length=500)


class TokenBalanceResponse(BaseModel):
    """GET /v1/tokens/{user_id}/balance response."""

    remaining: int
    used: int
    limit: int
    plan_type: PlanType
    status: SubscriptionStatus
    period_end: str


class TokenCheckResponse(BaseModel):
    """GET /v1/tokens/{user_id}/check response."""

    has_enough: bool
    required: int
    remaining: int


class LedgerResponse(BaseModel):
    """Result of a deduct/grant operation."""

    balance_after: int
    tokens_used: int
    tokens_limit: int


class ResetResponse(BaseModel):
    """POST /v1/tokens/{user_id}/reset response."""

    success: bool
    tokens_limit: int
    current_period_start: str
    current_period_end: str


class TransactionItem(BaseModel):
    """Single audit log entry."""

    transaction_id: UUID
    amount: int
    type: TransactionType
    reason: str
    balance_after: int
    created_at: str


class TransactionListResponse(BaseModel):
    """GET /v1/tokens/{user_id}/transactions response."""

    transactions: list[TransactionItem]


# ============================================================================
# Usage Summary Models
# ============================================================================


class UsageSummaryResponse(BaseModel):
    """GET /v1/users/{user_id}/usage response - display-ready values."""

    plan_type: PlanType
    plan_name: str
    status: SubscriptionStatus
    tokens_used: str
    tokens_limit: str
    tokens_remaining: str
    usage_percentage: float
    usage_percentage_display: str
    days_until_reset: int


# ============================================================================
# Health Models
# ============================================================================


class HealthResponse(BaseModel):
    """GET /health response."""

    status: Literal["healthy", "unhealthy"]
    database: Literal["connected", "disconnected"]
    timestamp: str
