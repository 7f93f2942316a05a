"""
API Routes - FastAPI endpoints for token quota and subscription operations.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import require_api_key
from app.config import settings
from app.db.repository import SubscriptionStore
from app.db.session import get_read_db, get_write_db
from app.exceptions import (
    InsufficientTokensError,
    InvalidPlanError,
    SubscriptionNotFoundError,
    WriteVerificationError,
)
from app.models.api import (
    ActivateSubscriptionRequest,
    HealthResponse,
    LedgerResponse,
    PlanListResponse,
    PlanResponse,
    PlanType,
    ResetResponse,
    SubscriptionResponse,
    SubscriptionStatus,
    TokenAmountRequest,
    TokenBalanceResponse,
    TokenCheckResponse,
    TransactionItem,
    TransactionListResponse,
    UsageSummaryResponse,
)
from app.models.domain import LedgerResult, PlanData, SubscriptionData
from app.services.formatting import (
    days_until,
    format_count,
    format_percentage,
    interval_suffix,
    plan_display_name,
    usage_percentage,
)
from app.services.ledger import TokenLedger, compute_balance
from app.services.periods import utc_now
from app.services.subscription import SubscriptionLifecycle

router = APIRouter()


# =============================================================================
# Plans
# =============================================================================


@router.get("/v1/plans", response_model=PlanListResponse)
async def list_plans(db: AsyncSession = Depends(get_read_db)) -> PlanListResponse:
    """
    List active subscription plans, cheapest first.

    Read operation - served from replica.
    """
    lifecycle = SubscriptionLifecycle(SubscriptionStore(db))
    plans = await lifecycle.list_plans()
    return PlanListResponse(plans=[_plan_response(plan) for plan in plans])


# =============================================================================
# Subscriptions
# =============================================================================


@router.post("/v1/subscriptions/{user_id}", response_model=SubscriptionResponse)
async def ensure_subscription(
    user_id: UUID,
    db: AsyncSession = Depends(get_write_db),
) -> SubscriptionResponse:
    """
    Get the user's subscription, creating the free default on first access.

    Write operation - requires primary database.
    """
    lifecycle = SubscriptionLifecycle(SubscriptionStore(db))
    try:
        subscription = await lifecycle.ensure_subscription(user_id)
    except WriteVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Subscription could not be created",
        ) from exc
    return _subscription_response(subscription)


@router.get("/v1/subscriptions/{user_id}", response_model=SubscriptionResponse)
async def get_subscription(
    user_id: UUID,
    db: AsyncSession = Depends(get_read_db),
) -> SubscriptionResponse:
    """Get the user's subscription. Read operation - served from replica."""
    lifecycle = SubscriptionLifecycle(SubscriptionStore(db))
    try:
        subscription = await lifecycle.get_subscription(user_id)
    except SubscriptionNotFoundError as exc:
        raise _not_found(exc) from exc
    return _subscription_response(subscription)


@router.post("/v1/subscriptions/{user_id}/activate", response_model=SubscriptionResponse)
async def activate_subscription(
    user_id: UUID,
    request: ActivateSubscriptionRequest,
    db: AsyncSession = Depends(get_write_db),
) -> SubscriptionResponse:
    """
    Put the user on a plan with a fresh period and full token allotment.

    No payment is taken; overwrites any existing subscription.
    """
    lifecycle = SubscriptionLifecycle(SubscriptionStore(db))
    try:
        subscription = await lifecycle.activate(user_id, request.plan_id)
    except InvalidPlanError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid plan: {exc.plan_id}",
        ) from exc
    except WriteVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Subscription could not be saved",
        ) from exc
    return _subscription_response(subscription)


@router.post("/v1/subscriptions/{user_id}/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    user_id: UUID,
    db: AsyncSession = Depends(get_write_db),
) -> SubscriptionResponse:
    """Cancel renewal; tokens stay usable until the period ends."""
    lifecycle = SubscriptionLifecycle(SubscriptionStore(db))
    try:
        subscription = await lifecycle.cancel(user_id)
    except SubscriptionNotFoundError as exc:
        raise _not_found(exc) from exc
    return _subscription_response(subscription)


@router.post("/v1/subscriptions/{user_id}/reactivate", response_model=SubscriptionResponse)
async def reactivate_subscription(
    user_id: UUID,
    db: AsyncSession = Depends(get_write_db),
) -> SubscriptionResponse:
    """Undo a cancellation. A lapsed subscription also starts a fresh period."""
    lifecycle = SubscriptionLifecycle(SubscriptionStore(db))
    try:
        subscription = await lifecycle.reactivate(user_id)
    except SubscriptionNotFoundError as exc:
        raise _not_found(exc) from exc
    return _subscription_response(subscription)


# =============================================================================
# Token Ledger
# =============================================================================


@router.get("/v1/tokens/{user_id}/balance", response_model=TokenBalanceResponse)
async def get_token_balance(
    user_id: UUID,
    db: AsyncSession = Depends(get_read_db),
) -> TokenBalanceResponse:
    """Current token balance. Read operation - served from replica."""
    lifecycle = SubscriptionLifecycle(SubscriptionStore(db))
    try:
        subscription = await lifecycle.get_subscription(user_id)
    except SubscriptionNotFoundError as exc:
        raise _not_found(exc) from exc

    balance = compute_balance(subscription)
    return TokenBalanceResponse(
        remaining=balance.remaining,
        used=balance.used,
        limit=balance.limit,
        plan_type=subscription.plan_type,
        status=subscription.status,
        period_end=subscription.current_period_end.isoformat(),
    )


@router.get("/v1/tokens/{user_id}/check", response_model=TokenCheckResponse)
async def check_tokens(
    user_id: UUID,
    required: int = Query(..., ge=0, le=1_000_000_000),
    db: AsyncSession = Depends(get_read_db),
) -> TokenCheckResponse:
    """
    Check whether the user can afford `required` tokens.

    Callers must check before performing a paid action, then deduct after it.
    """
    ledger = TokenLedger(SubscriptionStore(db))
    try:
        has_enough = await ledger.has_enough(user_id, required)
        balance = await ledger.get_balance(user_id)
    except SubscriptionNotFoundError as exc:
        raise _not_found(exc) from exc

    return TokenCheckResponse(
        has_enough=has_enough,
        required=required,
        remaining=balance.remaining,
    )


@router.post("/v1/tokens/{user_id}/deduct", response_model=LedgerResponse)
async def deduct_tokens(
    user_id: UUID,
    request: TokenAmountRequest,
    db: AsyncSession = Depends(get_write_db),
    _: None = Depends(require_api_key),
) -> LedgerResponse:
    """
    Spend tokens. Rejected with 402 when the balance would go negative.

    Write operation - requires primary database.
    Requires: X-API-Key when an API key is configured.
    """
    ledger = TokenLedger(SubscriptionStore(db))
    try:
        result = await ledger.deduct(user_id, request.amount, request.reason)
    except SubscriptionNotFoundError as exc:
        raise _not_found(exc) from exc
    except InsufficientTokensError as exc:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=(
                f"Insufficient tokens. Balance: {exc.balance}, Required: {exc.required}. "
                "Upgrade your plan to continue."
            ),
        ) from exc
    return _ledger_response(result)


@router.post("/v1/tokens/{user_id}/grant", response_model=LedgerResponse)
async def grant_tokens(
    user_id: UUID,
    request: TokenAmountRequest,
    db: AsyncSession = Depends(get_write_db),
    _: None = Depends(require_api_key),
) -> LedgerResponse:
    """
    Give tokens back (refund). Usage is floored at zero.

    Requires: X-API-Key when an API key is configured.
    """
    ledger = TokenLedger(SubscriptionStore(db))
    try:
        result = await ledger.grant(user_id, request.amount, request.reason)
    except SubscriptionNotFoundError as exc:
        raise _not_found(exc) from exc
    return _ledger_response(result)


@router.post("/v1/tokens/{user_id}/reset", response_model=ResetResponse)
async def reset_tokens(
    user_id: UUID,
    db: AsyncSession = Depends(get_write_db),
    _: None = Depends(require_api_key),
) -> ResetResponse:
    """
    Start a new period with zero usage.

    Normally called by the scheduled renewal job.
    Requires: X-API-Key when an API key is configured.
    """
    ledger = TokenLedger(SubscriptionStore(db))
    try:
        result = await ledger.reset_period(user_id)
    except SubscriptionNotFoundError as exc:
        raise _not_found(exc) from exc

    return ResetResponse(
        success=result.success,
        tokens_limit=result.tokens_limit,
        current_period_start=result.current_period_start.isoformat(),
        current_period_end=result.current_period_end.isoformat(),
    )


@router.get("/v1/tokens/{user_id}/transactions", response_model=TransactionListResponse)
async def list_transactions(
    user_id: UUID,
    limit: int | None = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_read_db),
) -> TransactionListResponse:
    """
    Token audit log for a user, newest first.

    Read operation - served from replica. Best-effort: a failed audit write
    leaves no row here even though the balance changed.
    """
    ledger = TokenLedger(SubscriptionStore(db))
    transactions = await ledger.transaction_history(
        user_id, limit or settings.transaction_history_limit
    )
    return TransactionListResponse(
        transactions=[
            TransactionItem(
                transaction_id=tx.transaction_id,
                amount=tx.amount,
                type=tx.transaction_type,
                reason=tx.reason,
                balance_after=tx.balance_after,
                created_at=tx.created_at.isoformat(),
            )
            for tx in transactions
        ]
    )


# =============================================================================
# Usage Summary
# =============================================================================


@router.get("/v1/users/{user_id}/usage", response_model=UsageSummaryResponse)
async def get_usage_summary(
    user_id: UUID,
    db: AsyncSession = Depends(get_read_db),
) -> UsageSummaryResponse:
    """
    Display-ready usage numbers for the subscription dashboard.

    A user without a subscription is shown as the free plan with zero
    tokens; no row is created.
    """
    store = SubscriptionStore(db)
    subscription = await store.get_subscription(user_id)

    if subscription is None:
        return UsageSummaryResponse(
            plan_type=PlanType.FREE,
            plan_name=plan_display_name(PlanType.FREE),
            status=SubscriptionStatus.ACTIVE,
            tokens_used=format_count(0),
            tokens_limit=format_count(0),
            tokens_remaining=format_count(0),
            usage_percentage=0.0,
            usage_percentage_display=format_percentage(0.0),
            days_until_reset=0,
        )

    balance = compute_balance(subscription)
    percentage = usage_percentage(balance.used, balance.limit)
    return UsageSummaryResponse(
        plan_type=subscription.plan_type,
        plan_name=plan_display_name(subscription.plan_type),
        status=subscription.status,
        tokens_used=format_count(balance.used),
        tokens_limit=format_count(balance.limit),
        tokens_remaining=format_count(balance.remaining),
        usage_percentage=percentage,
        usage_percentage_display=format_percentage(percentage),
        days_until_reset=days_until(subscription.current_period_end, utc_now()),
    )


# =============================================================================
# Service
# =============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_read_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))

        return HealthResponse(
            status="healthy",
            database="connected",
            timestamp=datetime.now(UTC).isoformat(),
        )

    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc


# =============================================================================
# Response Builders
# =============================================================================


def _not_found(exc: SubscriptionNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Subscription not found for user {exc.user_id}",
    )


def _plan_response(plan: PlanData) -> PlanResponse:
    return PlanResponse(
        id=plan.plan_id,
        name=plan.name,
        price=float(plan.price),
        interval=plan.interval,
        interval_display=interval_suffix(plan.interval),
        tokens_per_period=plan.tokens_per_period,
    )


def _subscription_response(subscription: SubscriptionData) -> SubscriptionResponse:
    balance = compute_balance(subscription)
    return SubscriptionResponse(
        user_id=subscription.user_id,
        plan_type=subscription.plan_type,
        status=subscription.status,
        tokens_limit=subscription.tokens_limit,
        tokens_used=subscription.tokens_used,
        tokens_remaining=balance.remaining,
        current_period_start=subscription.current_period_start.isoformat(),
        current_period_end=subscription.current_period_end.isoformat(),
    )


def _ledger_response(result: LedgerResult) -> LedgerResponse:
    return LedgerResponse(
        balance_after=result.balance_after,
        tokens_used=result.tokens_used,
        tokens_limit=result.tokens_limit,
    )
