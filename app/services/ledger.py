"""
Token Ledger - balance arithmetic, deductions, grants and period resets.

NO DICTIONARIES - All operations use strongly typed domain models.

Every mutation follows the same two-step pattern:
1. Commit the subscription change (single conditional UPDATE)
2. Append the audit row as a separate, best-effort write

An audit failure is logged and counted but never reverses step 1.
"""

from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from structlog import get_logger

from app.db.repository import SubscriptionStore
from app.exceptions import DatabaseError, InsufficientTokensError, SubscriptionNotFoundError
from app.models.api import TransactionType
from app.models.domain import (
    LedgerResult,
    ResetResult,
    SubscriptionData,
    TokenBalance,
    TokenBalanceChanged,
    TransactionData,
    TransactionEntry,
)
from app.observability.metrics import metrics
from app.observability.tracing import add_span_attributes, get_tracer, set_span_error
from app.services.notifications import BalanceNotifier, balance_notifier
from app.services.periods import interval_for_plan_type, next_period_end, utc_now

logger = get_logger(__name__)
tracer = get_tracer(__name__)


def compute_balance(subscription: SubscriptionData) -> TokenBalance:
    """Remaining tokens for the current period, never below zero."""
    return TokenBalance(
        remaining=max(0, subscription.tokens_limit - subscription.tokens_used),
        used=subscription.tokens_used,
        limit=subscription.tokens_limit,
    )


def has_enough_tokens(subscription: SubscriptionData, required: int) -> bool:
    """True if the subscription can afford `required` tokens. Zero always succeeds."""
    _validate_amount(required, "required")
    return compute_balance(subscription).remaining >= required


def _validate_amount(amount: int, name: str = "amount") -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Token {name} must be an integer: {amount!r}")
    if amount < 0:
        raise ValueError(f"Token {name} cannot be negative: {amount}")


def _validate_reason(reason: str) -> None:
    if not reason or not reason.strip():
        raise ValueError("Reason cannot be empty")


class TokenLedger:
    """
    Token ledger over a SubscriptionStore.

    Raises SubscriptionNotFoundError for users without a subscription row;
    never fabricates a free-tier default.
    """

    def __init__(
        self, store: SubscriptionStore, notifier: BalanceNotifier | None = None
    ) -> None:
        """Initialize ledger with its persistence collaborator."""
        self.store = store
        self.notifier = notifier if notifier is not None else balance_notifier

    async def get_balance(self, user_id: UUID) -> TokenBalance:
        """Current balance for a user."""
        subscription = await self._require_subscription(user_id)
        return compute_balance(subscription)

    async def has_enough(self, user_id: UUID, required: int) -> bool:
        """Whether the user can afford `required` tokens right now."""
        _validate_amount(required, "required")
        subscription = await self._require_subscription(user_id)
        return has_enough_tokens(subscription, required)

    async def deduct(self, user_id: UUID, amount: int, reason: str) -> LedgerResult:
        """
        Spend `amount` tokens.

        Raises:
            SubscriptionNotFoundError: No subscription for user
            InsufficientTokensError: Balance would go negative (nothing is written)
        """
        _validate_amount(amount)
        _validate_reason(reason)

        with tracer.start_as_current_span("ledger.deduct") as span:
            add_span_attributes(span, user_id=user_id, amount=amount)
            try:
                subscription = await self._require_subscription(user_id)

                updated = await self.store.apply_deduction(user_id, amount)
                if updated is None:
                    # Guard rejected the update; re-read so the error reports
                    # the balance the guard actually saw.
                    current = await self._require_subscription(user_id)
                    raise InsufficientTokensError(
                        balance=compute_balance(current).remaining, required=amount
                    )
            except (SubscriptionNotFoundError, InsufficientTokensError) as exc:
                set_span_error(span, exc)
                metrics.record_token_operation(
                    "deduct", success=False, error_type=type(exc).__name__
                )
                logger.info(
                    "token_deduction_rejected",
                    user_id=str(user_id),
                    amount=amount,
                    reason=reason,
                    error=type(exc).__name__,
                )
                raise

            balance_after = updated.tokens_limit - updated.tokens_used
            add_span_attributes(span, balance_after=balance_after)

        logger.info(
            "tokens_deducted",
            user_id=str(user_id),
            amount=amount,
            reason=reason,
            tokens_used_before=subscription.tokens_used,
            balance_after=balance_after,
        )
        metrics.record_token_operation("deduct", success=True, amount=amount)

        await self.record_transaction(
            TransactionEntry(
                user_id=user_id,
                amount=-amount,
                transaction_type=TransactionType.DEDUCT,
                reason=reason,
                balance_after=balance_after,
            )
        )
        self.publish_change(updated, TransactionType.DEDUCT, reason)

        return LedgerResult(
            balance_after=balance_after,
            tokens_used=updated.tokens_used,
            tokens_limit=updated.tokens_limit,
        )

    async def grant(self, user_id: UUID, amount: int, reason: str) -> LedgerResult:
        """
        Give back `amount` tokens by lowering tokens_used, floored at zero.

        Any excess over tokens_used is absorbed; the balance never exceeds
        the period limit.
        """
        _validate_amount(amount)
        _validate_reason(reason)

        updated = await self.store.apply_grant(user_id, amount)
        if updated is None:
            metrics.record_token_operation(
                "grant", success=False, error_type=SubscriptionNotFoundError.__name__
            )
            raise SubscriptionNotFoundError(user_id)

        balance_after = updated.tokens_limit - updated.tokens_used
        logger.info(
            "tokens_granted",
            user_id=str(user_id),
            amount=amount,
            reason=reason,
            balance_after=balance_after,
        )
        metrics.record_token_operation("grant", success=True, amount=amount)

        await self.record_transaction(
            TransactionEntry(
                user_id=user_id,
                amount=amount,
                transaction_type=TransactionType.GRANT,
                reason=reason,
                balance_after=balance_after,
            )
        )
        self.publish_change(updated, TransactionType.GRANT, reason)

        return LedgerResult(
            balance_after=balance_after,
            tokens_used=updated.tokens_used,
            tokens_limit=updated.tokens_limit,
        )

    async def reset_period(
        self, user_id: UUID, reason: str = "Monthly token reset"
    ) -> ResetResult:
        """
        Start a new period: tokens_used = 0, period rolled forward from now
        by the plan type's interval. The new end is always later than the
        previous one (see next_period_end).
        """
        subscription = await self._require_subscription(user_id)

        now = utc_now()
        period_end = next_period_end(
            now,
            subscription.current_period_end,
            interval_for_plan_type(subscription.plan_type),
        )

        updated = await self.store.update_subscription(
            user_id,
            tokens_used=0,
            current_period_start=now,
            current_period_end=period_end,
        )
        if updated is None:
            metrics.record_token_operation(
                "reset", success=False, error_type=SubscriptionNotFoundError.__name__
            )
            raise SubscriptionNotFoundError(user_id)

        logger.info(
            "token_period_reset",
            user_id=str(user_id),
            plan_type=updated.plan_type.value,
            tokens_limit=updated.tokens_limit,
            previous_period_end=subscription.current_period_end.isoformat(),
            current_period_end=updated.current_period_end.isoformat(),
        )
        metrics.record_token_operation("reset", success=True, amount=updated.tokens_limit)

        await self.record_transaction(
            TransactionEntry(
                user_id=user_id,
                amount=updated.tokens_limit,
                transaction_type=TransactionType.RESET,
                reason=reason,
                balance_after=updated.tokens_limit,
            )
        )
        self.publish_change(updated, TransactionType.RESET, reason)

        return ResetResult(
            success=True,
            tokens_limit=updated.tokens_limit,
            current_period_start=updated.current_period_start,
            current_period_end=updated.current_period_end,
        )

    async def transaction_history(self, user_id: UUID, limit: int) -> list[TransactionData]:
        """Audit rows for a user, newest first."""
        if limit <= 0:
            raise ValueError(f"History limit must be positive: {limit}")
        return await self.store.list_transactions(user_id, limit)

    async def record_transaction(self, entry: TransactionEntry) -> None:
        """Best-effort audit write; the balance change is already committed."""
        try:
            await self.store.append_transaction(entry)
        except (SQLAlchemyError, DatabaseError) as exc:
            await self.store.rollback()
            metrics.record_audit_failure(entry.transaction_type.value)
            logger.warning(
                "audit_log_write_failed",
                user_id=str(entry.user_id),
                transaction_type=entry.transaction_type.value,
                amount=entry.amount,
                balance_after=entry.balance_after,
                error=str(exc),
            )

    def publish_change(
        self, subscription: SubscriptionData, transaction_type: TransactionType, reason: str
    ) -> None:
        self.notifier.publish(
            TokenBalanceChanged(
                user_id=subscription.user_id,
                transaction_type=transaction_type,
                reason=reason,
                balance_after=compute_balance(subscription).remaining,
                tokens_used=subscription.tokens_used,
                tokens_limit=subscription.tokens_limit,
                occurred_at=utc_now(),
            )
        )

    # ========================================================================
    # Private Helper Methods
    # ========================================================================

    async def _require_subscription(self, user_id: UUID) -> SubscriptionData:
        subscription = await self.store.get_subscription(user_id)
        if subscription is None:
            raise SubscriptionNotFoundError(user_id)
        return subscription
