"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID


class QuotaError(Exception):
    """Base exception for all quota and subscription errors."""

    pass


class SubscriptionNotFoundError(QuotaError):
    """Raised when no subscription row exists for a user."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        super().__init__(f"Subscription not found for user {user_id}")


class InvalidPlanError(QuotaError):
    """Raised when a plan id is not in the catalog."""

    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"Invalid plan: {plan_id}")


class InsufficientTokensError(QuotaError):
    """Raised when a deduction would drive the token balance negative."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient tokens. Balance: {balance}, Required: {required}")


class WriteVerificationError(QuotaError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DatabaseError(QuotaError):
    """Raised when database operation fails unexpectedly."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Database error: {message}")


# ============================================================================
# Draft storage errors - absorbed by LocalDraftStore, never surfaced
# ============================================================================


class StorageWriteFailedError(QuotaError):
    """Raised by a draft backend when a write cannot be stored."""

    def __init__(self, key: str, message: str = "write failed") -> None:
        self.key = key
        self.message = message
        super().__init__(f"Draft write failed for {key}: {message}")


class StorageQuotaExceededError(StorageWriteFailedError):
    """Raised by a draft backend when the write would exceed its quota."""

    def __init__(self, key: str, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(key, f"quota exceeded (required {required}, available {available})")


class StorageUnavailableError(QuotaError):
    """Raised by a draft backend when storage is disabled or unreachable."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Draft storage unavailable: {message}")
