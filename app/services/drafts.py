"""
Local Draft Store - best-effort key/value persistence for in-progress work.

Drafts are convenience state, never the system of record. Every backend
failure is absorbed here: writes are dropped, reads return None and
removals are skipped, each with a warning log.

This is a library module for the studio front end and other clients that
keep drafts next to the user; the HTTP service itself does not store drafts.
"""

from typing import Protocol

from structlog import get_logger

from app.config import settings
from app.exceptions import (
    StorageQuotaExceededError,
    StorageUnavailableError,
    StorageWriteFailedError,
)

logger = get_logger(__name__)

SUPPORTED_PLATFORMS = ("instagram", "facebook")

# Slots freed when storage is full: previous images, edits, videos and captions
_HEAVY_FIELDS = (
    "editImage",
    "videoImage",
    "captionsImage",
    "generated",
    "uploadedImage",
)

HEAVY_DRAFT_KEYS: tuple[str, ...] = tuple(
    f"{platform}_ad_{field}" for field in _HEAVY_FIELDS for platform in SUPPORTED_PLATFORMS
)

# Every slot a platform reset clears
DRAFT_FIELDS = (
    "prompt",
    "caption",
    "generated",
    "uploadedImage",
    "editImage",
    "videoImage",
    "captionsImage",
)


def draft_key(platform: str, field: str) -> str:
    """Build the namespaced `{platform}_ad_{field}` key."""
    if platform not in SUPPORTED_PLATFORMS:
        raise ValueError(f"Unsupported draft platform: {platform}")
    if not field:
        raise ValueError("Draft field cannot be empty")
    return f"{platform}_ad_{field}"


class DraftBackend(Protocol):
    """
    Raw storage behind LocalDraftStore.

    Implementations raise StorageQuotaExceededError when a write does not
    fit, StorageWriteFailedError for other write failures and
    StorageUnavailableError when storage cannot be used at all.
    """

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryDraftBackend:
    """
    In-process backend with a character quota, sized like browser local storage.

    Usage is counted as len(key) + len(value) over all stored entries.
    """

    def __init__(self, quota_chars: int | None = None, enabled: bool = True) -> None:
        self.quota_chars = (
            quota_chars if quota_chars is not None else settings.draft_storage_quota_chars
        )
        self.enabled = enabled
        self._items: dict[str, str] = {}

    @property
    def used_chars(self) -> int:
        return sum(len(key) + len(value) for key, value in self._items.items())

    def get_item(self, key: str) -> str | None:
        self._check_enabled()
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._check_enabled()
        existing = self._items.get(key)
        freed = len(key) + len(existing) if existing is not None else 0
        available = self.quota_chars - (self.used_chars - freed)
        required = len(key) + len(value)
        if required > available:
            raise StorageQuotaExceededError(key, required=required, available=available)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._check_enabled()
        self._items.pop(key, None)

    def _check_enabled(self) -> None:
        if not self.enabled:
            raise StorageUnavailableError("storage disabled")


class LocalDraftStore:
    """Resilient wrapper over a DraftBackend."""

    def __init__(self, backend: DraftBackend) -> None:
        self.backend = backend

    def set(self, key: str, value: str) -> bool:
        """
        Store a draft. On quota exhaustion, evict the heavy keys and retry once.

        Returns True if the value was stored; a dropped write is logged,
        never raised.
        """
        try:
            self.backend.set_item(key, value)
            return True
        except StorageQuotaExceededError as exc:
            logger.warning(
                "draft_storage_full",
                key=key,
                required=exc.required,
                available=exc.available,
            )
        except (StorageWriteFailedError, StorageUnavailableError) as exc:
            logger.warning("draft_write_dropped", key=key, error=str(exc))
            return False

        self.evict_heavy_keys()
        try:
            self.backend.set_item(key, value)
        except (StorageWriteFailedError, StorageUnavailableError) as exc:
            logger.warning("draft_write_dropped", key=key, error=str(exc), after_eviction=True)
            return False

        logger.info("draft_write_retried", key=key)
        return True

    def get(self, key: str) -> str | None:
        """Read a draft; None when missing or unreadable."""
        try:
            return self.backend.get_item(key)
        except StorageUnavailableError as exc:
            logger.warning("draft_read_failed", key=key, error=str(exc))
            return None

    def remove(self, key: str) -> None:
        try:
            self.backend.remove_item(key)
        except StorageUnavailableError as exc:
            logger.warning("draft_remove_failed", key=key, error=str(exc))

    def evict_heavy_keys(self) -> None:
        """Drop every heavy slot across both platforms."""
        for key in HEAVY_DRAFT_KEYS:
            self.remove(key)
        logger.info("draft_heavy_keys_evicted", count=len(HEAVY_DRAFT_KEYS))

    def clear_platform(self, platform: str) -> None:
        """Remove every draft slot for one platform (the "reset" action)."""
        for field in DRAFT_FIELDS:
            self.remove(draft_key(platform, field))
        logger.info("draft_platform_cleared", platform=platform)
