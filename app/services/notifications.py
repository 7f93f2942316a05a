"""
Token Balance Notifications - explicit observer channel.

The ledger publishes a TokenBalanceChanged event after every successful
deduct, grant or period reset; interested consumers subscribe here
instead of listening on an ambient event bus.
"""

from collections.abc import Callable

from structlog import get_logger

from app.models.domain import TokenBalanceChanged

logger = get_logger(__name__)

BalanceListener = Callable[[TokenBalanceChanged], None]


class BalanceNotifier:
    """Synchronous publish/subscribe channel for balance changes."""

    def __init__(self) -> None:
        self._listeners: list[BalanceListener] = []

    def subscribe(self, listener: BalanceListener) -> Callable[[], None]:
        """
        Register a listener. Returns a callable that removes it again.

        Listeners run in subscription order on the publishing call stack.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: TokenBalanceChanged) -> None:
        """Deliver an event to every listener; a failing listener is logged and skipped."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.warning(
                    "balance_listener_failed",
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    user_id=str(event.user_id),
                    error=str(exc),
                    exc_info=True,
                )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


# Process-wide channel, wired to consumers in app.main
balance_notifier = BalanceNotifier()
