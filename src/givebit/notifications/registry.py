"""Subscription registry — ordered event listeners removed by equality.

Listeners are plain callables invoked synchronously, in registration order,
for every event of the kind they subscribed to. A failing listener is logged
and never stops delivery to its siblings.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from givebit.metrics.collector import DeliveryMetrics
    from givebit.notifications.events import DonationEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[["DonationEvent"], object]


class SubscriptionRegistry:
    """Maps an event kind to its ordered list of listeners."""

    def __init__(self, *, metrics: DeliveryMetrics | None = None) -> None:
        self._listeners: dict[str, list[EventCallback]] = {}
        self._metrics = metrics

    def add(self, kind: str, callback: EventCallback) -> None:
        """Register *callback* for *kind*. Duplicates are invoked once per registration."""
        self._listeners.setdefault(str(kind), []).append(callback)

    def remove(self, kind: str, callback: EventCallback) -> None:
        """Remove the first registration equal to *callback* for *kind*, if any.

        Bound methods compare equal when they wrap the same function and instance.
        """
        callbacks = self._listeners.get(str(kind))
        if not callbacks:
            return
        for index, registered in enumerate(callbacks):
            if registered == callback:
                del callbacks[index]
                break
        if not callbacks:
            del self._listeners[str(kind)]

    def count(self, kind: str) -> int:
        """Number of listeners registered for *kind*."""
        return len(self._listeners.get(str(kind), []))

    def clear(self) -> None:
        self._listeners.clear()

    def emit(self, event: DonationEvent) -> int:
        """Deliver *event* to every listener of its kind.

        The listener list is snapshotted first, so a listener that removes
        itself (or another) only affects later deliveries.

        Returns:
            Number of listeners that handled the event without raising.
        """
        kind = str(event.type)
        delivered = 0
        for callback in list(self._listeners.get(kind, [])):
            try:
                callback(event)
            except Exception:
                logger.exception("Error in event listener for %s", kind)
                if self._metrics:
                    self._metrics.record_listener_error(kind)
            else:
                delivered += 1
        return delivered


def deduplicate(
    callback: EventCallback,
) -> EventCallback:
    """Wrap *callback* so repeated ``(session id, event type)`` pairs are dropped.

    Events are delivered at-least-once because the push channel and the
    fallback poller may both report the same transition. Connection events
    (no session) always pass through.
    """
    seen: set[tuple[str, str]] = set()

    def _wrapper(event: DonationEvent) -> object:
        if event.session is not None and event.session.id:
            key = (event.session.id, str(event.type))
            if key in seen:
                return None
            seen.add(key)
        return callback(event)

    return _wrapper
