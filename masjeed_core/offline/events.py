# =============================================================================
# masjeed_core/offline/events.py
# Named Event Subscriptions
# =============================================================================
"""
EventBus - named events with handler subscription.

Handlers receive the event detail dict. A failing handler is logged and does
not stop delivery to the others.
"""

from __future__ import annotations
from typing import Any, Callable, Dict, List
import logging

logger = logging.getLogger(__name__)

QUEUE_SUCCESS = "offlineQueueSuccess"
QUEUE_FAILURE = "offlineQueueFailure"
CONNECTIVITY_CHANGE = "connectivityChange"

Handler = Callable[[Dict[str, Any]], None]


class EventBus:
    """In-process publish/subscribe keyed by event name."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """
        Register a handler for an event.

        Returns:
            A function that removes the handler again
        """
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers.get(event, []):
                self._handlers[event].remove(handler)

        return unsubscribe

    def emit(self, event: str, detail: Dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(dict(detail))
            except Exception as e:
                logger.error(f"Error in {event} handler: {e}")

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))


def log_events(bus: EventBus, log: logging.Logger = logger) -> Callable[[], None]:
    """
    Log queue outcomes and connectivity transitions published on ``bus``.

    Returns:
        A function that detaches the logging handlers
    """
    unsubscribers = [
        bus.subscribe(
            QUEUE_SUCCESS,
            lambda d: log.info(f"Queued {d['method']} {d['url']} delivered ({d['id']})"),
        ),
        bus.subscribe(
            QUEUE_FAILURE,
            lambda d: log.warning(
                f"Queued {d['method']} {d['url']} dropped after {d['retryCount']} retries ({d['id']})"
            ),
        ),
        bus.subscribe(
            CONNECTIVITY_CHANGE,
            lambda d: log.info(f"Connectivity: {'online' if d['isOnline'] else 'offline'}"),
        ),
    ]

    def unsubscribe() -> None:
        for detach in unsubscribers:
            detach()

    return unsubscribe
