# =============================================================================
# masjeed_core/offline/queue_manager.py
# Offline Write Queue with Exponential-Backoff Replay
# =============================================================================
"""
OfflineQueueManager - owns the lifecycle of queued write requests.

Each queued request moves through:

    Pending -> Attempting -> Pending (retry_count + 1, retry scheduled)
                          -> Completed (removed, success event)
                          -> Exhausted (removed, failure event)

Features:
- Durable queue in the local store (survives restarts)
- Exponential backoff between replays, capped at ``max_delay_ms``
- One retry timer per item, cancelled whenever the item is removed
- Re-entrant drains are no-ops while ``sync_in_progress`` is set
"""

from __future__ import annotations
import json
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union
import logging

from masjeed_core.errors.exceptions import SerializationError, StorageError
from masjeed_core.logging import LogContext
from masjeed_core.offline import events as event_names
from masjeed_core.offline.events import EventBus
from masjeed_core.offline.local_store import LocalStore
from masjeed_core.offline.models import (
    OFFLINE_QUEUE,
    ConnectivityState,
    QueuedRequest,
    QueueStatus,
    RequestCategory,
    RetryConfig,
    now_ms,
)
from masjeed_core.offline.scheduler import CancelToken, Scheduler
from masjeed_core.offline.transport import Transport

logger = logging.getLogger(__name__)

BODYLESS_METHODS = frozenset({"GET", "HEAD"})


class OfflineQueueManager:
    """
    Queue of writes that failed for lack of connectivity.

    Usage:
        manager = OfflineQueueManager(store, transport, scheduler, bus, state)
        item_id = manager.enqueue("/api/donations", "POST", {"amount": 50},
                                  category="donations")
        await manager.process_queue()
    """

    def __init__(
        self,
        store: LocalStore,
        transport: Transport,
        scheduler: Scheduler,
        events: EventBus,
        state: ConnectivityState,
        retry_config: Optional[RetryConfig] = None,
        startup_drain_delay_ms: int = 1000,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.transport = transport
        self.scheduler = scheduler
        self.events = events
        self.state = state
        self.retry_config = retry_config or RetryConfig()
        self.startup_drain_delay_ms = startup_drain_delay_ms
        self._clock = clock
        self._retry_tokens: Dict[str, CancelToken] = {}
        self._in_flight: Set[str] = set()

    # =========================================================================
    # ENQUEUE
    # =========================================================================

    def enqueue(
        self,
        url: str,
        method: str,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        category: Union[RequestCategory, str] = RequestCategory.GENERAL,
        retry_config: Optional[Union[RetryConfig, Mapping[str, Any]]] = None,
    ) -> str:
        """
        Persist a write for later replay.

        Args:
            url: Request URL (relative URLs are resolved by the transport)
            method: HTTP method
            body: JSON-serializable body, or already-serialized text
            headers: Headers to replay, e.g. the bearer token
            category: UI grouping for the queue status
            retry_config: Partial override of the default retry policy

        Returns:
            Generated id of the queued request

        Raises:
            SerializationError: body cannot be captured; nothing is queued
            StorageError: the item could not be persisted
        """
        config = self.retry_config.merged(retry_config)
        method = method.upper()

        item = QueuedRequest(
            id=self._new_id(),
            url=url,
            method=method,
            body=self._serialize_body(url, method, body),
            headers=dict(headers or {}),
            category=RequestCategory(category),
            enqueued_at=self._clock(),
            retry_count=0,
            max_retries=config.max_retries,
        )

        try:
            self.store.put(OFFLINE_QUEUE, item.to_record())
        except StorageError as e:
            logger.error(f"Could not queue {method} {url}: {e}")
            raise

        logger.info(f"Added request to offline queue: {item.id} ({item.category.value})")

        if self.state.is_online:
            self._schedule_attempt(item.id, 0)

        return item.id

    def queue_donation(self, donation: Dict[str, Any], token: str) -> str:
        return self.enqueue(
            "/api/donations", "POST", donation,
            self._bearer(token), RequestCategory.DONATIONS,
        )

    def queue_event_registration(self, event_id: str, token: str) -> str:
        return self.enqueue(
            f"/api/events/{event_id}/register", "POST", {},
            self._bearer(token), RequestCategory.REGISTRATIONS,
        )

    def queue_announcement(self, announcement: Dict[str, Any], token: str) -> str:
        return self.enqueue(
            "/api/announcements", "POST", announcement,
            self._bearer(token), RequestCategory.ANNOUNCEMENTS,
        )

    # =========================================================================
    # DRAIN AND RETRY
    # =========================================================================

    def resume(self) -> None:
        """Schedule a drain of items left over from a previous session."""
        if self.state.is_online:
            self.scheduler.after(self.startup_drain_delay_ms, self.process_queue)

    async def process_queue(self) -> Dict[str, int]:
        """
        Attempt every queued item once, in store order.

        Returns:
            Counts of attempted, succeeded and failed items
        """
        summary = {"attempted": 0, "succeeded": 0, "failed": 0}

        if not self.state.is_online:
            logger.info("Cannot process queue while offline")
            return summary

        if self.state.sync_in_progress:
            logger.debug("Queue drain already in progress")
            return summary

        self.state.sync_in_progress = True
        try:
            with LogContext(logger, "Draining offline queue"):
                item_ids = [record["id"] for record in self.store.get_all(OFFLINE_QUEUE)]
                logger.info(f"Processing {len(item_ids)} queued requests")

                for item_id in item_ids:
                    if not self.state.is_online:
                        logger.info("Went offline during drain, stopping")
                        break
                    result = await self._attempt(item_id)
                    if result is None:
                        continue
                    summary["attempted"] += 1
                    summary["succeeded" if result else "failed"] += 1

            self.state.last_sync_at = self._clock()
        except StorageError as e:
            logger.error(f"Error processing offline queue: {e}")
        finally:
            self.state.sync_in_progress = False

        return summary

    async def retry_item(self, item_id: str) -> bool:
        """
        Manually attempt one queued item now.

        Returns:
            True if the replay succeeded
        """
        if not self.state.is_online:
            return False

        if self.store.get(OFFLINE_QUEUE, item_id) is None:
            return False

        self._cancel_timer(item_id)
        return bool(await self._attempt(item_id))

    async def _attempt(self, item_id: str) -> Optional[bool]:
        """
        Replay the stored version of one item.

        Returns None when the item is already being attempted or is no
        longer queued.
        """
        if item_id in self._in_flight:
            return None

        record = self.store.get(OFFLINE_QUEUE, item_id)
        if record is None:
            return None
        item = QueuedRequest.from_record(record)

        self._in_flight.add(item.id)
        try:
            try:
                response = await self.transport.send(
                    item.method,
                    item.url,
                    self._replay_headers(item),
                    item.body if item.method not in BODYLESS_METHODS else None,
                )
                succeeded = response.ok
                if not succeeded:
                    logger.warning(f"Queued request {item.id} got HTTP {response.status}")
            except Exception as e:
                logger.warning(f"Failed to process queued request {item.id}: {e}")
                succeeded = False

            try:
                if succeeded:
                    self._complete(item)
                else:
                    self._handle_failure(item)
            except StorageError as e:
                logger.error(f"Could not update queued request {item.id}: {e}")

            return succeeded
        finally:
            self._in_flight.discard(item.id)

    def _complete(self, item: QueuedRequest) -> None:
        logger.info(f"Successfully processed queued request: {item.id}")
        self._remove(item.id)
        self.events.emit(event_names.QUEUE_SUCCESS, item.event_detail())

    def _handle_failure(self, item: QueuedRequest) -> None:
        record = self.store.get(OFFLINE_QUEUE, item.id)
        if record is None:
            # Removed while the attempt was in flight
            return
        item = QueuedRequest.from_record(record)

        if item.is_exhausted:
            logger.warning(f"Max retries reached for request: {item.id}")
            self._remove(item.id)
            self.events.emit(
                event_names.QUEUE_FAILURE,
                item.event_detail(include_retry_count=True),
            )
            return

        item.retry_count += 1
        self.store.put(OFFLINE_QUEUE, item.to_record())
        self._schedule_attempt(item.id, self.retry_config.compute_delay(item.retry_count))

    # =========================================================================
    # TIMERS
    # =========================================================================

    def _schedule_attempt(self, item_id: str, delay_ms: int) -> None:
        self._cancel_timer(item_id)

        token: Optional[CancelToken] = None

        async def fire() -> None:
            if self._retry_tokens.get(item_id) is token:
                del self._retry_tokens[item_id]
            await self._run_scheduled(item_id)

        token = self.scheduler.after(delay_ms, fire)
        self._retry_tokens[item_id] = token
        logger.debug(f"Scheduled retry for {item_id} in {delay_ms}ms")

    async def _run_scheduled(self, item_id: str) -> None:
        if not self.state.is_online:
            # Left pending; the next reconnect drain picks it up
            return
        try:
            await self._attempt(item_id)
        except StorageError as e:
            logger.error(f"Error in scheduled retry: {e}")

    def _cancel_timer(self, item_id: str) -> None:
        token = self._retry_tokens.pop(item_id, None)
        if token is not None:
            token.cancel()

    @property
    def scheduled_retries(self) -> List[str]:
        return list(self._retry_tokens)

    # =========================================================================
    # REMOVAL AND STATUS
    # =========================================================================

    def _remove(self, item_id: str) -> None:
        self.store.delete(OFFLINE_QUEUE, item_id)
        self._cancel_timer(item_id)

    def remove_item(self, item_id: str) -> None:
        """Drop one queued request without replaying it."""
        self._remove(item_id)

    def cancel_scheduled_retries(self) -> None:
        """Cancel every retry timer; queued items stay in the store."""
        for token in self._retry_tokens.values():
            token.cancel()
        self._retry_tokens.clear()

    def clear_queue(self) -> None:
        """Cancel all scheduled retries and empty the queue. Irreversible."""
        self.cancel_scheduled_retries()
        self.store.clear(OFFLINE_QUEUE)
        logger.info("Offline queue cleared")

    def get_queue_status(self) -> QueueStatus:
        """Totals per category plus the queued items. Read-only."""
        return QueueStatus.from_items(self._load_items())

    def _load_items(self) -> List[QueuedRequest]:
        return [QueuedRequest.from_record(r) for r in self.store.get_all(OFFLINE_QUEUE)]

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _new_id(self) -> str:
        return f"{self._clock()}-{uuid.uuid4().hex[:9]}"

    @staticmethod
    def _bearer(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    @staticmethod
    def _replay_headers(item: QueuedRequest) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(item.headers)
        return headers

    @staticmethod
    def _serialize_body(url: str, method: str, body: Any) -> Optional[str]:
        if body is None or method in BODYLESS_METHODS:
            return None
        if isinstance(body, str):
            return body
        if isinstance(body, (bytes, bytearray)):
            try:
                return bytes(body).decode("utf-8")
            except UnicodeDecodeError as e:
                raise SerializationError(
                    f"Request body is not UTF-8 text: {e}",
                    url=url,
                    body_type=type(body).__name__,
                ) from e
        try:
            return json.dumps(body)
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Request body cannot be serialized for replay: {e}",
                url=url,
                body_type=type(body).__name__,
            ) from e
