# =============================================================================
# masjeed_core/offline/client.py
# Client State Facade - Single Entry Point for the UI
# =============================================================================
"""
OfflineClient - wires the offline components together and exposes them to a
synchronous host such as a Streamlit page.

All components live on one private asyncio loop running in a daemon thread.
Every public method hands its work to that loop and blocks for the result, so
the store, timers and queue are only ever touched from the loop thread.

Usage:
    client = get_offline_client()
    response = client.fetch("GET", "/api/prayers")
    client.fetch("POST", "/api/donations", {"amount": 25})
    status = client.get_status()
"""

from __future__ import annotations
import asyncio
import inspect
import threading
from typing import Any, Callable, Dict, Optional
import logging

from masjeed_core.offline.config import OfflineConfig, load_offline_config
from masjeed_core.offline.connectivity import ConnectivityMonitor, ConnectivityProbe
from masjeed_core.offline.events import EventBus, log_events
from masjeed_core.offline.interceptor import ApiResponse, CacheFallbackInterceptor
from masjeed_core.offline.local_store import LocalStore
from masjeed_core.offline.models import OFFLINE_QUEUE, ConnectivityState, QueueStatus
from masjeed_core.offline.queue_manager import OfflineQueueManager
from masjeed_core.offline.resources import OfflineStorage
from masjeed_core.offline.scheduler import AsyncioScheduler
from masjeed_core.offline.transport import RequestsTransport, Transport

logger = logging.getLogger(__name__)


class OfflineClient:
    """Facade over the interceptor, queue manager and connectivity monitor."""

    def __init__(
        self,
        config: Optional[OfflineConfig] = None,
        transport: Optional[Transport] = None,
        store: Optional[LocalStore] = None,
        initially_online: Optional[bool] = None,
    ):
        self.config = config or OfflineConfig()

        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name="OfflineClientLoop",
        )
        self._thread.start()
        self._closed = False

        self.store = store or LocalStore(self.config.db_path)
        self.transport = transport or RequestsTransport(
            base_url=self.config.api_base_url,
            timeout=self.config.request_timeout,
        )
        self.events = EventBus()
        self._detach_event_logging = log_events(self.events)
        probe = ConnectivityProbe.for_url(self.config.api_base_url, self.config.probe_timeout)
        if initially_online is None:
            # Without a probe the first request settles the flag
            initially_online = probe.check() if probe is not None else True
        self._state = ConnectivityState(is_online=initially_online)
        self.scheduler = AsyncioScheduler(self._loop)

        self.queue_manager = OfflineQueueManager(
            self.store,
            self.transport,
            self.scheduler,
            self.events,
            self._state,
            retry_config=self.config.retry,
            startup_drain_delay_ms=self.config.startup_drain_delay_ms,
        )
        self.monitor = ConnectivityMonitor(
            self._state,
            self.queue_manager,
            self.events,
            probe=probe,
        )
        self.storage = OfflineStorage(self.store)
        self.interceptor = CacheFallbackInterceptor(
            self.transport,
            self.queue_manager,
            self.storage,
            auth_prefix=self.config.auth_prefix,
            connectivity=self.monitor,
        )

        self._call(self.queue_manager.resume)
        logger.info(f"OfflineClient started (online={initially_online}, db={self.config.db_path})")

    # =========================================================================
    # LOOP PLUMBING
    # =========================================================================

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Run ``func`` on the client loop and wait for its (awaited) result."""
        if self._closed:
            raise RuntimeError("OfflineClient is closed")

        async def invoke():
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

        future = asyncio.run_coroutine_threadsafe(invoke(), self._loop)
        return future.result()

    # =========================================================================
    # REQUESTS
    # =========================================================================

    def fetch(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ApiResponse:
        return self._call(self.interceptor.fetch, method, url, body, headers)

    def enqueue(self, url: str, method: str, body: Any = None, **kwargs) -> str:
        return self._call(self.queue_manager.enqueue, url, method, body, **kwargs)

    # =========================================================================
    # QUEUE
    # =========================================================================

    def process_queue(self) -> Dict[str, int]:
        return self._call(self.queue_manager.process_queue)

    def retry_item(self, item_id: str) -> bool:
        return self._call(self.queue_manager.retry_item, item_id)

    def remove_item(self, item_id: str) -> None:
        self._call(self.queue_manager.remove_item, item_id)

    def clear_queue(self) -> None:
        self._call(self.queue_manager.clear_queue)

    def get_queue_status(self) -> QueueStatus:
        return self._call(self.queue_manager.get_queue_status)

    # =========================================================================
    # CONNECTIVITY
    # =========================================================================

    @property
    def state(self) -> ConnectivityState:
        return self.monitor.state

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    def set_online(self, is_online: bool) -> None:
        self._call(self.monitor.set_online, is_online)

    def refresh_connectivity(self) -> bool:
        return self._call(self.monitor.refresh)

    def subscribe(self, event: str, handler: Callable[[Dict[str, Any]], None]) -> Callable[[], None]:
        return self.events.subscribe(event, handler)

    def get_status(self) -> Dict[str, Any]:
        """Status information for UI display."""

        def collect() -> Dict[str, Any]:
            state = self.monitor.state
            return {
                "is_online": state.is_online,
                "sync_in_progress": state.sync_in_progress,
                "last_sync_at": state.last_sync_at,
                "last_change_at": state.last_change_at,
                "queue": self.queue_manager.get_queue_status().to_dict(),
                "scheduled_retries": len(self.queue_manager.scheduled_retries),
            }

        return self._call(collect)

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def close(self) -> None:
        """Stop the loop thread and release the store and transport."""
        if self._closed:
            return
        self._call(self._shutdown)
        self._closed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        logger.info("OfflineClient closed")

    def _shutdown(self) -> None:
        self._detach_event_logging()
        # Pending retries stay in the store and are resumed next session
        self.queue_manager.cancel_scheduled_retries()
        self.store.close()
        close_transport = getattr(self.transport, "close", None)
        if close_transport is not None:
            close_transport()

    @property
    def pending_count(self) -> int:
        return self._call(self.store.count, OFFLINE_QUEUE)


# Singleton accessor
_offline_client: Optional[OfflineClient] = None
_client_lock = threading.Lock()


def get_offline_client(config: Optional[OfflineConfig] = None) -> OfflineClient:
    """
    Get the process-wide OfflineClient, building it from configuration.

    Returns:
        OfflineClient singleton
    """
    global _offline_client
    if _offline_client is None:
        with _client_lock:
            if _offline_client is None:
                _offline_client = OfflineClient(config or load_offline_config())
    return _offline_client


def reset_offline_client() -> None:
    """Close and forget the process-wide client."""
    global _offline_client
    with _client_lock:
        if _offline_client is not None:
            _offline_client.close()
            _offline_client = None
