# =============================================================================
# masjeed_core/offline/connectivity.py
# Connectivity Detection and Reconnect Drains
# =============================================================================
"""
ConnectivityMonitor - tracks the host's online/offline signal.

Features:
- Handlers notified on every online/offline transition
- Queue drain triggered exactly once per reconnect
- One-shot TCP probe against the API host (no background heartbeat)
"""

from __future__ import annotations
import asyncio
import socket
from typing import Callable, Optional
from urllib.parse import urlparse
import logging

from masjeed_core.offline import events as event_names
from masjeed_core.offline.events import EventBus
from masjeed_core.offline.models import ConnectivityState, now_ms
from masjeed_core.offline.queue_manager import OfflineQueueManager

logger = logging.getLogger(__name__)


class ConnectivityProbe:
    """Checks whether the API host accepts TCP connections."""

    def __init__(self, host: str, port: int = 443, timeout: float = 5.0):
        self.host = host
        self.port = port
        self.timeout = timeout

    @classmethod
    def for_url(cls, url: str, timeout: float = 5.0) -> Optional[ConnectivityProbe]:
        """Probe for the host of an API base URL, or None for relative URLs."""
        parsed = urlparse(url)
        if not parsed.hostname:
            return None
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return cls(parsed.hostname, port, timeout)

    def check(self) -> bool:
        """Blocking reachability check."""
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.settimeout(self.timeout)
            try:
                result = sock.connect_ex((self.host, self.port))
            finally:
                sock.close()
            return result == 0
        except (socket.gaierror, socket.timeout, OSError) as e:
            logger.debug(f"Connectivity probe to {self.host}:{self.port} failed: {e}")
            return False


class ConnectivityMonitor:
    """
    Owns the online flag of the shared ConnectivityState.

    Usage:
        monitor = ConnectivityMonitor(state, queue_manager, bus)
        unsubscribe = monitor.on_connectivity_change(lambda online: ...)
        await monitor.set_online(True)   # drains the queue
    """

    def __init__(
        self,
        state: ConnectivityState,
        queue_manager: OfflineQueueManager,
        events: EventBus,
        probe: Optional[ConnectivityProbe] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self._state = state
        self.queue_manager = queue_manager
        self.events = events
        self.probe = probe
        self._clock = clock

    @property
    def state(self) -> ConnectivityState:
        """Copy of the current state; mutate through ``set_online`` only."""
        return self._state.copy()

    @property
    def is_online(self) -> bool:
        return self._state.is_online

    def on_connectivity_change(self, handler: Callable[[bool], None]) -> Callable[[], None]:
        """
        Register a handler called with the new online flag on each transition.

        Returns:
            A function that removes the handler again
        """
        return self.events.subscribe(
            event_names.CONNECTIVITY_CHANGE,
            lambda detail: handler(detail["isOnline"]),
        )

    async def set_online(self, is_online: bool) -> None:
        """Apply a connectivity signal from the host."""
        if self._state.is_online == is_online:
            return

        self._state.is_online = is_online
        self._state.last_change_at = self._clock()
        logger.info(f"Connection status changed: {'online' if is_online else 'offline'}")

        self.events.emit(
            event_names.CONNECTIVITY_CHANGE,
            {"isOnline": is_online, "timestamp": self._state.last_change_at},
        )

        if is_online:
            await self.queue_manager.process_queue()

    async def refresh(self) -> bool:
        """
        Run the probe once and apply its result.

        Returns:
            The online flag after the check
        """
        if self.probe is None:
            return self._state.is_online

        reachable = await asyncio.to_thread(self.probe.check)
        await self.set_online(reachable)
        return reachable
