# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import json
import pytest
from typing import Any, Dict, List
from unittest.mock import MagicMock

from masjeed_core.errors.exceptions import NetworkError
from masjeed_core.offline import events as event_names
from masjeed_core.offline.connectivity import ConnectivityMonitor
from masjeed_core.offline.events import EventBus
from masjeed_core.offline.interceptor import CacheFallbackInterceptor
from masjeed_core.offline.local_store import LocalStore
from masjeed_core.offline.models import ConnectivityState
from masjeed_core.offline.queue_manager import OfflineQueueManager
from masjeed_core.offline.resources import OfflineStorage
from masjeed_core.offline.scheduler import ManualScheduler
from masjeed_core.offline.transport import HttpResponse


START_MS = 1_700_000_000_000


# =============================================================================
# FAKES
# =============================================================================

class FakeTransport:
    """
    Scripted transport.

    Outcomes queued with ``respond``/``fail`` are consumed in order; once the
    script is empty every call returns ``default``. While ``offline`` is set
    every call raises NetworkError.
    """

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.offline = False
        self.default = HttpResponse(200, {"Content-Type": "application/json"}, '{"success": true}')
        self._script: List[Any] = []

    def respond(self, status: int = 200, body: Any = None) -> "FakeTransport":
        text = json.dumps(body) if body is not None else ""
        self._script.append(HttpResponse(status, {"Content-Type": "application/json"}, text))
        return self

    def fail(self, times: int = 1) -> "FakeTransport":
        for _ in range(times):
            self._script.append(NetworkError("connection refused"))
        return self

    async def send(self, method, url, headers=None, body=None):
        self.calls.append({
            "method": method,
            "url": url,
            "headers": dict(headers or {}),
            "body": body,
        })
        if self.offline:
            raise NetworkError("network unreachable", url=url, method=method)

        outcome = self._script.pop(0) if self._script else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def calls_to(self, url: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["url"] == url]


class EventRecorder:
    """Collects queue success/failure events."""

    def __init__(self, bus: EventBus):
        self.successes: List[Dict[str, Any]] = []
        self.failures: List[Dict[str, Any]] = []
        bus.subscribe(event_names.QUEUE_SUCCESS, self.successes.append)
        bus.subscribe(event_names.QUEUE_FAILURE, self.failures.append)


# =============================================================================
# OFFLINE CORE FIXTURES
# =============================================================================

@pytest.fixture
def scheduler():
    """Simulated clock and timers"""
    return ManualScheduler(start_ms=START_MS)


@pytest.fixture
def store(tmp_path, scheduler):
    """SQLite store in a temp dir, driven by the simulated clock"""
    local_store = LocalStore(tmp_path / "offline.db", clock=scheduler.clock)
    yield local_store
    local_store.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    return EventRecorder(bus)


@pytest.fixture
def state():
    return ConnectivityState(is_online=True)


@pytest.fixture
def queue_manager(store, transport, scheduler, bus, state):
    return OfflineQueueManager(store, transport, scheduler, bus, state, clock=scheduler.clock)


@pytest.fixture
def storage(store):
    return OfflineStorage(store)


@pytest.fixture
def interceptor(transport, queue_manager, storage):
    return CacheFallbackInterceptor(transport, queue_manager, storage)


@pytest.fixture
def monitor(state, queue_manager, bus, scheduler):
    return ConnectivityMonitor(state, queue_manager, bus, clock=scheduler.clock)


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit():
    """Mock Streamlit for testing"""
    import sys

    # Create mock streamlit module
    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f
    mock_st.button.return_value = False
    mock_st.columns.side_effect = lambda widths: [MagicMock() for _ in range(widths if isinstance(widths, int) else len(widths))]

    # Store original and replace
    original_st = sys.modules.get('streamlit')
    sys.modules['streamlit'] = mock_st

    yield mock_st

    # Restore original
    if original_st:
        sys.modules['streamlit'] = original_st


