# =============================================================================
# tests/unit/test_connectivity.py
# Unit Tests for ConnectivityMonitor and ConnectivityProbe
# =============================================================================

import asyncio
import socket

from masjeed_core.offline.connectivity import ConnectivityMonitor, ConnectivityProbe
from masjeed_core.offline.models import OFFLINE_QUEUE


class TestConnectivityMonitor:
    """Test online/offline transitions"""

    def test_reconnect_drains_queue(self, monitor, queue_manager, state, transport, store):
        state.is_online = False
        queue_manager.enqueue("/api/donations", "POST", {"amount": 1})

        asyncio.run(monitor.set_online(True))

        assert len(transport.calls) == 1
        assert store.get_all(OFFLINE_QUEUE) == []
        assert monitor.state.last_sync_at is not None

    def test_repeated_signal_is_ignored(self, monitor, state, transport, scheduler):
        """Only transitions notify handlers and trigger drains"""
        changes = []
        monitor.on_connectivity_change(changes.append)

        asyncio.run(monitor.set_online(True))
        assert changes == []

        asyncio.run(monitor.set_online(False))
        asyncio.run(monitor.set_online(False))
        asyncio.run(monitor.set_online(True))

        assert changes == [False, True]
        assert monitor.state.last_change_at == scheduler.now_ms

    def test_going_offline_does_not_drain(self, monitor, queue_manager, state, transport):
        state.is_online = False
        queue_manager.enqueue("/api/a", "POST", {})
        state.is_online = True

        asyncio.run(monitor.set_online(False))

        assert transport.calls == []

    def test_unsubscribe(self, monitor):
        changes = []
        unsubscribe = monitor.on_connectivity_change(changes.append)
        unsubscribe()

        asyncio.run(monitor.set_online(False))

        assert changes == []

    def test_state_is_a_copy(self, monitor):
        snapshot = monitor.state
        snapshot.is_online = False
        assert monitor.is_online is True

    def test_refresh_applies_probe_result(self, state, queue_manager, bus):
        class StubProbe:
            def check(self):
                return False

        monitor = ConnectivityMonitor(state, queue_manager, bus, probe=StubProbe())

        assert asyncio.run(monitor.refresh()) is False
        assert state.is_online is False

    def test_refresh_without_probe_keeps_state(self, monitor):
        assert asyncio.run(monitor.refresh()) is True


class TestConnectivityProbe:
    """Test TCP reachability checks"""

    def test_for_url(self):
        probe = ConnectivityProbe.for_url("https://masjeed.example.com/api")
        assert (probe.host, probe.port) == ("masjeed.example.com", 443)

        probe = ConnectivityProbe.for_url("http://localhost:3000")
        assert (probe.host, probe.port) == ("localhost", 3000)

        assert ConnectivityProbe.for_url("") is None

    def test_check_open_port(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            probe = ConnectivityProbe("127.0.0.1", server.getsockname()[1], timeout=1)
            assert probe.check() is True
        finally:
            server.close()

    def test_check_closed_port(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
        sock.close()

        assert ConnectivityProbe("127.0.0.1", port, timeout=1).check() is False
