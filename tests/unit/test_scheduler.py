# =============================================================================
# tests/unit/test_scheduler.py
# Unit Tests for Schedulers and the EventBus
# =============================================================================

import asyncio

import pytest

from masjeed_core.offline.events import EventBus
from masjeed_core.offline.scheduler import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    """Test simulated-time scheduling"""

    def test_runs_due_callbacks_in_order(self):
        scheduler = ManualScheduler()
        fired = []
        scheduler.after(200, lambda: fired.append("b"))
        scheduler.after(100, lambda: fired.append("a"))
        scheduler.after(500, lambda: fired.append("c"))

        asyncio.run(scheduler.advance(300))

        assert fired == ["a", "b"]
        assert scheduler.now_ms == 300
        assert scheduler.pending == 1

    def test_cancelled_callback_does_not_run(self):
        scheduler = ManualScheduler()
        fired = []
        token = scheduler.after(10, lambda: fired.append(1))
        token.cancel()

        asyncio.run(scheduler.run_until_idle())

        assert fired == []
        assert token.cancelled

    def test_awaits_coroutine_callbacks(self):
        """Async callbacks run to completion, including what they schedule"""
        scheduler = ManualScheduler()
        fired = []

        async def first():
            fired.append(scheduler.now_ms)
            scheduler.after(50, second)

        async def second():
            fired.append(scheduler.now_ms)

        scheduler.after(10, first)
        asyncio.run(scheduler.run_until_idle())

        assert fired == [10, 60]


class TestAsyncioScheduler:
    """Test real loop timers"""

    def test_fires_after_delay(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            done = asyncio.Event()

            async def callback():
                done.set()

            scheduler.after(5, callback)
            await asyncio.wait_for(done.wait(), timeout=1)

        asyncio.run(scenario())

    def test_cancel_prevents_fire(self):
        async def scenario():
            scheduler = AsyncioScheduler()
            fired = []
            token = scheduler.after(5, lambda: fired.append(1))
            token.cancel()
            await asyncio.sleep(0.05)
            return fired

        assert asyncio.run(scenario()) == []


class TestEventBus:
    """Test named event delivery"""

    def test_unsubscribe_stops_delivery(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe("offlineQueueSuccess", received.append)

        bus.emit("offlineQueueSuccess", {"id": "1"})
        unsubscribe()
        bus.emit("offlineQueueSuccess", {"id": "2"})

        assert received == [{"id": "1"}]
        assert bus.handler_count("offlineQueueSuccess") == 0

    def test_failing_handler_does_not_block_others(self):
        bus = EventBus()
        received = []

        def broken(detail):
            raise RuntimeError("boom")

        bus.subscribe("offlineQueueFailure", broken)
        bus.subscribe("offlineQueueFailure", received.append)

        bus.emit("offlineQueueFailure", {"id": "1"})

        assert received == [{"id": "1"}]

    def test_log_events_reports_outcomes(self, caplog):
        import logging
        from masjeed_core.offline.events import log_events

        bus = EventBus()
        detach = log_events(bus)

        with caplog.at_level(logging.INFO, logger="masjeed_core.offline.events"):
            bus.emit("offlineQueueFailure", {"id": "1-a", "method": "POST", "url": "/api/donations", "retryCount": 3})
            bus.emit("connectivityChange", {"isOnline": False})
            detach()
            bus.emit("connectivityChange", {"isOnline": True})

        assert "dropped after 3 retries" in caplog.text
        assert "Connectivity: offline" in caplog.text
        assert "Connectivity: online" not in caplog.text
