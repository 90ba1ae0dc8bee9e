# =============================================================================
# tests/unit/test_interceptor.py
# Unit Tests for CacheFallbackInterceptor
# =============================================================================

import asyncio

import pytest

from masjeed_core.errors.exceptions import NetworkError, SerializationError
from masjeed_core.offline.models import OFFLINE_QUEUE, ResponseSource
from masjeed_core.offline.interceptor import CacheFallbackInterceptor
from masjeed_core.offline.resources import EVENTS, snapshot_key


def fetch(interceptor, method, url, body=None, headers=None):
    return asyncio.run(interceptor.fetch(method, url, body, headers))


class TestReads:
    """Test cache-fallback for GET requests"""

    def test_network_read_stores_snapshot(self, interceptor, transport, storage, scheduler):
        transport.respond(200, {"success": True, "data": [{"id": 1}]})

        response = fetch(interceptor, "GET", "/api/events")

        assert response.source == ResponseSource.NETWORK
        assert response.body["data"] == [{"id": 1}]
        snapshot = storage.load(EVENTS)
        assert snapshot.payload == response.body
        assert snapshot.stored_at == scheduler.now_ms

    def test_offline_read_serves_cache(self, interceptor, transport, scheduler):
        transport.respond(200, {"data": ["eid"]})
        fetch(interceptor, "GET", "/api/announcements")
        transport.offline = True

        response = fetch(interceptor, "GET", "/api/announcements")

        assert response.status == 200
        assert response.from_cache
        assert response.headers["X-From-Cache"] == "true"
        assert response.body == {"data": ["eid"]}
        assert response.stored_at == scheduler.now_ms

    def test_server_error_falls_back_to_cache(self, interceptor, transport):
        transport.respond(200, {"data": ["fajr"]})
        fetch(interceptor, "GET", "/api/prayers/today")
        transport.respond(502)

        response = fetch(interceptor, "GET", "/api/prayers/today")

        assert response.from_cache
        assert response.body == {"data": ["fajr"]}

    def test_offline_without_cache_gives_resource_body(self, interceptor, transport):
        transport.offline = True

        response = fetch(interceptor, "GET", "/api/events")

        assert response.status == 503
        assert response.source == ResponseSource.OFFLINE
        assert response.body == {
            "success": False,
            "error": "Events not available offline",
            "offline": True,
            "data": [],
        }

    def test_prayer_times_offline_body_has_null_data(self, interceptor, transport):
        transport.offline = True

        response = fetch(interceptor, "GET", "/api/prayers")

        assert response.body["data"] is None
        assert response.body["error"] == "Prayer times not available offline"

    def test_unknown_endpoint_gets_generic_body(self, interceptor, transport, store):
        transport.offline = True

        response = fetch(interceptor, "GET", "/api/settings")

        assert response.status == 503
        assert response.body == {"success": False, "error": "API not available offline", "offline": True}

    def test_expired_snapshot_is_not_served(self, interceptor, transport, scheduler):
        transport.respond(200, {"data": [1]})
        fetch(interceptor, "GET", "/api/events")
        transport.offline = True
        scheduler.now_ms += 61 * 60 * 1000

        response = fetch(interceptor, "GET", "/api/events")

        assert response.status == 503

    def test_absolute_url_is_classified_by_path(self, interceptor, transport):
        transport.offline = True

        response = fetch(interceptor, "GET", "https://masjeed.example.com/api/community?page=2")

        assert response.body["error"] == "Community directory not available offline"

    def test_each_url_keeps_its_own_snapshot(self, interceptor, transport):
        transport.respond(200, {"day": "today"})
        fetch(interceptor, "GET", "/api/prayers/today")
        transport.respond(200, {"month": "all"})
        fetch(interceptor, "GET", "/api/prayers/month")
        transport.offline = True

        today = fetch(interceptor, "GET", "/api/prayers/today")
        month = fetch(interceptor, "GET", "/api/prayers/month")

        assert today.body == {"day": "today"}
        assert today.headers["X-Cache-Match"] == "url"
        assert month.body == {"month": "all"}

    def test_query_is_part_of_the_snapshot_key(self, interceptor, transport):
        transport.respond(200, {"page": 1})
        fetch(interceptor, "GET", "/api/community?page=1")
        transport.respond(200, {"page": 2})
        fetch(interceptor, "GET", "/api/community?page=2")
        transport.offline = True

        assert fetch(interceptor, "GET", "/api/community?page=1").body == {"page": 1}

    def test_uncached_url_falls_back_to_resource_snapshot(self, interceptor, transport):
        """The latest read of the class answers URLs never fetched online"""
        transport.respond(200, [{"id": 1}, {"id": 2}])
        fetch(interceptor, "GET", "/api/events")
        transport.offline = True

        response = fetch(interceptor, "GET", "/api/events/99")

        assert response.from_cache
        assert response.headers["X-Cache-Match"] == "resource"

    def test_snapshot_key(self):
        assert snapshot_key("https://masjeed.example.com/api/events?day=fri") == "/api/events?day=fri"
        assert snapshot_key("/api/events") == "/api/events"


class TestWrites:
    """Test write queueing"""

    def test_successful_write_is_not_queued(self, interceptor, transport, store):
        transport.respond(201, {"success": True})

        response = fetch(interceptor, "POST", "/api/donations", {"amount": 5})

        assert response.status == 201
        assert response.source == ResponseSource.NETWORK
        assert store.get_all(OFFLINE_QUEUE) == []
        assert transport.calls[0]["headers"]["Content-Type"] == "application/json"

    def test_offline_write_is_queued(self, interceptor, transport, store):
        transport.offline = True

        response = fetch(interceptor, "POST", "/api/donations", {"amount": 5}, {"Authorization": "Bearer t"})

        records = store.get_all(OFFLINE_QUEUE)
        assert response.status == 202
        assert response.source == ResponseSource.QUEUED
        assert response.body == {
            "success": False,
            "error": "Request queued for when back online",
            "offline": True,
            "queued": True,
            "queueId": records[0]["id"],
        }
        assert records[0]["category"] == "donations"
        assert records[0]["body"] == '{"amount": 5}'
        assert records[0]["headers"]["Authorization"] == "Bearer t"

    def test_server_error_write_is_queued(self, interceptor, transport, store):
        transport.respond(503)

        response = fetch(interceptor, "PUT", "/api/announcements/3", {"title": "x"})

        assert response.status == 202
        assert store.get_all(OFFLINE_QUEUE)[0]["category"] == "announcements"

    def test_registration_category(self, interceptor, transport, store):
        transport.offline = True
        fetch(interceptor, "POST", "/api/events/9/register", {})
        assert store.get_all(OFFLINE_QUEUE)[0]["category"] == "registrations"

    def test_queued_delete_has_no_body(self, interceptor, transport, store):
        transport.offline = True

        fetch(interceptor, "DELETE", "/api/events/9", {"reason": "cancelled"})

        record = store.get_all(OFFLINE_QUEUE)[0]
        assert record["method"] == "DELETE"
        assert record["body"] is None

    def test_unserializable_body_raises(self, interceptor, transport, store):
        with pytest.raises(SerializationError):
            fetch(interceptor, "POST", "/api/donations", {"amount": object()})
        assert transport.calls == []


class TestAuthIsolation:
    """Auth endpoints never get synthetic responses"""

    def test_auth_failure_propagates(self, interceptor, transport, store):
        transport.offline = True

        with pytest.raises(NetworkError):
            fetch(interceptor, "POST", "/api/auth/login", {"email": "a@b.c"})

        assert store.get_all(OFFLINE_QUEUE) == []

    def test_auth_read_is_never_cached(self, interceptor, transport, store):
        transport.respond(200, {"user": "me"})
        fetch(interceptor, "GET", "/api/auth/me")
        transport.offline = True

        with pytest.raises(NetworkError):
            fetch(interceptor, "GET", "/api/auth/me")

        assert store.collections() == []

    def test_auth_error_status_returned_as_is(self, interceptor, transport):
        transport.respond(401, {"error": "bad credentials"})

        response = fetch(interceptor, "POST", "/api/auth/login", {"email": "a@b.c"})

        assert response.status == 401
        assert response.source == ResponseSource.NETWORK
        assert response.body == {"error": "bad credentials"}


class TestConnectivitySignals:
    """Request outcomes drive the shared online flag"""

    @pytest.fixture
    def linked(self, transport, queue_manager, storage, monitor):
        return CacheFallbackInterceptor(transport, queue_manager, storage, connectivity=monitor)

    def test_network_error_marks_offline(self, linked, transport, state, scheduler, store):
        transport.offline = True

        response = fetch(linked, "POST", "/api/donations", {"amount": 5})

        assert response.status == 202
        assert state.is_online is False
        assert scheduler.pending == 0
        assert len(store.get_all(OFFLINE_QUEUE)) == 1

    def test_response_after_outage_drains_queue(self, linked, transport, state, store, recorder):
        transport.offline = True
        fetch(linked, "POST", "/api/donations", {"amount": 5})
        transport.offline = False

        fetch(linked, "GET", "/api/events")

        assert state.is_online is True
        assert len(transport.calls_to("/api/donations")) == 2
        assert store.get_all(OFFLINE_QUEUE) == []
        assert len(recorder.successes) == 1

    def test_error_status_still_counts_as_reachable(self, linked, transport, state):
        state.is_online = False
        transport.respond(500)

        fetch(linked, "GET", "/api/settings")

        assert state.is_online is True
