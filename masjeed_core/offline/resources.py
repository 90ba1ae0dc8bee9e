# =============================================================================
# masjeed_core/offline/resources.py
# Resource Classes and Snapshot Storage
# =============================================================================
"""
Read endpoints are grouped into resource classes. Each class names the
collection its snapshots live in, how long a snapshot stays valid, and what
the structured offline body looks like when nothing is cached.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from masjeed_core.offline import models
from masjeed_core.offline.local_store import LocalStore
from masjeed_core.offline.models import CachedSnapshot, RequestCategory

SNAPSHOT_ID = "current"


@dataclass(frozen=True)
class ResourceClass:
    name: str
    path_fragment: str
    collection: str
    ttl_minutes: int
    label: str
    empty_data: Any = None

    def offline_body(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": f"{self.label} not available offline",
            "offline": True,
            "data": self.empty_data,
        }


PRAYER_TIMES = ResourceClass("prayer_times", "/prayers", models.PRAYER_TIMES, 24 * 60, "Prayer times")
EVENTS = ResourceClass("events", "/events", models.EVENTS, 60, "Events", empty_data=[])
ANNOUNCEMENTS = ResourceClass("announcements", "/announcements", models.ANNOUNCEMENTS, 30, "Announcements", empty_data=[])
COMMUNITY = ResourceClass("community", "/community", models.COMMUNITY, 120, "Community directory", empty_data=[])
DONATIONS = ResourceClass("donations", "/donations", models.DONATIONS, 60, "Donations", empty_data=[])

RESOURCE_CLASSES = (PRAYER_TIMES, EVENTS, ANNOUNCEMENTS, COMMUNITY, DONATIONS)

GENERIC_OFFLINE_BODY = {
    "success": False,
    "error": "API not available offline",
    "offline": True,
}


def resolve_resource(path: str) -> Optional[ResourceClass]:
    """Resource class for a request path, or None for uncached endpoints."""
    for resource in RESOURCE_CLASSES:
        if resource.path_fragment in path:
            return resource
    return None


def categorize_write(path: str) -> RequestCategory:
    """Queue category inferred from the path of a failed write."""
    if "/donations" in path:
        return RequestCategory.DONATIONS
    if "/events" in path and "/register" in path:
        return RequestCategory.REGISTRATIONS
    if "/announcements" in path:
        return RequestCategory.ANNOUNCEMENTS
    return RequestCategory.GENERAL


class OfflineStorage:
    """
    Snapshot helpers over the local store.

    Each read is kept under its own path and query. The latest read of any
    URL in a resource class is also kept as the class snapshot, which only
    answers when the exact URL was never cached.
    """

    def __init__(self, store: LocalStore):
        self.store = store

    def save(self, resource: ResourceClass, data: Any, key: Optional[str] = None) -> None:
        if key is not None:
            self.store.put(
                resource.collection,
                {"id": key, "data": data},
                ttl_minutes=resource.ttl_minutes,
            )
        self.store.put(
            resource.collection,
            {"id": SNAPSHOT_ID, "data": data},
            ttl_minutes=resource.ttl_minutes,
        )

    def load(self, resource: ResourceClass, key: Optional[str] = None) -> Optional[CachedSnapshot]:
        """Snapshot for ``key``, else the class snapshot, else None."""
        if key is not None:
            record = self.store.get(resource.collection, key)
            if record:
                return CachedSnapshot.from_record(record)
        record = self.store.get(resource.collection, SNAPSHOT_ID)
        return CachedSnapshot.from_record(record) if record else None

    def invalidate(self, resource: ResourceClass, key: Optional[str] = None) -> None:
        if key is None:
            self.store.clear(resource.collection)
        else:
            self.store.delete(resource.collection, key)

    def clear_all(self) -> None:
        for resource in RESOURCE_CLASSES:
            self.store.clear(resource.collection)


def snapshot_key(url: str) -> str:
    """Cache key for a read: its path plus query string."""
    parsed = urlparse(url)
    return f"{parsed.path}?{parsed.query}" if parsed.query else parsed.path
