# =============================================================================
# masjeed_core/offline/models.py
# Data Model for Queued Writes, Cached Snapshots and Connectivity
# =============================================================================
"""
Plain dataclasses shared by the offline components.

Records are persisted as JSON dicts; every model here knows how to convert
itself to and from the stored record shape.
"""

from __future__ import annotations
import time
from dataclasses import asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

import pandas as pd


# Durable store collections
OFFLINE_QUEUE = "offlineQueue"
PRAYER_TIMES = "prayerTimes"
EVENTS = "events"
ANNOUNCEMENTS = "announcements"
DONATIONS = "donations"
COMMUNITY = "community"
USER_DATA = "userData"

KNOWN_COLLECTIONS = (
    OFFLINE_QUEUE,
    PRAYER_TIMES,
    EVENTS,
    ANNOUNCEMENTS,
    DONATIONS,
    COMMUNITY,
    USER_DATA,
)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class RequestCategory(str, Enum):
    """UI grouping for queued writes. Never used for replay decisions."""
    DONATIONS = "donations"
    REGISTRATIONS = "registrations"
    ANNOUNCEMENTS = "announcements"
    GENERAL = "general"


class ResponseSource(str, Enum):
    """Where the body of an ApiResponse came from."""
    NETWORK = "network"
    CACHE = "cache"
    OFFLINE = "offline"
    QUEUED = "queued"


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff policy for queued writes."""
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0

    def compute_delay(self, retry_count: int) -> int:
        """Delay in ms before the attempt following ``retry_count`` failures."""
        exponent = max(retry_count - 1, 0)
        delay = self.base_delay_ms * (self.backoff_multiplier ** exponent)
        return int(min(delay, self.max_delay_ms))

    def merged(
        self,
        overrides: Optional[Union[RetryConfig, Mapping[str, Any]]] = None,
    ) -> RetryConfig:
        """Return a copy with the given (partial) overrides applied."""
        if overrides is None:
            return self
        if isinstance(overrides, RetryConfig):
            return overrides
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown retry settings: {sorted(unknown)}")
        return replace(self, **dict(overrides))


@dataclass
class QueuedRequest:
    """A mutating HTTP request deferred for later replay."""
    id: str
    url: str
    method: str
    body: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    category: RequestCategory = RequestCategory.GENERAL
    enqueued_at: int = field(default_factory=now_ms)
    retry_count: int = 0
    max_retries: int = 3

    @property
    def is_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["category"] = self.category.value
        return record

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> QueuedRequest:
        return cls(
            id=record["id"],
            url=record["url"],
            method=record["method"],
            body=record.get("body"),
            headers=dict(record.get("headers") or {}),
            category=RequestCategory(record.get("category", "general")),
            enqueued_at=record.get("enqueued_at") or record.get("timestamp") or now_ms(),
            retry_count=int(record.get("retry_count", 0)),
            max_retries=int(record.get("max_retries", 3)),
        )

    def event_detail(self, include_retry_count: bool = False) -> Dict[str, Any]:
        detail = {
            "id": self.id,
            "category": self.category.value,
            "url": self.url,
            "method": self.method,
        }
        if include_retry_count:
            detail["retryCount"] = self.retry_count
        return detail


@dataclass
class CachedSnapshot:
    """Last-known-good response for a read endpoint."""
    id: str
    payload: Any
    stored_at: int
    expires_at: Optional[int] = None

    def is_expired(self, at_ms: Optional[int] = None) -> bool:
        if self.expires_at is None:
            return False
        return (at_ms if at_ms is not None else now_ms()) > self.expires_at

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> CachedSnapshot:
        return cls(
            id=record["id"],
            payload=record.get("data"),
            stored_at=record.get("timestamp", 0),
            expires_at=record.get("expires_at"),
        )


@dataclass
class ConnectivityState:
    """Process-wide connectivity and drain flags."""
    is_online: bool = True
    sync_in_progress: bool = False
    last_sync_at: Optional[int] = None
    last_change_at: Optional[int] = None

    def copy(self) -> ConnectivityState:
        return replace(self)


@dataclass
class QueueStatus:
    """Read-only snapshot of the offline queue for display."""
    total: int
    by_type: Dict[str, int]
    items: List[QueuedRequest]

    @classmethod
    def from_items(cls, items: List[QueuedRequest]) -> QueueStatus:
        by_type: Dict[str, int] = {}
        for item in items:
            key = item.category.value
            by_type[key] = by_type.get(key, 0) + 1
        return cls(total=len(items), by_type=by_type, items=list(items))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "byType": dict(self.by_type),
            "items": [item.to_record() for item in self.items],
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Queued items as a table (one row per request, headers omitted)."""
        columns = ["id", "category", "method", "url", "retry_count", "max_retries", "enqueued_at"]
        if not self.items:
            return pd.DataFrame(columns=columns)

        df = pd.DataFrame([item.to_record() for item in self.items])[columns]
        df["enqueued_at"] = pd.to_datetime(df["enqueued_at"], unit="ms")
        return df
