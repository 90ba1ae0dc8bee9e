# =============================================================================
# masjeed_core/offline/__init__.py
# Offline Request Queue and Cache Fallback for the Masjeed client
# =============================================================================
"""
Offline Module

Keeps the Masjeed UI usable on intermittent connectivity: reads fall back to
the last cached snapshot, writes are queued and replayed with backoff once
the connection returns.

Architecture:
------------
    UI (Streamlit pages)
            │
            ▼
    ┌──────────────────┐
    │  OfflineClient   │  (facade, private event loop)
    └──────────────────┘
            │
            ▼
    ┌──────────────────┐      failed write     ┌────────────────────┐
    │   Interceptor    │ ────────────────────► │ OfflineQueueManager│
    └──────────────────┘                       └────────────────────┘
            │  snapshots                          ▲        │ replay
            ▼                                     │        ▼
    ┌──────────────────┐    online again   ┌──────────────┐  Transport
    │   LocalStore     │◄──────────────────│ Connectivity │  (requests)
    │   (SQLite)       │                   │   Monitor    │
    └──────────────────┘                   └──────────────┘

Usage:
------
from masjeed_core.offline import get_offline_client

client = get_offline_client()
response = client.fetch("GET", "/api/events")
if response.from_cache:
    print(f"Showing events from {response.age_seconds:.0f}s ago")
"""

from masjeed_core.offline.models import (
    QueuedRequest,
    CachedSnapshot,
    ConnectivityState,
    QueueStatus,
    RetryConfig,
    RequestCategory,
    ResponseSource,
)

from masjeed_core.offline.local_store import LocalStore

from masjeed_core.offline.scheduler import (
    Scheduler,
    CancelToken,
    AsyncioScheduler,
    ManualScheduler,
)

from masjeed_core.offline.events import (
    EventBus,
    QUEUE_SUCCESS,
    QUEUE_FAILURE,
    CONNECTIVITY_CHANGE,
)

from masjeed_core.offline.transport import (
    Transport,
    HttpResponse,
    RequestsTransport,
)

from masjeed_core.offline.resources import OfflineStorage, ResourceClass

from masjeed_core.offline.queue_manager import OfflineQueueManager

from masjeed_core.offline.interceptor import (
    ApiResponse,
    CacheFallbackInterceptor,
)

from masjeed_core.offline.connectivity import (
    ConnectivityMonitor,
    ConnectivityProbe,
)

from masjeed_core.offline.config import (
    OfflineConfig,
    load_offline_config,
)

from masjeed_core.offline.client import (
    OfflineClient,
    get_offline_client,
)

__all__ = [
    # Data model
    "QueuedRequest",
    "CachedSnapshot",
    "ConnectivityState",
    "QueueStatus",
    "RetryConfig",
    "RequestCategory",
    "ResponseSource",
    # Storage
    "LocalStore",
    "OfflineStorage",
    "ResourceClass",
    # Scheduling and events
    "Scheduler",
    "CancelToken",
    "AsyncioScheduler",
    "ManualScheduler",
    "EventBus",
    "QUEUE_SUCCESS",
    "QUEUE_FAILURE",
    "CONNECTIVITY_CHANGE",
    # Network
    "Transport",
    "HttpResponse",
    "RequestsTransport",
    # Core components
    "OfflineQueueManager",
    "ApiResponse",
    "CacheFallbackInterceptor",
    "ConnectivityMonitor",
    "ConnectivityProbe",
    # Configuration
    "OfflineConfig",
    "load_offline_config",
    # Facade (Main API)
    "OfflineClient",
    "get_offline_client",
]
