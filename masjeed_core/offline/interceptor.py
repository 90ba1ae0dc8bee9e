# =============================================================================
# masjeed_core/offline/interceptor.py
# Cache-Fallback Fetch Interceptor
# =============================================================================
"""
CacheFallbackInterceptor - classifies each outbound API call and decides how
it degrades when the network is gone.

| Request            | Network ok       | Network failed / non-2xx              |
|--------------------|------------------|---------------------------------------|
| auth (/api/auth/)  | response as-is   | NetworkError propagates               |
| write              | response as-is   | queued, synthetic 202                 |
| read               | snapshot stored  | URL snapshot, class snapshot, or 503  |

Auth endpoints never receive a synthetic payload.

With a ConnectivityMonitor attached, every request doubles as a connectivity
signal: a NetworkError marks the client offline and any HTTP response marks
it online again, which drains the queue.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlparse
import logging

from masjeed_core.errors.exceptions import NetworkError, SerializationError, StorageError
from masjeed_core.offline.connectivity import ConnectivityMonitor
from masjeed_core.offline.models import WRITE_METHODS, ResponseSource, now_ms
from masjeed_core.offline.queue_manager import OfflineQueueManager
from masjeed_core.offline.resources import (
    GENERIC_OFFLINE_BODY,
    SNAPSHOT_ID,
    OfflineStorage,
    categorize_write,
    resolve_resource,
    snapshot_key,
)
from masjeed_core.offline.transport import HttpResponse, Transport

logger = logging.getLogger(__name__)

QUEUED_MESSAGE = "Request queued for when back online"
FROM_CACHE_HEADER = "X-From-Cache"
CACHE_MATCH_HEADER = "X-Cache-Match"


@dataclass
class ApiResponse:
    """Response handed back to the UI, real or synthetic."""
    status: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    source: ResponseSource = ResponseSource.NETWORK
    stored_at: Optional[int] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def from_cache(self) -> bool:
        return self.source == ResponseSource.CACHE

    @property
    def age_seconds(self) -> Optional[float]:
        """Age of a cached body; None for anything not served from cache."""
        if self.stored_at is None:
            return None
        return max(now_ms() - self.stored_at, 0) / 1000.0

    @classmethod
    def from_http(cls, response: HttpResponse) -> ApiResponse:
        return cls(
            status=response.status,
            body=_decode_body(response.text),
            headers=dict(response.headers),
            source=ResponseSource.NETWORK,
        )


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class CacheFallbackInterceptor:
    """
    Wraps the transport with offline behaviour.

    Usage:
        interceptor = CacheFallbackInterceptor(transport, queue_manager, storage)
        response = await interceptor.fetch("GET", "/api/prayers")
        if response.from_cache:
            ...
    """

    def __init__(
        self,
        transport: Transport,
        queue_manager: OfflineQueueManager,
        storage: OfflineStorage,
        auth_prefix: str = "/api/auth/",
        connectivity: Optional[ConnectivityMonitor] = None,
    ):
        self.transport = transport
        self.queue_manager = queue_manager
        self.storage = storage
        self.auth_prefix = auth_prefix
        self.connectivity = connectivity

    def is_auth(self, url: str) -> bool:
        return urlparse(url).path.startswith(self.auth_prefix)

    async def fetch(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ApiResponse:
        """
        Issue a request with offline fallback.

        Args:
            method: HTTP method
            url: Absolute URL or path under the API base
            body: JSON-serializable body or pre-serialized text
            headers: Request headers

        Returns:
            ApiResponse with ``source`` telling where the body came from

        Raises:
            NetworkError: auth request could not reach the server
            SerializationError: body is not JSON-serializable
        """
        method = method.upper()
        headers = dict(headers or {})
        payload = self._encode_body(url, body)
        if payload is not None and not _has_header(headers, "Content-Type"):
            headers["Content-Type"] = "application/json"

        if self.is_auth(url):
            response = await self._send(method, url, headers, payload)
            return ApiResponse.from_http(response)

        if method in WRITE_METHODS:
            return await self._handle_write(method, url, payload, headers)

        return await self._handle_read(method, url, payload, headers)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        payload: Optional[str],
    ) -> HttpResponse:
        try:
            response = await self.transport.send(method, url, headers, payload)
        except NetworkError:
            if self.connectivity is not None:
                await self.connectivity.set_online(False)
            raise

        if self.connectivity is not None:
            await self.connectivity.set_online(True)
        return response

    # =========================================================================
    # WRITES
    # =========================================================================

    async def _handle_write(
        self,
        method: str,
        url: str,
        payload: Optional[str],
        headers: Dict[str, str],
    ) -> ApiResponse:
        try:
            response = await self._send(method, url, headers, payload)
            if response.ok:
                return ApiResponse.from_http(response)
            logger.info(f"{method} {url} returned {response.status}, queueing")
        except NetworkError as e:
            logger.info(f"Write request failed, queueing for retry: {e}")

        queue_id = self.queue_manager.enqueue(
            url,
            method,
            body=payload if method != "DELETE" else None,
            headers=headers,
            category=categorize_write(urlparse(url).path),
        )

        return ApiResponse(
            status=202,
            body={
                "success": False,
                "error": QUEUED_MESSAGE,
                "offline": True,
                "queued": True,
                "queueId": queue_id,
            },
            headers={"Content-Type": "application/json"},
            source=ResponseSource.QUEUED,
        )

    # =========================================================================
    # READS
    # =========================================================================

    async def _handle_read(
        self,
        method: str,
        url: str,
        payload: Optional[str],
        headers: Dict[str, str],
    ) -> ApiResponse:
        resource = resolve_resource(urlparse(url).path)
        key = snapshot_key(url)

        try:
            response = await self._send(method, url, headers, payload)
        except NetworkError as e:
            logger.info(f"Network request failed, trying cache: {e}")
        else:
            if response.ok:
                api_response = ApiResponse.from_http(response)
                if resource is not None:
                    self._save_snapshot(resource, key, api_response.body)
                return api_response
            logger.info(f"{method} {url} returned {response.status}, trying cache")

        if resource is None:
            return self._offline_response(dict(GENERIC_OFFLINE_BODY))

        try:
            snapshot = self.storage.load(resource, key)
        except StorageError as e:
            logger.error(f"Cache lookup failed for {resource.name}: {e}")
            snapshot = None

        if snapshot is None:
            return self._offline_response(resource.offline_body())

        match = "resource" if snapshot.id == SNAPSHOT_ID else "url"
        logger.info(f"Serving cached {resource.name} ({match} match) from {snapshot.stored_at}")
        return ApiResponse(
            status=200,
            body=snapshot.payload,
            headers={
                "Content-Type": "application/json",
                FROM_CACHE_HEADER: "true",
                CACHE_MATCH_HEADER: match,
            },
            source=ResponseSource.CACHE,
            stored_at=snapshot.stored_at,
        )

    def _save_snapshot(self, resource, key: str, data: Any) -> None:
        try:
            self.storage.save(resource, data, key)
        except StorageError as e:
            logger.warning(f"Could not cache {resource.name}: {e}")

    @staticmethod
    def _offline_response(body: Dict[str, Any]) -> ApiResponse:
        return ApiResponse(
            status=503,
            body=body,
            headers={"Content-Type": "application/json"},
            source=ResponseSource.OFFLINE,
        )

    @staticmethod
    def _encode_body(url: str, body: Any) -> Optional[str]:
        if body is None or isinstance(body, str):
            return body
        try:
            return json.dumps(body)
        except (TypeError, ValueError) as e:
            raise SerializationError(
                f"Request body is not JSON-serializable: {e}",
                url=url,
                body_type=type(body).__name__,
            ) from e


def _has_header(headers: Dict[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)
