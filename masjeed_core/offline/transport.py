# =============================================================================
# masjeed_core/offline/transport.py
# HTTP Transport for the Offline Core
# =============================================================================
"""
Transport - the outbound network call the interceptor and queue wrap.

``send`` raises NetworkError when the server cannot be reached; HTTP error
statuses are returned as responses so callers can decide what they mean.
"""

from __future__ import annotations
import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urljoin
import logging

import requests

from masjeed_core.errors.exceptions import NetworkError

logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    """Raw response as received from the server."""
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.text) if self.text else None


class Transport(Protocol):
    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> HttpResponse:
        ...


class RequestsTransport:
    """
    Transport backed by a ``requests.Session``.

    The blocking call runs in a worker thread so the event loop stays free.
    Relative URLs (``/api/...``) are resolved against ``base_url``.
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if default_headers:
            self.session.headers.update(default_headers)

    def resolve(self, url: str) -> str:
        if url.startswith(("http://", "https://")) or not self.base_url:
            return url
        return urljoin(self.base_url + "/", url.lstrip("/"))

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> HttpResponse:
        return await asyncio.to_thread(self._send_blocking, method, url, headers, body)

    def _send_blocking(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]],
        body: Optional[str],
    ) -> HttpResponse:
        target = self.resolve(url)
        try:
            response = self.session.request(
                method=method,
                url=target,
                headers=headers or {},
                data=body.encode("utf-8") if body is not None else None,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.debug(f"{method} {target} failed: {e}")
            raise NetworkError(
                f"Request failed: {e}",
                url=url,
                method=method,
            ) from e

        return HttpResponse(
            status=response.status_code,
            headers=dict(response.headers),
            text=response.text,
        )

    def close(self) -> None:
        self.session.close()
