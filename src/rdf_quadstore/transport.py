"""
Network transports used to fetch remote RDF documents.

A transport is any object with a ``load(uri, accept, callback)`` method
that calls ``callback`` with an Outcome whose value is a
``TransportResponse``. The transport is injected when a store is created.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import httpx

from rdf_quadstore.outcome import Outcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """Body of a fetched document and its media type (parameters stripped)."""
    data: str
    media_type: Optional[str] = None
    uri: Optional[str] = None


class NetworkTransport(Protocol):
    def load(self, uri: str, accept: str, callback: Callable[[Outcome], None]) -> None:
        ...


class HttpTransport:
    """
    HTTP transport backed by httpx.

    Args:
        timeout: Request timeout in seconds
        headers: Extra headers sent with every request
    """

    def __init__(self, timeout: float = 30.0, headers: Optional[dict[str, str]] = None):
        self.timeout = timeout
        self.headers = dict(headers or {})

    def load(self, uri: str, accept: str, callback: Callable[[Outcome], None]) -> None:
        headers = {**self.headers, "Accept": accept}
        try:
            with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
                response = client.get(uri, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to fetch {uri}: {e}")
            callback(Outcome.failure(e))
            return

        content_type = response.headers.get("content-type")
        media_type = content_type.split(";")[0].strip().lower() if content_type else None
        callback(Outcome.success(TransportResponse(response.text, media_type, str(response.url))))
