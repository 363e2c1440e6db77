"""HTTP transport for bleepclient.

The core hands a signed RequestDescriptor to a transport and gets an
``httpx.Response`` back. ``HttpxTransport`` is the default implementation;
anything with the same ``send``/``aclose`` shape can stand in for it.
"""

import logging
import time
from collections.abc import AsyncIterable
from typing import Protocol

import httpx

from bleepclient import metrics
from bleepclient.request import RequestDescriptor

logger = logging.getLogger(__name__)

Body = bytes | AsyncIterable[bytes] | None


class Transport(Protocol):
    """What the core needs from an HTTP transport."""

    async def send(
        self, descriptor: RequestDescriptor, content: Body = None, stream: bool = False
    ) -> httpx.Response: ...

    async def aclose(self) -> None: ...


class HttpxTransport:
    """Transport backed by an ``httpx.AsyncClient``.

    The client is created lazily unless one is injected; an injected client
    is never closed by the transport. Connection errors propagate unchanged
    as ``httpx.TransportError``.

    Attributes:
        timeout: Request timeout in seconds for an owned client.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        """Initialize the transport.

        Args:
            client: Optional pre-built AsyncClient (e.g. with an ASGITransport).
            timeout: Timeout used when the transport creates its own client.
        """
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(
        self, descriptor: RequestDescriptor, content: Body = None, stream: bool = False
    ) -> httpx.Response:
        """Send one request and return the response.

        Args:
            descriptor: The signed request.
            content: Request body, as bytes or an async byte iterator.
            stream: If True the body is left unread for the caller to
                consume (and close); otherwise it is read fully.

        Returns:
            The httpx response.
        """
        request = self.client.build_request(
            descriptor.method,
            descriptor.target,
            headers=descriptor.headers,
            content=content,
        )
        start = time.monotonic()
        response = await self.client.send(request, stream=stream)
        elapsed = time.monotonic() - start
        duration_ms = round(elapsed * 1000, 2)

        sent = len(content) if isinstance(content, bytes) else 0
        received = 0 if stream else len(response.content)
        metrics.record_request(
            descriptor.method, response.status_code, sent, received, duration=elapsed
        )

        logger.debug(
            "%s %s -> %d",
            descriptor.method,
            descriptor.path,
            response.status_code,
            extra={
                "method": descriptor.method,
                "path": descriptor.path,
                "status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
