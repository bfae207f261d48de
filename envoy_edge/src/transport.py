"""
HTTP transport to the gateway's local REST API.

The poller talks to the gateway only through the :class:`Transport`
protocol: ``request(url, method, headers) -> TransportResponse``.  Any
network, DNS, TLS or timeout failure surfaces as
:class:`~envoy_edge.src.exceptions.TransportError`; HTTP error statuses are
returned, not raised, so the poller can react to 401 and 404.

:class:`HttpxTransport` is the production implementation.  Gateways ship a
self-signed certificate, so TLS verification is configurable and off by
default.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-010)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

import httpx

from envoy_edge.src.exceptions import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S: float = 10.0
"""Per-request timeout in seconds."""


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Status code and raw body of one HTTP exchange."""

    status: int
    body: bytes


class Transport(Protocol):
    """HTTP collaborator used by the poller."""

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse: ...


class HttpxTransport:
    """:class:`Transport` backed by a shared ``httpx.AsyncClient``.

    Args:
        timeout_s: Bounded timeout for every request.
        verify_tls: Verify the gateway certificate.
        client: Pre-built client (tests); created from the other arguments
            when ``None``.

    Usage::

        async with HttpxTransport(timeout_s=10.0) as transport:
            response = await transport.request("https://envoy.local/info")
    """

    def __init__(
        self,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        verify_tls: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=timeout_s,
            verify=verify_tls,
        )

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        """Perform one request and return its status and raw body.

        Raises:
            TransportError: On any transport-level failure, timeouts included.
        """
        try:
            response = await self._client.request(method, url, headers=dict(headers or {}))
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}", url=url) from exc
        logger.debug("HTTP %s %s -> %d", method, url, response.status_code)
        return TransportResponse(status=response.status_code, body=response.content)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.aclose()
