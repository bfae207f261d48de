"""
HTTPS sink forwarding each envelope to the downstream consumer.

Delivery is fire-and-forget: one POST per cycle, no retry, no backoff.  A
failed delivery is logged and reported as ``False``; the next cycle sends a
fresh envelope.  The sink URL must use HTTPS and TLS verification is always
enabled.

CHANGELOG:
- 2026-10-03: Initial creation (STORY-013)

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_S = 10.0


class EnergySink(Protocol):
    """Downstream consumer of serialized envelopes."""

    async def send(self, message: str) -> bool: ...


class HttpSink:
    """POST envelopes as JSON to an HTTPS endpoint with bearer auth.

    Args:
        url: Full URL of the downstream endpoint.  Must start with
            ``https://``.
        token: Bearer token; no ``Authorization`` header when empty.
        timeout_s: Request timeout.
        client: Pre-built client (tests).

    Raises:
        ValueError: If *url* does not start with ``https://``.
    """

    def __init__(
        self,
        url: str,
        token: str = "",
        *,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not url.lower().startswith("https://"):
            raise ValueError(f"Sink URL must use HTTPS (got: '{url}').")
        self._url = url
        self._token = token
        self._client = client or httpx.AsyncClient(verify=True, timeout=timeout_s)

    async def send(self, message: str) -> bool:
        """POST one serialized envelope; never raises on delivery failure."""
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        try:
            response = await self._client.post(self._url, content=message, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Forward failed (network error): %s", exc)
            return False

        if 200 <= response.status_code < 300:
            logger.debug("Forwarded envelope (HTTP %d)", response.status_code)
            return True
        logger.warning("Forward failed (HTTP %d)", response.status_code)
        return False

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
