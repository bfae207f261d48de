"""
Endpoint poller with token refresh and last-known-good cache fallback.

One poll cycle requests every configured endpoint through the transport and
returns ``{endpoint: decoded payload or None}``.  Designed to be robust:

- A 401 triggers at most one token refresh per cycle (single-flight when
  endpoints are fetched concurrently); the request is re-issued once.
- Any non-200 status, transport failure or undecodable body falls back to the
  endpoint's last successfully decoded payload from the attribute store.
- Optional endpoints answering 404 are latched off for the session.
- Endpoints are independent: one failing never aborts the others.
- Logs warnings on errors but never propagates transport, auth or decode
  exceptions to the caller.

CHANGELOG:
- 2026-10-19: A failed token write no longer aborts the refreshed cycle
- 2026-10-05: Latch optional endpoints off after 404
- 2026-10-04: Optional concurrent fetch with single-flight token refresh
- 2026-10-02: Initial creation (STORY-015)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from envoy_edge.src.decoder import decode, decode_or_raise
from envoy_edge.src.exceptions import AuthError, DecodeError, TransportError
from envoy_edge.src.session import TOKEN_KEY
from envoy_edge.src.store import DEFAULT_VALUE, cache_key

if TYPE_CHECKING:
    from envoy_edge.src.auth import TokenProvider
    from envoy_edge.src.session import GatewaySession
    from envoy_edge.src.store import AttributeStore
    from envoy_edge.src.transport import Transport, TransportResponse

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_UNAUTHORIZED = 401
HTTP_NOT_FOUND = 404

EMPTY_RESPONSE = "{}"
"""Raw passthrough result when the gateway cannot be queried."""


class GatewayPoller:
    """Polls the configured endpoints of one gateway.

    Args:
        transport: HTTP collaborator.
        tokens: Auth collaborator used on 401.
        store: Attribute store for the token and per-endpoint cache.
        endpoints: Ordered endpoint identifiers.
        optional_endpoints: Endpoints latched off after a 404.
        concurrent: Fetch endpoints concurrently instead of in order.
    """

    def __init__(
        self,
        *,
        transport: Transport,
        tokens: TokenProvider,
        store: AttributeStore,
        endpoints: Sequence[str],
        optional_endpoints: Sequence[str] = (),
        concurrent: bool = False,
    ) -> None:
        self._transport = transport
        self._tokens = tokens
        self._store = store
        self._endpoints = tuple(endpoints)
        self._optional = frozenset(optional_endpoints)
        self._concurrent = concurrent

    @property
    def endpoints(self) -> tuple[str, ...]:
        return self._endpoints

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def poll(self, session: GatewaySession) -> dict[str, Any]:
        """Execute one poll cycle over all endpoints.

        Returns:
            Endpoint identifier -> decoded payload, in configured order.
            ``None`` for an endpoint with neither a fresh nor a cached
            payload.
        """
        session.begin_cycle()
        if self._concurrent:
            results = await asyncio.gather(
                *(self._poll_endpoint(session, endpoint) for endpoint in self._endpoints)
            )
            return dict(zip(self._endpoints, results, strict=True))

        data: dict[str, Any] = {}
        for endpoint in self._endpoints:
            data[endpoint] = await self._poll_endpoint(session, endpoint)
        return data

    async def fetch_raw(self, session: GatewaySession, endpoint: str) -> str:
        """Return the raw body of one endpoint, or ``"{}"`` on any failure."""
        try:
            response = await self._request_with_refresh(session, endpoint)
        except TransportError as exc:
            logger.warning("Raw request to %s failed: %s", endpoint, exc)
            return EMPTY_RESPONSE
        if response.status != HTTP_OK:
            logger.warning("Raw request to %s returned status %d", endpoint, response.status)
            return EMPTY_RESPONSE
        return response.body.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Per-endpoint state machine
    # ------------------------------------------------------------------

    async def _poll_endpoint(self, session: GatewaySession, endpoint: str) -> Any:
        if endpoint in session.unavailable:
            return None

        try:
            response = await self._request_with_refresh(session, endpoint)
        except TransportError as exc:
            logger.warning("API endpoint %s request failed: %s", endpoint, exc)
            return await self._load_cached(endpoint)

        if response.status == HTTP_NOT_FOUND and endpoint in self._optional:
            session.unavailable.add(endpoint)
            logger.info(
                "Optional endpoint %s returned 404; skipping it until reconfiguration",
                endpoint,
            )
            return None

        if response.status != HTTP_OK:
            logger.warning("API endpoint %s returned status %d", endpoint, response.status)
            return await self._load_cached(endpoint)

        try:
            payload = decode_or_raise(response.body)
        except DecodeError as exc:
            logger.warning("API endpoint %s response not usable: %s", endpoint, exc)
            return await self._load_cached(endpoint)

        await self._persist(endpoint, payload)
        return payload

    async def _request(self, session: GatewaySession, endpoint: str) -> TransportResponse:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {session.token}",
        }
        return await self._transport.request(session.url_for(endpoint), "GET", headers)

    async def _request_with_refresh(
        self,
        session: GatewaySession,
        endpoint: str,
    ) -> TransportResponse:
        token_used = session.token
        response = await self._request(session, endpoint)
        if response.status == HTTP_UNAUTHORIZED and await self._refresh_token(
            session, token_used
        ):
            response = await self._request(session, endpoint)
        return response

    async def _refresh_token(self, session: GatewaySession, token_used: str) -> bool:
        """Refresh the token at most once per cycle.

        Returns:
            ``True`` if the caller should retry: either this call installed a
            new token, or another fetch already did after *token_used* was
            sent.
        """
        async with session.refresh_lock:
            if session.token_refreshed:
                return bool(session.token) and session.token != token_used
            session.token_refreshed = True
            logger.info("Refreshing gateway token after unauthorized response")
            try:
                token = await self._tokens.obtain_token()
            except AuthError as exc:
                logger.error("Failed to refresh gateway token: %s", exc)
                return False
            session.set_token(token)
            try:
                await self._store.write_string(TOKEN_KEY, token)
            except Exception:
                logger.warning("Storing refreshed gateway token failed", exc_info=True)
            expires = session.token_details.expires
            logger.info(
                "Gateway token refreshed (expires=%s)",
                expires.isoformat() if expires else None,
            )
            return True

    # ------------------------------------------------------------------
    # Last-known-good cache
    # ------------------------------------------------------------------

    async def _load_cached(self, endpoint: str) -> Any:
        try:
            stored = await self._store.read_string(cache_key(endpoint), DEFAULT_VALUE)
        except Exception:
            logger.warning("Reading cached payload of %s failed", endpoint, exc_info=True)
            return None
        payload = decode(stored)
        if payload in ([], {}):
            payload = None
        logger.warning(
            "Using cached payload for %s (%s)",
            endpoint,
            "available" if payload is not None else "none",
        )
        return payload

    async def _persist(self, endpoint: str, payload: Any) -> None:
        try:
            await self._store.write_string(
                cache_key(endpoint),
                json.dumps(payload, ensure_ascii=False),
            )
        except Exception:
            logger.warning("Caching payload of %s failed", endpoint, exc_info=True)
