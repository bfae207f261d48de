"""
Gateway session: the per-instance state shared by all poll cycles.

A :class:`GatewaySession` is built once at startup by :func:`open_session`
and owned by the daemon.  It carries the gateway base URL, the current bearer
token, the per-cycle token-refresh flag and the set of optional endpoints
latched off after a 404.  Restarting (reconfiguring) the daemon creates a
fresh session, which clears the latch and re-obtains the token.

CHANGELOG:
- 2026-10-04: Single-flight refresh lock for concurrent endpoint fetches
- 2026-10-02: Initial creation (STORY-014)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from envoy_edge.src.auth import TokenDetails, describe_token
from envoy_edge.src.exceptions import AuthError, ConfigurationError

if TYPE_CHECKING:
    from envoy_edge.src.auth import TokenProvider
    from envoy_edge.src.config import GatewaySettings
    from envoy_edge.src.store import AttributeStore

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
"""Attribute key holding the current bearer token."""


@dataclass
class GatewaySession:
    """Mutable state of one configured gateway.

    Attributes:
        host: Gateway base URL without trailing slash.
        token: Current bearer token.
        serial: Gateway serial number (informational).
        token_details: Claims of the current token.
        token_refreshed: Whether a refresh was attempted in the current cycle.
        unavailable: Optional endpoints latched off after a 404.
        refresh_lock: Serializes token refreshes across concurrent fetches.
    """

    host: str
    token: str = ""
    serial: str = ""
    token_details: TokenDetails = field(default_factory=TokenDetails)
    token_refreshed: bool = False
    unavailable: set[str] = field(default_factory=set)
    refresh_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def begin_cycle(self) -> None:
        """Reset per-cycle state; a new cycle may refresh the token once."""
        self.token_refreshed = False

    def url_for(self, endpoint: str) -> str:
        """Absolute URL of *endpoint* on this gateway."""
        return f"{self.host}/{endpoint.lstrip('/')}"

    def set_token(self, token: str) -> None:
        """Install a new token and decode its claims."""
        self.token = token
        self.token_details = describe_token(token)


async def open_session(
    settings: GatewaySettings,
    tokens: TokenProvider,
    store: AttributeStore,
) -> GatewaySession:
    """Validate the configuration, obtain a token and build the session.

    Raises:
        ConfigurationError: If the host is missing, no token source is
            configured, or the token source cannot provide a token.
    """
    if not settings.envoy_host:
        raise ConfigurationError("Gateway host not set (ENVOY_HOST)")
    if not settings.envoy_token and not settings.envoy_token_file:
        raise ConfigurationError("No gateway token source (ENVOY_TOKEN or ENVOY_TOKEN_FILE)")

    try:
        token = await tokens.obtain_token()
    except AuthError as exc:
        raise ConfigurationError(f"Could not get a valid token: {exc}") from exc

    session = GatewaySession(host=settings.envoy_host, serial=settings.envoy_serial)
    session.set_token(token)
    await store.write_string(TOKEN_KEY, token)
    details = session.token_details
    logger.info(
        "Gateway session opened: host=%s serial=%s token_user=%s token_expires=%s",
        session.host,
        session.serial or details.serial,
        details.user,
        details.expires.isoformat() if details.expires else None,
    )
    return session
