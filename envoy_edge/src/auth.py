"""
Bearer-token sources and token introspection.

The poller asks a :class:`TokenProvider` for a token at session start and
after a 401.  Obtaining a token from the vendor cloud is out of scope: the
providers here hand out a configured token or re-read a token file that an
external tool keeps fresh.

``describe_token`` reads the JWT claims (without signature verification) to
log and report the token's serial, user, access level, issue and expiry.

CHANGELOG:
- 2026-10-03: File provider re-reads the token on every refresh
- 2026-10-02: Initial creation (STORY-011)

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

import jwt

from envoy_edge.src.exceptions import AuthError

logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    """Auth collaborator: returns a bearer token or raises AuthError."""

    async def obtain_token(self) -> str: ...


class StaticTokenProvider:
    """Hands out the configured token."""

    def __init__(self, token: str) -> None:
        self._token = token.strip()

    async def obtain_token(self) -> str:
        if not self._token:
            raise AuthError("No gateway token configured")
        return self._token


class FileTokenProvider:
    """Reads the token from a file on every call.

    Args:
        path: File containing the token (surrounding whitespace ignored).
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def obtain_token(self) -> str:
        try:
            token = self.path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise AuthError(f"Cannot read token file {self.path}: {exc}") from exc
        if not token:
            raise AuthError(f"Token file {self.path} is empty")
        return token


# ---------------------------------------------------------------------------
# Token introspection
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TokenDetails:
    """Claims of a gateway JWT that are useful for diagnostics."""

    serial: str | None = None
    user: str | None = None
    access: str | None = None
    issued: datetime | None = None
    expires: datetime | None = None


def _timestamp(value: Any) -> datetime | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=UTC)
    return None


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return ",".join(str(item) for item in value)
    return str(value)


def describe_token(token: str) -> TokenDetails:
    """Decode the JWT claims of *token*; empty details if it is not a JWT."""
    if not token:
        return TokenDetails()
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        logger.debug("Token is not a decodable JWT")
        return TokenDetails()
    return TokenDetails(
        serial=_text(claims.get("aud")),
        user=_text(claims.get("username")),
        access=_text(claims.get("enphaseUser")),
        issued=_timestamp(claims.get("iat")),
        expires=_timestamp(claims.get("exp")),
    )
