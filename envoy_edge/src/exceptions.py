"""
Error taxonomy for the edge daemon.

Only ``ConfigurationError`` is fatal (raised while building the session at
startup).  Transport, auth and decode errors are caught by the poller and
turn into a cache fallback for the affected endpoint.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations


class EdgeError(Exception):
    """Base exception for envoy_edge."""


class TransportError(EdgeError):
    """Network, DNS, TLS or timeout failure talking to an HTTP peer."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url

    def __str__(self) -> str:
        base = super().__str__()
        if self.url:
            base += f" url={self.url}"
        return base


class AuthError(EdgeError):
    """A bearer token could not be obtained."""


class DecodeError(EdgeError):
    """A response body could not be decoded as JSON, even after sanitizing."""


class ConfigurationError(EdgeError):
    """Configuration is missing host or credentials."""
