"""
Health file writer for the edge daemon.

Writes a JSON health file at a configurable path with these fields:
- status: ``"starting"``, ``"active"``, ``"disabled"`` or ``"error"``.
- status_message: Reason for an ``error`` status, else ``None``.
- last_poll_ts: ISO timestamp of the most recent poll cycle.
- last_forward_ts: ISO timestamp of the most recent accepted forward.
- token_expires: ISO expiry of the current gateway token, if known.

The file is overwritten on every state change, providing a simple liveness
signal that Docker HEALTHCHECK or monitoring can inspect.  An ``error``
status (configuration problem) persists until the daemon is reconfigured.

CHANGELOG:
- 2026-10-03: Track forward timestamp, status and token expiry
- 2026-10-02: Initial creation (STORY-016)

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes edge health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._status: str = "starting"
        self._status_message: str | None = None
        self._last_poll_ts: str | None = None
        self._last_forward_ts: str | None = None
        self._token_expires: str | None = None

    def record_poll(self) -> None:
        """Record a poll cycle and write health file."""
        self._last_poll_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def record_forward(self) -> None:
        """Record an accepted forward and write health file."""
        self._last_forward_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def set_status(self, status: str, message: str | None = None) -> None:
        """Update the status (and its reason) and write health file."""
        self._status = status
        self._status_message = message
        self._write()

    def set_token_expires(self, expires: datetime | None) -> None:
        """Update the token expiry and write health file."""
        self._token_expires = expires.isoformat() if expires else None
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "status": self._status,
            "status_message": self._status_message,
            "last_poll_ts": self._last_poll_ts,
            "last_forward_ts": self._last_forward_ts,
            "token_expires": self._token_expires,
        }
        self.path.write_text(json.dumps(data))
