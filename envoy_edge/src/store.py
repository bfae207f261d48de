"""
Durable key-value attribute store backed by async SQLite.

Holds the session token, the last successfully decoded payload of every
endpoint (``raw_<endpoint>``), and the last published envelope (``pvdata``).
Values are JSON-encoded strings; a missing key reads as the caller's default
(``"[]"`` unless given).  The store survives process restarts, so cached
endpoint payloads remain available as fallback after a reboot.

Operations:
- read_string(key, default): SELECT the value of a key.
- write_string(key, value): UPSERT the value of a key.
- close(): Close the underlying database connection.

Supports async context manager protocol for clean resource management.

CHANGELOG:
- 2026-10-02: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import aiosqlite

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS attributes (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

_UPSERT_SQL = """\
INSERT INTO attributes (key, value) VALUES (?, ?)
ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = datetime('now');
"""

_SELECT_SQL = "SELECT value FROM attributes WHERE key = ?;"

DEFAULT_VALUE = "[]"


def cache_key(endpoint: str) -> str:
    """Attribute key of an endpoint's cached payload."""
    return "raw_" + endpoint.strip("/").replace("/", "_")


class AttributeStore(Protocol):
    """Attribute store collaborator."""

    async def read_string(self, key: str, default: str = DEFAULT_VALUE) -> str: ...

    async def write_string(self, key: str, value: str) -> None: ...


class SqliteAttributeStore:
    """:class:`AttributeStore` backed by a SQLite file in WAL mode.

    Args:
        path: Filesystem path for the SQLite database file.
              Accepts ``str`` or ``pathlib.Path``.

    Usage::

        async with SqliteAttributeStore("/data/envoy_edge.db") as store:
            await store.write_string("token", "eyJ...")
            token = await store.read_string("token", "")
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        """Open the SQLite connection and initialize the schema."""
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute(_CREATE_TABLE_SQL)
        await self._db.commit()

    async def close(self) -> None:
        """Close the underlying SQLite connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> SqliteAttributeStore:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def read_string(self, key: str, default: str = DEFAULT_VALUE) -> str:
        """Return the stored value of *key*, or *default* when absent."""
        assert self._db is not None, "Store not opened. Call open() or use async with."
        cursor = await self._db.execute(_SELECT_SQL, (key,))
        row = await cursor.fetchone()
        return default if row is None else row[0]

    async def write_string(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""
        assert self._db is not None, "Store not opened. Call open() or use async with."
        await self._db.execute(_UPSERT_SQL, (key, value))
        await self._db.commit()
