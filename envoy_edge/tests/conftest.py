"""
Shared test fixtures for edge daemon tests.

Provides environment variable fixtures for GatewaySettings configuration
tests plus in-memory fakes of the transport and attribute store
collaborators.  All edge env vars are cleaned before each test to ensure
isolation.

CHANGELOG:
- 2026-10-04: In-memory store and scripted transport fakes
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Mapping

import pytest
from envoy_edge.src.exceptions import TransportError
from envoy_edge.src.store import DEFAULT_VALUE
from envoy_edge.src.transport import TransportResponse

# All GatewaySettings environment variable names, used for cleanup.
_ALL_EDGE_ENV_VARS = (
    "ENVOY_HOST",
    "ENVOY_SERIAL",
    "ENVOY_TOKEN",
    "ENVOY_TOKEN_FILE",
    "ENABLED",
    "POLL_INTERVAL_S",
    "REQUEST_TIMEOUT_S",
    "VERIFY_TLS",
    "ENDPOINTS",
    "OPTIONAL_ENDPOINTS",
    "CONCURRENT_FETCH",
    "STORE_PATH",
    "HEALTH_PATH",
    "SINK_URL",
    "SINK_TOKEN",
    "DATA_ID",
    "SOURCE_VENDOR",
    "SOURCE_MODEL",
    "BATTERY_STATUS_PRECEDENCE",
    "FLOW_STATUS_FALLBACK",
    "HOUSE_LOAD_FIX_ENABLED",
    "WEIGHTED_SOC_ENABLED",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_edge_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all edge env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_EDGE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for GatewaySettings.

    Returns the dict of env var names to values for assertion convenience.
    """
    env = {
        "ENVOY_HOST": "192.168.1.60",
        "ENVOY_SERIAL": "122233445566",
        "ENVOY_TOKEN": "test-gateway-token",
        "ENABLED": "true",
        "POLL_INTERVAL_S": "15",
        "REQUEST_TIMEOUT_S": "7.5",
        "VERIFY_TLS": "false",
        "ENDPOINTS": '["ivp/livedata/status", "ivp/meters/readings"]',
        "OPTIONAL_ENDPOINTS": "[]",
        "CONCURRENT_FETCH": "true",
        "STORE_PATH": "/tmp/test-envoy.db",
        "HEALTH_PATH": "/tmp/test-health.json",
        "SINK_URL": "https://bus.example.com/energy",
        "SINK_TOKEN": "sink-token",
        "DATA_ID": "{A1B2}",
        "BATTERY_STATUS_PRECEDENCE": "sleep",
        "FLOW_STATUS_FALLBACK": "false",
        "HOUSE_LOAD_FIX_ENABLED": "false",
        "WEIGHTED_SOC_ENABLED": "false",
        "LOG_LEVEL": "DEBUG",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the host and token (no optional ones).

    Optional variables should fall back to their defaults.
    """
    env = {
        "ENVOY_HOST": "envoy.local",
        "ENVOY_TOKEN": "token-xyz",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class MemoryAttributeStore:
    """Dict-backed attribute store."""

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(values or {})
        self.writes: list[tuple[str, str]] = []

    async def read_string(self, key: str, default: str = DEFAULT_VALUE) -> str:
        return self.values.get(key, default)

    async def write_string(self, key: str, value: str) -> None:
        self.values[key] = value
        self.writes.append((key, value))


class ScriptedTransport:
    """Replays queued responses per URL suffix and records every request.

    A queued item is a ``(status, body)`` tuple or an exception instance to
    raise.  The last item of a queue repeats once the queue is drained.
    """

    def __init__(self, script: Mapping[str, list[object]]) -> None:
        self._script = {endpoint: list(items) for endpoint, items in script.items()}
        self.requests: list[tuple[str, dict[str, str]]] = []

    async def request(
        self,
        url: str,
        method: str = "GET",
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        self.requests.append((url, dict(headers or {})))
        for endpoint, items in self._script.items():
            if url.endswith("/" + endpoint):
                item = items.pop(0) if len(items) > 1 else items[0]
                if isinstance(item, Exception):
                    raise item
                status, body = item
                return TransportResponse(status=status, body=body)
        raise TransportError("no route", url=url)

    def calls_to(self, endpoint: str) -> list[dict[str, str]]:
        """Headers of every request made to *endpoint*."""
        return [headers for url, headers in self.requests if url.endswith("/" + endpoint)]


@pytest.fixture()
def memory_store() -> MemoryAttributeStore:
    return MemoryAttributeStore()


@pytest.fixture()
def make_transport() -> type[ScriptedTransport]:
    return ScriptedTransport
