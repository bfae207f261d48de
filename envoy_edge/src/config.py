"""
Edge daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded IPs, URLs, or credentials.

CHANGELOG:
- 2026-10-19: Reject unknown LOG_LEVEL names
- 2026-10-05: Firmware-variant toggles (status precedence, SoC weighting, house-load fix)
- 2026-10-02: Initial creation (STORY-001)

TODO:
- None
"""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings

from envoy_edge.src.resolvers import INVENTORY, LIVEDATA, POWERFLOW, PRODUCTION

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class GatewaySettings(BaseSettings):
    """Edge daemon configuration for the Envoy pipeline.

    Attributes:
        envoy_host: Gateway base URL or hostname on the local LAN.
        envoy_serial: Gateway serial number (informational).
        envoy_token: Bearer token for the gateway API.
        envoy_token_file: File holding the bearer token, re-read on refresh.
        enabled: Master switch; ``False`` disables polling.
        poll_interval_s: Seconds between poll cycles; 0 disables polling.
        request_timeout_s: Timeout per gateway request.
        verify_tls: Verify the gateway's TLS certificate.
        endpoints: Ordered endpoint identifiers polled every cycle.
        optional_endpoints: Endpoints disabled for the session after a 404.
        concurrent_fetch: Fetch endpoints concurrently.
        store_path: SQLite attribute store file path.
        health_path: Health JSON file path.
        sink_url: Downstream HTTPS endpoint; empty to persist only.
        sink_token: Bearer token for the downstream endpoint.
        data_id: ``DataID`` of the forwarded envelope.
        source_vendor: ``source.vendor`` of the payload.
        source_model: ``source.model`` of the payload.
        battery_status_precedence: ``"led"`` or ``"sleep"``.
        flow_status_fallback: Derive battery status from flow sign when no
            LED or sleep status is available.
        house_load_fix_enabled: Run the house-load reconciler.
        weighted_soc_enabled: Capacity-weighted inventory SoC.
        log_level: Root log level.
    """

    envoy_host: str = ""
    envoy_serial: str = ""
    envoy_token: str = ""
    envoy_token_file: str = ""
    enabled: bool = True
    poll_interval_s: int = 5
    request_timeout_s: float = 10.0
    verify_tls: bool = False
    endpoints: list[str] = [LIVEDATA, INVENTORY, PRODUCTION]
    optional_endpoints: list[str] = [POWERFLOW]
    concurrent_fetch: bool = False
    store_path: str = "/data/envoy_edge.db"
    health_path: str = "/data/health.json"
    sink_url: str = ""
    sink_token: str = ""
    data_id: str = "envoy_edge"
    source_vendor: str = "Enphase"
    source_model: str = "Envoy"
    battery_status_precedence: Literal["led", "sleep"] = "led"
    flow_status_fallback: bool = True
    house_load_fix_enabled: bool = True
    weighted_soc_enabled: bool = True
    log_level: str = "INFO"

    @field_validator("envoy_host")
    @classmethod
    def envoy_host_as_base_url(cls, v: str) -> str:
        """Prefix ``https://`` when no scheme is given; strip trailing slashes."""
        v = v.strip()
        if v and not v.lower().startswith(("http://", "https://")):
            v = f"https://{v}"
        return v.rstrip("/")

    @field_validator("poll_interval_s")
    @classmethod
    def poll_interval_must_be_non_negative(cls, v: int) -> int:
        """Validate poll interval is non-negative (0 disables polling)."""
        if v < 0:
            raise ValueError("POLL_INTERVAL_S must be >= 0 (0 disables polling)")
        return v

    @field_validator("request_timeout_s")
    @classmethod
    def request_timeout_must_be_positive(cls, v: float) -> float:
        """Validate every request carries a bounded, positive timeout."""
        if v <= 0:
            raise ValueError("REQUEST_TIMEOUT_S must be > 0")
        return v

    @field_validator("endpoints")
    @classmethod
    def endpoints_must_not_be_empty(cls, v: list[str]) -> list[str]:
        """Validate at least one endpoint is polled; strip leading slashes."""
        cleaned = [endpoint.strip().lstrip("/") for endpoint in v if endpoint.strip()]
        if not cleaned:
            raise ValueError("ENDPOINTS must list at least one endpoint")
        return cleaned

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        """Validate the log level name; normalized to upper case."""
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)} (got: '{v}')")
        return level

    @field_validator("sink_url")
    @classmethod
    def sink_url_must_be_https(cls, v: str) -> str:
        """Validate that a configured sink URL uses HTTPS."""
        if v and not v.lower().startswith("https://"):
            raise ValueError(f"SINK_URL must use HTTPS (got: '{v[:20]}...').")
        return v

    @property
    def polling_enabled(self) -> bool:
        """Whether the poll loop should run at all."""
        return self.enabled and self.poll_interval_s > 0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
