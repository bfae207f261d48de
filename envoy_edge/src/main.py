"""
Edge daemon main loop for the Envoy-to-energy-bus pipeline.

Runs one asyncio poll loop: every ``POLL_INTERVAL_S`` seconds it polls the
gateway endpoints, normalizes them into a CanonicalEnergyPayload, persists the
envelope to the attribute store and forwards it to the sink.

The loop is resilient: an exception in one cycle is logged and the cycle ends
without forwarding; the next tick is the retry.  Cycles never overlap.
Graceful shutdown on SIGTERM/SIGINT sets a shared asyncio.Event; the current
cycle finishes before resources are closed.

A configuration problem (missing host or token) is fatal at startup: the
health file gets ``status="error"`` and the daemon exits with code 2.

Structured JSON logging is used for all events.

CHANGELOG:
- 2026-10-05: Idle instead of polling when disabled or interval is 0
- 2026-10-03: Health file carries status and token expiry
- 2026-10-02: Initial creation (STORY-017)

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from envoy_edge.src.assembler import build_envelope, log_summary, publish
from envoy_edge.src.auth import FileTokenProvider, StaticTokenProvider
from envoy_edge.src.battery import StatusPrecedence
from envoy_edge.src.exceptions import ConfigurationError
from envoy_edge.src.health import HealthWriter
from envoy_edge.src.normalizer import NormalizeOptions, normalize

if TYPE_CHECKING:
    from envoy_edge.src.auth import TokenProvider
    from envoy_edge.src.config import GatewaySettings
    from envoy_edge.src.poller import GatewayPoller
    from envoy_edge.src.session import GatewaySession
    from envoy_edge.src.sink import EnergySink
    from envoy_edge.src.store import AttributeStore

logger = logging.getLogger(__name__)

EXIT_CONFIGURATION_ERROR = 2


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the edge daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.getLevelName(level.upper()) if level else logging.INFO)


def _masked_token(value: str | None) -> str:
    """Return a short non-reversible token fingerprint for diagnostics."""
    if not value:
        return "empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:10]
    return f"len={len(value)} sha256={digest}"


# ---------------------------------------------------------------------------
# Startup config logging and component wiring
# ---------------------------------------------------------------------------


def log_config_summary(settings: GatewaySettings) -> None:
    """Log a config summary at startup, excluding secrets.

    Tokens are logged only as a fingerprint.
    """
    logger.info(
        "Edge daemon starting with config: "
        "envoy_host=%s, envoy_serial=%s, enabled=%s, poll_interval_s=%s, "
        "request_timeout_s=%s, verify_tls=%s, endpoints=%s, "
        "optional_endpoints=%s, concurrent_fetch=%s, store_path=%s, "
        "health_path=%s, sink_url=%s, data_id=%s, "
        "battery_status_precedence=%s, flow_status_fallback=%s, "
        "house_load_fix_enabled=%s, weighted_soc_enabled=%s, "
        "envoy_token_masked=%s, envoy_token_file=%s, sink_token_masked=%s",
        settings.envoy_host,
        settings.envoy_serial,
        settings.enabled,
        settings.poll_interval_s,
        settings.request_timeout_s,
        settings.verify_tls,
        settings.endpoints,
        settings.optional_endpoints,
        settings.concurrent_fetch,
        settings.store_path,
        settings.health_path,
        settings.sink_url or None,
        settings.data_id,
        settings.battery_status_precedence,
        settings.flow_status_fallback,
        settings.house_load_fix_enabled,
        settings.weighted_soc_enabled,
        _masked_token(settings.envoy_token),
        settings.envoy_token_file or None,
        _masked_token(settings.sink_token),
    )


def build_token_provider(settings: GatewaySettings) -> TokenProvider:
    """Token file wins over an inline token when both are configured."""
    if settings.envoy_token_file:
        return FileTokenProvider(settings.envoy_token_file)
    return StaticTokenProvider(settings.envoy_token)


def build_options(settings: GatewaySettings) -> NormalizeOptions:
    """Map the firmware-variant settings onto normalizer options."""
    return NormalizeOptions(
        status_precedence=StatusPrecedence(settings.battery_status_precedence),
        flow_status_fallback=settings.flow_status_fallback,
        house_load_fix=settings.house_load_fix_enabled,
        weighted_soc=settings.weighted_soc_enabled,
        vendor=settings.source_vendor,
        model=settings.source_model,
    )


# ---------------------------------------------------------------------------
# Single-iteration function (easily testable)
# ---------------------------------------------------------------------------


async def _poll_once(
    *,
    poller: GatewayPoller,
    session: GatewaySession,
    store: AttributeStore,
    sink: EnergySink | None,
    options: NormalizeOptions,
    data_id: str,
    health: HealthWriter | None,
) -> bool:
    """Execute a single poll-normalize-publish cycle.

    Catches all exceptions so that the caller's loop is never broken.
    After each cycle the health writer records a poll timestamp, and a
    forward timestamp when the sink accepted the envelope.

    Returns:
        ``True`` if the envelope was forwarded.
    """
    forwarded = False
    try:
        raw = await poller.poll(session)
        energy = normalize(raw, ts=datetime.now(tz=UTC), options=options)
        envelope = build_envelope(data_id, raw, energy)
        forwarded = await publish(envelope, store=store, sink=sink)
        log_summary(energy)
    except Exception:
        logger.error("Poll cycle error", exc_info=True)

    if health is not None:
        try:
            health.set_token_expires(session.token_details.expires)
            health.record_poll()
            if forwarded:
                health.record_forward()
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)
    return forwarded


# ---------------------------------------------------------------------------
# Loop runner
# ---------------------------------------------------------------------------


async def _poll_loop(
    *,
    poller: GatewayPoller,
    session: GatewaySession,
    store: AttributeStore,
    sink: EnergySink | None,
    options: NormalizeOptions,
    data_id: str,
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None,
) -> None:
    """Run the poll loop until shutdown_event is set.

    Executes _poll_once, then sleeps for poll_interval_s, checking the
    shutdown event between iterations.
    """
    logger.info("Poll loop started (interval=%ss)", poll_interval_s)
    while not shutdown_event.is_set():
        await _poll_once(
            poller=poller,
            session=session,
            store=store,
            sink=sink,
            options=options,
            data_id=data_id,
            health=health,
        )
        # Use wait with timeout so we can check shutdown between sleeps
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=poll_interval_s,
            )
    logger.info("Poll loop stopped")


async def run(
    settings: GatewaySettings,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> int:
    """Build all components from *settings* and poll until shutdown.

    Returns:
        Process exit code: 0 on clean shutdown, 2 on configuration error.
    """
    from envoy_edge.src.poller import GatewayPoller
    from envoy_edge.src.session import open_session
    from envoy_edge.src.sink import HttpSink
    from envoy_edge.src.store import SqliteAttributeStore
    from envoy_edge.src.transport import HttpxTransport

    tokens = build_token_provider(settings)
    sink = HttpSink(settings.sink_url, settings.sink_token) if settings.sink_url else None

    try:
        async with (
            SqliteAttributeStore(settings.store_path) as store,
            HttpxTransport(
                timeout_s=settings.request_timeout_s,
                verify_tls=settings.verify_tls,
            ) as transport,
        ):
            try:
                session = await open_session(settings, tokens, store)
            except ConfigurationError as exc:
                logger.error("Configuration error, not polling: %s", exc)
                if health is not None:
                    health.set_status("error", str(exc))
                return EXIT_CONFIGURATION_ERROR

            if not settings.polling_enabled:
                logger.info("Polling disabled (enabled=%s, interval=%ss)",
                            settings.enabled, settings.poll_interval_s)
                if health is not None:
                    health.set_status("disabled")
                await shutdown_event.wait()
                return 0

            if health is not None:
                health.set_status("active")
            poller = GatewayPoller(
                transport=transport,
                tokens=tokens,
                store=store,
                endpoints=settings.endpoints,
                optional_endpoints=settings.optional_endpoints,
                concurrent=settings.concurrent_fetch,
            )
            await _poll_loop(
                poller=poller,
                session=session,
                store=store,
                sink=sink,
                options=build_options(settings),
                data_id=settings.data_id,
                poll_interval_s=settings.poll_interval_s,
                shutdown_event=shutdown_event,
                health=health,
            )
    finally:
        if sink is not None:
            await sink.aclose()
    logger.info("Shutdown complete")
    return 0


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> int:
    """Async entrypoint: load config, build components, run the loop.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    configure_logging()

    from envoy_edge.src.config import GatewaySettings

    settings = GatewaySettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    return await run(settings, shutdown_event, HealthWriter(settings.health_path))


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the edge daemon."""
    code = asyncio.run(async_main())
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
