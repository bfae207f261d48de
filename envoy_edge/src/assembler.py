"""
Payload assembly and hand-off to the store and the downstream sink.

``assemble_payload`` composes the ``com.maxence.energy.v1`` document from the
resolved readings; ``build_envelope`` wraps it with the raw endpoint data;
``publish`` persists the envelope as the ``pvdata`` attribute and forwards it
to the sink (fire-and-forget).

CHANGELOG:
- 2026-10-03: Persist the last envelope before forwarding
- 2026-10-02: Initial creation (STORY-009)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any

from envoy_edge.src.models import (
    BatteryData,
    BatteryFlags,
    CanonicalEnergyPayload,
    EnergyData,
    EnergySource,
    GatewayEnvelope,
    NormalizedReadings,
    PvData,
    SiteData,
)

if TYPE_CHECKING:
    from envoy_edge.src.sink import EnergySink
    from envoy_edge.src.store import AttributeStore

logger = logging.getLogger(__name__)

PVDATA_KEY = "pvdata"
"""Attribute key holding the last published envelope."""


def assemble_payload(
    readings: NormalizedReadings,
    flags: BatteryFlags,
    status: str | None,
    *,
    ts: datetime,
    source: EnergySource | None = None,
) -> CanonicalEnergyPayload:
    """Compose the canonical payload from one cycle's resolved values."""
    return CanonicalEnergyPayload(
        timestamp=ts.isoformat(timespec="seconds"),
        source=source or EnergySource(),
        data=EnergyData(
            pv=PvData(pv_power_w=readings.pv_power_w),
            site=SiteData(
                house_power_w=readings.house_power_w,
                grid_power_w=readings.grid_power_w,
                total_consumption_w=readings.total_consumption_w,
            ),
            battery=BatteryData(
                soc_percent=readings.soc_percent,
                battery_power_w=readings.battery_power_w,
                sleep_enabled=flags.sleep_enabled,
                led_status=flags.led_status,
                status=status,
            ),
        ),
    )


def build_envelope(
    data_id: str,
    raw: Mapping[str, Any],
    energy: CanonicalEnergyPayload,
) -> GatewayEnvelope:
    """Wrap *energy* with the raw per-endpoint payloads for the sink."""
    return GatewayEnvelope(data_id=data_id, data=dict(raw), energy=energy)


def _fmt(value: float | None) -> str:
    return "null" if value is None else f"{value:.2f}"


def log_summary(energy: CanonicalEnergyPayload) -> None:
    """Log one line with the headline values of a payload."""
    data = energy.data
    logger.info(
        "Energy payload: pv=%s W, house=%s W, grid=%s W, total=%s W, "
        "battery=%s W, soc=%s %%, status=%s",
        _fmt(data.pv.pv_power_w),
        _fmt(data.site.house_power_w),
        _fmt(data.site.grid_power_w),
        _fmt(data.site.total_consumption_w),
        _fmt(data.battery.battery_power_w),
        _fmt(data.battery.soc_percent),
        data.battery.status,
    )


async def publish(
    envelope: GatewayEnvelope,
    *,
    store: AttributeStore,
    sink: EnergySink | None,
) -> bool:
    """Persist the envelope and forward it downstream.

    Args:
        envelope: The cycle's envelope.
        store: Attribute store receiving the ``pvdata`` copy.
        sink: Downstream sink, or ``None`` to persist only.

    Returns:
        ``True`` if the sink accepted the message.
    """
    message = envelope.to_json()
    await store.write_string(PVDATA_KEY, message)
    if sink is None:
        return False
    return await sink.send(message)
