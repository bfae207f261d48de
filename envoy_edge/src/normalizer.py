"""
Pure normalizer: decoded endpoint payloads -> CanonicalEnergyPayload.

Runs the field resolvers over the per-cycle ``raw`` mapping, applies the
house-load reconciliation, derives the battery status and builds the
``com.maxence.energy.v1`` payload.

This is a pure function: no side effects, no I/O, no clock.  The timestamp
is passed in by the caller.

CHANGELOG:
- 2026-10-05: Normalization options mirror the gateway settings toggles
- 2026-10-02: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from envoy_edge.src.assembler import assemble_payload
from envoy_edge.src.battery import (
    StatusPrecedence,
    derive_battery_status,
    status_from_flow,
)
from envoy_edge.src.models import (
    BatteryFlags,
    CanonicalEnergyPayload,
    EnergySource,
    NormalizedReadings,
)
from envoy_edge.src.reconcile import reconcile_readings
from envoy_edge.src.resolvers import (
    resolve_battery_flags,
    resolve_battery_flow,
    resolve_grid_power,
    resolve_house_load,
    resolve_pv_power,
    resolve_soc,
    resolve_total_consumption,
)


@dataclass(frozen=True, slots=True)
class NormalizeOptions:
    """Behaviour switches for firmware variants.

    Attributes:
        status_precedence: Sleep-flag vs LED-code precedence.
        flow_status_fallback: Use the battery flow sign when no LED or sleep
            status is available.
        house_load_fix: Run the house-load reconciler.
        weighted_soc: Capacity-weighted (vs simple mean) inventory SoC.
        vendor: ``source.vendor`` of the payload.
        model: ``source.model`` of the payload.
    """

    status_precedence: StatusPrecedence = StatusPrecedence.LED
    flow_status_fallback: bool = True
    house_load_fix: bool = True
    weighted_soc: bool = True
    vendor: str = "Enphase"
    model: str = "Envoy"


def resolve_readings(
    raw: Mapping[str, Any],
    *,
    weighted_soc: bool = True,
) -> NormalizedReadings:
    """Resolve every quantity from the decoded endpoint payloads."""
    total = resolve_total_consumption(raw)
    return NormalizedReadings(
        pv_power_w=resolve_pv_power(raw),
        house_power_w=resolve_house_load(raw, total),
        grid_power_w=resolve_grid_power(raw),
        total_consumption_w=total,
        battery_power_w=resolve_battery_flow(raw),
        soc_percent=resolve_soc(raw, weighted=weighted_soc),
    )


def battery_status(
    readings: NormalizedReadings,
    flags: BatteryFlags,
    options: NormalizeOptions,
) -> str | None:
    """Status label for the cycle, falling back to flow sign if enabled."""
    status = derive_battery_status(
        readings.soc_percent,
        flags.sleep_enabled,
        flags.led_status,
        options.status_precedence,
    )
    if status is None and options.flow_status_fallback:
        status = status_from_flow(readings.battery_power_w)
    return status


def normalize(
    raw: Mapping[str, Any],
    *,
    ts: datetime,
    options: NormalizeOptions | None = None,
) -> CanonicalEnergyPayload:
    """Convert decoded endpoint payloads into a canonical energy payload.

    Args:
        raw: Endpoint identifier -> decoded payload (``None`` when neither a
            fresh nor a cached payload is available).
        ts: Timestamp to embed in the payload.
        options: Firmware-variant switches; defaults when ``None``.

    Returns:
        The assembled :class:`CanonicalEnergyPayload`.  Quantities that no
        endpoint reports are ``None``.
    """
    options = options or NormalizeOptions()
    readings = resolve_readings(raw, weighted_soc=options.weighted_soc)
    if options.house_load_fix:
        readings = reconcile_readings(readings)
    flags = resolve_battery_flags(raw)
    return assemble_payload(
        readings,
        flags,
        battery_status(readings, flags, options),
        ts=ts,
        source=EnergySource(vendor=options.vendor, model=options.model),
    )
