"""
Data models for normalized gateway readings and the canonical energy payload.

``NormalizedReadings`` and ``BatteryFlags`` are internal per-cycle values.
``CanonicalEnergyPayload`` is the ``com.maxence.energy.v1`` document forwarded
downstream; its field names are a wire contract and must not change.
``GatewayEnvelope`` wraps the payload with the raw endpoint data for the sink.

CHANGELOG:
- 2026-10-03: Envelope serializes DataID by alias
- 2026-10-02: Initial creation (STORY-002)

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PROTOCOL = "com.maxence.energy.v1"
MESSAGE_TYPE = "energy.update"


# ---------------------------------------------------------------------------
# Internal per-cycle values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class NormalizedReadings:
    """Resolved quantities of one poll cycle, in watts (SoC in percent).

    Attributes:
        pv_power_w: PV production.
        house_power_w: House load.
        grid_power_w: Grid exchange, positive = import.
        total_consumption_w: Total site consumption.
        battery_power_w: Battery flow, negative = charging.
        soc_percent: Battery state of charge.
    """

    pv_power_w: float | None = None
    house_power_w: float | None = None
    grid_power_w: float | None = None
    total_consumption_w: float | None = None
    battery_power_w: float | None = None
    soc_percent: float | None = None


@dataclass(frozen=True, slots=True)
class BatteryFlags:
    """Battery hardware flags read from the inventory endpoint."""

    sleep_enabled: bool | None = None
    led_status: int | None = None


# ---------------------------------------------------------------------------
# Canonical payload (com.maxence.energy.v1)
# ---------------------------------------------------------------------------


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class EnergySource(_Frozen):
    vendor: str = "Enphase"
    model: str = "Envoy"


class PvData(_Frozen):
    pv_power_w: float | None = None


class SiteData(_Frozen):
    house_power_w: float | None = None
    grid_power_w: float | None = None
    total_consumption_w: float | None = None


class BatteryData(_Frozen):
    soc_percent: float | None = None
    battery_power_w: float | None = None
    sleep_enabled: bool | None = None
    led_status: int | None = None
    status: str | None = None


class EnergyData(_Frozen):
    pv: PvData = Field(default_factory=PvData)
    site: SiteData = Field(default_factory=SiteData)
    battery: BatteryData = Field(default_factory=BatteryData)


class CanonicalEnergyPayload(_Frozen):
    """One ``energy.update`` message in the vendor-neutral schema.

    ``timestamp`` is an ISO-8601 string with UTC offset, produced once by the
    assembler; all power values are watts, ``soc_percent`` is percent.
    """

    protocol: Literal["com.maxence.energy.v1"] = PROTOCOL
    type: Literal["energy.update"] = MESSAGE_TYPE
    timestamp: str
    source: EnergySource = Field(default_factory=EnergySource)
    data: EnergyData = Field(default_factory=EnergyData)


class GatewayEnvelope(_Frozen):
    """Message delivered to the downstream sink once per successful cycle.

    Attributes:
        data_id: Routing identifier, serialized as ``DataID``.
        data: Raw decoded payload (or ``None``) per polled endpoint.
        energy: The canonical energy payload.
    """

    data_id: str = Field(serialization_alias="DataID")
    data: dict[str, Any]
    energy: CanonicalEnergyPayload

    def to_json(self) -> str:
        """Serialize with the wire field names."""
        return self.model_dump_json(by_alias=True)
