"""
Unit tests for the pure normalizer.

Tests verify:
- A full livedata + inventory + production cycle produces the expected
  canonical payload.
- The house-load fix and SoC weighting can be switched off.
- Battery status honours the configured precedence and flow fallback.
- An all-``None`` cycle still yields a schema-valid payload of nulls.
- The normalizer is pure: same input, same output.

CHANGELOG:
- 2026-10-05: Options mirror the settings toggles
- 2026-10-02: Initial creation (STORY-008)

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest
from envoy_edge.src.battery import StatusPrecedence
from envoy_edge.src.models import MESSAGE_TYPE, PROTOCOL
from envoy_edge.src.normalizer import NormalizeOptions, normalize, resolve_readings
from envoy_edge.src.resolvers import INVENTORY, LIVEDATA, PRODUCTION

_TS = datetime(2026, 10, 4, 12, 30, 0, tzinfo=UTC)


def _raw(
    *,
    load_mw: int = 3500000,
    sleep: bool = False,
    led: int | None = 12,
) -> dict[str, Any]:
    """A charging cycle: 3000 W PV + 500 W import, 800 W into the battery."""
    device: dict[str, Any] = {
        "percentFull": 50,
        "nominal_energy_wh": 10,
        "sleep_enabled": sleep,
    }
    if led is not None:
        device["led_status"] = led
    return {
        LIVEDATA: {
            "meters": {
                "pv": {"agg_p_mw": 3000000},
                "grid": {"agg_p_mw": 500000},
                "storage": {"agg_p_mw": -800000},
                "load": {"agg_p_mw": load_mw},
            }
        },
        INVENTORY: [
            {
                "type": "ENCHARGE",
                "devices": [device, {"percentFull": 90, "nominal_energy_wh": 30}],
            }
        ],
        PRODUCTION: {
            "production": [{"type": "inverters", "wNow": 2990}],
            "consumption": [{"measurementType": "total-consumption", "wNow": 3480}],
        },
    }


class TestNormalizeFullCycle:
    def test_canonical_payload(self) -> None:
        payload = normalize(_raw(), ts=_TS)

        assert payload.protocol == PROTOCOL
        assert payload.type == MESSAGE_TYPE
        assert payload.timestamp == "2026-10-04T12:30:00+00:00"
        assert payload.source.vendor == "Enphase"
        assert payload.data.pv.pv_power_w == pytest.approx(3000.0)
        assert payload.data.site.grid_power_w == pytest.approx(500.0)
        assert payload.data.site.total_consumption_w == pytest.approx(3480.0)
        # livedata load reported PV + grid while charging; corrected
        assert payload.data.site.house_power_w == pytest.approx(2700.0)
        assert payload.data.battery.battery_power_w == pytest.approx(-800.0)
        assert payload.data.battery.soc_percent == pytest.approx(80.0)
        assert payload.data.battery.sleep_enabled is False
        assert payload.data.battery.led_status == 12
        assert payload.data.battery.status == "charging"

    def test_house_load_fix_disabled(self) -> None:
        payload = normalize(_raw(), ts=_TS, options=NormalizeOptions(house_load_fix=False))
        assert payload.data.site.house_power_w == pytest.approx(3500.0)

    def test_simple_mean_soc(self) -> None:
        payload = normalize(_raw(), ts=_TS, options=NormalizeOptions(weighted_soc=False))
        assert payload.data.battery.soc_percent == pytest.approx(70.0)

    def test_source_from_options(self) -> None:
        options = NormalizeOptions(vendor="Enphase", model="IQ Gateway")
        assert normalize(_raw(), ts=_TS, options=options).source.model == "IQ Gateway"

    def test_pure(self) -> None:
        raw = _raw()
        assert normalize(raw, ts=_TS) == normalize(raw, ts=_TS)


class TestBatteryStatusOptions:
    def test_led_precedence_is_default(self) -> None:
        payload = normalize(_raw(sleep=True, led=12), ts=_TS)
        assert payload.data.battery.status == "charging"

    def test_sleep_precedence(self) -> None:
        options = NormalizeOptions(status_precedence=StatusPrecedence.SLEEP)
        payload = normalize(_raw(sleep=True, led=12), ts=_TS, options=options)
        assert payload.data.battery.status == "sleep mode"

    def test_flow_fallback_without_led(self) -> None:
        payload = normalize(_raw(led=None), ts=_TS)
        assert payload.data.battery.led_status is None
        assert payload.data.battery.status == "charging"

    def test_flow_fallback_disabled(self) -> None:
        options = NormalizeOptions(flow_status_fallback=False)
        payload = normalize(_raw(led=None), ts=_TS, options=options)
        assert payload.data.battery.status is None


class TestEmptyCycle:
    def test_all_endpoints_unavailable(self) -> None:
        raw = {LIVEDATA: None, INVENTORY: None, PRODUCTION: None}
        payload = normalize(raw, ts=_TS)

        dumped = payload.model_dump()
        assert dumped["data"]["pv"] == {"pv_power_w": None}
        assert all(value is None for value in dumped["data"]["site"].values())
        assert all(value is None for value in dumped["data"]["battery"].values())

    def test_resolve_readings_empty(self) -> None:
        readings = resolve_readings({})
        assert readings.pv_power_w is None
        assert readings.house_power_w is None
