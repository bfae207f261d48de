"""
Unit tests for the semantic field resolvers.

Tests verify:
- PV / grid / house / battery resolve from livedata milliwatt meters first.
- Powerflow and legacy fields are used when livedata is absent.
- The production endpoint supplies PV and total consumption by measurement
  type, then position, then first numeric entry.
- House load comes from tagged meter channels, never net-consumption, and
  falls back to total consumption.
- Battery flow falls back to tagged channels and a keyword search.
- SoC: livedata field first, then capacity-weighted (or simple) inventory
  average.
- Battery flags come from the first device of the first inventory entry.
- Sleep flags given as 0/1 or boolean words parse explicitly; anything
  else is unknown.

CHANGELOG:
- 2026-10-19: Explicit sleep flag values
- 2026-10-05: Simple-mean SoC mode
- 2026-10-02: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

from typing import Any

import pytest
from envoy_edge.src.models import BatteryFlags
from envoy_edge.src.resolvers import (
    INVENTORY,
    LIVEDATA,
    METER_READINGS,
    POWERFLOW,
    PRODUCTION,
    channel_label,
    production_value,
    resolve_battery_flags,
    resolve_battery_flow,
    resolve_grid_power,
    resolve_house_load,
    resolve_pv_power,
    resolve_soc,
    resolve_total_consumption,
    soc_from_inventory,
)

# ---------------------------------------------------------------------------
# Fixtures: representative firmware payloads
# ---------------------------------------------------------------------------

_LIVEDATA: dict[str, Any] = {
    "connection": {"mqtt_state": "connected"},
    "meters": {
        "last_update": 1760000000,
        "soc": 64,
        "pv": {"agg_p_mw": 3250000, "agg_s_mva": 3300000},
        "storage": {"agg_p_mw": -800000},
        "grid": {"agg_p_mw": 500000},
        "load": {"agg_p_mw": 2950000},
    },
}

_PRODUCTION: dict[str, Any] = {
    "production": [
        {"type": "inverters", "activeCount": 20, "wNow": 3100},
        {"type": "eim", "measurementType": "production", "wNow": 3180.4},
    ],
    "consumption": [
        {"type": "eim", "measurementType": "total-consumption", "wNow": 2890.2},
        {"type": "eim", "measurementType": "net-consumption", "wNow": -290.2},
    ],
}

_INVENTORY: list[dict[str, Any]] = [
    {
        "type": "ENCHARGE",
        "devices": [
            {"serial_num": "A1", "percentFull": 50, "nominal_energy_wh": 10, "led_status": 13,
             "sleep_enabled": False},
            {"serial_num": "A2", "percentFull": 90, "nominal_energy_wh": 30, "led_status": 13,
             "sleep_enabled": False},
        ],
    }
]


# ---------------------------------------------------------------------------
# PV and grid
# ---------------------------------------------------------------------------


class TestPvPower:
    def test_livedata_milliwatts(self) -> None:
        raw = {LIVEDATA: _LIVEDATA, PRODUCTION: _PRODUCTION}
        assert resolve_pv_power(raw) == pytest.approx(3250.0)

    def test_powerflow_kilowatts(self) -> None:
        raw = {POWERFLOW: {"pv": {"p_kw": 2.4}}}
        assert resolve_pv_power(raw) == pytest.approx(2400.0)

    def test_production_measurement_type_beats_position(self) -> None:
        raw = {LIVEDATA: None, PRODUCTION: _PRODUCTION}
        assert resolve_pv_power(raw) == pytest.approx(3180.4)

    def test_production_position_fallback(self) -> None:
        raw = {PRODUCTION: {"production": [{"type": "inverters", "wNow": 3100}]}}
        assert resolve_pv_power(raw) == pytest.approx(3100.0)

    def test_nothing_reported(self) -> None:
        assert resolve_pv_power({LIVEDATA: None, PRODUCTION: None}) is None


class TestGridPower:
    def test_livedata(self) -> None:
        assert resolve_grid_power({LIVEDATA: _LIVEDATA}) == pytest.approx(500.0)

    def test_net_consumption_from_production(self) -> None:
        assert resolve_grid_power({PRODUCTION: _PRODUCTION}) == pytest.approx(-290.2)

    def test_no_positional_guess_for_grid(self) -> None:
        raw = {PRODUCTION: {"consumption": [{"measurementType": "total-consumption", "wNow": 1}]}}
        assert resolve_grid_power(raw) is None


class TestTotalConsumption:
    def test_by_measurement_type(self) -> None:
        assert resolve_total_consumption({PRODUCTION: _PRODUCTION}) == pytest.approx(2890.2)

    def test_ignores_livedata(self) -> None:
        assert resolve_total_consumption({LIVEDATA: _LIVEDATA}) is None


class TestProductionValue:
    def test_type_match_is_case_insensitive(self) -> None:
        production = {"production": [{"measurementType": "Production", "wNow": 5}]}
        assert production_value(production, "production", ("production",)) == 5.0

    def test_first_numeric_entry(self) -> None:
        production = {"production": [{"type": "x"}, {"type": "y", "activePower": 9}]}
        assert production_value(production, "production", (), 0) == 9.0

    def test_first_numeric_disabled(self) -> None:
        production = {"production": [{"type": "x"}, {"type": "y", "activePower": 9}]}
        assert production_value(production, "production", (), 0, any_numeric=False) is None

    @pytest.mark.parametrize("production", [None, [], {"production": {}}, {"other": []}])
    def test_shape_mismatch(self, production: Any) -> None:
        assert production_value(production, "production", ("production",), 0) is None


# ---------------------------------------------------------------------------
# House load
# ---------------------------------------------------------------------------


class TestHouseLoad:
    def test_livedata_load_meter(self) -> None:
        assert resolve_house_load({LIVEDATA: _LIVEDATA}, 1.0) == pytest.approx(2950.0)

    def test_legacy_flat_field(self) -> None:
        assert resolve_house_load({LIVEDATA: {"load_kw": 1.5}}) == pytest.approx(1500.0)

    def test_meter_readings_channel(self) -> None:
        readings = [
            {"measurementType": "production", "activePower": 3000},
            {"measurementType": "net-consumption", "activePower": 400},
            {"measurementType": "total-consumption", "activePower": 2600},
        ]
        assert resolve_house_load({METER_READINGS: readings}) == pytest.approx(2600.0)

    def test_net_consumption_never_counts_as_load(self) -> None:
        readings = [{"measurementType": "net-consumption", "activePower": 400}]
        assert resolve_house_load({METER_READINGS: readings}) is None

    def test_total_consumption_fallback(self) -> None:
        assert resolve_house_load({LIVEDATA: {"meters": {}}}, 2890.2) == pytest.approx(2890.2)

    def test_channel_label(self) -> None:
        assert channel_label({"name": "House Load"}) == "house load"
        assert channel_label({"type": "", "name": "Storage"}) == "storage"
        assert channel_label("storage") == ""


# ---------------------------------------------------------------------------
# Battery flow
# ---------------------------------------------------------------------------


class TestBatteryFlow:
    def test_livedata_storage_meter(self) -> None:
        assert resolve_battery_flow({LIVEDATA: _LIVEDATA}) == pytest.approx(-800.0)

    def test_powerflow_milliwatts(self) -> None:
        raw = {POWERFLOW: {"storage": {"p_mw": 1200000}}}
        assert resolve_battery_flow(raw) == pytest.approx(1200.0)

    def test_storage_channel(self) -> None:
        readings = [
            {"measurementType": "production", "activePower": 3000},
            {"measurementType": "storage", "activePower": -450},
        ]
        assert resolve_battery_flow({METER_READINGS: readings}) == pytest.approx(-450.0)

    def test_keyword_search(self) -> None:
        raw = {"custom/endpoint": {"sites": [{"devices": [{"name": "Encharge 3", "wNow": 310}]}]}}
        assert resolve_battery_flow(raw) == pytest.approx(310.0)

    def test_absent(self) -> None:
        assert resolve_battery_flow({LIVEDATA: {"meters": {"pv": {"agg_p_mw": 1}}}}) is None


# ---------------------------------------------------------------------------
# SoC and flags
# ---------------------------------------------------------------------------


class TestSoc:
    def test_livedata_soc_wins(self) -> None:
        raw = {LIVEDATA: _LIVEDATA, INVENTORY: _INVENTORY}
        assert resolve_soc(raw) == 64.0

    def test_enc_agg_soc(self) -> None:
        raw = {LIVEDATA: {"meters": {"enc_agg_soc": 71}}}
        assert resolve_soc(raw) == 71.0

    def test_weighted_average(self) -> None:
        assert soc_from_inventory(_INVENTORY) == pytest.approx(80.0)

    def test_simple_mean(self) -> None:
        assert soc_from_inventory(_INVENTORY, weighted=False) == pytest.approx(70.0)

    def test_missing_capacity_counts_as_one(self) -> None:
        inventory = [{"devices": [{"percentFull": 40}, {"percentFull": 60}]}]
        assert soc_from_inventory(inventory) == pytest.approx(50.0)

    def test_all_groups_are_averaged(self) -> None:
        inventory = [
            {"type": "ENCHARGE", "devices": [{"percentFull": 20, "nominal_energy_wh": 1000}]},
            {"type": "ENPOWER", "devices": [{"mains_admin_state": "closed"}]},
            {"type": "ENCHARGE", "devices": [{"percentFull": 80, "nominal_energy_wh": 3000}]},
        ]
        assert soc_from_inventory(inventory) == pytest.approx(65.0)

    @pytest.mark.parametrize("inventory", [None, {}, [], [{"devices": []}], [{"type": "x"}]])
    def test_no_packs(self, inventory: Any) -> None:
        assert soc_from_inventory(inventory) is None

    def test_resolve_from_inventory(self) -> None:
        assert resolve_soc({INVENTORY: _INVENTORY}, weighted=True) == pytest.approx(80.0)


class TestBatteryFlags:
    def test_first_device(self) -> None:
        raw = {INVENTORY: [{"devices": [{"sleep_enabled": True, "led_status": 17}]}]}
        assert resolve_battery_flags(raw) == BatteryFlags(sleep_enabled=True, led_status=17)

    def test_numeric_string_led(self) -> None:
        raw = {INVENTORY: [{"devices": [{"led_status": "14"}]}]}
        assert resolve_battery_flags(raw) == BatteryFlags(sleep_enabled=None, led_status=14)

    def test_no_inventory(self) -> None:
        assert resolve_battery_flags({INVENTORY: None}) == BatteryFlags()

    @pytest.mark.parametrize(
        ("sleep", "expected"),
        [
            (True, True),
            (False, False),
            (1, True),
            (0, False),
            ("1", True),
            ("0", False),
            ("true", True),
            ("False", False),
            (" off ", False),
            ("maybe", None),
            ([], None),
        ],
    )
    def test_sleep_flag_values(self, sleep: Any, expected: bool | None) -> None:
        raw = {INVENTORY: [{"devices": [{"sleep_enabled": sleep}]}]}
        assert resolve_battery_flags(raw).sleep_enabled is expected
