"""
Semantic field resolvers: one logical quantity from many firmware shapes.

Every resolver receives the per-cycle ``raw`` mapping (endpoint identifier ->
decoded payload or ``None``) and tries, in a fixed priority order, the known
locations of its quantity across endpoint shapes:

- aggregate meters on ``ivp/livedata/status`` (``meters.<channel>.agg_p_*``,
  milliwatts on current firmware),
- aggregate channels on ``ivp/production/powerflow``,
- per-channel meter lists tagged by ``measurementType`` / ``type`` / ``name``
  (``ivp/meters/readings``, livedata channel lists, ``production`` sections),
- legacy flat fields.

Path tables are :class:`~envoy_edge.src.lens.PathCandidate` tuples whose first
segment is the endpoint identifier, so one :func:`~envoy_edge.src.lens.extract`
call spans all endpoints.  Sign convention for battery flow: negative means
charging, positive means discharging.

CHANGELOG:
- 2026-10-19: Explicit sleep flag parsing for numeric and word values
- 2026-10-05: Simple-mean SoC mode for single-pack installations
- 2026-10-04: Exclude net-consumption channels from house load matching
- 2026-10-02: Initial creation (STORY-005)

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from envoy_edge.src.lens import (
    PathCandidate,
    PathSegment,
    Unit,
    as_number,
    extract,
    power_from_fields,
    walk,
)
from envoy_edge.src.models import BatteryFlags

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Endpoint identifiers
# ---------------------------------------------------------------------------

LIVEDATA = "ivp/livedata/status"
INVENTORY = "ivp/ensemble/inventory"
PRODUCTION = "production"
METER_READINGS = "ivp/meters/readings"
POWERFLOW = "ivp/production/powerflow"


# ---------------------------------------------------------------------------
# Path tables
# ---------------------------------------------------------------------------

PV_POWER_PATHS: tuple[PathCandidate, ...] = (
    PathCandidate((LIVEDATA, "meters", "pv", "agg_p_mw"), Unit.MILLIWATT),
    PathCandidate((LIVEDATA, "meters", "pv", "agg_p_w"), Unit.WATT),
    PathCandidate((LIVEDATA, "meters", "pv", "agg_p_kw"), Unit.KILOWATT),
    PathCandidate((POWERFLOW, "pv", "p_w"), Unit.WATT),
    PathCandidate((POWERFLOW, "pv", "p_kw"), Unit.KILOWATT),
)

GRID_POWER_PATHS: tuple[PathCandidate, ...] = (
    PathCandidate((LIVEDATA, "meters", "grid", "agg_p_mw"), Unit.MILLIWATT),
    PathCandidate((LIVEDATA, "meters", "grid", "agg_p_w"), Unit.WATT),
    PathCandidate((LIVEDATA, "meters", "grid", "agg_p_kw"), Unit.KILOWATT),
    PathCandidate((POWERFLOW, "grid", "p_w"), Unit.WATT),
    PathCandidate((POWERFLOW, "grid", "p_kw"), Unit.KILOWATT),
)

HOUSE_LOAD_PATHS: tuple[PathCandidate, ...] = (
    PathCandidate((LIVEDATA, "meters", "load", "agg_p_mw"), Unit.MILLIWATT),
    PathCandidate((LIVEDATA, "meters", "load", "agg_p_w"), Unit.WATT),
    PathCandidate((LIVEDATA, "meters", "load", "agg_p_kw"), Unit.KILOWATT),
    PathCandidate((POWERFLOW, "load", "p_w"), Unit.WATT),
    PathCandidate((POWERFLOW, "load", "p_kw"), Unit.KILOWATT),
    PathCandidate((POWERFLOW, "load", "p_mw"), Unit.MILLIWATT),
    # legacy firmware: unit-less aggregate and flat load fields
    PathCandidate((LIVEDATA, "meters", "load", "agg_p"), Unit.WATT),
    PathCandidate((LIVEDATA, "load_w"), Unit.WATT),
    PathCandidate((LIVEDATA, "load_kw"), Unit.KILOWATT),
)

BATTERY_FLOW_PATHS: tuple[PathCandidate, ...] = (
    PathCandidate((LIVEDATA, "meters", "storage", "agg_p_mw"), Unit.MILLIWATT),
    PathCandidate((LIVEDATA, "meters", "storage", "agg_p_w"), Unit.WATT),
    PathCandidate((LIVEDATA, "meters", "storage", "agg_p_kw"), Unit.KILOWATT),
    PathCandidate((POWERFLOW, "storage", "p_w"), Unit.WATT),
    PathCandidate((POWERFLOW, "storage", "p_kw"), Unit.KILOWATT),
    PathCandidate((POWERFLOW, "storage", "p_mw"), Unit.MILLIWATT),
    PathCandidate((LIVEDATA, "meters", "storage", "agg_p"), Unit.WATT),
    PathCandidate((LIVEDATA, "storage_w"), Unit.WATT),
)

SOC_PATHS: tuple[tuple[PathSegment, ...], ...] = (
    (LIVEDATA, "meters", "soc"),
    (LIVEDATA, "meters", "enc_agg_soc"),
)


# ---------------------------------------------------------------------------
# Per-channel meter lists
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChannelRule:
    """Match a tagged channel inside a list of meter channel objects.

    Attributes:
        path: Location of the channel list (first segment is the endpoint).
        match: Substrings of the channel label, in priority order.
        exclude: Substrings that disqualify a channel even if it matches.
    """

    path: tuple[PathSegment, ...]
    match: tuple[str, ...]
    exclude: tuple[str, ...] = ()


_HOUSE_MATCH = ("total-consumption", "consumption", "load", "house")
_NET = ("net-consumption",)

HOUSE_LOAD_CHANNELS: tuple[ChannelRule, ...] = (
    ChannelRule((METER_READINGS,), _HOUSE_MATCH, _NET),
    ChannelRule((LIVEDATA, "meters", "channels"), _HOUSE_MATCH, _NET),
    ChannelRule((POWERFLOW, "channels"), _HOUSE_MATCH, _NET),
)

BATTERY_FLOW_CHANNELS: tuple[ChannelRule, ...] = (
    ChannelRule((METER_READINGS,), ("storage",)),
    ChannelRule((LIVEDATA, "meters", "channels"), ("storage",)),
    ChannelRule((POWERFLOW, "channels"), ("storage",)),
)

BATTERY_KEYWORDS: tuple[str, ...] = ("storage", "battery", "encharge")

_LABEL_FIELDS = ("measurementType", "type", "name")
_KEYWORD_SEARCH_DEPTH = 6


def channel_label(entry: Any) -> str:
    """Return the lower-cased type label of a channel object, or ``""``."""
    if not isinstance(entry, dict):
        return ""
    for field_name in _LABEL_FIELDS:
        value = entry.get(field_name)
        if isinstance(value, str) and value:
            return value.lower()
    return ""


def _match_channels(entries: Any, rule: ChannelRule) -> float | None:
    if not isinstance(entries, list):
        return None
    for keyword in rule.match:
        for entry in entries:
            label = channel_label(entry)
            if keyword not in label:
                continue
            if any(excluded in label for excluded in rule.exclude):
                continue
            value = power_from_fields(entry)
            if value is not None:
                return value
    return None


def _from_channels(raw: Mapping[str, Any], rules: Sequence[ChannelRule]) -> float | None:
    for rule in rules:
        value = _match_channels(walk(raw, rule.path), rule)
        if value is not None:
            return value
    return None


def _keyword_search(node: Any, keywords: Sequence[str], depth: int = 0) -> float | None:
    """Depth-first search for a tagged object whose label contains a keyword."""
    if depth > _KEYWORD_SEARCH_DEPTH:
        return None
    if isinstance(node, dict):
        label = channel_label(node)
        if label and any(keyword in label for keyword in keywords):
            value = power_from_fields(node)
            if value is not None:
                return value
        children = list(node.values())
    elif isinstance(node, list):
        children = node
    else:
        return None
    for child in children:
        value = _keyword_search(child, keywords, depth + 1)
        if value is not None:
            return value
    return None


# ---------------------------------------------------------------------------
# Production endpoint sections
# ---------------------------------------------------------------------------


def production_value(
    production: Any,
    section: str,
    preferred_types: Sequence[str] = (),
    fallback_index: int | None = None,
    *,
    any_numeric: bool = True,
) -> float | None:
    """Extract one power value from a section of the ``production`` payload.

    Entries whose ``measurementType`` (or ``type``) equals one of
    *preferred_types* win, in the order given.  Then the entry at
    *fallback_index* is tried, then (if *any_numeric*) the first entry with
    any usable power field.

    Args:
        production: Decoded ``production`` payload.
        section: ``"production"`` or ``"consumption"``.
        preferred_types: Measurement types in priority order.
        fallback_index: Positional fallback inside the section.
        any_numeric: Whether to fall back to the first numeric entry.

    Returns:
        Power in watts, or ``None``.
    """
    if not isinstance(production, dict):
        return None
    entries = production.get(section)
    if not isinstance(entries, list):
        return None
    tagged = [entry for entry in entries if isinstance(entry, dict)]

    for target in preferred_types:
        target = target.lower()
        for entry in tagged:
            entry_type = entry.get("measurementType", entry.get("type", ""))
            if str(entry_type).lower() == target:
                value = power_from_fields(entry)
                if value is not None:
                    return value

    if fallback_index is not None and 0 <= fallback_index < len(entries):
        value = power_from_fields(entries[fallback_index])
        if value is not None:
            return value

    if any_numeric:
        for entry in tagged:
            value = power_from_fields(entry)
            if value is not None:
                return value
    return None


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def resolve_pv_power(raw: Mapping[str, Any]) -> float | None:
    """PV production in watts: livedata/powerflow meters, then ``production``."""
    value = extract(raw, PV_POWER_PATHS)
    if value is not None:
        return value
    return production_value(
        raw.get(PRODUCTION),
        "production",
        ("production", "current-production"),
        0,
    )


def resolve_total_consumption(raw: Mapping[str, Any]) -> float | None:
    """Total site consumption in watts, from the ``production`` payload only."""
    return production_value(
        raw.get(PRODUCTION),
        "consumption",
        ("total-consumption", "consumption"),
        0,
    )


def resolve_grid_power(raw: Mapping[str, Any]) -> float | None:
    """Grid exchange in watts (positive = import)."""
    value = extract(raw, GRID_POWER_PATHS)
    if value is not None:
        return value
    return production_value(
        raw.get(PRODUCTION),
        "consumption",
        ("net-consumption", "grid"),
        any_numeric=False,
    )


def resolve_house_load(
    raw: Mapping[str, Any],
    total_consumption_w: float | None = None,
) -> float | None:
    """House load in watts; falls back to *total_consumption_w*."""
    value = extract(raw, HOUSE_LOAD_PATHS)
    if value is None:
        value = _from_channels(raw, HOUSE_LOAD_CHANNELS)
    if value is None and total_consumption_w is not None:
        logger.debug("House load not reported; using total consumption")
        value = total_consumption_w
    return value


def resolve_battery_flow(raw: Mapping[str, Any]) -> float | None:
    """Battery flow in watts (negative = charging, positive = discharging)."""
    value = extract(raw, BATTERY_FLOW_PATHS)
    if value is None:
        value = _from_channels(raw, BATTERY_FLOW_CHANNELS)
    if value is None:
        value = _keyword_search(dict(raw), BATTERY_KEYWORDS)
    return value


def soc_from_inventory(inventory: Any, *, weighted: bool = True) -> float | None:
    """State of charge averaged over every battery pack in the inventory.

    With *weighted*, each pack's ``percentFull`` is weighted by its
    ``nominal_energy_wh`` (1 when missing, so packs without a capacity count
    equally).  Otherwise the simple mean is returned.
    """
    if not isinstance(inventory, list):
        return None
    numerator = 0.0
    denominator = 0.0
    for group in inventory:
        devices = group.get("devices") if isinstance(group, dict) else None
        if not isinstance(devices, list):
            continue
        for device in devices:
            if not isinstance(device, dict):
                continue
            soc = as_number(device.get("percentFull"))
            if soc is None:
                continue
            capacity = as_number(device.get("nominal_energy_wh")) if weighted else None
            if capacity is None:
                capacity = 1.0
            numerator += soc * capacity
            denominator += capacity
    if denominator <= 0:
        return None
    return numerator / denominator


def resolve_soc(raw: Mapping[str, Any], *, weighted: bool = True) -> float | None:
    """State of charge in percent: livedata field, else inventory average."""
    for path in SOC_PATHS:
        soc = as_number(walk(raw, path))
        if soc is not None:
            return soc
    return soc_from_inventory(raw.get(INVENTORY), weighted=weighted)


_TRUE_WORDS = ("true", "yes", "on")
_FALSE_WORDS = ("false", "no", "off")


def _as_flag(value: Any) -> bool | None:
    """Interpret a firmware boolean (bool, 0/1 or a boolean word), else None."""
    if isinstance(value, bool):
        return value
    number = as_number(value)
    if number is not None:
        return number != 0
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def resolve_battery_flags(raw: Mapping[str, Any]) -> BatteryFlags:
    """Sleep and LED flags from the first device of the first inventory entry."""
    device = walk(raw, (INVENTORY, 0, "devices", 0))
    if not isinstance(device, dict):
        return BatteryFlags()
    sleep = device.get("sleep_enabled")
    led = as_number(device.get("led_status"))
    return BatteryFlags(
        sleep_enabled=_as_flag(sleep),
        led_status=int(led) if led is not None else None,
    )
