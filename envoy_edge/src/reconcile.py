"""
House-load reconciliation for firmware that folds battery charging into load.

While the battery charges, some meter firmwares report the load channel as
total site draw (PV + grid) instead of house consumption.  The reconciler
recognizes that pattern by energy balance and subtracts the charging power.
It only corrects when the reported load is close to the total *and* not
already close to the expected house value.

CHANGELOG:
- 2026-10-04: Initial creation (STORY-007)

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import replace

from envoy_edge.src.models import NormalizedReadings

logger = logging.getLogger(__name__)

_MIN_TOLERANCE_W = 10.0
_RELATIVE_TOLERANCE = 0.05


def reconcile_house_load(
    pv_w: float | None,
    grid_w: float | None,
    battery_w: float | None,
    load_w: float | None,
) -> float | None:
    """Return the corrected house load, or *load_w* unchanged.

    Args:
        pv_w: PV production in watts.
        grid_w: Grid exchange in watts.
        battery_w: Battery flow in watts (negative = charging).
        load_w: Reported house load in watts.

    Returns:
        ``max(0, load_w + battery_w)`` when the reported load matches total
        site draw during charging; otherwise *load_w* as given.
    """
    if pv_w is None or grid_w is None or battery_w is None or load_w is None:
        return load_w
    if battery_w >= 0:
        return load_w

    total = pv_w + grid_w
    house = pv_w + grid_w + battery_w
    tolerance = max(
        _MIN_TOLERANCE_W,
        _RELATIVE_TOLERANCE * max(abs(load_w), abs(total), abs(house), 1.0),
    )
    looks_like_total = abs(load_w - total) <= tolerance and abs(load_w - house) > tolerance / 2
    if not looks_like_total:
        return load_w

    corrected = max(0.0, load_w - (-battery_w))
    logger.info(
        "Adjusted house load from %.1f W to %.1f W (battery charge %.1f W)",
        load_w,
        corrected,
        -battery_w,
    )
    return corrected


def reconcile_readings(readings: NormalizedReadings) -> NormalizedReadings:
    """Apply :func:`reconcile_house_load` to a readings snapshot."""
    corrected = reconcile_house_load(
        readings.pv_power_w,
        readings.grid_power_w,
        readings.battery_power_w,
        readings.house_power_w,
    )
    if corrected == readings.house_power_w:
        return readings
    return replace(readings, house_power_w=corrected)
