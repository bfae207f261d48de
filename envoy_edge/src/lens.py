"""
Unit-aware path extraction over decoded gateway payloads.

A :class:`PathCandidate` is a small lens: a sequence of keys (``str`` for
object members, ``int`` for array positions) plus the unit the terminal value
is reported in.  :func:`extract` walks an ordered tuple of candidates against
a tree and returns the first numeric hit converted to watts.  Candidate order
encodes priority between firmware variants, so tables of candidates are plain
data and never code branches.

The same module holds the table of known power field names used when a
single JSON object (a meter channel, a production entry) has to be reduced
to one power value.

CHANGELOG:
- 2026-10-03: Add agg_p_* variants to the power field table
- 2026-10-02: Initial creation (STORY-004)

TODO:
- None
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


class Unit(Enum):
    """Power unit of a source field, valued by its factor to watts."""

    MILLIWATT = 0.001
    WATT = 1.0
    KILOWATT = 1000.0

    def to_watts(self, value: float) -> float:
        """Convert *value* expressed in this unit to watts."""
        if self is Unit.MILLIWATT:
            return value / 1000.0
        if self is Unit.KILOWATT:
            return value * 1000.0
        return value


# ---------------------------------------------------------------------------
# Lens definition
# ---------------------------------------------------------------------------

PathSegment = str | int


@dataclass(frozen=True, slots=True)
class PathCandidate:
    """One candidate location of a quantity inside a payload tree.

    Attributes:
        path: Keys to follow from the root.  ``str`` segments index objects,
            ``int`` segments index arrays.
        unit: Unit of the terminal value.
    """

    path: tuple[PathSegment, ...]
    unit: Unit = Unit.WATT


_MISSING = object()


def as_number(value: Any) -> float | None:
    """Return *value* as a finite float if it is numeric, else ``None``.

    Booleans are not numeric.  Numeric strings (including big integers kept
    as strings by the decoder) are accepted.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def walk(root: Any, path: Sequence[PathSegment]) -> Any:
    """Follow *path* from *root*; return ``None`` if any segment is missing."""
    node: Any = root
    for segment in path:
        node = _step(node, segment)
        if node is _MISSING:
            return None
    return node


def _step(node: Any, segment: PathSegment) -> Any:
    if isinstance(node, Mapping):
        return node.get(segment, _MISSING)
    if isinstance(node, list) and isinstance(segment, int):
        if -len(node) <= segment < len(node):
            return node[segment]
    return _MISSING


def extract(root: Any, candidates: Sequence[PathCandidate]) -> float | None:
    """Return the first numeric value found among *candidates*, in watts.

    Args:
        root: Decoded payload tree (objects, arrays, scalars).
        candidates: Ordered candidates; the earliest match wins.

    Returns:
        The value converted to watts, or ``None`` if no candidate resolves
        to a numeric value.
    """
    for candidate in candidates:
        number = as_number(walk(root, candidate.path))
        if number is not None:
            return candidate.unit.to_watts(number)
    return None


# ---------------------------------------------------------------------------
# Power fields of a single JSON object
# ---------------------------------------------------------------------------

POWER_FIELDS: tuple[tuple[str, Unit], ...] = (
    ("activePower", Unit.WATT),
    ("averagePower", Unit.WATT),
    ("wNow", Unit.WATT),
    ("power", Unit.WATT),
    ("realPower", Unit.WATT),
    ("real_power", Unit.WATT),
    ("pNow", Unit.WATT),
    ("p_now", Unit.WATT),
    ("p", Unit.WATT),
    ("p_w", Unit.WATT),
    ("p_kw", Unit.KILOWATT),
    ("p_mw", Unit.MILLIWATT),
    ("agg_p", Unit.WATT),
    ("agg_p_w", Unit.WATT),
    ("agg_p_kw", Unit.KILOWATT),
    ("agg_p_mw", Unit.MILLIWATT),
    ("instantaneousDemand", Unit.WATT),
)
"""Known power field names in priority order, with their units."""


def power_from_fields(source: Any) -> float | None:
    """Reduce one JSON object to a power value using :data:`POWER_FIELDS`."""
    if not isinstance(source, dict):
        return None
    return extract(source, [PathCandidate((name,), unit) for name, unit in POWER_FIELDS])
