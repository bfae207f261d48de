"""
Tolerant JSON decoder for gateway response bodies.

Some gateway firmwares pad responses with trailing NUL bytes, leak stray
ASCII control characters into string values, or emit invalid UTF-8.  The
decoder tries progressively more aggressive sanitizing passes and returns the
first candidate that parses to a non-null value.

Invalid UTF-8 is replaced with U+FFFD and integers outside the signed 64-bit
range are kept as strings so that serial numbers and counters survive a
round-trip through the cache unchanged.

CHANGELOG:
- 2026-10-19: Deeply nested bodies are undecodable instead of raising RecursionError
- 2026-10-02: Initial creation (STORY-003)

TODO:
- None
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from envoy_edge.src.exceptions import DecodeError

logger = logging.getLogger(__name__)

_TRIM_CHARS = " \t\n\r\x00\x0b"
_TRAILING_NULS = re.compile(r"\x00+$")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _parse_int(literal: str) -> int | str:
    value = int(literal)
    if _INT64_MIN <= value <= _INT64_MAX:
        return value
    return literal


def _candidates(trimmed: str) -> list[str]:
    """Return the decode attempts in order: as-is, NUL-stripped, control-stripped."""
    return [
        trimmed,
        _TRAILING_NULS.sub("", trimmed),
        _CONTROL_CHARS.sub("", trimmed),
    ]


def decode_or_raise(raw: str | bytes | None) -> Any:
    """Decode a raw response body, raising :class:`DecodeError` on failure.

    Args:
        raw: Response body as received from the transport.  ``bytes`` are
            decoded as UTF-8 with replacement of invalid sequences.

    Returns:
        The decoded JSON value (never ``None``).

    Raises:
        DecodeError: If the body is empty, the literal ``null``, or none of
            the sanitized candidates parses to a non-null value.
    """
    if raw is None:
        raise DecodeError("empty body")
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    trimmed = text.strip(_TRIM_CHARS)
    if trimmed in ("", "null"):
        raise DecodeError("empty body")

    last_error = "no candidate parsed"
    for candidate in _candidates(trimmed):
        if not candidate:
            continue
        try:
            decoded = json.loads(candidate, parse_int=_parse_int)
        except (json.JSONDecodeError, ValueError, RecursionError) as exc:
            last_error = str(exc)
            continue
        if decoded is not None:
            return decoded
    raise DecodeError(last_error)


def decode(raw: str | bytes | None) -> Any | None:
    """Decode a raw response body, returning ``None`` when it is unusable."""
    try:
        return decode_or_raise(raw)
    except DecodeError as exc:
        logger.debug("Response body not decodable: %s", exc)
        return None
