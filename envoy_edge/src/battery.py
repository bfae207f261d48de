"""
Battery status derivation from LED code, sleep flag and state of charge.

The battery hardware exposes a small integer LED code.  Codes lag the real
state of charge, so two sanity overrides downgrade ``full`` below 100 % and
``empty`` above 5 % to ``idle``.

Firmware generations disagree on whether the sleep flag outranks the LED
code, so the precedence is a parameter (:class:`StatusPrecedence`).

CHANGELOG:
- 2026-10-04: Flow-sign status for installations without LED reporting
- 2026-10-03: Configurable sleep/LED precedence
- 2026-10-02: Initial creation (STORY-006)

TODO:
- None
"""

from __future__ import annotations

from enum import Enum

LED_STATUS: dict[int, str] = {
    12: "charging",
    13: "discharging",
    14: "full",
    15: "idle",
    16: "idle",
    17: "empty",
}
"""LED code -> canonical status label."""

SLEEP_STATUS = "sleep mode"
_FULL_SOC = 100.0
_EMPTY_SOC = 5.0


class StatusPrecedence(str, Enum):
    """Which signal wins when both the sleep flag and an LED code are set."""

    SLEEP = "sleep"
    LED = "led"


def status_from_led(led: int, soc: float | None) -> str:
    """Map an LED code to a status label, applying the SoC sanity overrides."""
    status = LED_STATUS.get(led, f"unknown({led})")
    if soc is not None:
        if status == "full" and soc < _FULL_SOC:
            status = "idle"
        elif status == "empty" and soc > _EMPTY_SOC:
            status = "idle"
    return status


def status_from_flow(battery_power_w: float | None) -> str | None:
    """Status from the sign of battery flow (negative = charging)."""
    if battery_power_w is None:
        return None
    if battery_power_w > 0:
        return "discharging"
    if battery_power_w < 0:
        return "charging"
    return "idle"


def derive_battery_status(
    soc: float | None,
    sleep: bool | None,
    led: int | None,
    precedence: StatusPrecedence = StatusPrecedence.SLEEP,
) -> str | None:
    """Derive the canonical battery status label.

    Args:
        soc: State of charge in percent, if known.
        sleep: Sleep flag from the inventory, if known.
        led: LED code from the inventory, if known.
        precedence: ``SLEEP`` reports ``"sleep mode"`` whenever sleep is
            enabled; ``LED`` lets an available LED code win and reports sleep
            only when no LED code is present.

    Returns:
        Status label, or ``None`` when neither an LED code nor an enabled
        sleep flag is available.
    """
    if sleep is True and (precedence is StatusPrecedence.SLEEP or led is None):
        return SLEEP_STATUS
    if led is None:
        return None
    return status_from_led(led, soc)
