"""
Human-readable number formatting for report messages.

The scale base is chosen by the caller: traffic in bits and packet
rates use 1000, byte counts use 1024.
"""

from __future__ import annotations

import enum
import math

SUFFIXES = ("", "k", "M", "G", "T", "P", "E", "Z", "Y")


class Unit(enum.Enum):
    BITS = "bps"
    BYTES = "B"
    PACKETS = "pps"
    PERCENT = "%"


DEFAULT_BASE = {
    Unit.BITS: 1000,
    Unit.BYTES: 1024,
    Unit.PACKETS: 1000,
    Unit.PERCENT: 1000,
}


def _ceil_div(value: float, base: int) -> int:
    return int(math.ceil(value / base))


def format_value(
    value: float,
    unit: Unit,
    human: bool = True,
    integer: bool = False,
    base: int | None = None,
) -> str:
    """
    Render `value` with its unit.

    With `human`, the value is scaled down by `base` until it fits and
    given a k/M/G/... prefix. `integer` forces a whole-number display
    (each scaling step rounds up); otherwise one decimal is shown.
    Percentages are never scaled.
    """
    if unit is Unit.PERCENT:
        if integer:
            return f"{int(math.ceil(value))}%"
        return f"{value:.1f}%"

    base = base or DEFAULT_BASE[unit]
    step = 0
    if human:
        if integer:
            scaled: float = int(math.ceil(value))
            while scaled >= base and step < len(SUFFIXES) - 1:
                scaled = _ceil_div(scaled, base)
                step += 1
        else:
            scaled = float(value)
            while scaled >= base and step < len(SUFFIXES) - 1:
                scaled /= base
                step += 1
    else:
        scaled = value

    if integer:
        number = str(int(math.ceil(scaled)))
    else:
        number = f"{scaled:.1f}"
    return f"{number}{SUFFIXES[step]}{unit.value}"
