"""
Counter delta engine.

Turns two raw samples of the same interface into per-second rates.

Rules, in order:

1. If the discontinuity marker changed (or newly appeared) since the
   previous sample, the interval spans a counter reset: no rate.
2. Use the 64-bit (HC) counter when both samples have it; a negative
   difference is treated as one wrap of 2^64.
3. Otherwise use the 32-bit counter; a negative difference is one
   wrap of 2^32.
4. Otherwise the counter was unreadable or missing: no rate.

Conditions are returned as Diagnostic records next to the value. They
are never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ifstat.schemas import Missing, Sample, Unreadable

logger = logging.getLogger(__name__)

NARROW_MODULUS = 2 ** 32
WIDE_MODULUS = 2 ** 64

# ifSpeed is a Gauge32; this value means "faster than I can tell you"
SPEED_SATURATED = NARROW_MODULUS - 1

DISCONTINUITY_KEY = "discontinuity"

MISSING_COUNTER = "missing"
UNREADABLE_COUNTER = "unreadable"
COUNTER_RESET = "reset"
AMBIGUOUS_SPEED = "speed"


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal per-counter condition."""

    index: int
    kind: str
    metric: str
    detail: str = ""

    def __str__(self) -> str:
        text = f"ifIndex {self.index} {self.metric}: {self.kind}"
        return f"{text} ({self.detail})" if self.detail else text


@dataclass
class DeltaResult:
    value: Optional[float] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)


def counter_delta(now: int, prev: int, modulus: int) -> int:
    """Difference between two readings, assuming at most one wrap."""
    delta = now - prev
    if delta < 0:
        delta += modulus
    return delta


def _both(current: Sample, previous: Sample, key: Optional[str]) -> Optional[Tuple[int, int]]:
    if key is None:
        return None
    now = current.counter(key)
    prev = previous.counter(key)
    if now is None or prev is None:
        return None
    return now, prev


def _unreadable(sample: Sample, key: Optional[str]) -> bool:
    if key is None:
        return False
    value = sample.get(key)
    if isinstance(value, Missing):
        return False
    return isinstance(value, (Unreadable, str)) or (isinstance(value, int) and value < 0)


def counters_reset(current: Sample, previous: Sample, key: str = DISCONTINUITY_KEY) -> bool:
    """True if the discontinuity marker changed between the two samples."""
    now = current.get(key)
    if isinstance(now, Missing):
        return False
    return now != previous.get(key)


def compute_rate(
    current: Sample,
    previous: Sample,
    elapsed: float,
    narrow_key: Optional[str],
    wide_key: Optional[str] = None,
    metric: Optional[str] = None,
    discontinuity_key: str = DISCONTINUITY_KEY,
) -> DeltaResult:
    """
    Rate per second of one logical counter between two samples.

    `metric` names the counter in diagnostics; it defaults to the key
    that would have been used.
    """
    metric = metric or wide_key or narrow_key or "counter"
    result = DeltaResult()

    if elapsed <= 0:
        return result

    if counters_reset(current, previous, discontinuity_key):
        result.diagnostics.append(
            Diagnostic(current.index, COUNTER_RESET, metric, "discontinuity marker changed")
        )
        return result

    for key, modulus in ((wide_key, WIDE_MODULUS), (narrow_key, NARROW_MODULUS)):
        pair = _both(current, previous, key)
        if pair is None:
            continue
        now, prev = pair
        if now < prev:
            logger.debug("ifIndex %d %s wrapped (%d -> %d)", current.index, key, prev, now)
        result.value = counter_delta(now, prev, modulus) / elapsed
        return result

    keys = [k for k in (wide_key, narrow_key) if k]
    if any(_unreadable(s, k) for s in (current, previous) for k in keys):
        raw = ", ".join(f"{k}={current.get(k)}" for k in keys)
        result.diagnostics.append(Diagnostic(current.index, UNREADABLE_COUNTER, metric, raw))
    else:
        result.diagnostics.append(Diagnostic(current.index, MISSING_COUNTER, metric))
    return result


def resolve_speed(sample: Sample, override: Optional[int] = None) -> Tuple[Optional[int], List[Diagnostic]]:
    """
    Interface speed in bits per second.

    ifSpeed tops out at 2^32-1; beyond that ifHighSpeed (Mbit/s) is
    authoritative. Without either the speed is ambiguous and
    percentage checks are skipped.
    """
    if override:
        return override, []

    speed = sample.counter("speed")
    high_speed = sample.counter("high_speed")

    if speed is not None and 0 < speed < SPEED_SATURATED:
        return speed, []
    if high_speed:
        return high_speed * 1_000_000, []

    if speed == SPEED_SATURATED:
        detail = "32-bit speed saturated and no high speed available"
    elif speed == 0:
        detail = "device reports zero speed"
    else:
        detail = f"speed={sample.get('speed')}"
    return None, [Diagnostic(sample.index, AMBIGUOUS_SPEED, "speed", detail)]
