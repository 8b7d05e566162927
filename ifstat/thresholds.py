"""
Nagios-style threshold ranges.

A range string describes the values that are *accepted*:

- ""        -> everything
- "N"       -> 0 <= x <= N
- "N:"      -> x >= N
- "~:N"     -> x <= N
- "N:M"     -> N <= x <= M

A leading "@" inverts the sense (alert when the value is inside the range).

Ranges are combined into a warning/critical pair, and pairs into an
inbound/outbound set for per-direction interface metrics.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional

from ifstat.errors import ConfigurationError
from ifstat.schemas import Status

_NUMBER = r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)"
_RANGE_RE = re.compile(
    rf"^(?P<negate>@)?"
    rf"(?:(?P<start>~|{_NUMBER})?(?P<colon>:))?"
    rf"(?P<end>{_NUMBER})?$"
)

DISABLED = "-"


def _number(text: str) -> float:
    value = float(text)
    return int(value) if value.is_integer() else value


def _render(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


@dataclass(frozen=True)
class RangeThreshold:
    """A single acceptance range, tagged with the severity it raises."""

    start: float
    end: float
    negate: bool = False
    severity: Status = Status.CRITICAL
    text: str = ""

    @classmethod
    def parse(cls, text: str, severity: Status = Status.CRITICAL) -> "RangeThreshold":
        spec = text.strip()
        match = _RANGE_RE.match(spec)
        if match is None:
            raise ConfigurationError(f"invalid threshold range {text!r}")

        start_text = match.group("start")
        end_text = match.group("end")

        if match.group("colon") is None:
            # "N" or the empty range
            if end_text is None:
                start, end = -math.inf, math.inf
            else:
                start, end = 0, _number(end_text)
        else:
            if start_text == "~":
                start = -math.inf
            elif start_text is None:
                start = 0
            else:
                start = _number(start_text)
            end = math.inf if end_text is None else _number(end_text)

        if start > end:
            raise ConfigurationError(
                f"invalid threshold range {text!r}: start is greater than end"
            )

        return cls(
            start=start,
            end=end,
            negate=match.group("negate") is not None,
            severity=severity,
            text=spec,
        )

    def accepts(self, value: float) -> bool:
        inside = self.start <= value <= self.end
        return inside != self.negate

    def evaluate(self, value: float) -> Status:
        """OK if the value is accepted, otherwise this range's severity."""
        return Status.OK if self.accepts(value) else self.severity

    def __str__(self) -> str:
        if self.text:
            return self.text
        if math.isinf(self.start) and math.isinf(self.end):
            body = ""
        elif math.isinf(self.start):
            body = f"~:{_render(self.end)}"
        elif math.isinf(self.end):
            body = f"{_render(self.start)}:"
        elif self.start == 0:
            body = _render(self.end)
        else:
            body = f"{_render(self.start)}:{_render(self.end)}"
        return ("@" if self.negate else "") + body


def _parse_part(text: str, severity: Status) -> Optional[RangeThreshold]:
    part = text.strip()
    if part in ("", DISABLED):
        return None
    return RangeThreshold.parse(part, severity)


@dataclass(frozen=True)
class ThresholdPair:
    """Warning and critical ranges for one metric; either may be absent."""

    warning: Optional[RangeThreshold] = None
    critical: Optional[RangeThreshold] = None

    @classmethod
    def parse(cls, text: Optional[str]) -> "ThresholdPair":
        """
        Parse the single-direction grammar:

        - "crit"      -> critical only
        - "warn,crit" -> both
        - "-" disables a position
        """
        if text is None or not text.strip():
            return cls()
        parts = text.split(",")
        if len(parts) == 1:
            return cls(critical=_parse_part(parts[0], Status.CRITICAL))
        if len(parts) == 2:
            return cls(
                warning=_parse_part(parts[0], Status.WARNING),
                critical=_parse_part(parts[1], Status.CRITICAL),
            )
        raise ConfigurationError(
            f"invalid threshold {text!r}: expected 'crit' or 'warn,crit'"
        )

    @property
    def enabled(self) -> bool:
        return self.warning is not None or self.critical is not None

    def evaluate(self, value: float) -> Status:
        # the critical band wins over the warning band
        if self.critical is not None and not self.critical.accepts(value):
            return Status.CRITICAL
        if self.warning is not None and not self.warning.accepts(value):
            return Status.WARNING
        return Status.OK


@dataclass(frozen=True)
class DirectionalThresholds:
    """Separate threshold pairs for inbound and outbound traffic."""

    inbound: ThresholdPair = ThresholdPair()
    outbound: ThresholdPair = ThresholdPair()

    @classmethod
    def parse(cls, text: Optional[str]) -> "DirectionalThresholds":
        """
        Parse the in/out grammar:

        - "inWarn,inCrit,outWarn,outCrit"
        - "warn,crit"  (same pair for both directions)
        - "crit"       (critical only, both directions)
        """
        if text is None or not text.strip():
            return cls()
        parts = text.split(",")
        if len(parts) == 4:
            return cls(
                inbound=ThresholdPair.parse(",".join(parts[0:2])),
                outbound=ThresholdPair.parse(",".join(parts[2:4])),
            )
        if len(parts) in (1, 2):
            pair = ThresholdPair.parse(text)
            return cls(inbound=pair, outbound=pair)
        raise ConfigurationError(
            f"invalid threshold {text!r}: expected 1, 2 or 4 comma-separated values"
        )

    @property
    def enabled(self) -> bool:
        return self.inbound.enabled or self.outbound.enabled

    def for_direction(self, direction: str) -> ThresholdPair:
        return self.inbound if direction == "in" else self.outbound
