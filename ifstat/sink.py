"""
Report sinks.

A sink receives the final status, the rendered message and any numeric
metrics emitted along the way. NagiosSink writes the conventional
plugin line:

    IFSTAT WARNING - <message> | 'metric'=value;warn;crit;min;max ...
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import List, Optional, Protocol, TextIO

from ifstat.schemas import Status
from ifstat.thresholds import RangeThreshold

# units the plugin guidelines allow in performance data
PERFDATA_UNITS = ("", "s", "ms", "us", "%", "B", "KB", "MB", "TB", "c")


@dataclass(frozen=True)
class Metric:
    name: str
    value: float
    unit: str = ""
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    warning: Optional[RangeThreshold] = None
    critical: Optional[RangeThreshold] = None


class ReportSink(Protocol):
    def add_metric(self, metric: Metric) -> None:
        ...

    def finish(self, status: Status, message: str) -> int:
        ...


def _number(value: Optional[float]) -> str:
    if value is None:
        return ""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def render_metric(metric: Metric) -> str:
    name = metric.name.replace("'", "''")
    unit = metric.unit if metric.unit in PERFDATA_UNITS else ""
    fields = [
        f"{_number(metric.value)}{unit}",
        "" if metric.warning is None else str(metric.warning),
        "" if metric.critical is None else str(metric.critical),
        _number(metric.minimum),
        _number(metric.maximum),
    ]
    return f"'{name}'=" + ";".join(fields).rstrip(";")


class NagiosSink:
    """Writes a single status line with performance data to a stream."""

    def __init__(self, stream: TextIO | None = None, prefix: str = "IFSTAT") -> None:
        self.stream = stream or sys.stdout
        self.prefix = prefix
        self.metrics: List[Metric] = []

    def add_metric(self, metric: Metric) -> None:
        self.metrics.append(metric)

    def line(self, status: Status, message: str) -> str:
        text = f"{self.prefix} {status.name} - {message}"
        if self.metrics:
            text += " | " + " ".join(render_metric(m) for m in self.metrics)
        return text

    def finish(self, status: Status, message: str) -> int:
        self.stream.write(self.line(status, message) + "\n")
        self.stream.flush()
        return int(status)


class MemorySink:
    """Keeps everything in memory; handy for embedding the check."""

    def __init__(self) -> None:
        self.metrics: List[Metric] = []
        self.status: Optional[Status] = None
        self.message: Optional[str] = None

    def add_metric(self, metric: Metric) -> None:
        self.metrics.append(metric)

    def finish(self, status: Status, message: str) -> int:
        self.status = status
        self.message = message
        return int(status)
