"""
One check cycle.

This module:
- collects the current samples (stub or real SNMP, optionally in parallel)
- loads the samples of the previous run
- checks status, traffic, errors and discards of every selected interface
- saves the current samples as the baseline for the next run
- hands the aggregated report to the sink

Run it as:

    $env:IFSTAT_USE_STUB="1"
    python -m ifstat.check

Any configuration, collection or storage error ends the cycle with
UNKNOWN and leaves the previous baseline untouched.
"""

from __future__ import annotations

import logging
import re
import sys
import time
from typing import Callable, List, Optional

from ifstat.collector import collect, discover_indexes
from ifstat.config import CheckFilters, CheckThresholds, Settings, load_settings
from ifstat.counters import (
    MISSING_COUNTER,
    Diagnostic,
    compute_rate,
    resolve_speed,
)
from ifstat.errors import ConfigurationError, IfstatError
from ifstat.formatting import Unit, format_value
from ifstat.report import InterfaceReport, Report
from ifstat.schemas import Sample, SampleCollection, Status
from ifstat.sink import Metric, NagiosSink, ReportSink
from ifstat.snmp_client import CounterSource, counter_source_from_settings
from ifstat.store import SampleStore

logger = logging.getLogger(__name__)

# IF-MIB ifOperStatus / ifAdminStatus values
OPER_STATES = {
    1: "up",
    2: "down",
    3: "testing",
    4: "unknown",
    5: "dormant",
    6: "notPresent",
    7: "lowerLayerDown",
}
UP = 1
DOWN = 2
ADMIN_DOWN = 2
PROMISCUOUS = 1  # TruthValue true

DIRECTIONS = ("in", "out")

# (narrow, wide) counter slots per direction
OCTETS = {"in": ("in_octets", "hc_in_octets"), "out": ("out_octets", "hc_out_octets")}
PACKETS = {
    "in": ("in_ucast_pkts", "hc_in_ucast_pkts"),
    "out": ("out_ucast_pkts", "hc_out_ucast_pkts"),
}
ERRORS = {"in": "in_errors", "out": "out_errors"}
DISCARDS = {"in": "in_discards", "out": "out_discards"}

_METRIC_NAME_RE = re.compile(r"[^A-Za-z0-9_./-]+")


def interface_label(sample: Sample) -> str:
    return sample.text("name") or sample.text("description") or f"ifIndex {sample.index}"


def metric_prefix(sample: Sample) -> str:
    return _METRIC_NAME_RE.sub("_", interface_label(sample))


def log_diagnostic(diag: Diagnostic) -> None:
    if diag.kind == MISSING_COUNTER:
        logger.debug("%s", diag)
    else:
        logger.warning("%s", diag)


class InterfaceCheck:
    """Runs every check against one interface and records the outcome."""

    def __init__(
        self,
        settings: Settings,
        thresholds: CheckThresholds,
        sink: ReportSink,
        current: Sample,
        previous: Optional[Sample],
        counts: bool,
    ) -> None:
        self.settings = settings
        self.thresholds = thresholds
        self.sink = sink
        self.current = current
        self.previous = previous
        self.counts = counts
        self.prefix = metric_prefix(current)
        self.report = InterfaceReport(interface_label(current))
        self.diagnostics: List[Diagnostic] = []

    @property
    def elapsed(self) -> float:
        if self.previous is None:
            return 0.0
        return max(self.current.timestamp - self.previous.timestamp, 0.0)

    def fmt(self, value: float, unit: Unit) -> str:
        return format_value(
            value, unit,
            human=self.settings.human_readable,
            integer=self.settings.integer_display,
        )

    def run(self) -> bool:
        """Run all checks. Returns False if there were no statistics yet."""
        self.check_status()
        if self.elapsed <= 0:
            logger.info("%s: no statistics yet", self.report.label)
            return False
        self.check_traffic()
        self.check_errors()
        for diag in self.diagnostics:
            log_diagnostic(diag)
        return True

    def add(self, label: str, status: Status) -> None:
        self.report.add_check(label, status, self.counts)

    # -- status ---------------------------------------------------------

    def check_status(self) -> None:
        admin = self.current.counter("admin_status")
        oper = self.current.counter("oper_status")

        if oper == UP:
            self.add("up", Status.OK)
        elif admin == ADMIN_DOWN and oper == DOWN:
            self.add("admin down", Status.OK)
        else:
            state = OPER_STATES.get(oper, f"oper status {self.current.get('oper_status')}")
            self.add(state, self.settings.down_severity)

        if (
            self.settings.warn_promiscuous
            and self.current.counter("promiscuous") == PROMISCUOUS
        ):
            self.add("promiscuous", Status.WARNING)

    # -- traffic --------------------------------------------------------

    def check_traffic(self) -> None:
        speed, diags = resolve_speed(self.current, self.settings.speed_bps)
        if self.thresholds.usage.enabled:
            self.diagnostics.extend(diags)

        for direction in DIRECTIONS:
            narrow, wide = OCTETS[direction]
            result = compute_rate(
                self.current, self.previous, self.elapsed, narrow, wide,
                metric=f"{direction} octets",
            )
            self.diagnostics.extend(result.diagnostics)
            if result.value is None:
                continue

            bps = result.value * 8
            bandwidth = self.thresholds.bandwidth.for_direction(direction)
            status = bandwidth.evaluate(bps)
            if self.settings.traffic_bytes:
                label = f"{direction} {self.fmt(result.value, Unit.BYTES)}/s"
            else:
                label = f"{direction} {self.fmt(bps, Unit.BITS)}"
            self.sink.add_metric(Metric(
                f"{self.prefix}_{direction}_bps", bps,
                minimum=0, maximum=speed,
                warning=bandwidth.warning, critical=bandwidth.critical,
            ))

            if speed:
                percent = bps / speed * 100
                usage = self.thresholds.usage.for_direction(direction)
                status = max(status, usage.evaluate(percent))
                label += f" ({self.fmt(percent, Unit.PERCENT)})"
                self.sink.add_metric(Metric(
                    f"{self.prefix}_{direction}_usage", percent, "%",
                    minimum=0, maximum=100,
                    warning=usage.warning, critical=usage.critical,
                ))

            self.add(label, status)

    # -- errors and discards --------------------------------------------

    def _counter_check(self, kind: str, slots, thresholds) -> Optional[float]:
        total: Optional[float] = None
        for direction in DIRECTIONS:
            result = compute_rate(
                self.current, self.previous, self.elapsed, slots[direction],
                metric=f"{direction} {kind}",
            )
            self.diagnostics.extend(result.diagnostics)
            if result.value is None:
                continue
            total = (total or 0.0) + result.value

            pair = thresholds.for_direction(direction)
            self.sink.add_metric(Metric(
                f"{self.prefix}_{direction}_{kind}", result.value,
                minimum=0, warning=pair.warning, critical=pair.critical,
            ))
            if pair.enabled or result.value > 0:
                self.add(
                    f"{kind} {direction} {self.fmt(result.value, Unit.PACKETS)}",
                    pair.evaluate(result.value),
                )
        return total

    def check_errors(self) -> None:
        errors = self._counter_check("errors", ERRORS, self.thresholds.errors)
        self._counter_check("discards", DISCARDS, self.thresholds.discards)

        pair = self.thresholds.error_percent
        if errors is None or not pair.enabled:
            return
        packets = 0.0
        for direction in DIRECTIONS:
            narrow, wide = PACKETS[direction]
            result = compute_rate(
                self.current, self.previous, self.elapsed, narrow, wide,
                metric=f"{direction} packets",
            )
            self.diagnostics.extend(result.diagnostics)
            if result.value is None:
                return
            packets += result.value

        total = packets + errors
        percent = errors / total * 100 if total > 0 else 0.0
        self.add(f"errors {self.fmt(percent, Unit.PERCENT)}", pair.evaluate(percent))
        self.sink.add_metric(Metric(
            f"{self.prefix}_error_percent", percent, "%",
            minimum=0, maximum=100,
            warning=pair.warning, critical=pair.critical,
        ))


class IfstatCheck:
    """
    Binds collection, the previous-sample store and the report together.

    Build one per invocation and call `run()`.
    """

    def __init__(
        self,
        settings: Settings,
        source: CounterSource,
        store: SampleStore,
        sink: ReportSink,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.source = source
        self.store = store
        self.sink = sink
        self.clock = clock

    def run(self) -> Status:
        try:
            report = self.cycle()
        except IfstatError as exc:
            logger.error("Check aborted: %s", exc)
            self.sink.finish(Status.UNKNOWN, str(exc))
            return Status.UNKNOWN

        if report.interfaces == 0:
            self.sink.finish(Status.UNKNOWN, "no interfaces matched the filter")
            return Status.UNKNOWN

        self.sink.finish(report.status, report.render())
        return report.status

    def cycle(self) -> Report:
        thresholds = self.settings.thresholds()
        filters = self.settings.filters()

        indexes = self.settings.if_indexes or discover_indexes(self.source)
        current = collect(indexes, self.settings.parallelism, self.source, self.clock)
        previous = self.store.load() or {}

        report = self.evaluate(current, previous, thresholds, filters)

        # only a complete, successful poll becomes the next baseline
        self.store.save(current)
        return report

    def evaluate(
        self,
        current: SampleCollection,
        previous: SampleCollection,
        thresholds: CheckThresholds,
        filters: CheckFilters,
    ) -> Report:
        report = Report()
        for index in sorted(current):
            sample = current[index]
            if not filters.interfaces.evaluate(sample):
                logger.debug("ifIndex %d excluded by interface filter", index)
                continue

            check = InterfaceCheck(
                self.settings,
                thresholds,
                self.sink,
                sample,
                previous.get(index),
                counts=filters.counted.evaluate(sample),
            )
            if not check.run():
                report.no_stats += 1
            report.merge_interface(check.report)
        return report


def run_check(
    settings: Settings,
    source: CounterSource,
    store: SampleStore,
    sink: ReportSink,
    clock: Callable[[], float] = time.time,
) -> Status:
    return IfstatCheck(settings, source, store, sink, clock).run()


def main() -> int:
    """
    Run one check cycle with settings from the environment and print
    the result line. The return value is the plugin exit code.
    """
    sink = NagiosSink()
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        return sink.finish(Status.UNKNOWN, f"configuration error: {exc}")

    logging.basicConfig(
        level=settings.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        status = run_check(
            settings,
            counter_source_from_settings(settings),
            SampleStore(settings.state_file),
            sink,
        )
    except Exception as exc:
        logger.exception("Unexpected failure")
        return sink.finish(Status.UNKNOWN, f"unexpected error: {exc}")
    return int(status)


if __name__ == "__main__":
    sys.exit(main())
