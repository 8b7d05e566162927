"""
Report aggregation.

Each interface collects its individual check outcomes in an
InterfaceReport. The Report folds interfaces into one overall status
and three message lists (critical, warning, normal), then renders the
single status line:

- OK:       "<normal>"
- WARNING:  "<warning>, OK: <normal>"
- CRITICAL: "<critical>, WARNING: <warning>, OK: <normal>"

Empty suffix lists are left out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ifstat.schemas import Status

SEPARATOR = ", "


@dataclass(frozen=True)
class CheckOutcome:
    label: str
    status: Status
    counts: bool = True

    @property
    def message(self) -> str:
        if self.counts or self.status is Status.OK:
            return self.label
        return f"{self.label} ({self.status.name.lower()}, ignored)"


@dataclass
class InterfaceReport:
    """Outcome of all checks run against one interface."""

    label: str
    status: Status = Status.OK
    checks: List[CheckOutcome] = field(default_factory=list)

    def add_check(self, label: str, status: Status, counts: bool = True) -> None:
        """
        Record one check.

        A check that does not count is listed for visibility only; it
        never raises the interface's severity.
        """
        self.checks.append(CheckOutcome(label, status, counts))
        if counts and status > self.status:
            self.status = status

    def messages(self, status: Status) -> List[str]:
        """Messages of counting checks at `status`; OK also takes ignored checks."""
        selected = []
        for check in self.checks:
            effective = check.status if check.counts else Status.OK
            if effective is Status.UNKNOWN:
                effective = Status.CRITICAL
            if effective is status:
                selected.append(check.message)
        return selected


@dataclass
class Report:
    """Process-wide accumulation across all interfaces."""

    status: Status = Status.OK
    critical: List[str] = field(default_factory=list)
    warning: List[str] = field(default_factory=list)
    normal: List[str] = field(default_factory=list)
    interfaces: int = 0
    no_stats: int = 0

    def raise_to(self, status: Status) -> None:
        if status > self.status:
            self.status = status

    def merge_interface(self, iface: InterfaceReport) -> None:
        self.interfaces += 1
        self.raise_to(iface.status)
        for status, target in (
            (Status.CRITICAL, self.critical),
            (Status.WARNING, self.warning),
            (Status.OK, self.normal),
        ):
            items = iface.messages(status)
            if items:
                target.append(f"{iface.label} {SEPARATOR.join(items)}")

    def render(self) -> str:
        normal = list(self.normal)
        if self.no_stats:
            plural = "" if self.no_stats == 1 else "s"
            normal.append(f"{self.no_stats} interface{plural} without statistics yet")

        if self.status is Status.OK:
            return SEPARATOR.join(normal)

        if self.status is Status.WARNING:
            parts = [SEPARATOR.join(self.warning)] if self.warning else []
            if normal:
                parts.append("OK: " + SEPARATOR.join(normal))
            return SEPARATOR.join(parts)

        parts = [SEPARATOR.join(self.critical)] if self.critical else []
        if self.warning:
            parts.append("WARNING: " + SEPARATOR.join(self.warning))
        if normal:
            parts.append("OK: " + SEPARATOR.join(normal))
        return SEPARATOR.join(parts)
