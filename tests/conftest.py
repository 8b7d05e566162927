"""Shared fixtures and fakes for all tests."""
from __future__ import annotations

import threading
from typing import Dict, List, Optional

import pytest

from ifstat.config import Settings
from ifstat.schemas import FieldValue, Sample
from ifstat.store import SampleStore


def make_sample(index: int = 1, timestamp: float = 1000.0, **fields: FieldValue) -> Sample:
    """Build a Sample with an up/up interface unless told otherwise."""
    base: Dict[str, FieldValue] = {
        "name": f"eth{index}",
        "admin_status": 1,
        "oper_status": 1,
    }
    base.update(fields)
    return Sample(index=index, timestamp=timestamp, fields=base)


def make_settings(**overrides) -> Settings:
    """Settings that ignore any .env file in the working directory."""
    return Settings(_env_file=None, **overrides)


# ══════════════════════════════════════════════════════════════════
# Fake counter source
# ══════════════════════════════════════════════════════════════════


class FakeConnection:
    def __init__(self, source: "FakeSource") -> None:
        self.source = source
        self.closed = False

    def fetch(self, if_index: int) -> Dict[str, FieldValue]:
        if if_index in self.source.fail_on:
            raise self.source.fail_on[if_index]
        with self.source.lock:
            self.source.fetched.append(if_index)
        return dict(self.source.devices.get(if_index, {}))

    def indexes(self) -> List[int]:
        return sorted(self.source.devices)

    def close(self) -> None:
        self.closed = True
        with self.source.lock:
            self.source.closed += 1


class FakeSource:
    """
    In-memory counter source.

    `devices` maps ifIndex -> raw fields. `fail_on` maps an ifIndex to
    the exception its fetch raises; `open_error` makes open() fail.
    """

    def __init__(
        self,
        devices: Optional[Dict[int, Dict[str, FieldValue]]] = None,
        fail_on: Optional[Dict[int, Exception]] = None,
        open_error: Optional[Exception] = None,
    ) -> None:
        self.devices = devices or {}
        self.fail_on = fail_on or {}
        self.open_error = open_error
        self.lock = threading.Lock()
        self.opened = 0
        self.closed = 0
        self.fetched: List[int] = []

    def open(self) -> FakeConnection:
        if self.open_error is not None:
            raise self.open_error
        with self.lock:
            self.opened += 1
        return FakeConnection(self)


def device_fields(index: int, octets: int = 0, errors: int = 0, **extra: FieldValue) -> Dict[str, FieldValue]:
    fields: Dict[str, FieldValue] = {
        "name": f"Gi0/{index}",
        "alias": f"port {index}",
        "type": 6,
        "admin_status": 1,
        "oper_status": 1,
        "speed": 1_000_000_000,
        "hc_in_octets": octets,
        "hc_out_octets": octets,
        "in_errors": errors,
        "out_errors": 0,
        "in_discards": 0,
        "out_discards": 0,
        "discontinuity": 0,
    }
    fields.update(extra)
    return fields


@pytest.fixture
def store(tmp_path) -> SampleStore:
    return SampleStore(tmp_path / "state.db")


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource({i: device_fields(i) for i in range(1, 11)})
