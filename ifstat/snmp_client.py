"""
Counter sources.

A counter source hands out connections; each connection answers
"give me the raw IF-MIB readings for ifIndex N". We support two modes:

1. Real SNMP (using pysnmp's asyncio API), one SNMP engine and event
   loop per connection so every collector worker owns its own session.
2. Stub mode: a simulated device whose counters grow with wall-clock
   time, so successive invocations see realistic deltas.

This lets you:
- run everything locally without a real router
- later flip IFSTAT_USE_STUB=0 and talk to a real SNMP device
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Protocol

from ifstat.config import Settings
from ifstat.errors import CollectionError
from ifstat.schemas import MISSING, FieldValue, Unreadable

logger = logging.getLogger(__name__)


class SnmpError(CollectionError):
    """Raised when SNMP retrieval fails."""


# ---------------------------------------------------------------------------
# OIDs (IF-MIB ifTable / ifXTable), indexed by ifIndex
# ---------------------------------------------------------------------------

IF_TABLE = "1.3.6.1.2.1.2.2.1"
IF_X_TABLE = "1.3.6.1.2.1.31.1.1.1"

IF_INDEX = f"{IF_TABLE}.1"

FIELD_OIDS: Dict[str, str] = {
    "description": f"{IF_TABLE}.2",
    "type": f"{IF_TABLE}.3",
    "speed": f"{IF_TABLE}.5",
    "admin_status": f"{IF_TABLE}.7",
    "oper_status": f"{IF_TABLE}.8",
    "in_octets": f"{IF_TABLE}.10",
    "in_ucast_pkts": f"{IF_TABLE}.11",
    "in_discards": f"{IF_TABLE}.13",
    "in_errors": f"{IF_TABLE}.14",
    "out_octets": f"{IF_TABLE}.16",
    "out_ucast_pkts": f"{IF_TABLE}.17",
    "out_discards": f"{IF_TABLE}.19",
    "out_errors": f"{IF_TABLE}.20",
    "name": f"{IF_X_TABLE}.1",
    "hc_in_octets": f"{IF_X_TABLE}.6",
    "hc_in_ucast_pkts": f"{IF_X_TABLE}.7",
    "hc_out_octets": f"{IF_X_TABLE}.10",
    "hc_out_ucast_pkts": f"{IF_X_TABLE}.11",
    "high_speed": f"{IF_X_TABLE}.15",
    "promiscuous": f"{IF_X_TABLE}.16",
    "alias": f"{IF_X_TABLE}.18",
    "discontinuity": f"{IF_X_TABLE}.19",
}

TEXT_FIELDS = frozenset({"name", "description", "alias"})

_ABSENT_VALUES = ("NoSuchObject", "NoSuchInstance", "EndOfMibView")


class CounterConnection(Protocol):
    def fetch(self, if_index: int) -> Dict[str, FieldValue]:
        ...

    def indexes(self) -> List[int]:
        ...

    def close(self) -> None:
        ...


class CounterSource(Protocol):
    def open(self) -> CounterConnection:
        ...


def convert_value(field: str, value: Any) -> FieldValue:
    """Map one pysnmp value onto a raw sample value."""
    if value.__class__.__name__ in _ABSENT_VALUES:
        return MISSING
    text = value.prettyPrint() if hasattr(value, "prettyPrint") else str(value)
    if field in TEXT_FIELDS:
        return text
    try:
        number = int(value)
    except (TypeError, ValueError):
        return Unreadable(raw=text)
    if number < 0:
        return Unreadable(raw=text)
    return number


# ---------------------------------------------------------------------------
# Stub implementation: a simulated device for demo purposes
# ---------------------------------------------------------------------------


class StubConnection:
    """
    Fake interfaces whose counters are a function of the clock.

    Interface N moves N * 125 kB/s in and half that out, and logs an
    error every few minutes. Every fourth interface is admin down.
    """

    def __init__(self, interfaces: int, clock: Callable[[], float]) -> None:
        self._interfaces = interfaces
        self._clock = clock

    def indexes(self) -> List[int]:
        return list(range(1, self._interfaces + 1))

    def fetch(self, if_index: int) -> Dict[str, FieldValue]:
        if not 1 <= if_index <= self._interfaces:
            return {field: MISSING for field in FIELD_OIDS}

        now = self._clock()
        in_bytes = int(now * if_index * 125_000)
        out_bytes = in_bytes // 2
        in_pkts = in_bytes // 800
        out_pkts = out_bytes // 800
        admin_down = if_index % 4 == 0

        return {
            "name": f"stub{if_index}",
            "description": f"Stub interface {if_index}",
            "alias": "unused" if admin_down else f"link-{if_index}",
            "type": 6,  # ethernetCsmacd
            "speed": 100_000_000,
            "high_speed": 100,
            "admin_status": 2 if admin_down else 1,
            "oper_status": 2 if admin_down else 1,
            "in_octets": in_bytes % 2 ** 32,
            "out_octets": out_bytes % 2 ** 32,
            "hc_in_octets": in_bytes % 2 ** 64,
            "hc_out_octets": out_bytes % 2 ** 64,
            "in_ucast_pkts": in_pkts % 2 ** 32,
            "out_ucast_pkts": out_pkts % 2 ** 32,
            "hc_in_ucast_pkts": in_pkts % 2 ** 64,
            "hc_out_ucast_pkts": out_pkts % 2 ** 64,
            "in_errors": int(now // 300) % 2 ** 32,
            "out_errors": 0,
            "in_discards": 0,
            "out_discards": 0,
            "promiscuous": 2,  # TruthValue false
            "discontinuity": 0,
        }

    def close(self) -> None:
        pass


class StubCounterSource:
    def __init__(self, interfaces: int = 4, clock: Callable[[], float] = time.time) -> None:
        self.interfaces = interfaces
        self.clock = clock

    def open(self) -> StubConnection:
        return StubConnection(self.interfaces, self.clock)


# ---------------------------------------------------------------------------
# Real SNMP implementation
# ---------------------------------------------------------------------------


class SnmpConnection:
    """
    One SNMPv2c session: its own pysnmp engine and its own event loop.

    pysnmp is imported here rather than at module level so the stub
    and the rest of the pipeline work without it.
    """

    def __init__(
        self,
        host: str,
        community: str,
        port: int = 161,
        timeout: float = 2.0,
        retries: int = 1,
    ) -> None:
        from pysnmp.error import PySnmpError
        from pysnmp.hlapi.asyncio import (
            CommunityData,
            ContextData,
            SnmpEngine,
            UdpTransportTarget,
        )

        self.host = host
        # the transport dispatcher binds to the thread's current loop
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._engine = SnmpEngine()
        self._community = CommunityData(community, mpModel=1)  # SNMP v2c
        self._context = ContextData()
        try:
            self._transport = UdpTransportTarget((host, port), timeout=timeout, retries=retries)
        except PySnmpError as exc:
            asyncio.set_event_loop(None)
            self._loop.close()
            raise SnmpError(f"cannot open SNMP transport to {host}:{port}: {exc}") from exc

    def _check(self, error_indication, error_status, error_index, var_binds) -> None:
        if error_indication:
            raise SnmpError(f"{self.host}: {error_indication}")
        if error_status:
            where = error_index and var_binds[int(error_index) - 1][0] or "?"
            raise SnmpError(f"{self.host}: {error_status.prettyPrint()} at {where}")

    async def _get(self, oids: List[str]) -> List[Any]:
        from pysnmp.hlapi.asyncio import ObjectIdentity, ObjectType, getCmd

        error_indication, error_status, error_index, var_binds = await getCmd(
            self._engine,
            self._community,
            self._transport,
            self._context,
            *[ObjectType(ObjectIdentity(oid)) for oid in oids],
        )
        self._check(error_indication, error_status, error_index, var_binds)
        return [value for _, value in var_binds]

    async def _walk_indexes(self) -> List[int]:
        from pysnmp.hlapi.asyncio import ObjectIdentity, ObjectType, nextCmd

        found: List[int] = []
        current = IF_INDEX
        while True:
            error_indication, error_status, error_index, table = await nextCmd(
                self._engine,
                self._community,
                self._transport,
                self._context,
                ObjectType(ObjectIdentity(current)),
            )
            self._check(error_indication, error_status, error_index, table)
            if not table or not table[0]:
                break
            oid, value = table[0][0]
            oid_str = str(oid)
            if not oid_str.startswith(IF_INDEX + "."):
                break
            if value.__class__.__name__ in _ABSENT_VALUES:
                break
            found.append(int(value))
            current = oid_str
        return found

    def fetch(self, if_index: int) -> Dict[str, FieldValue]:
        fields = list(FIELD_OIDS)
        oids = [f"{FIELD_OIDS[f]}.{if_index}" for f in fields]
        values = self._loop.run_until_complete(self._get(oids))
        return {field: convert_value(field, value) for field, value in zip(fields, values)}

    def indexes(self) -> List[int]:
        return self._loop.run_until_complete(self._walk_indexes())

    def close(self) -> None:
        # called from the thread that opened the connection
        dispatcher = self._engine.transportDispatcher
        if dispatcher is not None:
            dispatcher.closeDispatcher()
        asyncio.set_event_loop(None)
        self._loop.close()


class SnmpCounterSource:
    def __init__(
        self,
        host: str,
        community: str,
        port: int = 161,
        timeout: float = 2.0,
        retries: int = 1,
    ) -> None:
        self.host = host
        self.community = community
        self.port = port
        self.timeout = timeout
        self.retries = retries

    def open(self) -> SnmpConnection:
        logger.debug("Opening SNMP session to %s:%d", self.host, self.port)
        return SnmpConnection(self.host, self.community, self.port, self.timeout, self.retries)


# ---------------------------------------------------------------------------
# Public API function used by the check
# ---------------------------------------------------------------------------


def counter_source_from_settings(settings: Settings) -> CounterSource:
    """
    Pick the counter source for this run.

    - IFSTAT_USE_STUB=1 -> simulated device
    - otherwise         -> real SNMP against IFSTAT_HOST
    """
    if settings.use_stub:
        return StubCounterSource()
    return SnmpCounterSource(
        host=settings.host,
        community=settings.community,
        port=settings.port,
        timeout=settings.timeout,
        retries=settings.retries,
    )
