"""
Sample collection.

This module:
- opens connections to the counter source (stub or real SNMP)
- fetches the raw readings for each requested ifIndex
- returns one consolidated SampleCollection

With parallelism > 1 the indexes are spread over a pool of worker
threads. Each worker owns its own connection and pulls the next index
only after it has answered the previous one, so slow interfaces never
hold up the rest of the queue:

    pool --index--> worker.requests       (one queue per worker)
    pool <-reply--- replies               (shared by all workers)

The pool blocks on the shared reply queue, so whichever worker answers
first gets the next index. Any worker failure aborts the whole
collection; a partial collection is never returned.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from ifstat.errors import CollectionError
from ifstat.schemas import Sample, SampleCollection
from ifstat.snmp_client import CounterConnection, CounterSource

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_STOP = None  # sent to a worker instead of an index


def fetch_sample(conn: CounterConnection, if_index: int, clock: Clock = time.time) -> Sample:
    """Poll one interface and stamp the reading with the current time."""
    fields = conn.fetch(if_index)
    return Sample(index=if_index, timestamp=clock(), fields=fields)


def discover_indexes(source: CounterSource) -> List[int]:
    """List every ifIndex the device knows about."""
    conn = source.open()
    try:
        indexes = conn.indexes()
    finally:
        conn.close()
    logger.debug("Discovered %d interfaces", len(indexes))
    return indexes


@dataclass
class _Reply:
    worker: int
    index: Optional[int] = None
    sample: Optional[Sample] = None
    error: Optional[Exception] = None


class _Worker(threading.Thread):
    """
    Holds one connection and answers index requests until told to stop.

    Announces itself with an empty reply once the connection is open.
    """

    def __init__(
        self,
        worker_id: int,
        source: CounterSource,
        replies: "queue.Queue[_Reply]",
        clock: Clock,
    ) -> None:
        super().__init__(name=f"ifstat-collector-{worker_id}", daemon=True)
        self.worker_id = worker_id
        self.source = source
        self.requests: "queue.Queue[Optional[int]]" = queue.Queue()
        self.replies = replies
        self.clock = clock

    def run(self) -> None:
        try:
            conn = self.source.open()
        except Exception as exc:
            # every failure has to reach the pool, or it waits forever
            self.replies.put(_Reply(self.worker_id, error=exc))
            return

        try:
            self.replies.put(_Reply(self.worker_id))
            while True:
                if_index = self.requests.get()
                if if_index is _STOP:
                    break
                try:
                    sample = fetch_sample(conn, if_index, self.clock)
                except Exception as exc:
                    self.replies.put(_Reply(self.worker_id, index=if_index, error=exc))
                    break
                self.replies.put(_Reply(self.worker_id, index=if_index, sample=sample))
        finally:
            conn.close()


def collect_sequential(
    indexes: Iterable[int],
    source: CounterSource,
    clock: Clock = time.time,
) -> SampleCollection:
    """Poll every index, one after the other, on a single connection."""
    samples: SampleCollection = {}
    conn = source.open()
    try:
        for if_index in indexes:
            samples[if_index] = fetch_sample(conn, if_index, clock)
    finally:
        conn.close()
    return samples


def collect(
    indexes: Iterable[int],
    parallelism: int,
    source: CounterSource,
    clock: Clock = time.time,
) -> SampleCollection:
    """
    Poll all `indexes` with up to `parallelism` concurrent connections.

    Raises CollectionError if any worker fails; nothing collected so
    far is returned in that case.
    """
    pending = deque(dict.fromkeys(indexes))  # drop duplicates, keep order
    if not pending:
        return {}

    if parallelism <= 1:
        return collect_sequential(pending, source, clock)

    replies: "queue.Queue[_Reply]" = queue.Queue()
    workers = [
        _Worker(worker_id, source, replies, clock)
        for worker_id in range(min(parallelism, len(pending)))
    ]
    logger.debug("Collecting %d interfaces with %d workers", len(pending), len(workers))
    for worker in workers:
        worker.start()

    samples: SampleCollection = {}
    failures: List[_Reply] = []
    active = len(workers)
    while active:
        reply = replies.get()
        worker = workers[reply.worker]

        if reply.error is not None:
            # the worker has already closed its connection and exited
            logger.error(
                "Collector worker %d failed on ifIndex %s: %s",
                reply.worker, reply.index, reply.error,
            )
            failures.append(reply)
            active -= 1
            continue

        if reply.sample is not None:
            samples[reply.index] = reply.sample

        if pending and not failures:
            worker.requests.put(pending.popleft())
        else:
            worker.requests.put(_STOP)
            active -= 1

    for worker in workers:
        worker.join()

    if failures:
        first = failures[0]
        if isinstance(first.error, CollectionError):
            raise first.error
        where = "connecting" if first.index is None else f"polling ifIndex {first.index}"
        raise CollectionError(f"collector worker failed while {where}: {first.error}") from first.error

    return samples
