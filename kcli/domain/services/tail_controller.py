"""Continuous, filtered consumption of one topic.

One fetcher thread per partition pulls batches through its own
`PartitionReader` and pushes them onto a bounded queue. The thread that
calls `TailController.run` is the only writer: it filters every batch and
hands matches to the sink, so output is never interleaved. Order is kept
within a partition; nothing is promised across partitions.

Cancellation is cooperative. Fetchers check the token at every poll
boundary and stop fetching; batches already fetched are still filtered and
emitted before the controller reaches `STOPPED`. Offsets are never
committed.
"""
from __future__ import annotations

import logging
import queue
import threading
from enum import Enum
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from kcli.core.config import Settings, get_settings
from kcli.core.exceptions import BrokerUnavailableError, OffsetUnavailableError
from kcli.domain.models.filter import FilterExpression
from kcli.domain.services.filter_evaluator import build_predicate
from kcli.models.messages import MessageRecord
from kcli.services.broker import BrokerClient

logger = logging.getLogger(__name__)

Sink = Callable[[MessageRecord], None]


class TailState(str, Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    POLLING = "polling"
    EMITTING = "emitting"
    STOPPED = "stopped"


class CancellationToken:
    """Thread-safe stop flag that can also be waited on."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to *timeout* seconds; returns early (True) once cancelled."""
        return self._event.wait(timeout)


class TailStats(BaseModel):
    batches: int = 0
    seen: int = 0
    matched: int = 0


class _Done:
    __slots__ = ("partition",)

    def __init__(self, partition: int) -> None:
        self.partition = partition


def resolve_start_offsets(
    end_offsets: Dict[int, int],
    before: Optional[int] = None,
    low_watermarks: Optional[Dict[int, int]] = None,
) -> Dict[int, int]:
    """Per-partition start offsets.

    Without *before* the tail starts at the live end. With it, each partition
    starts *before* messages back from its own end, never below zero or the
    partition's low-water mark.
    """
    if before is not None and before < 0:
        raise ValueError("before must be >= 0")
    low_watermarks = low_watermarks or {}
    out: Dict[int, int] = {}
    for partition, end in sorted(end_offsets.items()):
        if before is None:
            out[partition] = end
            continue
        floor = max(0, low_watermarks.get(partition, 0))
        out[partition] = min(end, max(floor, end - before))
    return out


class TailController:
    """Drive one tail from start-offset resolution to `STOPPED`."""

    def __init__(
        self,
        broker: BrokerClient,
        topic: str,
        sink: Sink,
        *,
        before: Optional[int] = None,
        expression: Optional[FilterExpression] = None,
        token: Optional[CancellationToken] = None,
        max_messages: Optional[int] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.broker = broker
        self.topic = topic
        self.before = before
        self.expression = expression
        self.token = token or CancellationToken()
        self.max_messages = max_messages
        self.stats = TailStats()

        s = settings or get_settings()
        self._poll_timeout_ms = s.tail_poll_timeout_ms
        self._max_records = s.tail_max_records
        self._idle_backoff = s.tail_idle_backoff_sec

        self._sink = sink
        self._predicate = build_predicate(expression)
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=s.tail_queue_size)
        self._errors: List[BaseException] = []
        self._state = TailState.IDLE
        self._start_offsets: Dict[int, int] = {}
        self._pending = 0

    # ------- public API -------

    @property
    def state(self) -> TailState:
        return self._state

    @property
    def start_offsets(self) -> Dict[int, int]:
        return dict(self._start_offsets)

    def cancel(self) -> None:
        self.token.cancel()

    def resolve(self) -> Dict[int, int]:
        """Look up partitions and end offsets; fix the per-partition start."""
        partitions = self.broker.partitions_for(self.topic)
        ends = self.broker.end_offsets(self.topic, partitions)
        missing = [p for p in partitions if p not in ends]
        if missing:
            raise OffsetUnavailableError(self.topic, missing[0], reason="no end offset")
        lows = self.broker.beginning_offsets(self.topic, partitions) if self.before else {}

        self._start_offsets = resolve_start_offsets(ends, self.before, lows)
        self._state = TailState.SUBSCRIBED
        logger.info("tail %s from %s (filter=%s)", self.topic, self._start_offsets, self.expression)
        return self.start_offsets

    def run(self) -> TailStats:
        """Block until cancelled (or *max_messages* matched); return counters.

        Raises
        ------
        BrokerUnavailableError
            If a partition fetcher failed. Everything fetched before the
            failure has been emitted by then.
        """
        if self._state is TailState.IDLE:
            try:
                self.resolve()
            except Exception:
                self._state = TailState.STOPPED
                raise
        elif self._state is not TailState.SUBSCRIBED:
            raise RuntimeError(f"tail already {self._state.value}")

        threads = [
            threading.Thread(
                target=self._fetch_loop, args=(p, off),
                name=f"tail-{self.topic}-{p}", daemon=True,
            )
            for p, off in self._start_offsets.items()
        ]
        self._state = TailState.POLLING
        for t in threads:
            t.start()

        try:
            self._drain(len(threads), emit=True)
        finally:
            # Writer failure or early exit: release fetchers blocked on a full queue.
            self.token.cancel()
            self._drain_remaining()
            for t in threads:
                t.join()
            self._state = TailState.STOPPED

        if self._errors:
            err = self._errors[0]
            if isinstance(err, BrokerUnavailableError):
                raise err
            raise BrokerUnavailableError(f"tail of {self.topic} failed: {err}") from err
        return self.stats

    # ------- internals -------

    def _fetch_loop(self, partition: int, offset: int) -> None:
        reader = None
        try:
            reader = self.broker.open_reader(self.topic, partition)
            next_offset = offset
            while not self.token.cancelled:
                batch = reader.fetch(next_offset, self._max_records, self._poll_timeout_ms)
                if not batch:
                    self.token.wait(self._idle_backoff)
                    continue
                next_offset = batch[-1].offset + 1
                self._put(batch)
        except Exception as exc:
            logger.error("fetcher %s/%d failed: %s", self.topic, partition, exc)
            self._errors.append(exc)
            self.token.cancel()
        finally:
            try:
                if reader is not None:
                    reader.close()
            finally:
                self._put(_Done(partition))

    def _put(self, item: object) -> None:
        # The writer keeps draining until every fetcher has sent _Done,
        # so this never blocks forever.
        while True:
            try:
                self._queue.put(item, timeout=0.1)
                return
            except queue.Full:
                continue

    def _drain(self, fetchers: int, emit: bool) -> None:
        self._pending = fetchers
        while self._pending:
            try:
                item = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            if isinstance(item, _Done):
                self._pending -= 1
                continue
            if emit:
                self._emit(item)  # type: ignore[arg-type]

    def _drain_remaining(self) -> None:
        if self._pending:
            self._drain(self._pending, emit=False)

    def _emit(self, batch: List[MessageRecord]) -> None:
        self._state = TailState.EMITTING
        self.stats.batches += 1
        for message in batch:
            if self._limit_reached():
                break
            self.stats.seen += 1
            if self._predicate(message):
                self._sink(message)
                self.stats.matched += 1
        if self._limit_reached():
            self.token.cancel()
        self._state = TailState.POLLING

    def _limit_reached(self) -> bool:
        return self.max_messages is not None and self.stats.matched >= self.max_messages
