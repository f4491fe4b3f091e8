from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from kcli.core.exceptions import OffsetUnavailableError, TopicNotFoundError
from kcli.models.consumers import LagEntry, LagReport
from kcli.services.broker import BrokerClient, TopicPartitionKey

logger = logging.getLogger(__name__)


class LagAggregator:
    """
    Builds a consumer group's lag report: committed offset vs log end for
    every partition of every topic the group has committed to.

    A partition without a commit, or whose end offset cannot be read, is
    reported with unknown lag and left out of the total; the total is then
    flagged as a lower bound.
    """
    def __init__(self, broker: BrokerClient, max_workers: int = 8):
        self._broker = broker
        self._max_workers = max_workers

    # ------- public API -------

    def aggregate(self, group_id: str, topic: Optional[str] = None) -> LagReport:
        committed = self._broker.committed_offsets(group_id)
        topics = sorted({t for t, _ in committed})
        if topic is not None:
            topics = [t for t in topics if t == topic]

        entries: List[LagEntry] = []
        if topics:
            workers = max(1, min(self._max_workers, len(topics)))
            with ThreadPoolExecutor(max_workers=workers) as ex:
                for rows in ex.map(lambda t: self._topic_entries(t, committed), topics):
                    entries.extend(rows)

        entries.sort(key=lambda e: (e.topic, e.partition))
        unknown = [e for e in entries if e.lag is None]
        report = LagReport(
            group_id=group_id,
            entries=entries,
            total_lag=sum(e.lag for e in entries if e.lag is not None),
            is_lower_bound=bool(unknown),
        )
        if unknown:
            logger.info("group %s: lag unknown for %d partition(s)", group_id, len(unknown))
        return report

    # ------- internals -------

    def _topic_entries(self, topic: str, committed: Dict[TopicPartitionKey, Optional[int]]) -> List[LagEntry]:
        committed_parts = {p: off for (t, p), off in committed.items() if t == topic}

        try:
            partitions = self._broker.partitions_for(topic)
        except TopicNotFoundError:
            logger.warning("topic %s has commits from this group but no metadata", topic)
            partitions = []

        all_parts = sorted(set(partitions) | set(committed_parts))
        ends: Dict[int, int] = {}
        if partitions:
            try:
                ends = self._broker.end_offsets(topic, partitions)
            except OffsetUnavailableError as exc:
                logger.warning("%s", exc)

        rows: List[LagEntry] = []
        for p in all_parts:
            end = ends.get(p)
            committed_off = committed_parts.get(p)
            lag = None
            if end is not None and committed_off is not None:
                lag = max(0, end - committed_off)
            rows.append(
                LagEntry(topic=topic, partition=p, end_offset=end, committed_offset=committed_off, lag=lag)
            )
        return rows
