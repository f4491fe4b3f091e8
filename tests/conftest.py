"""Shared fixtures: an in-memory broker and fast tail settings."""
from __future__ import annotations

import json
import threading
from typing import Dict, List, Optional, Set, Tuple

import pytest

from kcli.core.config import Settings
from kcli.core.exceptions import BrokerUnavailableError, TopicNotFoundError
from kcli.models.consumers import ConsumerGroupDetail, ConsumerGroupSummary
from kcli.models.messages import MessageRecord
from kcli.models.topics import BrokerInfo, PartitionInfo, TopicSummary


class FakeReader:
    def __init__(self, broker: "FakeBroker", topic: str, partition: int) -> None:
        self._broker = broker
        self.topic = topic
        self.partition = partition
        self.fetched_from: List[int] = []
        self.closed = False

    def fetch(self, offset: int, max_records: int, timeout_ms: int) -> List[MessageRecord]:
        self.fetched_from.append(offset)
        if (self.topic, self.partition) in self._broker.failing:
            raise BrokerUnavailableError(f"fetch {self.topic}/{self.partition} failed: connection reset")
        with self._broker.lock:
            log = list(self._broker.logs[self.topic][self.partition])
        return [m for m in log if m.offset >= offset][:max_records]

    def close(self) -> None:
        self.closed = True


class FakeBroker:
    """In-memory cluster implementing the broker protocols."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.logs: Dict[str, Dict[int, List[MessageRecord]]] = {}
        self.low: Dict[Tuple[str, int], int] = {}
        self.replicas: Dict[str, int] = {}
        self.commits: Dict[str, Dict[Tuple[str, int], Optional[int]]] = {}
        self.groups: Dict[str, ConsumerGroupDetail] = {}
        self.failing: Set[Tuple[str, int]] = set()
        self.no_end_offset: Set[Tuple[str, int]] = set()
        self.readers: List[FakeReader] = []
        self.closed = False

    # ---- test setup helpers ----

    def add_topic(self, name: str, partitions: int = 1, replication_factor: int = 1) -> None:
        self.logs[name] = {p: [] for p in range(partitions)}
        self.replicas[name] = replication_factor

    def produce(self, topic: str, partition: int, value, key: Optional[bytes] = None) -> MessageRecord:
        if not isinstance(value, (bytes, type(None))):
            value = json.dumps(value).encode()
        with self.lock:
            log = self.logs[topic][partition]
            offset = self.low.get((topic, partition), 0) + len(log)
            msg = MessageRecord(topic=topic, partition=partition, offset=offset, timestamp=1_700_000_000_000 + offset,
                                key=key, value=value)
            log.append(msg)
        return msg

    def fill(self, topic: str, partition: int, count: int) -> None:
        for i in range(count):
            self.produce(topic, partition, {"n": i, "partition": partition})

    def truncate(self, topic: str, partition: int, low: int) -> None:
        """Pretend retention removed everything below *low*."""
        self.logs[topic][partition] = []
        self.low[(topic, partition)] = low

    def commit(self, group: str, topic: str, partition: int, offset: Optional[int]) -> None:
        self.commits.setdefault(group, {})[(topic, partition)] = offset

    # ---- BrokerClient ----

    def partitions_for(self, topic: str) -> List[int]:
        if topic not in self.logs:
            raise TopicNotFoundError(topic)
        return sorted(self.logs[topic])

    def end_offsets(self, topic: str, partitions: List[int]) -> Dict[int, int]:
        with self.lock:
            return {
                p: self.low.get((topic, p), 0) + len(self.logs[topic][p])
                for p in partitions
                if (topic, p) not in self.no_end_offset
            }

    def beginning_offsets(self, topic: str, partitions: List[int]) -> Dict[int, int]:
        return {p: self.low.get((topic, p), 0) for p in partitions}

    def committed_offsets(self, group_id: str):
        return dict(self.commits.get(group_id, {}))

    def open_reader(self, topic: str, partition: int) -> FakeReader:
        reader = FakeReader(self, topic, partition)
        with self.lock:
            self.readers.append(reader)
        return reader

    # ---- ClusterClient ----

    def list_topics(self) -> List[TopicSummary]:
        return [
            TopicSummary(name=t, partitions=len(parts), replication_factor=self.replicas[t])
            for t, parts in self.logs.items()
        ]

    def describe_partitions(self, topic: str) -> List[PartitionInfo]:
        parts = self.partitions_for(topic)
        start = self.beginning_offsets(topic, parts)
        end = self.end_offsets(topic, parts)
        replicas = list(range(1, self.replicas[topic] + 1))
        return [
            PartitionInfo(id=p, leader=1, replicas=replicas, isr=replicas,
                          start_offset=start.get(p), end_offset=end.get(p))
            for p in parts
        ]

    def create_topic(self, name: str, partitions: int, replication_factor: int) -> bool:
        if name in self.logs:
            return False
        self.add_topic(name, partitions, replication_factor)
        return True

    def delete_topic(self, name: str) -> None:
        if name not in self.logs:
            raise TopicNotFoundError(name)
        del self.logs[name]

    def list_brokers(self) -> List[BrokerInfo]:
        return [
            BrokerInfo(node_id=2, host="kafka-2", port=9092),
            BrokerInfo(node_id=1, host="kafka-1", port=9092, rack="a"),
        ]

    def list_groups(self) -> List[ConsumerGroupSummary]:
        ids = set(self.groups) | set(self.commits)
        return [ConsumerGroupSummary(group_id=g, protocol_type="consumer") for g in ids]

    def describe_group(self, group_id: str) -> ConsumerGroupDetail:
        return self.groups.get(group_id) or ConsumerGroupDetail(group_id=group_id, state="Empty",
                                                                protocol_type="consumer")

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        config_dir=tmp_path / "kcli",
        tail_poll_timeout_ms=0,
        tail_max_records=100,
        tail_queue_size=4,
        tail_idle_backoff_sec=0.01,
        admin_connect_max_tries=2,
        admin_connect_backoff_sec=0,
    )
