"""Capabilities the tail controller and the lag aggregator need from a broker.

`KafkaService` is the production implementation; tests use an in-memory
double. Nothing here mutates broker state.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Protocol, Tuple

from kcli.models.consumers import ConsumerGroupDetail, ConsumerGroupSummary
from kcli.models.messages import MessageRecord
from kcli.models.topics import BrokerInfo, PartitionInfo, TopicSummary

TopicPartitionKey = Tuple[str, int]


class PartitionReader(Protocol):
    """Reads one partition of one topic, starting wherever the caller asks."""

    def fetch(self, offset: int, max_records: int, timeout_ms: int) -> List[MessageRecord]:
        """Return up to *max_records* messages at or after *offset*.

        May block up to *timeout_ms* waiting for data; returns an empty list
        when none arrived.
        """
        ...

    def close(self) -> None:
        ...


class BrokerClient(Protocol):
    def partitions_for(self, topic: str) -> List[int]:
        """Partition ids of *topic*; raises `TopicNotFoundError` if unknown."""
        ...

    def end_offsets(self, topic: str, partitions: List[int]) -> Dict[int, int]:
        """High-watermark per partition; missing keys mean unavailable."""
        ...

    def beginning_offsets(self, topic: str, partitions: List[int]) -> Dict[int, int]:
        """Low-watermark per partition; missing keys mean unavailable."""
        ...

    def committed_offsets(self, group_id: str) -> Dict[TopicPartitionKey, Optional[int]]:
        """Committed offset per (topic, partition) the group has committed to."""
        ...

    def open_reader(self, topic: str, partition: int) -> PartitionReader:
        ...


class ClusterClient(BrokerClient, Protocol):
    """Metadata and topic-administration calls used by the cluster commands."""

    def list_topics(self) -> List[TopicSummary]:
        ...

    def describe_partitions(self, topic: str) -> List[PartitionInfo]:
        ...

    def create_topic(self, name: str, partitions: int, replication_factor: int) -> bool:
        ...

    def delete_topic(self, name: str) -> None:
        ...

    def list_brokers(self) -> List[BrokerInfo]:
        ...

    def list_groups(self) -> List[ConsumerGroupSummary]:
        ...

    def describe_group(self, group_id: str) -> ConsumerGroupDetail:
        ...
