"""Topic, broker and consumer-group queries plus topic create/delete."""
from __future__ import annotations

import logging
from typing import List, Optional

from kcli.models.consumers import ConsumerGroupDetail, ConsumerGroupSummary
from kcli.models.topics import BrokerInfo, TopicDetail, TopicSummary
from kcli.services.broker import ClusterClient

logger = logging.getLogger(__name__)


class ClusterService:
    """Stateless wrapper combining broker calls and presentation-neutral rules."""

    def __init__(self, client: ClusterClient) -> None:
        self._client = client

    # ------------------------------------------------------------------ #
    # Topics                                                              #
    # ------------------------------------------------------------------ #
    def list_topics(self, name_filter: Optional[str] = None) -> List[TopicSummary]:
        """Return topics sorted by name, optionally filtered by substring."""
        topics = self._client.list_topics()
        if name_filter:
            needle = name_filter.lower()
            topics = [t for t in topics if needle in t.name.lower()]
        return sorted(topics, key=lambda t: t.name)

    def topic_detail(self, topic: str) -> TopicDetail:
        """Partitions with offsets, plus the groups that commit on *topic*.

        Raises `TopicNotFoundError` for unknown topics.
        """
        partitions = self._client.describe_partitions(topic)
        rf = len(partitions[0].replicas) if partitions else 0
        return TopicDetail(
            name=topic,
            replication_factor=rf,
            partitions=partitions,
            consumer_groups=self.groups_for_topic(topic),
        )

    def groups_for_topic(self, topic: str) -> List[str]:
        out = []
        for group in self._client.list_groups():
            committed = self._client.committed_offsets(group.group_id)
            if any(t == topic for t, _ in committed):
                out.append(group.group_id)
        return sorted(out)

    def create_topic(self, name: str, partitions: int = 1, replication_factor: int = 1) -> bool:
        """Idempotent create; returns False if the topic already existed."""
        if partitions < 1 or replication_factor < 1:
            raise ValueError("partitions and replication factor must be >= 1")
        created = self._client.create_topic(name, partitions, replication_factor)
        if not created:
            logger.info("topic %s already exists", name)
        return created

    def delete_topic(self, name: str) -> None:
        self._client.delete_topic(name)

    # ------------------------------------------------------------------ #
    # Brokers                                                             #
    # ------------------------------------------------------------------ #
    def list_brokers(self) -> List[BrokerInfo]:
        return sorted(self._client.list_brokers(), key=lambda b: b.node_id)

    # ------------------------------------------------------------------ #
    # Consumer groups                                                     #
    # ------------------------------------------------------------------ #
    def list_groups(self) -> List[ConsumerGroupSummary]:
        return sorted(self._client.list_groups(), key=lambda g: g.group_id)

    def describe_group(self, group_id: str) -> ConsumerGroupDetail:
        return self._client.describe_group(group_id)
