from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, List, Optional

from kafka import KafkaAdminClient, KafkaConsumer, TopicPartition
from kafka.admin import NewTopic
from kafka.errors import (
    KafkaError,
    KafkaTimeoutError,
    NoBrokersAvailable,
    NodeNotReadyError,
    TopicAlreadyExistsError,
    UnknownTopicOrPartitionError,
)

from kcli.core.config import Settings, get_settings
from kcli.core.exceptions import BrokerUnavailableError, OffsetUnavailableError, TopicNotFoundError
from kcli.models.consumers import ConsumerGroupDetail, ConsumerGroupSummary, GroupMember
from kcli.models.environments import Environment
from kcli.models.messages import MessageRecord
from kcli.models.topics import BrokerInfo, PartitionInfo, TopicSummary
from kcli.services.broker import TopicPartitionKey

logger = logging.getLogger(__name__)

_RETRYABLE = (KafkaTimeoutError, NoBrokersAvailable, NodeNotReadyError)


class KafkaService:
    """
    Lazy, retrying adapter around kafka-python Admin + Consumer APIs.
    Avoids network work at construction time; every consumer it opens is
    closed before the call that opened it returns (readers excepted, their
    owner closes them). Read-only apart from explicit topic create/delete.
    """

    def __init__(self, environment: Environment, settings: Optional[Settings] = None) -> None:
        self.environment = environment
        self.settings = settings or get_settings()
        self._admin: KafkaAdminClient | None = None

    # ---------- bootstrap common kwargs ----------
    def _common_kwargs(self) -> dict:
        env, s = self.environment, self.settings
        kw = dict(
            bootstrap_servers=env.bootstrap_servers,
            client_id=s.client_id,
            request_timeout_ms=s.request_timeout_ms,
            metadata_max_age_ms=s.metadata_max_age_ms,
            api_version_auto_timeout_ms=s.api_version_auto_timeout_ms,
            security_protocol=env.security_protocol,
        )
        if s.kafka_api_version:
            kw["api_version"] = tuple(int(p) for p in s.kafka_api_version.split("."))
        if env.security_protocol.startswith("SASL"):
            kw.update(
                sasl_mechanism=env.sasl_mechanism,
                sasl_plain_username=env.sasl_plain_username,
                sasl_plain_password=env.sasl_plain_password,
            )
        if env.security_protocol.endswith("SSL"):
            kw.update(ssl_cafile=env.ssl_cafile)
        return kw

    def _ensure_admin(self) -> KafkaAdminClient:
        if self._admin is not None:
            return self._admin

        last_exc: Exception | None = None
        tries = self.settings.admin_connect_max_tries
        for attempt in range(1, tries + 1):
            try:
                self._admin = KafkaAdminClient(**self._common_kwargs())
                return self._admin
            except _RETRYABLE as exc:
                last_exc = exc
                logger.warning("admin connect to %s failed (%d/%d): %s",
                               self.environment.brokers, attempt, tries, exc)
                if attempt < tries:
                    time.sleep(self.settings.admin_connect_backoff_sec * attempt)
            except KafkaError as exc:
                raise BrokerUnavailableError(f"cannot connect to {self.environment.brokers}: {exc}") from exc
        raise BrokerUnavailableError(
            f"cannot connect to {self.environment.brokers} after {tries} attempts: {last_exc}"
        ) from last_exc

    def _consumer(self, **kw) -> KafkaConsumer:
        try:
            return KafkaConsumer(**{**self._common_kwargs(), **kw})
        except KafkaError as exc:
            raise BrokerUnavailableError(f"cannot connect to {self.environment.brokers}: {exc}") from exc

    def close(self) -> None:
        if self._admin is not None:
            try:
                self._admin.close()
            finally:
                self._admin = None

    # ---------- Cluster / Brokers ----------
    def list_brokers(self) -> list[BrokerInfo]:
        meta = self._admin_call(lambda a: a.describe_cluster())
        return [
            BrokerInfo(node_id=b["node_id"], host=b["host"], port=b["port"], rack=b.get("rack"))
            for b in meta.get("brokers", [])
        ]

    # ---------- Topics ----------
    def list_topics(self) -> list[TopicSummary]:
        """Minimal topic info (name, partitions, replication factor)."""
        names = list(self._admin_call(lambda a: a.list_topics()))
        if not names:
            return []
        out = []
        for t in self._admin_call(lambda a: a.describe_topics(names)):
            parts = t.get("partitions") or []
            rf = len(parts[0]["replicas"]) if parts else 0
            out.append(TopicSummary(name=t["topic"], partitions=len(parts), replication_factor=rf))
        return out

    def describe_partitions(self, topic: str) -> list[PartitionInfo]:
        parts = self._topic_partitions_meta(topic)
        ids = [p["partition"] for p in parts]
        start = self.beginning_offsets(topic, ids)
        end = self.end_offsets(topic, ids)
        return [
            PartitionInfo(
                id=p["partition"],
                leader=p.get("leader"),
                replicas=list(p.get("replicas", [])),
                isr=list(p.get("isr", [])),
                start_offset=start.get(p["partition"]),
                end_offset=end.get(p["partition"]),
            )
            for p in sorted(parts, key=lambda p: p["partition"])
        ]

    def partitions_for(self, topic: str) -> List[int]:
        return sorted(p["partition"] for p in self._topic_partitions_meta(topic))

    def create_topic(self, name: str, partitions: int, replication_factor: int) -> bool:
        """Create *name*; returns False when it already existed."""
        new_topic = NewTopic(name=name, num_partitions=partitions, replication_factor=replication_factor)
        try:
            self._admin_call(lambda a: a.create_topics([new_topic]))
        except TopicAlreadyExistsError:
            return False
        return True

    def delete_topic(self, name: str) -> None:
        try:
            self._admin_call(lambda a: a.delete_topics([name]))
        except UnknownTopicOrPartitionError as exc:
            raise TopicNotFoundError(name) from exc

    # ---------- Consumer Groups ----------
    def list_groups(self) -> list[ConsumerGroupSummary]:
        out = []
        for row in self._admin_call(lambda a: a.list_consumer_groups()):
            group_id, protocol_type = row[0], (row[1] if len(row) > 1 else None)
            out.append(ConsumerGroupSummary(group_id=group_id, protocol_type=protocol_type or None))
        return out

    def describe_group(self, group_id: str) -> ConsumerGroupDetail:
        info = self._admin_call(lambda a: a.describe_consumer_groups([group_id]))[0]
        members = [
            GroupMember(
                member_id=m.member_id,
                client_id=m.client_id,
                client_host=m.client_host,
                assignment=_assignment_of(m),
            )
            for m in (info.members or [])
        ]
        return ConsumerGroupDetail(
            group_id=info.group,
            state=info.state,
            protocol_type=info.protocol_type or None,
            protocol=info.protocol or None,
            members=members,
        )

    def committed_offsets(self, group_id: str) -> Dict[TopicPartitionKey, Optional[int]]:
        offsets = self._admin_call(lambda a: a.list_consumer_group_offsets(group_id))
        out: Dict[TopicPartitionKey, Optional[int]] = {}
        for tp, meta in offsets.items():
            committed = meta.offset if meta is not None else None
            out[(tp.topic, tp.partition)] = committed if committed is not None and committed >= 0 else None
        return out

    # ---------- Offsets ----------
    def end_offsets(self, topic: str, partitions: List[int]) -> Dict[int, int]:
        return self._offsets(topic, partitions, "end_offsets")

    def beginning_offsets(self, topic: str, partitions: List[int]) -> Dict[int, int]:
        return self._offsets(topic, partitions, "beginning_offsets")

    # ---------- Messages ----------
    def open_reader(self, topic: str, partition: int) -> "KafkaPartitionReader":
        # No group_id: offsets are never committed and no group is joined.
        consumer = self._consumer(group_id=None, enable_auto_commit=False)
        return KafkaPartitionReader(consumer, TopicPartition(topic, partition))

    # ---------- Helpers ----------
    def _admin_call(self, fn):
        admin = self._ensure_admin()
        try:
            return fn(admin)
        except (TopicAlreadyExistsError, UnknownTopicOrPartitionError):
            raise
        except KafkaError as exc:
            raise BrokerUnavailableError(f"broker request failed: {exc}") from exc

    def _topic_partitions_meta(self, topic: str) -> list[dict]:
        try:
            described = self._admin_call(lambda a: a.describe_topics([topic]))
        except UnknownTopicOrPartitionError as exc:
            raise TopicNotFoundError(topic) from exc
        meta = next((t for t in described if t.get("topic") == topic), None)
        if meta is None or meta.get("error_code", 0) != 0 or not meta.get("partitions"):
            raise TopicNotFoundError(topic)
        return list(meta["partitions"])

    def _offsets(self, topic: str, partitions: Iterable[int], method: str) -> Dict[int, int]:
        tps = [TopicPartition(topic, p) for p in partitions]
        if not tps:
            return {}
        c = self._consumer(enable_auto_commit=False)
        try:
            res = getattr(c, method)(tps)
        except KafkaTimeoutError as exc:
            raise OffsetUnavailableError(topic, reason=str(exc)) from exc
        except KafkaError as exc:
            raise BrokerUnavailableError(f"offset lookup for {topic} failed: {exc}") from exc
        finally:
            c.close()
        return {tp.partition: int(off) for tp, off in res.items() if off is not None}


class KafkaPartitionReader:
    """One assigned (never subscribed) consumer reading a single partition."""

    def __init__(self, consumer: KafkaConsumer, tp: TopicPartition) -> None:
        self._consumer = consumer
        self._tp = tp
        self._position: int | None = None
        consumer.assign([tp])

    def fetch(self, offset: int, max_records: int, timeout_ms: int) -> List[MessageRecord]:
        if self._position != offset:
            self._consumer.seek(self._tp, offset)
            self._position = offset
        try:
            batch = self._consumer.poll(timeout_ms=timeout_ms, max_records=max_records)
        except KafkaError as exc:
            raise BrokerUnavailableError(f"fetch {self._tp.topic}/{self._tp.partition} failed: {exc}") from exc

        out: List[MessageRecord] = []
        for r in batch.get(self._tp, []):
            if r.offset < offset:
                continue
            out.append(
                MessageRecord(topic=r.topic, partition=r.partition, offset=r.offset,
                              timestamp=r.timestamp, key=r.key, value=r.value)
            )
        if out:
            self._position = out[-1].offset + 1
        return out

    def close(self) -> None:
        self._consumer.close()


def _assignment_of(member) -> dict[str, list[int]]:
    """Decode a member's assignment across kafka-python versions."""
    raw = getattr(member, "member_assignment", None)
    if raw is None:
        return {}
    pairs = getattr(raw, "assignment", None)
    if pairs is None and callable(getattr(raw, "partitions", None)):
        out: dict[str, list[int]] = {}
        for tp in raw.partitions():
            out.setdefault(tp.topic, []).append(tp.partition)
        return {t: sorted(ps) for t, ps in out.items()}
    return {topic: sorted(parts) for topic, parts in (pairs or [])}
