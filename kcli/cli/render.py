"""Terminal rendering for CLI results (rich tables, highlighted JSON lines)."""
from __future__ import annotations

import json
from typing import Iterable, Optional

from rich.console import Console
from rich.json import JSON
from rich.table import Table
from rich.text import Text

from kcli.core.exceptions import DecodeError
from kcli.domain.services.path_accessor import decode_payload
from kcli.models.consumers import ConsumerGroupDetail, ConsumerGroupSummary, LagReport
from kcli.models.environments import Environment
from kcli.models.messages import MessageRecord
from kcli.models.topics import BrokerInfo, TopicDetail, TopicSummary


def _fmt(value) -> str:
    return "-" if value is None else str(value)


# Control characters are escaped so every tailed message stays on one line.
_ESCAPES = {c: f"\\x{c:02x}" for c in range(0x20)}
_ESCAPES.update({ord("\n"): "\\n", ord("\r"): "\\r", ord("\t"): "\\t", 0x7F: "\\x7f"})


def _bytes_text(raw: Optional[bytes]) -> str:
    if raw is None:
        return "-"
    return raw.decode("utf-8", "replace").translate(_ESCAPES)


def render_topics(console: Console, topics: Iterable[TopicSummary]) -> None:
    table = Table("Topic", "Partitions", "Replication")
    for t in topics:
        table.add_row(t.name, str(t.partitions), str(t.replication_factor))
    console.print(table)


def render_topic_detail(console: Console, detail: TopicDetail) -> None:
    overall = Table("Partitions", "Partition IDs", "Total Messages", title=detail.name)
    overall.add_row(
        str(len(detail.partitions)),
        ", ".join(str(p.id) for p in detail.partitions),
        str(detail.total_messages),
    )
    console.print(overall)

    parts = Table("Partition ID", "Leader", "Replicas", "ISR", "Start Offset", "End Offset")
    for p in detail.partitions:
        parts.add_row(
            str(p.id), _fmt(p.leader),
            ",".join(map(str, p.replicas)), ",".join(map(str, p.isr)),
            _fmt(p.start_offset), _fmt(p.end_offset),
        )
    console.print(parts)

    if detail.consumer_groups:
        groups = Table("Consumer Group")
        for g in detail.consumer_groups:
            groups.add_row(g)
        console.print(groups)


def render_brokers(console: Console, brokers: Iterable[BrokerInfo]) -> None:
    table = Table("Broker ID", "Host", "Port", "Rack")
    for b in brokers:
        table.add_row(str(b.node_id), b.host, str(b.port), _fmt(b.rack))
    console.print(table)


def render_groups(console: Console, groups: Iterable[ConsumerGroupSummary]) -> None:
    table = Table("Group ID", "Protocol Type")
    for g in groups:
        table.add_row(g.group_id, _fmt(g.protocol_type))
    console.print(table)


def render_group_detail(console: Console, group: ConsumerGroupDetail) -> None:
    head = Table("Group ID", "State", "Protocol Type", "Protocol")
    head.add_row(group.group_id, group.state, _fmt(group.protocol_type), _fmt(group.protocol))
    console.print(head)

    members = Table("Member ID", "Client ID", "Host", "Topic", "Partitions")
    for m in group.members:
        if not m.assignment:
            members.add_row(m.member_id, m.client_id, m.client_host, "-", "-")
        for topic, partitions in sorted(m.assignment.items()):
            members.add_row(m.member_id, m.client_id, m.client_host, topic, ", ".join(map(str, partitions)))
    console.print(members)


def render_lag(console: Console, report: LagReport) -> None:
    table = Table("Topic", "Partition", "Committed Offset", "End Offset", "Lag", title=f"Lag for {report.group_id}")
    for e in report.entries:
        lag = Text(str(e.lag)) if e.lag is not None else Text("unknown", style="yellow")
        table.add_row(e.topic, str(e.partition), _fmt(e.committed_offset), _fmt(e.end_offset), lag)
    console.print(table)
    total = Text.assemble("Total lag: ", (report.total_display, "bold"))
    if report.is_lower_bound:
        total.append("  (lower bound: some partitions have unknown lag)", style="yellow")
    console.print(total)


def render_environments(console: Console, envs: Iterable[Environment]) -> None:
    table = Table("Environment", "Brokers", "Active")
    for e in envs:
        table.add_row(e.name, e.brokers, "*" if e.is_active else "")
    console.print(table)


class TailPrinter:
    """Tail sink: one line per message, JSON payloads highlighted."""

    def __init__(self, console: Console) -> None:
        self._console = console

    def __call__(self, message: MessageRecord) -> None:
        prefix = Text(
            f"{message.topic}/{message.partition}@{message.offset} key={_bytes_text(message.key)} ",
            style="dim",
        )
        try:
            document = decode_payload(message.value)
        except DecodeError:
            body = Text(_bytes_text(message.value))
        else:
            body = JSON(json.dumps(document, ensure_ascii=False), indent=None).text
        self._console.print(Text.assemble(prefix, body), soft_wrap=True)
