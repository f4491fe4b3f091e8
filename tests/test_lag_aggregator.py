from kcli.domain.services.lag_aggregator import LagAggregator


def rows(report):
    return [(e.topic, e.partition, e.committed_offset, e.end_offset, e.lag) for e in report.entries]


def test_unknown_partition_makes_total_a_lower_bound(broker):
    broker.add_topic("orders", partitions=2)
    broker.fill("orders", 0, 100)
    broker.fill("orders", 1, 50)
    broker.commit("billing", "orders", 0, 90)

    report = LagAggregator(broker).aggregate("billing")

    assert rows(report) == [("orders", 0, 90, 100, 10), ("orders", 1, None, 50, None)]
    assert report.total_lag == 10
    assert report.is_lower_bound
    assert report.total_display == "≥10"
    assert not report.entries[1].known


def test_exact_total_when_everything_known(broker):
    broker.add_topic("orders", partitions=2)
    broker.fill("orders", 0, 10)
    broker.fill("orders", 1, 10)
    broker.commit("billing", "orders", 0, 4)
    broker.commit("billing", "orders", 1, 10)

    report = LagAggregator(broker).aggregate("billing")

    assert report.total_lag == 6
    assert not report.is_lower_bound
    assert report.total_display == "6"


def test_entries_sorted_by_topic_then_partition(broker):
    for topic in ("zeta", "alpha"):
        broker.add_topic(topic, partitions=3)
        for p in range(3):
            broker.fill(topic, p, 5)
            broker.commit("g", topic, 2 - p, 1)

    report = LagAggregator(broker, max_workers=2).aggregate("g")

    assert [(e.topic, e.partition) for e in report.entries] == [
        ("alpha", 0), ("alpha", 1), ("alpha", 2), ("zeta", 0), ("zeta", 1), ("zeta", 2),
    ]
    assert report.total_lag == 24


def test_commit_past_end_is_zero_lag(broker):
    broker.add_topic("orders")
    broker.fill("orders", 0, 5)
    broker.commit("g", "orders", 0, 9)
    assert rows(LagAggregator(broker).aggregate("g")) == [("orders", 0, 9, 5, 0)]


def test_unavailable_end_offset_is_unknown_not_zero(broker):
    broker.add_topic("orders", partitions=2)
    broker.fill("orders", 0, 5)
    broker.fill("orders", 1, 5)
    broker.commit("g", "orders", 0, 1)
    broker.commit("g", "orders", 1, 1)
    broker.no_end_offset.add(("orders", 1))

    report = LagAggregator(broker).aggregate("g")

    assert rows(report) == [("orders", 0, 1, 5, 4), ("orders", 1, 1, None, None)]
    assert report.total_display == "≥4"


def test_deleted_topic_keeps_committed_partitions(broker):
    broker.commit("g", "gone", 0, 7)
    report = LagAggregator(broker).aggregate("g")
    assert rows(report) == [("gone", 0, 7, None, None)]
    assert report.is_lower_bound


def test_topic_restriction(broker):
    for topic in ("a", "b"):
        broker.add_topic(topic)
        broker.fill(topic, 0, 3)
        broker.commit("g", topic, 0, 0)
    report = LagAggregator(broker).aggregate("g", topic="b")
    assert rows(report) == [("b", 0, 0, 3, 3)]


def test_group_without_commits(broker):
    report = LagAggregator(broker).aggregate("idle")
    assert report.entries == []
    assert report.total_lag == 0
    assert not report.is_lower_bound


def test_topic_restriction_to_uncommitted_topic_is_empty(broker):
    broker.add_topic("orders", partitions=3)
    broker.fill("orders", 0, 5)
    broker.add_topic("audit")
    broker.commit("g", "audit", 0, 0)

    report = LagAggregator(broker).aggregate("g", topic="orders")

    assert report.entries == []
    assert report.total_display == "0"
    assert not report.is_lower_bound
