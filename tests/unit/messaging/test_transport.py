"""In-memory event log: partitioning, idempotent retries, consumer groups."""

import pytest

from greenhouse.enums import PublishStatus
from greenhouse.messaging.topics import TopicSpec
from greenhouse.messaging.transport import (
    FailureMode,
    InMemoryBroker,
    InMemoryTransport,
    PublishResult,
    partition_for_key,
)
from greenhouse.domain.exceptions import ServiceError, TransientPublishError

TOPIC = "orders"


@pytest.fixture()
def mem_broker():
    broker = InMemoryBroker()
    broker.create_topic(TopicSpec(TOPIC, partitions=3, replication=1, retention_ms=1000))
    return broker


@pytest.fixture()
def sync_transport(mem_broker):
    transport = InMemoryTransport(mem_broker, retries=3, retry_backoff_seconds=0, synchronous=True)
    yield transport
    transport.close()


class TestPartitioning:
    def test_same_key_same_partition(self):
        assert partition_for_key("7", 3) == partition_for_key("7", 3)

    def test_single_partition(self):
        assert partition_for_key("anything", 1) == 0

    def test_keyed_records_keep_order(self, sync_transport, mem_broker):
        for n in range(5):
            sync_transport.send(TOPIC, "param-1", f"{n}".encode()).result()
        records = [r for r in mem_broker.records(TOPIC) if r.key == "param-1"]
        assert {r.partition for r in records} == {partition_for_key("param-1", 3)}
        assert [r.value for r in records] == [b"0", b"1", b"2", b"3", b"4"]
        assert [r.offset for r in records] == [0, 1, 2, 3, 4]


class TestIdempotentSend:
    def test_success_result(self, sync_transport):
        result = sync_transport.send(TOPIC, "k", b"v").result()
        assert result.ok
        assert result.topic == TOPIC
        assert result.offset == 0

    def test_unavailable_is_retried(self, sync_transport, mem_broker):
        mem_broker.inject_failures(TOPIC, 2, FailureMode.UNAVAILABLE)
        result = sync_transport.send(TOPIC, "k", b"v").result()
        assert result.ok
        assert len(mem_broker.records(TOPIC)) == 1
        assert sync_transport.get_stats()["retries"] == 2

    def test_retries_exhausted_is_retryable_error(self, sync_transport, mem_broker):
        mem_broker.inject_failures(TOPIC, 4, FailureMode.UNAVAILABLE)
        result = sync_transport.send(TOPIC, "k", b"v").result()
        assert result.status is PublishStatus.RETRYABLE_ERROR
        assert mem_broker.records(TOPIC) == []

    def test_lost_ack_does_not_duplicate(self, sync_transport, mem_broker):
        mem_broker.inject_failures(TOPIC, 1, FailureMode.ACK_LOST)
        result = sync_transport.send(TOPIC, "k", b"once").result()
        assert result.ok
        assert mem_broker.values(TOPIC) == [b"once"]

    def test_rejected_is_fatal_without_retry(self, sync_transport, mem_broker):
        mem_broker.inject_failures(TOPIC, 1, FailureMode.REJECTED)
        result = sync_transport.send(TOPIC, "k", b"v").result()
        assert result.status is PublishStatus.FATAL_ERROR
        assert sync_transport.get_stats()["retries"] == 0

    def test_closed_transport_fails_fast(self, mem_broker):
        transport = InMemoryTransport(mem_broker, synchronous=True)
        transport.close()
        assert transport.send(TOPIC, "k", b"v").result().status is PublishStatus.FATAL_ERROR

    def test_background_send_completes(self, mem_broker):
        transport = InMemoryTransport(mem_broker, retry_backoff_seconds=0)
        future = transport.send(TOPIC, "k", b"async")
        assert future.result(timeout=5).ok
        transport.close()
        assert mem_broker.values(TOPIC) == [b"async"]


class TestPublishResult:
    def test_raise_for_status(self):
        assert PublishResult.success(TOPIC, "k", 0, 1).raise_for_status().offset == 1
        with pytest.raises(TransientPublishError):
            PublishResult.retryable(TOPIC, "k", "down").raise_for_status()
        with pytest.raises(ServiceError):
            PublishResult.fatal(TOPIC, "k", "rejected").raise_for_status()


class TestConsumerGroups:
    def test_partitions_split_across_members(self, sync_transport):
        first = sync_transport.consumer([TOPIC], "g")
        second = sync_transport.consumer([TOPIC], "g")
        assigned = first.assignment + second.assignment
        assert sorted(assigned) == [(TOPIC, 0), (TOPIC, 1), (TOPIC, 2)]
        assert first.assignment and second.assignment

    def test_leaving_member_triggers_rebalance(self, sync_transport):
        first = sync_transport.consumer([TOPIC], "g")
        second = sync_transport.consumer([TOPIC], "g")
        second.close()
        assert len(first.assignment) == 3

    def test_commit_and_resume(self, sync_transport, mem_broker):
        sync_transport.send(TOPIC, "k", b"a").result()
        sync_transport.send(TOPIC, "k", b"b").result()

        consumer = sync_transport.consumer([TOPIC], "g")
        records = consumer.poll(timeout=0)
        assert [r.value for r in records] == [b"a", b"b"]
        consumer.commit(records[0])
        consumer.close()
        assert mem_broker.lag("g", TOPIC) == 1

        again = sync_transport.consumer([TOPIC], "g")
        assert [r.value for r in again.poll(timeout=0)] == [b"b"]

    def test_seek_redelivers(self, sync_transport):
        sync_transport.send(TOPIC, "k", b"a").result()
        consumer = sync_transport.consumer([TOPIC], "g")
        record = consumer.poll(timeout=0)[0]
        assert consumer.poll(timeout=0) == []
        consumer.seek(record)
        assert consumer.poll(timeout=0) == [record]

    def test_groups_are_independent(self, sync_transport):
        sync_transport.send(TOPIC, "k", b"a").result()
        one = sync_transport.consumer([TOPIC], "g1")
        two = sync_transport.consumer([TOPIC], "g2")
        assert len(one.poll(timeout=0)) == 1
        assert len(two.poll(timeout=0)) == 1
