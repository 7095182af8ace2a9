"""Manual-ack dispatch: fixed retries, dead-lettering, redelivery."""

import pytest

from greenhouse.domain.exceptions import EquipmentNotAvailableError, MalformedEventError
from greenhouse.messaging.consumer import (
    ConsumerStats,
    ConsumerWorker,
    RecordDispatcher,
    RetryPolicy,
)
from greenhouse.messaging.publisher import EventPublisher
from greenhouse.messaging.topics import TopicSpec
from greenhouse.messaging.transport import FailureMode, InMemoryBroker, InMemoryTransport

TOPIC = "jobs"
DLQ = "jobs.DLQ"


@pytest.fixture()
def mem_broker():
    broker = InMemoryBroker()
    broker.create_topic(TopicSpec(TOPIC, 1, 1, 1000))
    broker.create_topic(TopicSpec(DLQ, 1, 1, 1000))
    return broker


@pytest.fixture()
def sync_transport(mem_broker):
    transport = InMemoryTransport(mem_broker, retries=3, retry_backoff_seconds=0, synchronous=True)
    yield transport
    transport.close()


class Handler:
    """Scripted handler: raises the queued exceptions, then acknowledges."""

    def __init__(self, *errors, acknowledge=True):
        self.errors = list(errors)
        self.calls = 0
        self.acknowledge = acknowledge

    def __call__(self, record, ack):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        if self.acknowledge:
            ack.acknowledge()


def _dispatcher(handler, sync_transport, sleeps=None, max_retries=3):
    return RecordDispatcher(
        handler,
        EventPublisher(sync_transport),
        policy=RetryPolicy(max_retries=max_retries, backoff_seconds=1.0),
        stats=ConsumerStats(),
        sleep=(sleeps.append if sleeps is not None else lambda _s: None),
    )


def _worker(sync_transport, dispatcher):
    return ConsumerWorker(sync_transport.consumer([TOPIC], "g"), dispatcher, poll_timeout=0)


def test_acknowledged_record_is_committed(sync_transport, mem_broker):
    sync_transport.send(TOPIC, "k", b"payload").result()
    handler = Handler()
    worker = _worker(sync_transport, _dispatcher(handler, sync_transport))

    assert worker.run_once(timeout=0) == 1
    assert mem_broker.committed("g", TOPIC, 0) == 1
    assert worker.dispatcher.stats.processed == 1


def test_transient_failure_retried_with_fixed_backoff(sync_transport, mem_broker):
    sync_transport.send(TOPIC, "k", b"payload").result()
    sleeps = []
    handler = Handler(RuntimeError("db locked"), RuntimeError("db locked"))
    worker = _worker(sync_transport, _dispatcher(handler, sync_transport, sleeps))

    worker.run_once(timeout=0)

    assert handler.calls == 3
    assert sleeps == [1.0, 1.0]
    assert mem_broker.records(DLQ) == []
    assert mem_broker.committed("g", TOPIC, 0) == 1


def test_exhausted_retries_go_to_dead_letter(sync_transport, mem_broker):
    sync_transport.send(TOPIC, "k", b"payload").result()
    handler = Handler(*[EquipmentNotAvailableError("no fan")] * 4)
    dispatcher = _dispatcher(handler, sync_transport)
    worker = _worker(sync_transport, dispatcher)

    worker.run_once(timeout=0)

    assert handler.calls == 4
    [dead] = mem_broker.records(DLQ)
    assert dead.value == b"payload"
    assert dead.key == "k"
    assert dict(dead.headers)["dlq-reason"].startswith(b"EquipmentNotAvailableError")
    assert mem_broker.committed("g", TOPIC, 0) == 1
    assert dispatcher.stats.dead_lettered == 1
    assert dispatcher.stats.retried == 3


@pytest.mark.parametrize("error", [MalformedEventError("bad json"), ValueError("bad"), KeyError("id")])
def test_non_retryable_errors_skip_retries(sync_transport, mem_broker, error):
    sync_transport.send(TOPIC, "k", b"payload").result()
    handler = Handler(error)
    worker = _worker(sync_transport, _dispatcher(handler, sync_transport))

    worker.run_once(timeout=0)

    assert handler.calls == 1
    assert len(mem_broker.records(DLQ)) == 1


def test_failed_dead_letter_leaves_record_for_redelivery(sync_transport, mem_broker):
    sync_transport.send(TOPIC, "k", b"payload").result()
    sync_transport.send(TOPIC, "k", b"next").result()
    mem_broker.inject_failures(DLQ, 4, FailureMode.UNAVAILABLE)
    handler = Handler(ValueError("poison"))
    dispatcher = _dispatcher(handler, sync_transport)
    worker = _worker(sync_transport, dispatcher)

    assert worker.run_once(timeout=0) == 0
    assert mem_broker.committed("g", TOPIC, 0) == 0
    assert dispatcher.stats.dead_letter_failures == 1

    # Redelivered in order; the handler now succeeds
    assert worker.run_once(timeout=0) == 2
    assert mem_broker.committed("g", TOPIC, 0) == 2
    assert mem_broker.records(DLQ) == []


def test_unacknowledged_success_is_counted(sync_transport, mem_broker):
    sync_transport.send(TOPIC, "k", b"payload").result()
    dispatcher = _dispatcher(Handler(acknowledge=False), sync_transport)
    _worker(sync_transport, dispatcher).run_once(timeout=0)

    assert dispatcher.stats.unacknowledged == 1
    assert mem_broker.committed("g", TOPIC, 0) == 0


def test_retry_policy_classification():
    policy = RetryPolicy()
    assert policy.is_retryable(RuntimeError("x"))
    assert policy.is_retryable(EquipmentNotAvailableError("x"))
    assert not policy.is_retryable(MalformedEventError("x"))
    assert not policy.is_retryable(TypeError("x"))
