"""
Event transport
===============

A transport moves opaque byte records through a partitioned, ordered log with
at-least-once delivery. Two implementations exist:

- :class:`InMemoryTransport` over an :class:`InMemoryBroker`: an in-process
  log used for single-process development and the test suite.
- :class:`~greenhouse.messaging.kafka_transport.KafkaTransport`: the
  production transport on top of kafka-python.

Both give per-key ordering (records with the same key land on the same
partition), consumer groups with committed offsets, and idempotent producer
retries (a re-sent record with the same producer sequence number is not
appended twice).
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
import zlib
from collections import OrderedDict, deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Protocol, Sequence
from uuid import uuid4

from greenhouse.domain.exceptions import ServiceError, TransientPublishError
from greenhouse.enums import PublishStatus
from greenhouse.messaging.topics import TopicSpec

logger = logging.getLogger(__name__)

# Sequence numbers remembered per producer partition for duplicate detection.
MAX_IN_FLIGHT_SEQUENCES = 5


@dataclass(frozen=True)
class Record:
    """One record as seen by a consumer."""

    topic: str
    partition: int
    offset: int
    key: str | None
    value: bytes | None
    headers: tuple[tuple[str, bytes], ...] = ()
    timestamp: float = field(default=0.0, compare=False)


@dataclass(frozen=True)
class PublishResult:
    """Outcome of a publish, delivered through the returned future."""

    status: PublishStatus
    topic: str
    key: str | None = None
    partition: int | None = None
    offset: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is PublishStatus.SUCCESS

    def raise_for_status(self) -> "PublishResult":
        """Raise for a failed publish; returns self on success."""
        detail = {"topic": self.topic, "key": self.key}
        if self.status is PublishStatus.RETRYABLE_ERROR:
            raise TransientPublishError(self.error or "publish failed", detail=detail)
        if self.status is PublishStatus.FATAL_ERROR:
            raise ServiceError(self.error or "publish rejected", detail=detail)
        return self

    @classmethod
    def success(cls, topic: str, key: str | None, partition: int, offset: int) -> "PublishResult":
        return cls(PublishStatus.SUCCESS, topic, key, partition, offset)

    @classmethod
    def retryable(cls, topic: str, key: str | None, error: str) -> "PublishResult":
        return cls(PublishStatus.RETRYABLE_ERROR, topic, key, error=error)

    @classmethod
    def fatal(cls, topic: str, key: str | None, error: str) -> "PublishResult":
        return cls(PublishStatus.FATAL_ERROR, topic, key, error=error)


def completed_future(result: PublishResult) -> "Future[PublishResult]":
    future: Future[PublishResult] = Future()
    future.set_result(result)
    return future


class ConsumerClient(Protocol):
    def poll(self, timeout: float = 1.0, max_records: int = 100) -> list[Record]: ...

    def commit(self, record: Record) -> None: ...

    def seek(self, record: Record) -> None: ...

    def close(self) -> None: ...


class Transport(Protocol):
    def send(
        self,
        topic: str,
        key: str | None,
        value: bytes,
        headers: Sequence[tuple[str, bytes]] | None = None,
    ) -> "Future[PublishResult]": ...

    def consumer(self, topics: Sequence[str], group_id: str, *, client_id: str | None = None) -> ConsumerClient: ...

    def ensure_topics(self, specs: Iterable[TopicSpec]) -> None: ...

    def flush(self, timeout: float | None = None) -> None: ...

    def close(self) -> None: ...


def partition_for_key(key: str | None, partitions: int, fallback: int = 0) -> int:
    """Stable key -> partition mapping; keyless records use *fallback*."""
    if partitions <= 1:
        return 0
    if key is None:
        return fallback % partitions
    return zlib.crc32(key.encode("utf-8")) % partitions


# ---------------------------------------------------------------------------
# In-process broker
# ---------------------------------------------------------------------------


class FailureMode(str, Enum):
    """Injected broker behaviour for the next append to a topic."""

    UNAVAILABLE = "unavailable"
    ACK_LOST = "ack_lost"
    REJECTED = "rejected"


class BrokerUnavailableError(Exception):
    """Retryable append failure."""


class RecordRejectedError(Exception):
    """Non-retryable append failure."""


class InMemoryBroker:
    """Partitioned log shared by every in-memory transport in the process."""

    def __init__(self, *, default_partitions: int = 3) -> None:
        self.default_partitions = max(1, default_partitions)
        self._cond = threading.Condition()
        self._topics: dict[str, list[list[Record]]] = {}
        self._specs: dict[str, TopicSpec] = {}
        self._committed: dict[tuple[str, str, int], int] = {}
        self._members: dict[str, list["InMemoryConsumer"]] = {}
        self._sequences: dict[tuple[str, str, int], OrderedDict[int, Record]] = {}
        self._failures: dict[str, deque[FailureMode]] = {}
        self._round_robin = itertools.count()

    # --- Topics -----------------------------------------------------------
    def create_topic(self, spec: TopicSpec) -> bool:
        with self._cond:
            if spec.name in self._topics:
                return False
            self._topics[spec.name] = [[] for _ in range(max(1, spec.partitions))]
            self._specs[spec.name] = spec
            return True

    def _partitions(self, topic: str) -> list[list[Record]]:
        partitions = self._topics.get(topic)
        if partitions is None:
            partitions = [[] for _ in range(self.default_partitions)]
            self._topics[topic] = partitions
        return partitions

    def partition_count(self, topic: str) -> int:
        with self._cond:
            return len(self._partitions(topic))

    def topics(self) -> list[str]:
        with self._cond:
            return sorted(self._topics)

    def spec(self, topic: str) -> TopicSpec | None:
        with self._cond:
            return self._specs.get(topic)

    # --- Produce ----------------------------------------------------------
    def choose_partition(self, topic: str, key: str | None) -> int:
        with self._cond:
            count = len(self._partitions(topic))
        return partition_for_key(key, count, next(self._round_robin))

    def inject_failures(self, topic: str, count: int = 1, mode: FailureMode = FailureMode.UNAVAILABLE) -> None:
        """Make the next *count* appends to *topic* fail in *mode*."""
        with self._cond:
            queue = self._failures.setdefault(topic, deque())
            queue.extend([mode] * count)

    def append(
        self,
        topic: str,
        partition: int,
        key: str | None,
        value: bytes,
        headers: tuple[tuple[str, bytes], ...] = (),
        *,
        producer_id: str,
        sequence: int,
    ) -> Record:
        with self._cond:
            log = self._partitions(topic)[partition]
            recent = self._sequences.setdefault((producer_id, topic, partition), OrderedDict())
            if sequence in recent:
                # Retried send of a record that was already appended.
                return recent[sequence]

            pending = self._failures.get(topic)
            mode = pending.popleft() if pending else None
            if mode is FailureMode.UNAVAILABLE:
                raise BrokerUnavailableError(f"broker unavailable for {topic}")
            if mode is FailureMode.REJECTED:
                raise RecordRejectedError(f"record rejected by {topic}")

            record = Record(topic, partition, len(log), key, value, headers, time.time())
            log.append(record)
            recent[sequence] = record
            while len(recent) > MAX_IN_FLIGHT_SEQUENCES:
                recent.popitem(last=False)
            self._cond.notify_all()

            if mode is FailureMode.ACK_LOST:
                raise BrokerUnavailableError(f"acknowledgement lost for {topic}")
            return record

    # --- Inspect ----------------------------------------------------------
    def records(self, topic: str) -> list[Record]:
        """All records of *topic*, partition by partition, in offset order."""
        with self._cond:
            return [r for partition in self._topics.get(topic, []) for r in partition]

    def values(self, topic: str) -> list[bytes | None]:
        return [r.value for r in self.records(topic)]

    def committed(self, group_id: str, topic: str, partition: int) -> int:
        with self._cond:
            return self._committed.get((group_id, topic, partition), 0)

    def lag(self, group_id: str, topic: str) -> int:
        with self._cond:
            return sum(
                len(log) - self._committed.get((group_id, topic, p), 0)
                for p, log in enumerate(self._topics.get(topic, []))
            )

    # --- Consumer groups --------------------------------------------------
    def _join(self, member: "InMemoryConsumer") -> None:
        with self._cond:
            self._members.setdefault(member.group_id, []).append(member)
            self._rebalance(member.group_id)

    def _leave(self, member: "InMemoryConsumer") -> None:
        with self._cond:
            members = self._members.get(member.group_id, [])
            if member in members:
                members.remove(member)
                self._rebalance(member.group_id)

    def _rebalance(self, group_id: str) -> None:
        members = self._members.get(group_id, [])
        for member in members:
            member._assignment = []
            member._positions = {}
        if not members:
            return
        topics = sorted({t for m in members for t in m.topics})
        slots = [(t, p) for t in topics for p in range(len(self._partitions(t)))]
        for index, slot in enumerate(slots):
            owner = members[index % len(members)]
            if slot[0] in owner.topics:
                owner._assignment.append(slot)
        logger.debug(
            "Rebalanced group %s: %s",
            group_id,
            {m.client_id: m._assignment for m in members},
        )

    def _fetch(self, member: "InMemoryConsumer", max_records: int) -> list[Record]:
        batch: list[Record] = []
        for topic, partition in member._assignment:
            log = self._partitions(topic)[partition]
            position = member._positions.get(
                (topic, partition), self._committed.get((member.group_id, topic, partition), 0)
            )
            while position < len(log) and len(batch) < max_records:
                batch.append(log[position])
                position += 1
            member._positions[(topic, partition)] = position
            if len(batch) >= max_records:
                break
        return batch

    def _poll(self, member: "InMemoryConsumer", timeout: float, max_records: int) -> list[Record]:
        deadline = time.monotonic() + max(0.0, timeout)
        with self._cond:
            while True:
                batch = self._fetch(member, max_records)
                remaining = deadline - time.monotonic()
                if batch or remaining <= 0 or member._closed:
                    return batch
                self._cond.wait(remaining)

    def _commit(self, group_id: str, record: Record) -> None:
        with self._cond:
            self._committed[(group_id, record.topic, record.partition)] = record.offset + 1

    def _seek(self, member: "InMemoryConsumer", record: Record) -> None:
        with self._cond:
            member._positions[(record.topic, record.partition)] = record.offset

    def wake(self) -> None:
        with self._cond:
            self._cond.notify_all()


class InMemoryConsumer:
    """Consumer-group member reading from an :class:`InMemoryBroker`."""

    def __init__(self, broker: InMemoryBroker, topics: Sequence[str], group_id: str, client_id: str) -> None:
        self._broker = broker
        self.topics = tuple(topics)
        self.group_id = group_id
        self.client_id = client_id
        self._assignment: list[tuple[str, int]] = []
        self._positions: dict[tuple[str, int], int] = {}
        self._closed = False
        broker._join(self)

    @property
    def assignment(self) -> list[tuple[str, int]]:
        return list(self._assignment)

    def poll(self, timeout: float = 1.0, max_records: int = 100) -> list[Record]:
        if self._closed:
            return []
        return self._broker._poll(self, timeout, max_records)

    def commit(self, record: Record) -> None:
        self._broker._commit(self.group_id, record)

    def seek(self, record: Record) -> None:
        self._broker._seek(self, record)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._broker._leave(self)
        self._broker.wake()


class InMemoryTransport:
    """Idempotent producer and consumer factory over an :class:`InMemoryBroker`.

    With ``synchronous=True`` each send completes before :meth:`send`
    returns, so the returned future is already resolved and done-callbacks
    run on the caller's thread. Otherwise sends are handed to a single worker
    thread, which keeps per-key order with one request in flight.
    """

    def __init__(
        self,
        broker: InMemoryBroker | None = None,
        *,
        retries: int = 3,
        retry_backoff_seconds: float = 1.0,
        synchronous: bool = False,
    ) -> None:
        self.broker = broker or InMemoryBroker()
        self.retries = max(0, retries)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self.synchronous = synchronous
        self.producer_id = uuid4().hex
        self._lock = threading.Lock()
        self._sequences: dict[tuple[str, int], int] = {}
        self._executor: ThreadPoolExecutor | None = None
        self._pending: set[Future] = set()
        self._closed = False
        self._consumer_ids = itertools.count(1)

        self._stats = {"sent": 0, "failed": 0, "retries": 0}

    def _next_sequence(self, topic: str, partition: int) -> int:
        with self._lock:
            seq = self._sequences.get((topic, partition), -1) + 1
            self._sequences[(topic, partition)] = seq
            return seq

    def _deliver(
        self,
        topic: str,
        partition: int,
        key: str | None,
        value: bytes,
        headers: tuple[tuple[str, bytes], ...],
        sequence: int,
    ) -> PublishResult:
        last_error = ""
        for attempt in range(self.retries + 1):
            if attempt:
                with self._lock:
                    self._stats["retries"] += 1
                if self.retry_backoff_seconds:
                    time.sleep(self.retry_backoff_seconds)
            try:
                record = self.broker.append(
                    topic,
                    partition,
                    key,
                    value,
                    headers,
                    producer_id=self.producer_id,
                    sequence=sequence,
                )
            except BrokerUnavailableError as exc:
                last_error = str(exc)
                logger.debug("Send to %s failed (attempt %s): %s", topic, attempt + 1, exc)
                continue
            except RecordRejectedError as exc:
                with self._lock:
                    self._stats["failed"] += 1
                return PublishResult.fatal(topic, key, str(exc))
            with self._lock:
                self._stats["sent"] += 1
            return PublishResult.success(topic, key, record.partition, record.offset)

        with self._lock:
            self._stats["failed"] += 1
        return PublishResult.retryable(topic, key, f"retries exhausted: {last_error}")

    def send(
        self,
        topic: str,
        key: str | None,
        value: bytes,
        headers: Sequence[tuple[str, bytes]] | None = None,
    ) -> "Future[PublishResult]":
        if self._closed:
            return completed_future(PublishResult.fatal(topic, key, "transport closed"))
        partition = self.broker.choose_partition(topic, key)
        sequence = self._next_sequence(topic, partition)
        args = (topic, partition, key, value, tuple(headers or ()), sequence)
        if self.synchronous:
            return completed_future(self._deliver(*args))

        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="inmem-producer")
            future = self._executor.submit(self._deliver, *args)
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)
        return future

    def _discard_pending(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def consumer(self, topics: Sequence[str], group_id: str, *, client_id: str | None = None) -> InMemoryConsumer:
        client_id = client_id or f"{group_id}-{next(self._consumer_ids)}"
        return InMemoryConsumer(self.broker, topics, group_id, client_id)

    def ensure_topics(self, specs: Iterable[TopicSpec]) -> None:
        for spec in specs:
            if self.broker.create_topic(spec):
                logger.info("Created topic %s (%s partitions)", spec.name, spec.partitions)

    def flush(self, timeout: float | None = None) -> None:
        with self._lock:
            pending = list(self._pending)
        for future in pending:
            future.exception(timeout=timeout)

    def close(self) -> None:
        self._closed = True
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
            stats["in_flight"] = len(self._pending)
        stats["transport"] = "memory"
        return stats
