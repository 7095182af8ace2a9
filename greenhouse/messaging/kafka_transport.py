"""
Kafka transport
===============

Production transport built on kafka-python. The producer is idempotent
(``enable_idempotence``, ``acks="all"``, bounded retries with a fixed backoff
and at most five requests in flight per connection, which keeps per-key order
across retries). Consumers never auto-commit; offsets are committed record by
record once the handler has acknowledged.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Iterable, Sequence

from kafka import KafkaAdminClient, KafkaConsumer, KafkaProducer, TopicPartition
from kafka.admin import NewTopic
from kafka.errors import KafkaError, TopicAlreadyExistsError
from kafka.structs import OffsetAndMetadata

from greenhouse.messaging.topics import TopicSpec
from greenhouse.messaging.transport import PublishResult, Record, completed_future

logger = logging.getLogger(__name__)


def make_offset(offset: int) -> OffsetAndMetadata:
    """Build OffsetAndMetadata across kafka-python releases.

    2.1+ added a ``leader_epoch`` field; older releases take two arguments.
    """
    try:
        return OffsetAndMetadata(offset, "", -1)
    except TypeError:
        return OffsetAndMetadata(offset, "")


def _encode_key(key: str | None) -> bytes | None:
    return key.encode("utf-8") if key is not None else None


def _decode_key(key: bytes | None) -> str | None:
    return key.decode("utf-8") if key is not None else None


class KafkaConsumerClient:
    """Adapts :class:`kafka.KafkaConsumer` to the transport consumer protocol."""

    def __init__(self, consumer: KafkaConsumer) -> None:
        self._consumer = consumer

    def poll(self, timeout: float = 1.0, max_records: int = 100) -> list[Record]:
        batches = self._consumer.poll(timeout_ms=int(timeout * 1000), max_records=max_records)
        records: list[Record] = []
        for tp in sorted(batches, key=lambda t: (t.topic, t.partition)):
            for msg in batches[tp]:
                records.append(
                    Record(
                        topic=msg.topic,
                        partition=msg.partition,
                        offset=msg.offset,
                        key=_decode_key(msg.key),
                        value=msg.value,
                        headers=tuple(msg.headers or ()),
                        timestamp=(msg.timestamp or 0) / 1000.0,
                    )
                )
        return records

    def commit(self, record: Record) -> None:
        tp = TopicPartition(record.topic, record.partition)
        self._consumer.commit(offsets={tp: make_offset(record.offset + 1)})

    def seek(self, record: Record) -> None:
        self._consumer.seek(TopicPartition(record.topic, record.partition), record.offset)

    def close(self) -> None:
        self._consumer.close(autocommit=False)


class KafkaTransport:
    """Idempotent kafka-python producer plus consumer and topic factories."""

    def __init__(
        self,
        bootstrap_servers: str | Sequence[str],
        *,
        client_id: str = "greenhouse",
        acks: str = "all",
        retries: int = 3,
        retry_backoff_ms: int = 1000,
        request_timeout_ms: int = 30_000,
        linger_ms: int = 5,
        batch_size: int = 16_384,
        max_in_flight: int = 5,
        compression_type: str | None = "gzip",
        max_block_ms: int = 2_000,
        delivery_timeout_ms: int = 120_000,
        max_poll_records: int = 100,
        isolation_level: str = "read_committed",
        auto_offset_reset: str = "earliest",
    ) -> None:
        self.bootstrap_servers = bootstrap_servers
        self.client_id = client_id
        self.max_poll_records = max_poll_records
        self.isolation_level = isolation_level
        self.auto_offset_reset = auto_offset_reset
        self._producer_config: dict[str, Any] = {
            "bootstrap_servers": bootstrap_servers,
            "client_id": f"{client_id}-producer",
            "acks": acks,
            "retries": retries,
            "retry_backoff_ms": retry_backoff_ms,
            "request_timeout_ms": request_timeout_ms,
            "linger_ms": linger_ms,
            "batch_size": batch_size,
            "max_in_flight_requests_per_connection": max_in_flight,
            "enable_idempotence": True,
            "compression_type": compression_type,
            "max_block_ms": max_block_ms,
            "delivery_timeout_ms": delivery_timeout_ms,
        }
        self._producer: KafkaProducer | None = None
        self._producer_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = {"sent": 0, "failed": 0}

    @property
    def producer(self) -> KafkaProducer:
        with self._producer_lock:
            if self._producer is None:
                self._producer = KafkaProducer(**self._producer_config)
                logger.info("Kafka producer connected to %s", self.bootstrap_servers)
            return self._producer

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def send(
        self,
        topic: str,
        key: str | None,
        value: bytes,
        headers: Sequence[tuple[str, bytes]] | None = None,
    ) -> "Future[PublishResult]":
        try:
            kafka_future = self.producer.send(topic, value=value, key=_encode_key(key), headers=list(headers or []))
        except KafkaError as exc:
            self._count("failed")
            if getattr(exc, "retriable", False):
                return completed_future(PublishResult.retryable(topic, key, str(exc)))
            return completed_future(PublishResult.fatal(topic, key, str(exc)))

        future: Future[PublishResult] = Future()

        def _on_success(metadata) -> None:
            self._count("sent")
            future.set_result(PublishResult.success(topic, key, metadata.partition, metadata.offset))

        def _on_error(exc: BaseException) -> None:
            self._count("failed")
            if isinstance(exc, KafkaError) and not getattr(exc, "retriable", False):
                future.set_result(PublishResult.fatal(topic, key, str(exc)))
            else:
                future.set_result(PublishResult.retryable(topic, key, str(exc)))

        kafka_future.add_callback(_on_success)
        kafka_future.add_errback(_on_error)
        return future

    def consumer(
        self, topics: Sequence[str], group_id: str, *, client_id: str | None = None
    ) -> KafkaConsumerClient:
        consumer = KafkaConsumer(
            *topics,
            bootstrap_servers=self.bootstrap_servers,
            group_id=group_id,
            client_id=client_id or f"{self.client_id}-consumer",
            enable_auto_commit=False,
            auto_offset_reset=self.auto_offset_reset,
            max_poll_records=self.max_poll_records,
            isolation_level=self.isolation_level,
        )
        return KafkaConsumerClient(consumer)

    def ensure_topics(self, specs: Iterable[TopicSpec]) -> None:
        admin = KafkaAdminClient(bootstrap_servers=self.bootstrap_servers, client_id=f"{self.client_id}-admin")
        try:
            for spec in specs:
                topic = NewTopic(
                    name=spec.name,
                    num_partitions=spec.partitions,
                    replication_factor=spec.replication,
                    topic_configs=spec.topic_configs(),
                )
                try:
                    admin.create_topics([topic])
                    logger.info("Created topic %s (%s partitions)", spec.name, spec.partitions)
                except TopicAlreadyExistsError:
                    logger.debug("Topic %s already exists", spec.name)
        finally:
            admin.close()

    def flush(self, timeout: float | None = None) -> None:
        if self._producer is not None:
            self._producer.flush(timeout=timeout)

    def close(self) -> None:
        with self._producer_lock:
            producer, self._producer = self._producer, None
        if producer is not None:
            producer.flush()
            producer.close()

    def get_stats(self) -> dict[str, Any]:
        with self._stats_lock:
            stats = dict(self._stats)
        stats["transport"] = "kafka"
        return stats
