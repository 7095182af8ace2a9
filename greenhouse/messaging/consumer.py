"""
Consumer container
==================

Runs record handlers against a consumer group with manual acknowledgement.

Each polled record is passed to the handler together with an
:class:`Acknowledgment`. The record's offset is committed only when the
handler acknowledges. If the handler raises, the dispatcher retries it with a
fixed backoff up to ``RetryPolicy.max_retries`` times. After that, or at once
for non-retryable errors, the original record goes to ``<topic>.DLQ`` and
its offset is committed.

A :class:`ConsumerGroup` runs ``concurrency`` workers. Each worker owns its
own consumer and therefore its own set of partitions, so ordering holds per
partition only.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from greenhouse.domain.exceptions import GreenhouseError
from greenhouse.messaging.publisher import EventPublisher
from greenhouse.messaging.transport import ConsumerClient, Record, Transport

logger = logging.getLogger("greenhouse.messaging")

RecordHandler = Callable[[Record, "Acknowledgment"], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed backoff with a bounded number of retries."""

    max_retries: int = 3
    backoff_seconds: float = 1.0
    non_retryable: tuple[type[BaseException], ...] = (ValueError, TypeError, KeyError)

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, GreenhouseError):
            return exc.retryable
        return not isinstance(exc, self.non_retryable)


class Acknowledgment:
    """Delivery handle passed to handlers; commits the record's offset once."""

    def __init__(self, consumer: ConsumerClient, record: Record) -> None:
        self._consumer = consumer
        self._record = record
        self._lock = threading.Lock()
        self.acknowledged = False

    def acknowledge(self) -> None:
        with self._lock:
            if self.acknowledged:
                return
            self._consumer.commit(self._record)
            self.acknowledged = True

    __call__ = acknowledge


@dataclass
class ConsumerStats:
    processed: int = 0
    retried: int = 0
    dead_lettered: int = 0
    dead_letter_failures: int = 0
    unacknowledged: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def to_dict(self) -> dict[str, Any]:
        with self._lock:
            return {
                "processed": self.processed,
                "retried": self.retried,
                "dead_lettered": self.dead_lettered,
                "dead_letter_failures": self.dead_letter_failures,
                "unacknowledged": self.unacknowledged,
            }


class RecordDispatcher:
    """Applies the retry / dead-letter policy around one record handler."""

    def __init__(
        self,
        handler: RecordHandler,
        publisher: EventPublisher,
        *,
        policy: RetryPolicy | None = None,
        stats: ConsumerStats | None = None,
        sleep: Callable[[float], None] = time.sleep,
        dead_letter_timeout: float = 30.0,
    ) -> None:
        self.handler = handler
        self.publisher = publisher
        self.policy = policy or RetryPolicy()
        self.stats = stats or ConsumerStats()
        self._sleep = sleep
        self._dead_letter_timeout = dead_letter_timeout

    def dispatch(self, consumer: ConsumerClient, record: Record) -> bool:
        """Process *record*; returns False if it must be redelivered."""
        attempts = self.policy.max_retries + 1
        for attempt in range(1, attempts + 1):
            ack = Acknowledgment(consumer, record)
            try:
                self.handler(record, ack)
            except Exception as exc:
                retryable = self.policy.is_retryable(exc)
                logger.warning(
                    "Handler failed for %s[%s]@%s key=%s (attempt %s/%s, retryable=%s): %s",
                    record.topic,
                    record.partition,
                    record.offset,
                    record.key,
                    attempt,
                    attempts,
                    retryable,
                    exc,
                )
                if not retryable or attempt == attempts:
                    return self._dead_letter(consumer, record, exc)
                self.stats.incr("retried")
                if self.policy.backoff_seconds > 0:
                    self._sleep(self.policy.backoff_seconds)
                continue

            self.stats.incr("processed")
            if not ack.acknowledged:
                self.stats.incr("unacknowledged")
                logger.warning(
                    "Handler returned without acknowledging %s[%s]@%s",
                    record.topic,
                    record.partition,
                    record.offset,
                )
            return True
        return False

    def _dead_letter(self, consumer: ConsumerClient, record: Record, exc: BaseException) -> bool:
        reason = f"{type(exc).__name__}: {exc}"
        future = self.publisher.publish_dead_letter(record.topic, record.key, record.value, reason=reason)
        try:
            future.result(timeout=self._dead_letter_timeout).raise_for_status()
        except (GreenhouseError, FutureTimeoutError) as dlq_exc:
            self.stats.incr("dead_letter_failures")
            logger.error(
                "Could not dead-letter %s[%s]@%s (%s); record will be redelivered",
                record.topic,
                record.partition,
                record.offset,
                dlq_exc,
            )
            return False
        consumer.commit(record)
        self.stats.incr("dead_lettered")
        return True


class ConsumerWorker:
    """One consumer plus the poll loop that feeds the dispatcher."""

    def __init__(
        self,
        consumer: ConsumerClient,
        dispatcher: RecordDispatcher,
        *,
        name: str = "consumer",
        poll_timeout: float = 1.0,
        max_poll_records: int = 100,
    ) -> None:
        self.consumer = consumer
        self.dispatcher = dispatcher
        self.name = name
        self.poll_timeout = poll_timeout
        self.max_poll_records = max_poll_records
        self._stop = threading.Event()

    def run_once(self, timeout: float | None = None) -> int:
        """Poll one batch and dispatch it. Returns the number of records handled."""
        records = self.consumer.poll(
            timeout=self.poll_timeout if timeout is None else timeout,
            max_records=self.max_poll_records,
        )
        handled = 0
        for index, record in enumerate(records):
            if self._stop.is_set():
                self._rewind(records[index:])
                break
            if not self.dispatcher.dispatch(self.consumer, record):
                # Redeliver this record and everything after it in its partition.
                self._rewind(records[index:])
                break
            handled += 1
        return handled

    def _rewind(self, remaining: Sequence[Record]) -> None:
        seen: set[tuple[str, int]] = set()
        for record in remaining:
            slot = (record.topic, record.partition)
            if slot not in seen:
                seen.add(slot)
                self.consumer.seek(record)

    def run(self) -> None:
        logger.info("Consumer worker %s started", self.name)
        try:
            while not self._stop.is_set():
                try:
                    self.run_once()
                except Exception as exc:
                    logger.error("Consumer worker %s poll loop error: %s", self.name, exc, exc_info=True)
                    self._stop.wait(self.poll_timeout)
        finally:
            self.consumer.close()
            logger.info("Consumer worker %s stopped", self.name)

    def stop(self) -> None:
        self._stop.set()


class ConsumerGroup:
    """Runs ``concurrency`` workers in daemon threads for one subscription."""

    def __init__(
        self,
        transport: Transport,
        topics: Sequence[str],
        group_id: str,
        dispatcher: RecordDispatcher,
        *,
        concurrency: int = 3,
        poll_timeout: float = 1.0,
        max_poll_records: int = 100,
    ) -> None:
        self.transport = transport
        self.topics = tuple(topics)
        self.group_id = group_id
        self.dispatcher = dispatcher
        self.concurrency = max(1, concurrency)
        self.poll_timeout = poll_timeout
        self.max_poll_records = max_poll_records
        self.workers: list[ConsumerWorker] = []
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self.workers = []
        self._threads = []
        for index in range(self.concurrency):
            client_id = f"{self.group_id}-{index + 1}"
            consumer = self.transport.consumer(self.topics, self.group_id, client_id=client_id)
            worker = ConsumerWorker(
                consumer,
                self.dispatcher,
                name=client_id,
                poll_timeout=self.poll_timeout,
                max_poll_records=self.max_poll_records,
            )
            thread = threading.Thread(target=worker.run, name=client_id, daemon=True)
            self.workers.append(worker)
            self._threads.append(thread)
            thread.start()
        logger.info(
            "Consumer group %s started on %s with %s workers",
            self.group_id,
            ", ".join(self.topics),
            self.concurrency,
        )

    def stop(self, timeout: float = 5.0) -> None:
        for worker in self.workers:
            worker.stop()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []

    def get_stats(self) -> dict[str, Any]:
        stats = self.dispatcher.stats.to_dict()
        stats.update(
            {
                "group_id": self.group_id,
                "topics": list(self.topics),
                "concurrency": self.concurrency,
                "running": self.running,
            }
        )
        return stats
