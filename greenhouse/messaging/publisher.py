"""
Event publisher
===============

Serializes pydantic events and hands them to the transport. ``publish``
returns a future resolving to a :class:`PublishResult`; it never raises.
Callers decide what a failed publish means for them, typically re-publishing
the same payload to the dead-letter topic with :meth:`publish_dead_letter`.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from greenhouse.enums import PublishStatus
from greenhouse.messaging.topics import dead_letter_topic
from greenhouse.messaging.transport import PublishResult, Transport, completed_future
from greenhouse.utils.time import utc_now

# Also written to logs/messaging.log by setup_logging().
logger = logging.getLogger("greenhouse.messaging")


@dataclass
class PublisherHealth:
    """Counters for publish outcomes."""

    successful_publishes: int = 0
    retryable_failures: int = 0
    fatal_failures: int = 0
    dead_lettered: int = 0
    dead_letter_failures: int = 0
    last_error: str | None = None
    last_error_time: datetime | None = None

    @property
    def success_rate(self) -> float:
        total = self.successful_publishes + self.retryable_failures + self.fatal_failures
        if total == 0:
            return 0.0
        return (self.successful_publishes / total) * 100

    def record(self, result: PublishResult) -> None:
        if result.status is PublishStatus.SUCCESS:
            self.successful_publishes += 1
            return
        if result.status is PublishStatus.RETRYABLE_ERROR:
            self.retryable_failures += 1
        else:
            self.fatal_failures += 1
        self.last_error = result.error
        self.last_error_time = utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "successful_publishes": self.successful_publishes,
            "retryable_failures": self.retryable_failures,
            "fatal_failures": self.fatal_failures,
            "dead_lettered": self.dead_lettered,
            "dead_letter_failures": self.dead_letter_failures,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "publish_success_rate": round(self.success_rate, 2),
        }


class EventPublisher:
    """Publishes events to the transport and tracks outcomes."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport
        self.health = PublisherHealth()
        self._lock = threading.Lock()

    def _track(self, future: "Future[PublishResult]") -> None:
        result = future.result()
        with self._lock:
            self.health.record(result)
        if result.ok:
            logger.debug(
                "Published to %s key=%s partition=%s offset=%s",
                result.topic,
                result.key,
                result.partition,
                result.offset,
            )

    def publish(self, topic: str, key: str | int | None, event: BaseModel) -> "Future[PublishResult]":
        """Publish *event* keyed by *key*; returns immediately."""
        key_str = str(key) if key is not None else None
        try:
            payload = event.model_dump_json().encode("utf-8")
        except Exception as exc:
            result = PublishResult.fatal(topic, key_str, f"serialization failed: {exc}")
            logger.error("Could not serialize %s for %s: %s", type(event).__name__, topic, exc)
            future = completed_future(result)
        else:
            future = self.transport.send(topic, key_str, payload)
        future.add_done_callback(self._track)
        return future

    def publish_dead_letter(
        self,
        topic: str,
        key: str | int | None,
        payload: BaseModel | bytes | None,
        *,
        reason: str | None = None,
    ) -> "Future[PublishResult]":
        """Re-publish *payload* unchanged to ``<topic>.DLQ``.

        The originating topic and failure reason travel as record headers.
        """
        dlq = dead_letter_topic(topic)
        key_str = str(key) if key is not None else None
        if isinstance(payload, BaseModel):
            value = payload.model_dump_json().encode("utf-8")
        else:
            value = payload or b""
        headers = [("dlq-original-topic", topic.encode("utf-8"))]
        if reason:
            headers.append(("dlq-reason", reason.encode("utf-8")[:512]))

        future = self.transport.send(dlq, key_str, value, headers)
        future.add_done_callback(self._track_dead_letter)
        return future

    def _track_dead_letter(self, future: "Future[PublishResult]") -> None:
        result = future.result()
        with self._lock:
            if result.ok:
                self.health.dead_lettered += 1
            else:
                self.health.dead_letter_failures += 1
        if result.ok:
            logger.warning("Record key=%s moved to %s (offset %s)", result.key, result.topic, result.offset)
        else:
            logger.error("Failed to write key=%s to %s: %s", result.key, result.topic, result.error)

    def flush(self, timeout: float | None = None) -> None:
        self.transport.flush(timeout)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            stats = self.health.to_dict()
        get_transport_stats = getattr(self.transport, "get_stats", None)
        if callable(get_transport_stats):
            stats["transport"] = get_transport_stats()
        return stats
