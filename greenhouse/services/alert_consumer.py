"""
Alert consumer
==============

Handles alert records delivered by the consumer group. Delivery is at least
once, so the same alert may arrive more than once; the event id is the
de-duplication key.

For each record:

1. An empty payload, or one without an event id, is acknowledged and dropped.
2. An event id already in the processed-event cache is acknowledged and skipped.
3. Otherwise the decision engine creates and executes the corrective action.
   The event id is recorded and the record acknowledged only afterwards.

Errors propagate unacknowledged so the dispatcher can retry or dead-letter
the record. A payload that is not a valid alert raises
:class:`MalformedEventError`, which is never retried.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError

from greenhouse.domain.exceptions import MalformedEventError
from greenhouse.messaging.transport import Record
from greenhouse.reliability.dedupe import ProcessedEventCache
from greenhouse.schemas.events import AlertEvent
from greenhouse.services.decision_engine import DecisionEngine

logger = logging.getLogger(__name__)

Ack = Callable[[], None]


class AlertConsumerService:
    def __init__(self, decision_engine: DecisionEngine, processed_events: ProcessedEventCache) -> None:
        self.decision_engine = decision_engine
        self.processed_events = processed_events

    def handle(self, event: AlertEvent | None, ack: Ack) -> None:
        if event is None or not event.event_id:
            logger.warning("Dropping empty alert event")
            ack()
            return
        if event.event_id in self.processed_events:
            logger.info("Alert %s already processed; skipping", event.event_id)
            ack()
            return

        action = self.decision_engine.handle_alert(event)
        self.processed_events.add(event.event_id)
        ack()
        logger.info(
            "Alert %s processed: action %s is %s",
            event.event_id,
            action.id,
            action.status.value,
        )

    def handle_record(self, record: Record, ack: Ack) -> None:
        """Decode *record* and pass it to :meth:`handle`."""
        logger.info(
            "Received alert partition=%s offset=%s key=%s",
            record.partition,
            record.offset,
            record.key,
        )
        self.handle(self.decode(record.value), ack)

    @staticmethod
    def decode(value: bytes | None) -> AlertEvent | None:
        """Parse an alert payload. Returns None for empty payloads or a missing event id.

        Raises:
            MalformedEventError: the payload is not a JSON alert event.
        """
        if not value:
            return None
        try:
            data: Any = json.loads(value)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedEventError(f"Alert payload is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise MalformedEventError("Alert payload must be a JSON object")
        if not data.get("event_id"):
            return None
        try:
            return AlertEvent.model_validate(data)
        except PydanticValidationError as exc:
            raise MalformedEventError(
                f"Alert {data.get('event_id')} does not match the alert schema",
                detail={"errors": exc.errors(include_url=False)},
            ) from exc
