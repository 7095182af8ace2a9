"""
Measurement ingestion
=====================

Stores a reading, derives its alert flag from the parameter's threshold band
and publishes:

- a :class:`MeasurementEvent` for every reading (measurement stream), and
- an :class:`AlertEvent` when the reading is outside the band (alerts topic).

The database write happens first and is never rolled back by a publish
failure. Publishing does not block the request; completion is handled in
``_on_measurement_published`` / ``_on_alert_published``. A failed alert
publish is compensated by re-publishing the same event to the alert DLQ.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from greenhouse.domain import thresholds
from greenhouse.domain.entities import Measurement, Parameter
from greenhouse.domain.exceptions import NotFoundError, ServiceError, ValidationError
from greenhouse.messaging.publisher import EventPublisher
from greenhouse.messaging.transport import PublishResult
from greenhouse.schemas.events import AlertEvent, MeasurementEvent
from greenhouse.schemas.requests import MeasurementRequest
from greenhouse.utils.time import to_iso, utc_now
from infrastructure.database.pagination import Page, PageRequest
from infrastructure.database.repositories.measurements import MeasurementRepository
from infrastructure.database.repositories.parameters import ParameterRepository

logger = logging.getLogger(__name__)

MAX_RANGE_RESULTS = 1000


def alert_message(parameter: Parameter, value: float) -> str:
    return (
        f"Alert: {parameter.kind.value} value {value:.2f}{parameter.unit} is outside threshold "
        f"[{parameter.min_value:.2f} - {parameter.max_value:.2f}]"
    )


@dataclass
class RecordedMeasurement:
    """A stored measurement and the events published for it."""

    measurement: Measurement
    parameter: Parameter
    evaluation: thresholds.ThresholdEvaluation
    measurement_event: MeasurementEvent
    alert_event: AlertEvent | None = None
    measurement_future: Future | None = None
    alert_future: Future | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.measurement.to_dict(self.parameter)
        if self.alert_event is not None:
            data["severity"] = self.alert_event.severity.value
            data["alert_event_id"] = self.alert_event.event_id
            data["deviation_pct"] = self.evaluation.deviation_pct
        return data


class MeasurementService:
    def __init__(
        self,
        measurement_repo: MeasurementRepository,
        parameter_repo: ParameterRepository,
        publisher: EventPublisher,
        *,
        measurement_topic: str = "measurement-stream",
        alerts_topic: str = "greenhouse-alerts",
    ) -> None:
        self.measurement_repo = measurement_repo
        self.parameter_repo = parameter_repo
        self.publisher = publisher
        self.measurement_topic = measurement_topic
        self.alerts_topic = alerts_topic

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def create_measurement(self, request: MeasurementRequest) -> RecordedMeasurement:
        """Store a measurement and publish its events.

        Raises:
            NotFoundError: the parameter does not exist.
        """
        parameter = self.parameter_repo.get(request.parameter_id)
        if parameter is None:
            raise NotFoundError(f"Parameter {request.parameter_id} not found")

        measured_at = to_iso(request.timestamp or utc_now())
        evaluation = thresholds.evaluate(request.value, parameter.min_value, parameter.max_value)

        measurement = self.measurement_repo.create(parameter.id, request.value, measured_at, evaluation.is_alert)
        if measurement is None:
            raise ServiceError("Measurement was written but could not be read back")

        measurement_event = MeasurementEvent(
            measurement_id=measurement.id,
            parameter_id=parameter.id,
            parameter_kind=parameter.kind.value,
            parameter_name=parameter.name,
            value=measurement.value,
            unit=parameter.unit,
            min_value=parameter.min_value,
            max_value=parameter.max_value,
            is_alert=measurement.is_alert,
            measured_at=measured_at,
        )
        recorded = RecordedMeasurement(measurement, parameter, evaluation, measurement_event)

        recorded.measurement_future = self.publisher.publish(self.measurement_topic, parameter.id, measurement_event)
        recorded.measurement_future.add_done_callback(
            lambda f: self._on_measurement_published(measurement_event, f.result())
        )

        if evaluation.is_alert:
            alert_event = AlertEvent(
                measurement_id=measurement.id,
                parameter_id=parameter.id,
                parameter_kind=parameter.kind.value,
                value=measurement.value,
                min_value=parameter.min_value,
                max_value=parameter.max_value,
                measured_at=measured_at,
                severity=evaluation.severity,
                message=alert_message(parameter, measurement.value),
            )
            recorded.alert_event = alert_event
            logger.warning(
                "Threshold violation on parameter %s: %s (severity %s, deviation %.1f%%)",
                parameter.id,
                alert_event.message,
                alert_event.severity.value,
                evaluation.deviation_pct,
            )
            recorded.alert_future = self.publisher.publish(self.alerts_topic, parameter.id, alert_event)
            recorded.alert_future.add_done_callback(lambda f: self._on_alert_published(alert_event, f.result()))

        return recorded

    def _on_measurement_published(self, event: MeasurementEvent, result: PublishResult) -> None:
        if not result.ok:
            logger.error(
                "Measurement event %s for measurement %s was not published (%s): %s",
                event.event_id,
                event.measurement_id,
                result.status.value,
                result.error,
            )

    def _on_alert_published(self, event: AlertEvent, result: PublishResult) -> None:
        if result.ok:
            logger.info(
                "Alert %s published to %s[%s]@%s",
                event.event_id,
                result.topic,
                result.partition,
                result.offset,
            )
            return
        logger.error(
            "Alert %s for measurement %s was not published (%s): %s; redirecting to DLQ",
            event.event_id,
            event.measurement_id,
            result.status.value,
            result.error,
        )
        self.publisher.publish_dead_letter(self.alerts_topic, event.parameter_id, event, reason=result.error)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _render(self, measurements: list[Measurement]) -> list[dict[str, Any]]:
        parameters: dict[int, Parameter | None] = {}
        rendered = []
        for measurement in measurements:
            if measurement.parameter_id not in parameters:
                parameters[measurement.parameter_id] = self.parameter_repo.get(measurement.parameter_id)
            rendered.append(measurement.to_dict(parameters[measurement.parameter_id]))
        return rendered

    def _require_parameter(self, parameter_id: int) -> Parameter:
        parameter = self.parameter_repo.get(parameter_id)
        if parameter is None:
            raise NotFoundError(f"Parameter {parameter_id} not found")
        return parameter

    def get_measurement(self, measurement_id: int) -> dict[str, Any]:
        measurement = self.measurement_repo.get(measurement_id)
        if measurement is None:
            raise NotFoundError(f"Measurement {measurement_id} not found")
        return self._render([measurement])[0]

    def list_measurements(self, page: PageRequest) -> Page:
        """All measurements, newest first."""
        items = self.measurement_repo.find(limit=page.limit, offset=page.offset)
        return Page(self._render(items), self.measurement_repo.count(), page.page, page.size)

    def list_for_parameter(self, parameter_id: int, page: PageRequest) -> Page:
        self._require_parameter(parameter_id)
        items = self.measurement_repo.find(parameter_id=parameter_id, limit=page.limit, offset=page.offset)
        total = self.measurement_repo.count(parameter_id=parameter_id)
        return Page(self._render(items), total, page.page, page.size)

    def list_in_range(
        self,
        start: datetime,
        end: datetime,
        *,
        parameter_id: int | None = None,
        limit: int = MAX_RANGE_RESULTS,
    ) -> list[dict[str, Any]]:
        if start > end:
            raise ValidationError("start must not be after end")
        if parameter_id is not None:
            self._require_parameter(parameter_id)
        items = self.measurement_repo.find(
            parameter_id=parameter_id,
            start=to_iso(start),
            end=to_iso(end),
            limit=min(limit, MAX_RANGE_RESULTS),
        )
        return self._render(items)

    def recent(self, parameter_id: int, limit: int = 10) -> list[dict[str, Any]]:
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        self._require_parameter(parameter_id)
        return self._render(self.measurement_repo.find(parameter_id=parameter_id, limit=limit))

    def list_alerts(self, page: PageRequest, *, parameter_id: int | None = None) -> Page:
        items = self.measurement_repo.find(
            parameter_id=parameter_id,
            alerts_only=True,
            limit=page.limit,
            offset=page.offset,
        )
        total = self.measurement_repo.count(parameter_id=parameter_id, alerts_only=True)
        return Page(self._render(items), total, page.page, page.size)
