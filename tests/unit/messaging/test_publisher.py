import json

from greenhouse.enums import PublishStatus, Severity
from greenhouse.messaging.publisher import EventPublisher
from greenhouse.messaging.transport import FailureMode
from greenhouse.schemas.events import AlertEvent

ALERTS_TOPIC = "greenhouse-alerts"


def _alert(**overrides):
    data = dict(
        measurement_id=1,
        parameter_id=3,
        parameter_kind="temperature",
        value=35.0,
        min_value=15.0,
        max_value=30.0,
        measured_at="2026-01-01T00:00:00+00:00",
        severity=Severity.MEDIUM,
        message="Alert",
    )
    data.update(overrides)
    return AlertEvent(**data)


def test_publish_serializes_event_as_json(publisher, broker):
    event = _alert()
    result = publisher.publish(ALERTS_TOPIC, 3, event).result()

    assert result.ok
    assert result.key == "3"
    [record] = broker.records(ALERTS_TOPIC)
    body = json.loads(record.value)
    assert body["event_id"] == event.event_id
    assert body["severity"] == "MEDIUM"
    assert body["schema_version"] == 1


def test_publish_failure_is_reported_not_raised(publisher, broker):
    broker.inject_failures(ALERTS_TOPIC, 4, FailureMode.UNAVAILABLE)
    result = publisher.publish(ALERTS_TOPIC, 3, _alert()).result()

    assert result.status is PublishStatus.RETRYABLE_ERROR
    stats = publisher.get_stats()
    assert stats["retryable_failures"] == 1
    assert stats["last_error"].startswith("retries exhausted")


def test_dead_letter_keeps_payload_and_adds_headers(publisher, broker):
    event = _alert()
    result = publisher.publish_dead_letter(ALERTS_TOPIC, 3, event, reason="boom").result()

    assert result.ok
    assert result.topic == f"{ALERTS_TOPIC}.DLQ"
    [record] = broker.records(f"{ALERTS_TOPIC}.DLQ")
    assert json.loads(record.value)["event_id"] == event.event_id
    headers = dict(record.headers)
    assert headers["dlq-original-topic"] == ALERTS_TOPIC.encode()
    assert headers["dlq-reason"] == b"boom"
    assert publisher.get_stats()["dead_lettered"] == 1


def test_dead_letter_passes_raw_bytes_through(publisher, broker):
    publisher.publish_dead_letter(ALERTS_TOPIC, None, b"not json").result()
    assert broker.values(f"{ALERTS_TOPIC}.DLQ") == [b"not json"]


def test_success_rate(transport):
    publisher = EventPublisher(transport)
    assert publisher.get_stats()["publish_success_rate"] == 0.0
    publisher.publish(ALERTS_TOPIC, 1, _alert()).result()
    stats = publisher.get_stats()
    assert stats["publish_success_rate"] == 100.0
    assert stats["transport"]["transport"] == "memory"
