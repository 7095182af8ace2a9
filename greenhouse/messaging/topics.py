"""Topic layout for the event log."""

from __future__ import annotations

from dataclasses import dataclass

DLQ_SUFFIX = ".DLQ"

ONE_DAY_MS = 24 * 60 * 60 * 1000
ALERT_RETENTION_MS = 7 * ONE_DAY_MS
MEASUREMENT_RETENTION_MS = ONE_DAY_MS
ACTION_RETENTION_MS = 7 * ONE_DAY_MS
DLQ_RETENTION_MS = 30 * ONE_DAY_MS


@dataclass(frozen=True)
class TopicSpec:
    name: str
    partitions: int
    replication: int
    retention_ms: int

    def topic_configs(self) -> dict[str, str]:
        return {"retention.ms": str(self.retention_ms)}


def dead_letter_topic(topic: str) -> str:
    """Name of the dead-letter topic paired with *topic*."""
    return f"{topic}{DLQ_SUFFIX}"


def is_dead_letter_topic(topic: str) -> bool:
    return topic.endswith(DLQ_SUFFIX)


def topic_specs(
    *,
    alerts_topic: str,
    measurement_topic: str,
    actions_topic: str,
    partitions: int = 3,
    replication: int = 1,
) -> list[TopicSpec]:
    """Every topic the pipeline writes to, including the two dead-letter topics."""
    return [
        TopicSpec(alerts_topic, partitions, replication, ALERT_RETENTION_MS),
        TopicSpec(measurement_topic, partitions, replication, MEASUREMENT_RETENTION_MS),
        TopicSpec(actions_topic, partitions, replication, ACTION_RETENTION_MS),
        TopicSpec(dead_letter_topic(alerts_topic), 1, replication, DLQ_RETENTION_MS),
        TopicSpec(dead_letter_topic(actions_topic), 1, replication, DLQ_RETENTION_MS),
    ]
