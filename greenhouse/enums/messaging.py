from enum import Enum


class PublishStatus(str, Enum):
    """Outcome of a single publish attempt."""

    SUCCESS = "success"
    RETRYABLE_ERROR = "retryable_error"
    FATAL_ERROR = "fatal_error"


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class TransportKind(str, Enum):
    MEMORY = "memory"
    KAFKA = "kafka"
