"""
Configuration for the greenhouse control services
==================================================
Runtime settings for the environment service, the control service and the
event log between them, all read from ``GREENHOUSE_*`` environment variables.
Also sets up logging.
"""

import os
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

from greenhouse.enums import ServiceRole, TransportKind


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "t", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer.") from None


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number.") from None


@dataclass
class AppConfig:
    """Runtime configuration loaded from environment variables."""

    environment: str = field(default_factory=lambda: os.getenv("GREENHOUSE_ENV", "development"))
    service_role: str = field(default_factory=lambda: os.getenv("GREENHOUSE_SERVICE_ROLE", "all"))
    database_path: str = field(default_factory=lambda: os.getenv("GREENHOUSE_DATABASE_PATH", "database/greenhouse.db"))

    # Event log
    transport: str = field(default_factory=lambda: os.getenv("GREENHOUSE_TRANSPORT", "memory"))
    kafka_bootstrap_servers: str = field(
        default_factory=lambda: os.getenv("GREENHOUSE_KAFKA_BOOTSTRAP_SERVERS", "localhost:9092")
    )
    kafka_client_id: str = field(default_factory=lambda: os.getenv("GREENHOUSE_KAFKA_CLIENT_ID", "greenhouse"))
    kafka_create_topics: bool = field(default_factory=lambda: _env_bool("GREENHOUSE_KAFKA_CREATE_TOPICS", True))
    alerts_topic: str = field(default_factory=lambda: os.getenv("GREENHOUSE_ALERTS_TOPIC", "greenhouse-alerts"))
    measurement_topic: str = field(
        default_factory=lambda: os.getenv("GREENHOUSE_MEASUREMENT_TOPIC", "measurement-stream")
    )
    actions_topic: str = field(default_factory=lambda: os.getenv("GREENHOUSE_ACTIONS_TOPIC", "equipment-actions"))
    topic_partitions: int = field(default_factory=lambda: _env_int("GREENHOUSE_TOPIC_PARTITIONS", 3))
    topic_replication: int = field(default_factory=lambda: _env_int("GREENHOUSE_TOPIC_REPLICATION", 1))

    # Producer (idempotent: acks=all, bounded retries and in-flight requests)
    producer_acks: str = field(default_factory=lambda: os.getenv("GREENHOUSE_PRODUCER_ACKS", "all"))
    producer_retries: int = field(default_factory=lambda: _env_int("GREENHOUSE_PRODUCER_RETRIES", 3))
    producer_retry_backoff_ms: int = field(
        default_factory=lambda: _env_int("GREENHOUSE_PRODUCER_RETRY_BACKOFF_MS", 1000)
    )
    producer_request_timeout_ms: int = field(
        default_factory=lambda: _env_int("GREENHOUSE_PRODUCER_REQUEST_TIMEOUT_MS", 30_000)
    )
    producer_linger_ms: int = field(default_factory=lambda: _env_int("GREENHOUSE_PRODUCER_LINGER_MS", 5))
    producer_batch_size: int = field(default_factory=lambda: _env_int("GREENHOUSE_PRODUCER_BATCH_SIZE", 16_384))
    producer_max_in_flight: int = field(default_factory=lambda: _env_int("GREENHOUSE_PRODUCER_MAX_IN_FLIGHT", 5))
    producer_compression: str = field(default_factory=lambda: os.getenv("GREENHOUSE_PRODUCER_COMPRESSION", "gzip"))
    # Upper bound on how long send() may block for metadata or buffer space
    producer_max_block_ms: int = field(default_factory=lambda: _env_int("GREENHOUSE_PRODUCER_MAX_BLOCK_MS", 2_000))
    producer_delivery_timeout_ms: int = field(
        default_factory=lambda: _env_int("GREENHOUSE_PRODUCER_DELIVERY_TIMEOUT_MS", 120_000)
    )

    # Alert consumer
    consumer_group_id: str = field(
        default_factory=lambda: os.getenv("GREENHOUSE_CONSUMER_GROUP_ID", "control-service-group")
    )
    consumer_concurrency: int = field(default_factory=lambda: _env_int("GREENHOUSE_CONSUMER_CONCURRENCY", 3))
    consumer_max_poll_records: int = field(
        default_factory=lambda: _env_int("GREENHOUSE_CONSUMER_MAX_POLL_RECORDS", 100)
    )
    consumer_poll_timeout_seconds: float = field(
        default_factory=lambda: _env_float("GREENHOUSE_CONSUMER_POLL_TIMEOUT_SECONDS", 1.0)
    )
    consumer_retry_backoff_ms: int = field(
        default_factory=lambda: _env_int("GREENHOUSE_CONSUMER_RETRY_BACKOFF_MS", 1000)
    )
    consumer_max_retries: int = field(default_factory=lambda: _env_int("GREENHOUSE_CONSUMER_MAX_RETRIES", 3))
    start_consumers: bool = field(default_factory=lambda: _env_bool("GREENHOUSE_START_CONSUMERS", False))
    # Age after which an unfinished action claim counts as abandoned
    action_claim_lease_seconds: float = field(
        default_factory=lambda: _env_float("GREENHOUSE_ACTION_CLAIM_LEASE_SECONDS", 300.0)
    )

    # Processed-event cache
    dedupe_maxsize: int = field(default_factory=lambda: _env_int("GREENHOUSE_DEDUPE_MAXSIZE", 10_000))
    dedupe_ttl_seconds: int = field(default_factory=lambda: _env_int("GREENHOUSE_DEDUPE_TTL_SECONDS", 7 * 24 * 3600))

    # Environment service client + circuit breaker
    environment_service_url: str = field(
        default_factory=lambda: os.getenv("GREENHOUSE_ENVIRONMENT_SERVICE_URL", "http://localhost:8081")
    )
    http_timeout_seconds: float = field(default_factory=lambda: _env_float("GREENHOUSE_HTTP_TIMEOUT_SECONDS", 5.0))
    breaker_failure_threshold: int = field(default_factory=lambda: _env_int("GREENHOUSE_BREAKER_FAILURE_THRESHOLD", 5))
    breaker_window_size: int = field(default_factory=lambda: _env_int("GREENHOUSE_BREAKER_WINDOW_SIZE", 10))
    breaker_minimum_calls: int = field(default_factory=lambda: _env_int("GREENHOUSE_BREAKER_MINIMUM_CALLS", 5))
    breaker_failure_rate: float = field(default_factory=lambda: _env_float("GREENHOUSE_BREAKER_FAILURE_RATE", 0.5))
    breaker_open_seconds: float = field(default_factory=lambda: _env_float("GREENHOUSE_BREAKER_OPEN_SECONDS", 10.0))

    # Equipment command channel
    enable_mqtt: bool = field(default_factory=lambda: _env_bool("GREENHOUSE_ENABLE_MQTT", False))
    mqtt_broker_host: str = field(default_factory=lambda: os.getenv("GREENHOUSE_MQTT_HOST", "localhost"))
    mqtt_broker_port: int = field(default_factory=lambda: _env_int("GREENHOUSE_MQTT_PORT", 1883))
    mqtt_topic_prefix: str = field(default_factory=lambda: os.getenv("GREENHOUSE_MQTT_TOPIC_PREFIX", "greenhouse"))

    DEBUG: bool = field(default_factory=lambda: _env_bool("GREENHOUSE_DEBUG", False))
    log_dir: str = field(default_factory=lambda: os.getenv("GREENHOUSE_LOG_DIR", "logs"))
    log_to_file: bool = field(default_factory=lambda: _env_bool("GREENHOUSE_LOG_TO_FILE", True))
    audit_log_path: str = field(default_factory=lambda: os.getenv("GREENHOUSE_AUDIT_LOG_PATH", "logs/audit.log"))
    log_level: str = field(default_factory=lambda: os.getenv("GREENHOUSE_LOG_LEVEL", "INFO"))

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.service_role = ServiceRole(self.service_role.lower()).value
        self.transport = TransportKind(self.transport.lower()).value
        if self.producer_acks != "all":
            raise ValueError("The idempotent producer requires GREENHOUSE_PRODUCER_ACKS=all")
        if not 1 <= self.producer_max_in_flight <= 5:
            raise ValueError("GREENHOUSE_PRODUCER_MAX_IN_FLIGHT must be between 1 and 5")
        if self.consumer_max_retries < 0:
            raise ValueError("GREENHOUSE_CONSUMER_MAX_RETRIES must not be negative")
        if self.consumer_concurrency < 1:
            raise ValueError("GREENHOUSE_CONSUMER_CONCURRENCY must be at least 1")
        if self.producer_max_block_ms < 0:
            raise ValueError("GREENHOUSE_PRODUCER_MAX_BLOCK_MS must not be negative")
        if self.producer_delivery_timeout_ms < self.producer_request_timeout_ms + self.producer_linger_ms:
            raise ValueError(
                "GREENHOUSE_PRODUCER_DELIVERY_TIMEOUT_MS must cover the request timeout plus linger"
            )
        if self.action_claim_lease_seconds <= 0:
            raise ValueError("GREENHOUSE_ACTION_CLAIM_LEASE_SECONDS must be positive")

    @property
    def runs_environment(self) -> bool:
        return self.service_role in (ServiceRole.ENVIRONMENT.value, ServiceRole.ALL.value)

    @property
    def runs_control(self) -> bool:
        return self.service_role in (ServiceRole.CONTROL.value, ServiceRole.ALL.value)

    def as_flask_config(self) -> dict[str, Any]:
        """Render configuration values for Flask application."""
        return {
            "ENV": self.environment,
            "DATABASE_PATH": self.database_path,
            "SERVICE_ROLE": self.service_role,
            "TRANSPORT": self.transport,
            "AUDIT_LOG_PATH": self.audit_log_path,
            "DEBUG": self.DEBUG,
        }


def setup_logging(debug: bool = False, *, level: str | None = None, log_dir: str | None = "logs") -> None:
    """Setup logging configuration.

    Installs a console handler and a rotating ``greenhouse.log`` on the root
    logger, plus a rotating ``messaging.log`` for the ``greenhouse.messaging``
    logger. Safe to call more than once.
    """
    import logging
    import sys
    from logging.handlers import RotatingFileHandler

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = logging.getLevelName((level or "INFO").upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(log_level)

    # Avoid adding duplicates when create_app is called multiple times
    has_console = any(getattr(h, "name", "") == "greenhouse_console" for h in root.handlers)
    has_file = any(getattr(h, "name", "") == "greenhouse_file" for h in root.handlers)
    added_handler = False

    stream = sys.stdout
    with suppress(AttributeError, ValueError):
        stream.reconfigure(encoding="utf-8", errors="replace")
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    if not has_console:
        console_handler = logging.StreamHandler(stream=stream)
        console_handler.name = "greenhouse_console"
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)
        added_handler = True

    if log_dir and not has_file:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, "greenhouse.log"),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.name = "greenhouse_file"
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
        added_handler = True

        messaging_logger = logging.getLogger("greenhouse.messaging")
        if not any(getattr(h, "name", "") == "greenhouse_messaging_file" for h in messaging_logger.handlers):
            messaging_handler = RotatingFileHandler(
                os.path.join(log_dir, "messaging.log"),
                maxBytes=10 * 1024 * 1024,
                backupCount=3,
                encoding="utf-8",
            )
            messaging_handler.name = "greenhouse_messaging_file"
            messaging_handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
            messaging_logger.addHandler(messaging_handler)

    for handler in root.handlers:
        if getattr(handler, "name", "") in {"greenhouse_console", "greenhouse_file"}:
            handler.setLevel(log_level)

    if added_handler:
        root.info("Logging initialized at level: %s", logging.getLevelName(log_level))

    if _env_bool("GREENHOUSE_SILENCE_WERKZEUG", True):
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
    # kafka-python is chatty at INFO (connection and metadata churn)
    logging.getLogger("kafka").setLevel(logging.WARNING)


def load_config() -> AppConfig:
    """Helper for callers to load and validate configuration."""
    return AppConfig()
