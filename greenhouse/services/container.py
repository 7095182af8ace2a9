from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import requests

from greenhouse.config import AppConfig
from greenhouse.enums import TransportKind
from greenhouse.hardware.mqtt.mqtt_broker_wrapper import MQTTClientWrapper
from greenhouse.messaging.consumer import ConsumerGroup, RecordDispatcher, RetryPolicy
from greenhouse.messaging.publisher import EventPublisher
from greenhouse.messaging.topics import topic_specs
from greenhouse.messaging.transport import InMemoryTransport, Transport
from greenhouse.reliability.circuit_breaker import CircuitBreaker
from greenhouse.reliability.dedupe import ProcessedEventCache
from greenhouse.services.action_service import ActionService
from greenhouse.services.alert_consumer import AlertConsumerService
from greenhouse.services.decision_engine import DecisionEngine
from greenhouse.services.environment_client import EnvironmentClient
from greenhouse.services.equipment_driver import EquipmentDriver, MqttEquipmentDriver, SimulatedEquipmentDriver
from greenhouse.services.equipment_service import EquipmentService
from greenhouse.services.measurement_service import MeasurementService
from greenhouse.services.parameter_service import ParameterService
from infrastructure.database.repositories import (
    ActionRepository,
    EquipmentRepository,
    MeasurementRepository,
    ParameterRepository,
)
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


def build_transport(config: AppConfig) -> Transport:
    if config.transport == TransportKind.KAFKA.value:
        from greenhouse.messaging.kafka_transport import KafkaTransport

        return KafkaTransport(
            config.kafka_bootstrap_servers,
            client_id=config.kafka_client_id,
            acks=config.producer_acks,
            retries=config.producer_retries,
            retry_backoff_ms=config.producer_retry_backoff_ms,
            request_timeout_ms=config.producer_request_timeout_ms,
            linger_ms=config.producer_linger_ms,
            batch_size=config.producer_batch_size,
            max_in_flight=config.producer_max_in_flight,
            compression_type=config.producer_compression or None,
            max_block_ms=config.producer_max_block_ms,
            delivery_timeout_ms=config.producer_delivery_timeout_ms,
            max_poll_records=config.consumer_max_poll_records,
        )
    return InMemoryTransport(
        retries=config.producer_retries,
        retry_backoff_seconds=config.producer_retry_backoff_ms / 1000.0,
    )


def build_driver(config: AppConfig) -> EquipmentDriver:
    if config.enable_mqtt:
        client = MQTTClientWrapper(
            config.mqtt_broker_host,
            config.mqtt_broker_port,
            client_id=f"{config.kafka_client_id}-equipment",
        )
        return MqttEquipmentDriver(client, config.mqtt_topic_prefix)
    return SimulatedEquipmentDriver()


@dataclass
class ServiceContainer:
    """Aggregate and manage the services of one process."""

    config: AppConfig
    database: SQLiteDatabaseHandler
    transport: Transport
    publisher: EventPublisher
    parameter_repo: ParameterRepository
    measurement_repo: MeasurementRepository
    equipment_repo: EquipmentRepository
    action_repo: ActionRepository
    audit_logger: AuditLogger
    driver: EquipmentDriver
    parameter_service: ParameterService
    measurement_service: MeasurementService
    equipment_service: EquipmentService
    action_service: ActionService
    decision_engine: DecisionEngine
    processed_events: ProcessedEventCache
    alert_consumer: AlertConsumerService
    dispatcher: RecordDispatcher
    consumer_group: ConsumerGroup
    breaker: CircuitBreaker
    environment_client: EnvironmentClient

    @classmethod
    def build(
        cls,
        config: AppConfig,
        *,
        transport: Optional[Transport] = None,
        driver: Optional[EquipmentDriver] = None,
        session: Optional[requests.Session] = None,
    ) -> "ServiceContainer":
        """Wire every service from *config*; collaborators may be injected."""
        database = SQLiteDatabaseHandler(config.database_path)
        database.create_tables()

        transport = transport or build_transport(config)
        if config.transport == TransportKind.MEMORY.value or config.kafka_create_topics:
            transport.ensure_topics(
                topic_specs(
                    alerts_topic=config.alerts_topic,
                    measurement_topic=config.measurement_topic,
                    actions_topic=config.actions_topic,
                    partitions=config.topic_partitions,
                    replication=config.topic_replication,
                )
            )
        publisher = EventPublisher(transport)

        parameter_repo = ParameterRepository(database)
        measurement_repo = MeasurementRepository(database)
        equipment_repo = EquipmentRepository(database)
        action_repo = ActionRepository(database)
        audit_logger = AuditLogger(config.audit_log_path)
        driver = driver or build_driver(config)

        parameter_service = ParameterService(parameter_repo)
        measurement_service = MeasurementService(
            measurement_repo,
            parameter_repo,
            publisher,
            measurement_topic=config.measurement_topic,
            alerts_topic=config.alerts_topic,
        )
        equipment_service = EquipmentService(equipment_repo)
        action_service = ActionService(
            action_repo,
            equipment_repo,
            publisher,
            driver,
            actions_topic=config.actions_topic,
            audit_logger=audit_logger,
            claim_lease_seconds=config.action_claim_lease_seconds,
        )
        decision_engine = DecisionEngine(equipment_service, action_service)

        processed_events = ProcessedEventCache(
            maxsize=config.dedupe_maxsize,
            ttl_seconds=config.dedupe_ttl_seconds,
        )
        alert_consumer = AlertConsumerService(decision_engine, processed_events)
        dispatcher = RecordDispatcher(
            alert_consumer.handle_record,
            publisher,
            policy=RetryPolicy(
                max_retries=config.consumer_max_retries,
                backoff_seconds=config.consumer_retry_backoff_ms / 1000.0,
            ),
        )
        consumer_group = ConsumerGroup(
            transport,
            [config.alerts_topic],
            config.consumer_group_id,
            dispatcher,
            concurrency=config.consumer_concurrency,
            poll_timeout=config.consumer_poll_timeout_seconds,
            max_poll_records=config.consumer_max_poll_records,
        )

        breaker = CircuitBreaker(
            "environment-service",
            failure_threshold=config.breaker_failure_threshold,
            window_size=config.breaker_window_size,
            minimum_calls=config.breaker_minimum_calls,
            failure_rate_threshold=config.breaker_failure_rate,
            open_wait_seconds=config.breaker_open_seconds,
        )
        environment_client = EnvironmentClient(
            config.environment_service_url,
            breaker,
            session=session,
            timeout=config.http_timeout_seconds,
        )

        logger.info(
            "ServiceContainer built (role=%s, transport=%s, database=%s)",
            config.service_role,
            config.transport,
            config.database_path,
        )
        return cls(
            config=config,
            database=database,
            transport=transport,
            publisher=publisher,
            parameter_repo=parameter_repo,
            measurement_repo=measurement_repo,
            equipment_repo=equipment_repo,
            action_repo=action_repo,
            audit_logger=audit_logger,
            driver=driver,
            parameter_service=parameter_service,
            measurement_service=measurement_service,
            equipment_service=equipment_service,
            action_service=action_service,
            decision_engine=decision_engine,
            processed_events=processed_events,
            alert_consumer=alert_consumer,
            dispatcher=dispatcher,
            consumer_group=consumer_group,
            breaker=breaker,
            environment_client=environment_client,
        )

    def start_consumers(self) -> None:
        """Start the alert consumer group (control role only)."""
        if not self.config.runs_control:
            logger.info("Service role %s does not consume alerts", self.config.service_role)
            return
        self.consumer_group.start()

    def messaging_stats(self) -> dict:
        return {
            "publisher": self.publisher.get_stats(),
            "consumer": self.consumer_group.get_stats(),
            "dedupe_cache": self.processed_events.get_stats(),
            "circuit_breaker": self.breaker.get_stats(),
        }

    def shutdown(self) -> None:
        """Release external resources before process exit."""
        self.consumer_group.stop()
        try:
            self.publisher.flush(timeout=10)
        except Exception as e:
            logger.warning("Failed to flush pending events: %s", e)
        self.transport.close()
        close_driver = getattr(self.driver, "close", None)
        if callable(close_driver):
            close_driver()
        self.environment_client.close()
        self.audit_logger.close()
        self.database.close_db()
        logger.info("ServiceContainer shutdown complete.")
