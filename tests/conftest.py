"""
Shared test fixtures for the greenhouse control test suite.

Provides:
- Temp-file SQLite database with all tables created
- Repository instances wired to the test database
- A synchronous in-memory event log (broker + transport + publisher)
- Service factories for the environment and control services
- Helpers for seeding parameters and equipment
- A Flask test client over the full application

Usage:
    def test_example(seed, measurement_service):
        parameter = seed.parameter("temperature", 15, 30)
        ...
"""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
import requests

from greenhouse.enums import EquipmentCategory, EquipmentState, ParameterKind
from greenhouse.messaging.consumer import ConsumerStats, RecordDispatcher, RetryPolicy
from greenhouse.messaging.publisher import EventPublisher
from greenhouse.messaging.topics import topic_specs
from greenhouse.messaging.transport import InMemoryBroker, InMemoryTransport
from greenhouse.reliability.dedupe import ProcessedEventCache
from greenhouse.schemas.requests import CreateEquipmentRequest, ParameterRequest
from greenhouse.services.action_service import ActionService
from greenhouse.services.alert_consumer import AlertConsumerService
from greenhouse.services.decision_engine import DecisionEngine
from greenhouse.services.equipment_driver import SimulatedEquipmentDriver
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

# ---------------------------------------------------------------------------
# Logging: keep test output clean
# ---------------------------------------------------------------------------
logging.getLogger("infrastructure").setLevel(logging.WARNING)
logging.getLogger("greenhouse").setLevel(logging.WARNING)

ALERTS_TOPIC = "greenhouse-alerts"
MEASUREMENT_TOPIC = "measurement-stream"
ACTIONS_TOPIC = "equipment-actions"


# ========================== Database Fixtures ==============================


@pytest.fixture()
def db_handler(tmp_path):
    """File-backed SQLite database with all tables created.

    A file (not ``:memory:``) so connections opened by other threads see the
    same data.
    """
    handler = SQLiteDatabaseHandler(str(tmp_path / "greenhouse_test.db"))
    handler.create_tables()
    yield handler
    handler.close_db()


@pytest.fixture()
def parameter_repo(db_handler):
    return ParameterRepository(db_handler)


@pytest.fixture()
def measurement_repo(db_handler):
    return MeasurementRepository(db_handler)


@pytest.fixture()
def equipment_repo(db_handler):
    return EquipmentRepository(db_handler)


@pytest.fixture()
def action_repo(db_handler):
    return ActionRepository(db_handler)


# ========================== Event Log Fixtures =============================


@pytest.fixture()
def broker():
    broker = InMemoryBroker()
    for spec in topic_specs(
        alerts_topic=ALERTS_TOPIC,
        measurement_topic=MEASUREMENT_TOPIC,
        actions_topic=ACTIONS_TOPIC,
    ):
        broker.create_topic(spec)
    return broker


@pytest.fixture()
def transport(broker):
    """Synchronous transport: futures are resolved when ``send`` returns."""
    transport = InMemoryTransport(broker, retries=3, retry_backoff_seconds=0, synchronous=True)
    yield transport
    transport.close()


@pytest.fixture()
def publisher(transport):
    return EventPublisher(transport)


# ========================== Service Fixtures ===============================


@pytest.fixture()
def audit_logger(tmp_path):
    audit = AuditLogger(str(tmp_path / "audit.log"), logger_name=f"greenhouse.audit.{tmp_path.name}")
    yield audit
    audit.close()


@pytest.fixture()
def driver():
    return SimulatedEquipmentDriver()


@pytest.fixture()
def parameter_service(parameter_repo):
    return ParameterService(parameter_repo)


@pytest.fixture()
def measurement_service(measurement_repo, parameter_repo, publisher):
    return MeasurementService(
        measurement_repo,
        parameter_repo,
        publisher,
        measurement_topic=MEASUREMENT_TOPIC,
        alerts_topic=ALERTS_TOPIC,
    )


@pytest.fixture()
def equipment_service(equipment_repo):
    return EquipmentService(equipment_repo)


@pytest.fixture()
def action_service(action_repo, equipment_repo, publisher, driver, audit_logger):
    return ActionService(
        action_repo,
        equipment_repo,
        publisher,
        driver,
        actions_topic=ACTIONS_TOPIC,
        audit_logger=audit_logger,
    )


@pytest.fixture()
def decision_engine(equipment_service, action_service):
    return DecisionEngine(equipment_service, action_service)


@pytest.fixture()
def processed_events():
    return ProcessedEventCache(maxsize=100, ttl_seconds=3600)


@pytest.fixture()
def alert_consumer(decision_engine, processed_events):
    return AlertConsumerService(decision_engine, processed_events)


@pytest.fixture()
def dispatcher(alert_consumer, publisher):
    """Alert dispatcher with the production retry bound and no backoff sleep."""
    return RecordDispatcher(
        alert_consumer.handle_record,
        publisher,
        policy=RetryPolicy(max_retries=3, backoff_seconds=0),
        stats=ConsumerStats(),
    )


# ========================== Seeding Helpers ================================


class SeedHelper:
    """Creates parameters and equipment through the services."""

    def __init__(self, parameter_service: ParameterService, equipment_service: EquipmentService):
        self.parameter_service = parameter_service
        self.equipment_service = equipment_service

    def parameter(self, kind: str, min_value: float, max_value: float, unit: str = ""):
        return self.parameter_service.create(
            ParameterRequest(kind=ParameterKind(kind), min_value=min_value, max_value=max_value, unit=unit)
        )

    def equipment(
        self,
        name: str,
        category: str,
        *,
        state: str = "active",
        parameter_id: int | None = None,
    ):
        return self.equipment_service.create(
            CreateEquipmentRequest(
                name=name,
                category=EquipmentCategory(category),
                state=EquipmentState(state),
                parameter_id=parameter_id,
            )
        )


@pytest.fixture()
def seed(parameter_service, equipment_service):
    return SeedHelper(parameter_service, equipment_service)


# ========================== Application Fixtures ===========================


@pytest.fixture()
def http_session():
    """Stand-in for the requests session used by the environment client."""
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def app(tmp_path, transport, driver, http_session):
    from greenhouse import create_app

    flask_app = create_app(
        {
            "database_path": str(tmp_path / "app.db"),
            "audit_log_path": str(tmp_path / "app-audit.log"),
            "log_to_file": False,
            "service_role": "all",
            "consumer_retry_backoff_ms": 0,
            "producer_retry_backoff_ms": 0,
            "environment_service_url": "http://environment.test",
            "breaker_failure_threshold": 2,
            "breaker_open_seconds": 60,
        },
        transport=transport,
        driver=driver,
        session=http_session,
    )
    flask_app.config["TESTING"] = True
    yield flask_app
    flask_app.config["CONTAINER"].audit_logger.close()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def container(app):
    return app.config["CONTAINER"]
