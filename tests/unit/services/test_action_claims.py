"""Execution claims: a redelivered alert must not run the same action twice."""

import sqlite3
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from greenhouse.domain.exceptions import ConflictError
from greenhouse.enums import ActionKind, ActionStatus, Severity
from greenhouse.messaging.transport import Record
from greenhouse.schemas.events import AlertEvent
from greenhouse.services.action_service import ActionService
from greenhouse.services.equipment_driver import SimulatedEquipmentDriver
from greenhouse.utils.time import utc_now
from infrastructure.database.repositories import ActionRepository, EquipmentRepository
from infrastructure.database.sqlite_handler import SQLiteDatabaseHandler

ALERTS_TOPIC = "greenhouse-alerts"
ACTIONS_TOPIC = "equipment-actions"


class ReentrantDriver(SimulatedEquipmentDriver):
    """Runs ``on_apply`` once, mid-execution, before the command is recorded."""

    def __init__(self):
        super().__init__()
        self.on_apply = None
        self.inner_results = []

    def apply(self, equipment, action):
        callback, self.on_apply = self.on_apply, None
        if callback is not None:
            self.inner_results.append(callback())
        return super().apply(equipment, action)


@pytest.fixture()
def driver():
    return ReentrantDriver()


@pytest.fixture()
def fan(seed):
    parameter = seed.parameter("temperature", 15, 30)
    unit = seed.equipment("Roof fan", "ventilator", parameter_id=parameter.id)
    return parameter, unit


def _alert(parameter_id):
    return AlertEvent(
        measurement_id=1,
        parameter_id=parameter_id,
        parameter_kind="temperature",
        value=35,
        min_value=15,
        max_value=30,
        measured_at="2026-01-01T00:00:00+00:00",
        severity=Severity.MEDIUM,
        message="Alert",
    )


class TestRepositoryClaim:
    def test_second_claim_is_refused_until_lease_expires(self, action_repo, fan):
        _, unit = fan
        action = action_repo.create(unit.id, "activate")

        assert action_repo.claim(action.id, lease_seconds=300) is True
        assert action_repo.claim(action.id, lease_seconds=300) is False
        later = utc_now() + timedelta(minutes=10)
        assert action_repo.claim(action.id, lease_seconds=300, now=later) is True

    def test_terminal_action_cannot_be_claimed(self, action_service, fan):
        _, unit = fan
        pending = action_service.create_automatic_action(
            unit, ActionKind.ACTIVATE, parameter_id=None, target_value=None, observed_value=None
        )
        action_service.execute(pending.id)

        later = utc_now() + timedelta(hours=1)
        assert action_service.action_repo.claim(pending.id, lease_seconds=1, now=later) is False


    def test_existing_database_gains_claim_column(self, tmp_path):
        path = tmp_path / "old.db"
        with sqlite3.connect(path) as db:
            db.execute(
                "CREATE TABLE Actions (action_id INTEGER PRIMARY KEY AUTOINCREMENT, equipment_id INTEGER NOT NULL, "
                "parameter_id INTEGER, kind TEXT NOT NULL, target_value REAL, observed_value REAL, "
                "status TEXT NOT NULL DEFAULT 'pending', executed_at TEXT, result TEXT, "
                "is_automatic INTEGER NOT NULL DEFAULT 0, alert_event_id TEXT, created_at TEXT)"
            )
        db_handler = SQLiteDatabaseHandler(str(path))
        db_handler.create_tables()
        db_handler.create_tables()

        unit = EquipmentRepository(db_handler).create("Roof fan", "ventilator", "active", None)
        actions = ActionRepository(db_handler)
        action = actions.create(unit.id, "activate")
        assert actions.claim(action.id, lease_seconds=300) is True
        db_handler.close_db()


class TestExecuteWhileClaimed:
    def test_execute_refuses_live_claim(self, action_service, action_repo, driver, fan):
        _, unit = fan
        pending = action_service.create_automatic_action(
            unit, ActionKind.ACTIVATE, parameter_id=None, target_value=None, observed_value=None
        )
        assert action_repo.claim(pending.id, lease_seconds=300)

        with pytest.raises(ConflictError):
            action_service.execute(pending.id)
        assert driver.commands == []
        assert action_repo.get(pending.id).status is ActionStatus.PENDING

    def test_abandoned_claim_is_taken_over(self, action_repo, equipment_repo, publisher, driver, fan):
        _, unit = fan
        service = ActionService(
            action_repo, equipment_repo, publisher, driver, actions_topic=ACTIONS_TOPIC, claim_lease_seconds=0
        )
        pending = service.create_automatic_action(
            unit, ActionKind.ACTIVATE, parameter_id=None, target_value=None, observed_value=None
        )
        action_repo.claim(pending.id, lease_seconds=0, now=utc_now() - timedelta(seconds=5))

        assert service.execute(pending.id).status is ActionStatus.EXECUTED
        assert len(driver.commands) == 1


class TestRedeliveryDuringExecution:
    def test_engine_leaves_claimed_action_to_its_owner(self, decision_engine, driver, fan):
        parameter, unit = fan
        event = _alert(parameter.id)
        driver.on_apply = lambda: decision_engine.handle_alert(event)

        outer = decision_engine.handle_alert(event)

        [inner] = driver.inner_results
        assert inner.id == outer.id
        assert inner.status is ActionStatus.PENDING
        assert outer.status is ActionStatus.EXECUTED
        assert driver.commands == [(unit.id, "activate", 30.0)]

    def test_redelivered_record_is_acked_not_dead_lettered(self, dispatcher, broker, action_repo, driver, fan):
        parameter, _ = fan
        record = Record(ALERTS_TOPIC, 0, 0, str(parameter.id), _alert(parameter.id).model_dump_json().encode())
        consumer = MagicMock()
        driver.on_apply = lambda: dispatcher.dispatch(consumer, record)

        assert dispatcher.dispatch(consumer, record) is True

        assert driver.inner_results == [True]
        assert dispatcher.stats.dead_lettered == 0
        assert broker.records(f"{ALERTS_TOPIC}.DLQ") == []
        assert len(broker.records(ACTIONS_TOPIC)) == 1
        assert len(driver.commands) == 1
        assert action_repo.count() == 1
        assert consumer.commit.call_count == 2
