"""Alert -> corrective action decisions."""

import pytest

from greenhouse.domain.exceptions import EquipmentNotAvailableError
from greenhouse.enums import ActionKind, ActionStatus, Severity
from greenhouse.schemas.events import AlertEvent


def _alert(parameter_id, kind, value, min_value, max_value, **extra):
    return AlertEvent(
        measurement_id=1,
        parameter_id=parameter_id,
        parameter_kind=kind,
        value=value,
        min_value=min_value,
        max_value=max_value,
        measured_at="2026-01-01T00:00:00+00:00",
        severity=Severity.MEDIUM,
        message="Alert",
        **extra,
    )


def test_hot_greenhouse_activates_ventilator(seed, decision_engine, driver):
    temperature = seed.parameter("temperature", 15, 30)
    fan = seed.equipment("Roof fan", "ventilator")
    seed.equipment("Heater", "heater")

    action = decision_engine.handle_alert(_alert(temperature.id, "temperature", 35, 15, 30))

    assert action.equipment_id == fan.id
    assert action.kind is ActionKind.ACTIVATE
    assert action.status is ActionStatus.EXECUTED
    assert action.is_automatic is True
    assert action.target_value == 30
    assert action.observed_value == 35
    assert driver.commands == [(fan.id, "activate", 30.0)]


def test_cold_greenhouse_activates_heater(seed, decision_engine):
    temperature = seed.parameter("temperature", 15, 30)
    seed.equipment("Roof fan", "ventilator")
    heater = seed.equipment("Heater", "heater")

    action = decision_engine.handle_alert(_alert(temperature.id, "temperature", 10, 15, 30))

    assert action.equipment_id == heater.id
    assert action.target_value == 15


def test_dark_greenhouse_activates_light(seed, decision_engine):
    luminosity = seed.parameter("luminosity", 200, 800)
    lamp = seed.equipment("Grow light", "light")
    action = decision_engine.handle_alert(_alert(luminosity.id, "luminosity", 50, 200, 800))
    assert action.equipment_id == lamp.id
    assert action.kind is ActionKind.ACTIVATE


def test_unknown_kind_adjusts_ventilator(seed, decision_engine):
    fan = seed.equipment("Roof fan", "ventilator")
    action = decision_engine.handle_alert(_alert(77, "ph", 9, 5, 7))
    assert action.equipment_id == fan.id
    assert action.kind is ActionKind.ADJUST


def test_prefers_equipment_tied_to_parameter(seed, decision_engine):
    temperature = seed.parameter("temperature", 15, 30)
    seed.equipment("Side fan", "ventilator")
    roof = seed.equipment("Roof fan", "ventilator", parameter_id=temperature.id)

    action = decision_engine.handle_alert(_alert(temperature.id, "temperature", 35, 15, 30))
    assert action.equipment_id == roof.id


def test_no_equipment_raises_retryable(seed, decision_engine, action_repo):
    temperature = seed.parameter("temperature", 15, 30)
    seed.equipment("Broken fan", "ventilator", state="inactive")

    with pytest.raises(EquipmentNotAvailableError) as exc_info:
        decision_engine.handle_alert(_alert(temperature.id, "temperature", 35, 15, 30))
    assert exc_info.value.retryable
    assert action_repo.count() == 0


def test_same_alert_twice_creates_one_action(seed, decision_engine, action_repo, driver):
    temperature = seed.parameter("temperature", 15, 30)
    seed.equipment("Roof fan", "ventilator")
    event = _alert(temperature.id, "temperature", 35, 15, 30)

    first = decision_engine.handle_alert(event)
    second = decision_engine.handle_alert(event)

    assert first.id == second.id
    assert action_repo.count() == 1
    assert len(driver.commands) == 1


def test_pending_action_from_interrupted_attempt_is_resumed(seed, decision_engine, action_service, driver):
    temperature = seed.parameter("temperature", 15, 30)
    fan = seed.equipment("Roof fan", "ventilator")
    event = _alert(temperature.id, "temperature", 35, 15, 30)
    pending = action_service.create_automatic_action(
        fan,
        ActionKind.ACTIVATE,
        parameter_id=temperature.id,
        target_value=30,
        observed_value=35,
        alert_event_id=event.event_id,
    )

    action = decision_engine.handle_alert(event)

    assert action.id == pending.id
    assert action.status is ActionStatus.EXECUTED
    assert len(driver.commands) == 1
