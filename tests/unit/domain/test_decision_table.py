"""Corrective-action rule table and equipment selection."""

from __future__ import annotations

import itertools

import pytest

from greenhouse.domain import decision
from greenhouse.domain.entities import Equipment
from greenhouse.domain.exceptions import EquipmentNotAvailableError
from greenhouse.enums import ActionKind, EquipmentCategory, EquipmentState, ParameterKind, ViolationDirection

EXPECTED = {
    (ParameterKind.TEMPERATURE, ViolationDirection.ABOVE_MAX): (EquipmentCategory.VENTILATOR, ActionKind.ACTIVATE),
    (ParameterKind.TEMPERATURE, ViolationDirection.BELOW_MIN): (EquipmentCategory.HEATER, ActionKind.ACTIVATE),
    (ParameterKind.HUMIDITY, ViolationDirection.ABOVE_MAX): (EquipmentCategory.VENTILATOR, ActionKind.ACTIVATE),
    (ParameterKind.LUMINOSITY, ViolationDirection.BELOW_MIN): (EquipmentCategory.LIGHT, ActionKind.ACTIVATE),
    (ParameterKind.CO2, ViolationDirection.ABOVE_MAX): (EquipmentCategory.VENTILATOR, ActionKind.ACTIVATE),
}


@pytest.mark.parametrize(
    "kind, direction",
    list(itertools.product([*ParameterKind, None], list(ViolationDirection))),
)
def test_rule_table_is_total(kind, direction):
    rule = decision.decide(kind, direction)
    category, action = EXPECTED.get((kind, direction), (EquipmentCategory.VENTILATOR, ActionKind.ADJUST))
    assert rule.category is category
    assert rule.action is action


class TestParameterKindParsing:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("temperature", ParameterKind.TEMPERATURE),
            ("TEMPERATURE", ParameterKind.TEMPERATURE),
            ("humidite", ParameterKind.HUMIDITY),
            ("Luminosite", ParameterKind.LUMINOSITY),
            ("light", ParameterKind.LUMINOSITY),
            ("lux", ParameterKind.LUMINOSITY),
            ("co2", ParameterKind.CO2),
        ],
    )
    def test_known_and_legacy_names(self, raw, expected):
        assert ParameterKind.parse(raw) is expected

    def test_unknown_kind_parses_to_none_and_uses_default_rule(self):
        kind = ParameterKind.parse("ph")
        assert kind is None
        assert decision.decide(kind, ViolationDirection.ABOVE_MAX) == decision.DEFAULT_RULE


class TestTargetValue:
    def test_above_max_targets_max(self):
        assert decision.target_value(35, 15, 30) == 30

    def test_below_min_targets_min(self):
        assert decision.target_value(10, 15, 30) == 15


def _unit(id_, category=EquipmentCategory.VENTILATOR, state=EquipmentState.ACTIVE, parameter_id=None):
    return Equipment(id=id_, name=f"unit-{id_}", category=category, state=state, parameter_id=parameter_id)


class TestSelectEquipment:
    def test_prefers_unit_associated_with_parameter(self):
        units = [_unit(1), _unit(2, parameter_id=7), _unit(3)]
        chosen = decision.select_equipment(units, EquipmentCategory.VENTILATOR, parameter_id=7)
        assert chosen.id == 2

    def test_falls_back_to_lowest_id(self):
        units = [_unit(5), _unit(3), _unit(9, parameter_id=1)]
        chosen = decision.select_equipment(units, EquipmentCategory.VENTILATOR, parameter_id=7)
        assert chosen.id == 3

    def test_ignores_inactive_and_other_categories(self):
        units = [
            _unit(1, state=EquipmentState.INACTIVE),
            _unit(2, category=EquipmentCategory.HEATER),
            _unit(4),
        ]
        assert decision.select_equipment(units, EquipmentCategory.VENTILATOR).id == 4

    def test_inactive_associated_unit_is_not_preferred(self):
        units = [_unit(1), _unit(2, state=EquipmentState.INACTIVE, parameter_id=7)]
        assert decision.select_equipment(units, EquipmentCategory.VENTILATOR, parameter_id=7).id == 1

    def test_no_active_unit_raises(self):
        with pytest.raises(EquipmentNotAvailableError) as exc_info:
            decision.select_equipment([_unit(1, state=EquipmentState.INACTIVE)], EquipmentCategory.VENTILATOR)
        assert exc_info.value.retryable is True
        assert exc_info.value.http_status == 503
