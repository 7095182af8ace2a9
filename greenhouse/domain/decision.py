"""
Corrective-action decision table
================================

Maps ``(parameter kind, violation direction)`` to the equipment category that
should react and the kind of action it should take. The table is total: any
combination without an explicit rule (including an unknown kind) falls back to
``DEFAULT_RULE``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from greenhouse.domain.entities import Equipment
from greenhouse.domain.exceptions import EquipmentNotAvailableError
from greenhouse.enums import ActionKind, EquipmentCategory, EquipmentState, ParameterKind, ViolationDirection


@dataclass(frozen=True)
class DecisionRule:
    category: EquipmentCategory
    action: ActionKind


DEFAULT_RULE = DecisionRule(EquipmentCategory.VENTILATOR, ActionKind.ADJUST)

RULES: dict[tuple[ParameterKind, ViolationDirection], DecisionRule] = {
    (ParameterKind.TEMPERATURE, ViolationDirection.ABOVE_MAX): DecisionRule(
        EquipmentCategory.VENTILATOR, ActionKind.ACTIVATE
    ),
    (ParameterKind.TEMPERATURE, ViolationDirection.BELOW_MIN): DecisionRule(
        EquipmentCategory.HEATER, ActionKind.ACTIVATE
    ),
    (ParameterKind.HUMIDITY, ViolationDirection.ABOVE_MAX): DecisionRule(
        EquipmentCategory.VENTILATOR, ActionKind.ACTIVATE
    ),
    (ParameterKind.LUMINOSITY, ViolationDirection.BELOW_MIN): DecisionRule(
        EquipmentCategory.LIGHT, ActionKind.ACTIVATE
    ),
    (ParameterKind.CO2, ViolationDirection.ABOVE_MAX): DecisionRule(
        EquipmentCategory.VENTILATOR, ActionKind.ACTIVATE
    ),
}


def decide(kind: ParameterKind | None, direction: ViolationDirection) -> DecisionRule:
    """Return the rule for *kind* and *direction*, or the default rule."""
    if kind is None:
        return DEFAULT_RULE
    return RULES.get((kind, direction), DEFAULT_RULE)


def target_value(value: float, min_value: float, max_value: float) -> float:
    """The bound the corrective action should steer back to."""
    return max_value if value > max_value else min_value


def select_equipment(
    candidates: Iterable[Equipment],
    category: EquipmentCategory,
    *,
    parameter_id: int | None = None,
) -> Equipment:
    """Pick one active unit of *category*.

    Units associated with *parameter_id* win; ties break on the lowest id.

    Raises:
        EquipmentNotAvailableError: no active unit of the category exists.
    """
    active: Sequence[Equipment] = sorted(
        (e for e in candidates if e.category is category and e.state is EquipmentState.ACTIVE),
        key=lambda e: e.id,
    )
    if not active:
        raise EquipmentNotAvailableError(
            f"No active equipment available for category {category.value}",
            detail={"category": category.value, "parameter_id": parameter_id},
        )
    if parameter_id is not None:
        for equipment in active:
            if equipment.parameter_id == parameter_id:
                return equipment
    return active[0]
