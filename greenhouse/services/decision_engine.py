"""Turns alert events into corrective equipment actions."""

from __future__ import annotations

import logging

from greenhouse.domain import decision, thresholds
from greenhouse.domain.entities import Action, Equipment
from greenhouse.domain.exceptions import ConflictError
from greenhouse.enums import ActionStatus, ParameterKind
from greenhouse.schemas.events import AlertEvent
from greenhouse.services.action_service import ActionService
from greenhouse.services.equipment_service import EquipmentService

logger = logging.getLogger(__name__)


class DecisionEngine:
    def __init__(self, equipment_service: EquipmentService, action_service: ActionService) -> None:
        self.equipment_service = equipment_service
        self.action_service = action_service

    def handle_alert(self, event: AlertEvent) -> Action:
        """Create and execute the corrective action for *event*.

        An alert that already produced an action returns that action; a pending
        one left behind by an interrupted attempt is executed now. If another
        delivery of the alert holds the action, the alert counts as handled.

        Raises:
            EquipmentNotAvailableError: no active unit of the required category.
        """
        existing = self.action_service.action_repo.get_by_alert_event(event.event_id)
        if existing is not None:
            logger.info("Alert %s already handled by action %s", event.event_id, existing.id)
            if existing.status is ActionStatus.PENDING:
                return self._execute(existing.id)
            return existing

        kind = ParameterKind.parse(event.parameter_kind)
        if kind is None:
            logger.warning(
                "Alert %s has unknown parameter kind %r; using default rule", event.event_id, event.parameter_kind
            )
        direction = thresholds.violation_direction(event.value, event.min_value, event.max_value)
        rule = decision.decide(kind, direction)

        equipment = decision.select_equipment(
            self.equipment_service.find_available(rule.category),
            rule.category,
            parameter_id=event.parameter_id,
        )
        try:
            action = self.action_service.create_automatic_action(
                equipment,
                rule.action,
                parameter_id=event.parameter_id,
                target_value=decision.target_value(event.value, event.min_value, event.max_value),
                observed_value=event.value,
                alert_event_id=event.event_id,
            )
        except ConflictError:
            # Another delivery of the same alert won the insert.
            existing = self.action_service.action_repo.get_by_alert_event(event.event_id)
            if existing is None:
                raise
            return existing
        logger.info(
            "Alert %s (%s %s, severity %s) -> %s %s #%s as action %s",
            event.event_id,
            event.parameter_kind,
            direction.value,
            event.severity.value,
            rule.action.value,
            equipment.category.value,
            equipment.id,
            action.id,
        )
        return self._execute(action.id, equipment=equipment)

    def _execute(self, action_id: int, *, equipment: Equipment | None = None) -> Action:
        try:
            return self.action_service.execute(action_id, equipment=equipment)
        except ConflictError as exc:
            logger.info("Action %s is owned by another delivery: %s", action_id, exc)
            return self.action_service.get(action_id)
