"""
Action executor
===============

Creates equipment actions and drives them through their lifecycle::

    pending ──► executed
        └─────► failed

A terminal action is never executed again. Before the driver runs, the action
is claimed with a conditional update on the pending row; a second worker that
sees the same pending action (a redelivered alert after a rebalance) fails the
claim instead of sending the command twice. A claim older than the lease is
treated as abandoned. The terminal transition is checked on the entity and
written with a conditional update as well.

Every finalized action is published as an :class:`EquipmentActionEvent`
keyed by equipment id. If that publish fails, the event is re-published to the
actions DLQ; the stored outcome stands either way.
"""

from __future__ import annotations

import logging

from greenhouse.domain.entities import Action, Equipment
from greenhouse.domain.exceptions import ConflictError, NotFoundError, ServiceError
from greenhouse.enums import ActionKind, ActionStatus
from greenhouse.messaging.publisher import EventPublisher
from greenhouse.messaging.transport import PublishResult
from greenhouse.schemas.events import EquipmentActionEvent
from greenhouse.schemas.requests import CreateActionRequest
from greenhouse.services.equipment_driver import EquipmentDriver
from greenhouse.utils.time import to_iso
from infrastructure.database.pagination import Page, PageRequest
from infrastructure.database.repositories.actions import ActionRepository
from infrastructure.database.repositories.equipment import EquipmentRepository
from infrastructure.logging.audit import AuditLogger

logger = logging.getLogger(__name__)


class ActionService:
    def __init__(
        self,
        action_repo: ActionRepository,
        equipment_repo: EquipmentRepository,
        publisher: EventPublisher,
        driver: EquipmentDriver,
        *,
        actions_topic: str = "equipment-actions",
        audit_logger: AuditLogger | None = None,
        claim_lease_seconds: float = 300.0,
    ) -> None:
        self.action_repo = action_repo
        self.equipment_repo = equipment_repo
        self.publisher = publisher
        self.driver = driver
        self.actions_topic = actions_topic
        self.audit_logger = audit_logger
        self.claim_lease_seconds = claim_lease_seconds

    def _require_equipment(self, equipment_id: int) -> Equipment:
        equipment = self.equipment_repo.get(equipment_id)
        if equipment is None:
            raise NotFoundError(f"Equipment {equipment_id} not found")
        return equipment

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_action(self, request: CreateActionRequest) -> Action:
        """Create and execute a manual action."""
        equipment = self._require_equipment(request.equipment_id)
        action = self.action_repo.create(
            equipment.id,
            request.kind.value,
            parameter_id=request.parameter_id,
            target_value=request.target_value,
            observed_value=request.observed_value,
            is_automatic=False,
        )
        if action is None:
            raise ServiceError("Action was written but could not be read back")
        logger.info("Manual %s action %s created for equipment %s", action.kind.value, action.id, equipment.id)
        return self.execute(action.id, equipment=equipment)

    def create_automatic_action(
        self,
        equipment: Equipment,
        kind: ActionKind,
        *,
        parameter_id: int | None,
        target_value: float | None,
        observed_value: float | None,
        alert_event_id: str | None = None,
    ) -> Action:
        """Create a pending corrective action for *equipment*.

        Raises:
            ConflictError: an action already exists for *alert_event_id*.
        """
        action = self.action_repo.create(
            equipment.id,
            kind.value,
            parameter_id=parameter_id,
            target_value=target_value,
            observed_value=observed_value,
            is_automatic=True,
            alert_event_id=alert_event_id,
        )
        if action is None:
            raise ServiceError("Action was written but could not be read back")
        return action

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, action_id: int, *, equipment: Equipment | None = None) -> Action:
        """Run a pending action on its equipment and record the outcome.

        Driver failures do not raise; they finalize the action as ``failed``.

        Raises:
            NotFoundError: unknown action or equipment.
            ConflictError: the action already left the pending state, or another
                worker holds a live claim on it.
        """
        action = self.get(action_id)
        if action.status.is_terminal:
            raise ConflictError(
                f"Action {action_id} is already {action.status.value}",
                detail={"action_id": action_id, "status": action.status.value},
            )
        if equipment is None or equipment.id != action.equipment_id:
            equipment = self._require_equipment(action.equipment_id)
        if not self.action_repo.claim(action.id, lease_seconds=self.claim_lease_seconds):
            raise ConflictError(
                f"Action {action_id} is already being executed",
                detail={"action_id": action_id, "status": "claimed"},
            )

        try:
            result = self.driver.apply(equipment, action)
        except Exception as exc:
            action.mark_failed(f"Execution failed: {exc}")
            logger.error("Action %s on equipment %s failed: %s", action.id, equipment.id, exc)
        else:
            action.mark_executed(result)

        if not self.action_repo.save_outcome(action):
            raise ConflictError(f"Action {action_id} was finalized concurrently", detail={"action_id": action_id})

        if action.status is ActionStatus.EXECUTED:
            self.equipment_repo.record_last_action(equipment.id, to_iso(action.executed_at))
            logger.info(
                "Action %s executed: %s %s (target=%s, automatic=%s)",
                action.id,
                action.kind.value,
                equipment.name,
                action.target_value,
                action.is_automatic,
            )

        if self.audit_logger is not None:
            self.audit_logger.log_event(
                actor="system" if action.is_automatic else "operator",
                action=f"equipment.{action.kind.value}",
                resource=f"equipment:{equipment.id}",
                outcome=action.status.value,
                action_id=action.id,
                target_value=action.target_value,
                result=action.result,
            )

        self._publish_outcome(action, equipment)
        return action

    def _publish_outcome(self, action: Action, equipment: Equipment) -> None:
        event = EquipmentActionEvent(
            action_id=action.id,
            equipment_id=equipment.id,
            equipment_name=equipment.name,
            equipment_category=equipment.category,
            action_kind=action.kind,
            status=action.status,
            target_value=action.target_value,
            observed_value=action.observed_value,
            parameter_id=action.parameter_id,
            executed_at=to_iso(action.executed_at),
            result=action.result,
            is_automatic=action.is_automatic,
        )
        future = self.publisher.publish(self.actions_topic, equipment.id, event)
        future.add_done_callback(lambda f: self._on_action_published(event, f.result()))

    def _on_action_published(self, event: EquipmentActionEvent, result: PublishResult) -> None:
        if result.ok:
            return
        logger.error(
            "Action event %s for action %s was not published (%s): %s; redirecting to DLQ",
            event.event_id,
            event.action_id,
            result.status.value,
            result.error,
        )
        self.publisher.publish_dead_letter(self.actions_topic, event.equipment_id, event, reason=result.error)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, action_id: int) -> Action:
        action = self.action_repo.get(action_id)
        if action is None:
            raise NotFoundError(f"Action {action_id} not found")
        return action

    def list_actions(self, page: PageRequest) -> Page:
        """All actions, newest first."""
        items = self.action_repo.list_all(limit=page.limit, offset=page.offset)
        return Page(items, self.action_repo.count(), page.page, page.size)

    def list_for_equipment(self, equipment_id: int, page: PageRequest) -> Page:
        self._require_equipment(equipment_id)
        items = self.action_repo.list_for_equipment(equipment_id, limit=page.limit, offset=page.offset)
        return Page(items, self.action_repo.count(equipment_id=equipment_id), page.page, page.size)
