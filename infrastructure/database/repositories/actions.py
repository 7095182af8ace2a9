from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from greenhouse.domain.entities import Action
from greenhouse.utils.time import to_iso, utc_now
from infrastructure.database.ops.actions import ActionOperations


@dataclass(frozen=True)
class ActionRepository:
    """Repository facade for action operations."""

    _backend: ActionOperations

    def create(
        self,
        equipment_id: int,
        kind: str,
        *,
        parameter_id: int | None = None,
        target_value: float | None = None,
        observed_value: float | None = None,
        is_automatic: bool = False,
        alert_event_id: str | None = None,
    ) -> Action | None:
        action_id = self._backend.insert_action(
            equipment_id,
            kind,
            parameter_id=parameter_id,
            target_value=target_value,
            observed_value=observed_value,
            is_automatic=is_automatic,
            alert_event_id=alert_event_id,
        )
        return self.get(action_id)

    def claim(self, action_id: int, *, lease_seconds: float, now: datetime | None = None) -> bool:
        """Take the execution claim on a pending action; False if another live claim or a terminal status wins."""
        now = now or utc_now()
        stale_before = now - timedelta(seconds=lease_seconds)
        return self._backend.claim_action(
            action_id,
            now.isoformat(timespec="microseconds"),
            stale_before.isoformat(timespec="microseconds"),
        )

    def save_outcome(self, action: Action) -> bool:
        """Persist the terminal status of *action*; False if it was already terminal."""
        return self._backend.finalize_action(action.id, action.status.value, to_iso(action.executed_at), action.result)

    def get(self, action_id: int) -> Action | None:
        row = self._backend.get_action_by_id(action_id)
        return Action.from_row(row) if row else None

    def get_by_alert_event(self, alert_event_id: str) -> Action | None:
        row = self._backend.get_action_by_alert_event(alert_event_id)
        return Action.from_row(row) if row else None

    def list_all(self, *, limit: int = 100, offset: int = 0) -> list[Action]:
        return [Action.from_row(row) for row in self._backend.list_actions(limit=limit, offset=offset)]

    def list_for_equipment(self, equipment_id: int, *, limit: int = 100, offset: int = 0) -> list[Action]:
        rows = self._backend.list_actions_for_equipment(equipment_id, limit=limit, offset=offset)
        return [Action.from_row(row) for row in rows]

    def count(self, *, equipment_id: int | None = None) -> int:
        return self._backend.count_actions(equipment_id=equipment_id)
