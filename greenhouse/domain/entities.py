"""
Greenhouse Domain Objects
=========================

Plain dataclasses for the persisted entities. Rows coming back from SQLite are
turned into these with ``from_row`` and rendered for the API with ``to_dict``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from greenhouse.domain.exceptions import ConflictError
from greenhouse.enums import ActionKind, ActionStatus, EquipmentCategory, EquipmentState, ParameterKind
from greenhouse.utils.time import coerce_datetime, to_iso, utc_now


@dataclass
class Parameter:
    """A monitored quantity and its acceptable band."""

    id: int
    kind: ParameterKind
    name: str
    min_value: float
    max_value: float
    unit: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Parameter":
        return cls(
            id=int(row["parameter_id"]),
            kind=ParameterKind(row["kind"]),
            name=row["name"],
            min_value=float(row["min_value"]),
            max_value=float(row["max_value"]),
            unit=row["unit"] or "",
            created_at=coerce_datetime(row["created_at"]),
            updated_at=coerce_datetime(row["updated_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "unit": self.unit,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass
class Measurement:
    """A single reading. The alert flag is fixed when the row is written."""

    id: int
    parameter_id: int
    value: float
    measured_at: datetime
    is_alert: bool
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Measurement":
        return cls(
            id=int(row["measurement_id"]),
            parameter_id=int(row["parameter_id"]),
            value=float(row["value"]),
            measured_at=coerce_datetime(row["measured_at"]) or utc_now(),
            is_alert=bool(row["is_alert"]),
            created_at=coerce_datetime(row["created_at"]),
        )

    def to_dict(self, parameter: Parameter | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "parameter_id": self.parameter_id,
            "value": self.value,
            "measured_at": to_iso(self.measured_at),
            "is_alert": self.is_alert,
            "created_at": to_iso(self.created_at),
        }
        if parameter is not None:
            data["parameter_kind"] = parameter.kind.value
            data["unit"] = parameter.unit
            data["min_value"] = parameter.min_value
            data["max_value"] = parameter.max_value
        return data


@dataclass
class Equipment:
    """A controllable unit in the greenhouse."""

    id: int
    name: str
    category: EquipmentCategory
    state: EquipmentState = EquipmentState.ACTIVE
    parameter_id: int | None = None
    last_action_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.state is EquipmentState.ACTIVE

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Equipment":
        parameter_id = row["parameter_id"]
        return cls(
            id=int(row["equipment_id"]),
            name=row["name"],
            category=EquipmentCategory(row["category"]),
            state=EquipmentState(row["state"]),
            parameter_id=int(parameter_id) if parameter_id is not None else None,
            last_action_at=coerce_datetime(row["last_action_at"]),
            created_at=coerce_datetime(row["created_at"]),
            updated_at=coerce_datetime(row["updated_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "state": self.state.value,
            "parameter_id": self.parameter_id,
            "last_action_at": to_iso(self.last_action_at),
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }


@dataclass
class Action:
    """A corrective or manual command issued to one equipment unit.

    Status moves from ``pending`` to exactly one of ``executed`` / ``failed``;
    any further transition raises :class:`ConflictError`.
    """

    id: int
    equipment_id: int
    kind: ActionKind
    status: ActionStatus = ActionStatus.PENDING
    parameter_id: int | None = None
    target_value: float | None = None
    observed_value: float | None = None
    executed_at: datetime | None = None
    result: str | None = None
    is_automatic: bool = False
    created_at: datetime | None = None

    def _ensure_pending(self, target: ActionStatus) -> None:
        if self.status.is_terminal:
            raise ConflictError(
                f"Action {self.id} is already {self.status.value}; cannot mark {target.value}",
                detail={"action_id": self.id, "status": self.status.value},
            )

    def mark_executed(self, result: str, *, at: datetime | None = None) -> None:
        self._ensure_pending(ActionStatus.EXECUTED)
        self.status = ActionStatus.EXECUTED
        self.executed_at = at or utc_now()
        self.result = result

    def mark_failed(self, error: str) -> None:
        self._ensure_pending(ActionStatus.FAILED)
        self.status = ActionStatus.FAILED
        self.result = error

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Action":
        parameter_id = row["parameter_id"]
        target = row["target_value"]
        observed = row["observed_value"]
        return cls(
            id=int(row["action_id"]),
            equipment_id=int(row["equipment_id"]),
            kind=ActionKind(row["kind"]),
            status=ActionStatus(row["status"]),
            parameter_id=int(parameter_id) if parameter_id is not None else None,
            target_value=float(target) if target is not None else None,
            observed_value=float(observed) if observed is not None else None,
            executed_at=coerce_datetime(row["executed_at"]),
            result=row["result"],
            is_automatic=bool(row["is_automatic"]),
            created_at=coerce_datetime(row["created_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "equipment_id": self.equipment_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "parameter_id": self.parameter_id,
            "target_value": self.target_value,
            "observed_value": self.observed_value,
            "executed_at": to_iso(self.executed_at),
            "result": self.result,
            "is_automatic": self.is_automatic,
            "created_at": to_iso(self.created_at),
        }
