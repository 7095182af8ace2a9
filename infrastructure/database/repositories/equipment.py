from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from greenhouse.domain.entities import Equipment
from infrastructure.database.ops.equipment import EquipmentOperations


@dataclass(frozen=True)
class EquipmentRepository:
    """Repository facade for equipment operations."""

    _backend: EquipmentOperations

    def create(self, name: str, category: str, state: str, parameter_id: int | None = None) -> Equipment | None:
        equipment_id = self._backend.insert_equipment(name, category, state, parameter_id)
        return self.get(equipment_id)

    def update(self, equipment_id: int, **fields: Any) -> bool:
        return self._backend.update_equipment(equipment_id, **fields)

    def record_last_action(self, equipment_id: int, at: str) -> bool:
        return self._backend.touch_equipment_last_action(equipment_id, at)

    def get(self, equipment_id: int) -> Equipment | None:
        row = self._backend.get_equipment_by_id(equipment_id)
        return Equipment.from_row(row) if row else None

    def list_all(self, *, category: str | None = None, state: str | None = None) -> list[Equipment]:
        return [Equipment.from_row(row) for row in self._backend.list_equipment(category=category, state=state)]

    def list_for_parameter(self, parameter_id: int) -> list[Equipment]:
        return [Equipment.from_row(row) for row in self._backend.list_equipment_for_parameter(parameter_id)]
