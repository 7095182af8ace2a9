"""Equipment registry."""

from __future__ import annotations

import logging

from greenhouse.domain.entities import Equipment
from greenhouse.domain.exceptions import NotFoundError, ServiceError, ValidationError
from greenhouse.enums import EquipmentCategory, EquipmentState
from greenhouse.schemas.requests import CreateEquipmentRequest, UpdateEquipmentRequest
from infrastructure.database.repositories.equipment import EquipmentRepository

logger = logging.getLogger(__name__)


class EquipmentService:
    def __init__(self, equipment_repo: EquipmentRepository) -> None:
        self.equipment_repo = equipment_repo

    def create(self, request: CreateEquipmentRequest) -> Equipment:
        equipment = self.equipment_repo.create(
            request.name,
            request.category.value,
            request.state.value,
            request.parameter_id,
        )
        if equipment is None:
            raise ServiceError("Equipment was written but could not be read back")
        logger.info("Registered %s '%s' as equipment %s", equipment.category.value, equipment.name, equipment.id)
        return equipment

    def get(self, equipment_id: int) -> Equipment:
        equipment = self.equipment_repo.get(equipment_id)
        if equipment is None:
            raise NotFoundError(f"Equipment {equipment_id} not found")
        return equipment

    def list_equipment(
        self,
        *,
        category: EquipmentCategory | None = None,
        state: EquipmentState | None = None,
    ) -> list[Equipment]:
        return self.equipment_repo.list_all(
            category=category.value if category else None,
            state=state.value if state else None,
        )

    def update(self, equipment_id: int, request: UpdateEquipmentRequest) -> Equipment:
        self.get(equipment_id)
        changes = request.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")
        for key in ("category", "state"):
            if changes.get(key) is not None:
                changes[key] = changes[key].value
        self.equipment_repo.update(equipment_id, **changes)
        logger.info("Updated equipment %s: %s", equipment_id, ", ".join(sorted(changes)))
        return self.get(equipment_id)

    def find_available(self, category: EquipmentCategory) -> list[Equipment]:
        """Active units of *category*, lowest id first."""
        return self.list_equipment(category=category, state=EquipmentState.ACTIVE)
