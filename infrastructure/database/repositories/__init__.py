"""Repository facades exposing typed accessors over low-level mixins."""

from infrastructure.database.repositories.actions import ActionRepository
from infrastructure.database.repositories.equipment import EquipmentRepository
from infrastructure.database.repositories.measurements import MeasurementRepository
from infrastructure.database.repositories.parameters import ParameterRepository

__all__ = [
    "ActionRepository",
    "EquipmentRepository",
    "MeasurementRepository",
    "ParameterRepository",
]
