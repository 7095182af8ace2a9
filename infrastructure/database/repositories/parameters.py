from __future__ import annotations

from dataclasses import dataclass

from greenhouse.domain.entities import Parameter
from infrastructure.database.ops.parameters import ParameterOperations


@dataclass(frozen=True)
class ParameterRepository:
    """Repository facade for parameter operations."""

    _backend: ParameterOperations

    def create(self, kind: str, name: str, min_value: float, max_value: float, unit: str = "") -> Parameter | None:
        parameter_id = self._backend.insert_parameter(kind, name, min_value, max_value, unit)
        return self.get(parameter_id)

    def update(
        self, parameter_id: int, kind: str, name: str, min_value: float, max_value: float, unit: str = ""
    ) -> bool:
        return self._backend.update_parameter(parameter_id, kind, name, min_value, max_value, unit)

    def get(self, parameter_id: int) -> Parameter | None:
        row = self._backend.get_parameter_by_id(parameter_id)
        return Parameter.from_row(row) if row else None

    def get_by_kind(self, kind: str) -> Parameter | None:
        row = self._backend.get_parameter_by_kind(kind)
        return Parameter.from_row(row) if row else None

    def list_all(self) -> list[Parameter]:
        return [Parameter.from_row(row) for row in self._backend.list_parameters()]
