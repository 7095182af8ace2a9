from __future__ import annotations

from dataclasses import dataclass

from greenhouse.domain.entities import Measurement
from infrastructure.database.ops.measurements import MeasurementOperations


@dataclass(frozen=True)
class MeasurementRepository:
    """Repository facade for measurement operations."""

    _backend: MeasurementOperations

    def create(self, parameter_id: int, value: float, measured_at: str, is_alert: bool) -> Measurement | None:
        measurement_id = self._backend.insert_measurement(parameter_id, value, measured_at, is_alert)
        return self.get(measurement_id)

    def get(self, measurement_id: int) -> Measurement | None:
        row = self._backend.get_measurement_by_id(measurement_id)
        return Measurement.from_row(row) if row else None

    def find(
        self,
        *,
        parameter_id: int | None = None,
        start: str | None = None,
        end: str | None = None,
        alerts_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Measurement]:
        rows = self._backend.query_measurements(
            parameter_id=parameter_id,
            start=start,
            end=end,
            alerts_only=alerts_only,
            limit=limit,
            offset=offset,
        )
        return [Measurement.from_row(row) for row in rows]

    def count(self, *, parameter_id: int | None = None, alerts_only: bool = False) -> int:
        return self._backend.count_measurements(parameter_id=parameter_id, alerts_only=alerts_only)
