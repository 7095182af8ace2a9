from __future__ import annotations

import logging
import sqlite3
from typing import Any

from greenhouse.domain.exceptions import RepositoryError
from greenhouse.utils.time import iso_now

logger = logging.getLogger(__name__)


class MeasurementOperations:
    """Database operations for Measurements. Rows are never updated."""

    def insert_measurement(self, parameter_id: int, value: float, measured_at: str, is_alert: bool) -> int:
        try:
            with self.connection() as db:
                cur = db.execute(
                    """
                    INSERT INTO Measurements (parameter_id, value, measured_at, is_alert, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (parameter_id, value, measured_at, 1 if is_alert else 0, iso_now()),
                )
                return int(cur.lastrowid)
        except sqlite3.Error as exc:
            logger.error("MeasurementOperations.insert_measurement failed: %s", exc)
            raise RepositoryError("Failed to insert measurement") from exc

    def get_measurement_by_id(self, measurement_id: int):
        try:
            cur = self.get_db().execute("SELECT * FROM Measurements WHERE measurement_id = ?", (measurement_id,))
            return cur.fetchone()
        except sqlite3.Error as exc:
            logger.error("MeasurementOperations.get_measurement_by_id failed: %s", exc)
            return None

    def query_measurements(
        self,
        *,
        parameter_id: int | None = None,
        start: str | None = None,
        end: str | None = None,
        alerts_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list:
        conditions: list[str] = []
        params: list[Any] = []
        if parameter_id is not None:
            conditions.append("parameter_id = ?")
            params.append(parameter_id)
        if start is not None:
            conditions.append("measured_at >= ?")
            params.append(start)
        if end is not None:
            conditions.append("measured_at <= ?")
            params.append(end)
        if alerts_only:
            conditions.append("is_alert = 1")

        query = "SELECT * FROM Measurements"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY measured_at DESC, measurement_id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        try:
            return self.get_db().execute(query, params).fetchall()
        except sqlite3.Error as exc:
            logger.error("MeasurementOperations.query_measurements failed: %s", exc)
            return []

    def count_measurements(self, *, parameter_id: int | None = None, alerts_only: bool = False) -> int:
        conditions: list[str] = []
        params: list[Any] = []
        if parameter_id is not None:
            conditions.append("parameter_id = ?")
            params.append(parameter_id)
        if alerts_only:
            conditions.append("is_alert = 1")
        query = "SELECT COUNT(*) FROM Measurements"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        try:
            return int(self.get_db().execute(query, params).fetchone()[0])
        except sqlite3.Error as exc:
            logger.error("MeasurementOperations.count_measurements failed: %s", exc)
            return 0
