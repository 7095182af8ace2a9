from __future__ import annotations

import logging
import sqlite3
from typing import Any

from greenhouse.domain.exceptions import RepositoryError
from greenhouse.utils.time import iso_now

logger = logging.getLogger(__name__)

_UPDATABLE_COLUMNS = ("name", "category", "state", "parameter_id")


class EquipmentOperations:
    """Database operations for Equipment."""

    def insert_equipment(self, name: str, category: str, state: str, parameter_id: int | None) -> int:
        now = iso_now()
        try:
            with self.connection() as db:
                cur = db.execute(
                    """
                    INSERT INTO Equipment (name, category, state, parameter_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (name, category, state, parameter_id, now, now),
                )
                return int(cur.lastrowid)
        except sqlite3.Error as exc:
            logger.error("EquipmentOperations.insert_equipment failed: %s", exc)
            raise RepositoryError("Failed to insert equipment") from exc

    def update_equipment(self, equipment_id: int, **fields: Any) -> bool:
        updates = {k: v for k, v in fields.items() if k in _UPDATABLE_COLUMNS}
        if not updates:
            return False
        assignments = ", ".join(f"{column} = ?" for column in updates)
        params = [*updates.values(), iso_now(), equipment_id]
        try:
            with self.connection() as db:
                cur = db.execute(
                    f"UPDATE Equipment SET {assignments}, updated_at = ? WHERE equipment_id = ?",
                    params,
                )
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("EquipmentOperations.update_equipment failed: %s", exc)
            raise RepositoryError("Failed to update equipment") from exc

    def touch_equipment_last_action(self, equipment_id: int, at: str) -> bool:
        try:
            with self.connection() as db:
                cur = db.execute(
                    "UPDATE Equipment SET last_action_at = ?, updated_at = ? WHERE equipment_id = ?",
                    (at, iso_now(), equipment_id),
                )
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("EquipmentOperations.touch_equipment_last_action failed: %s", exc)
            raise RepositoryError("Failed to update equipment last action") from exc

    def get_equipment_by_id(self, equipment_id: int):
        try:
            cur = self.get_db().execute("SELECT * FROM Equipment WHERE equipment_id = ?", (equipment_id,))
            return cur.fetchone()
        except sqlite3.Error as exc:
            logger.error("EquipmentOperations.get_equipment_by_id failed: %s", exc)
            return None

    def list_equipment(self, *, category: str | None = None, state: str | None = None) -> list:
        conditions: list[str] = []
        params: list[Any] = []
        if category is not None:
            conditions.append("category = ?")
            params.append(category)
        if state is not None:
            conditions.append("state = ?")
            params.append(state)
        query = "SELECT * FROM Equipment"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY equipment_id"
        try:
            return self.get_db().execute(query, params).fetchall()
        except sqlite3.Error as exc:
            logger.error("EquipmentOperations.list_equipment failed: %s", exc)
            return []

    def list_equipment_for_parameter(self, parameter_id: int) -> list:
        try:
            cur = self.get_db().execute(
                "SELECT * FROM Equipment WHERE parameter_id = ? ORDER BY equipment_id",
                (parameter_id,),
            )
            return cur.fetchall()
        except sqlite3.Error as exc:
            logger.error("EquipmentOperations.list_equipment_for_parameter failed: %s", exc)
            return []
