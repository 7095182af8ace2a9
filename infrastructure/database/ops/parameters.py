from __future__ import annotations

import logging
import sqlite3

from greenhouse.domain.exceptions import ConflictError, RepositoryError, ValidationError
from greenhouse.utils.time import iso_now

logger = logging.getLogger(__name__)


def _integrity_error(kind: str, exc: sqlite3.IntegrityError) -> Exception:
    # Only the UNIQUE(kind) constraint is a conflict; NOT NULL and CHECK failures are bad input
    if "UNIQUE" in str(exc):
        return ConflictError(f"Parameter of kind '{kind}' already exists")
    return ValidationError(f"Parameter of kind '{kind}' violates a constraint: {exc}")


class ParameterOperations:
    """Database operations for Parameters."""

    def insert_parameter(self, kind: str, name: str, min_value: float, max_value: float, unit: str) -> int:
        now = iso_now()
        try:
            with self.connection() as db:
                cur = db.execute(
                    """
                    INSERT INTO Parameters (kind, name, min_value, max_value, unit, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (kind, name, min_value, max_value, unit, now, now),
                )
                return int(cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise _integrity_error(kind, exc) from exc
        except sqlite3.Error as exc:
            logger.error("ParameterOperations.insert_parameter failed: %s", exc)
            raise RepositoryError("Failed to insert parameter") from exc

    def update_parameter(
        self, parameter_id: int, kind: str, name: str, min_value: float, max_value: float, unit: str
    ) -> bool:
        try:
            with self.connection() as db:
                cur = db.execute(
                    """
                    UPDATE Parameters
                    SET kind = ?, name = ?, min_value = ?, max_value = ?, unit = ?, updated_at = ?
                    WHERE parameter_id = ?
                    """,
                    (kind, name, min_value, max_value, unit, iso_now(), parameter_id),
                )
                return cur.rowcount > 0
        except sqlite3.IntegrityError as exc:
            raise _integrity_error(kind, exc) from exc
        except sqlite3.Error as exc:
            logger.error("ParameterOperations.update_parameter failed: %s", exc)
            raise RepositoryError("Failed to update parameter") from exc

    def get_parameter_by_id(self, parameter_id: int):
        try:
            cur = self.get_db().execute("SELECT * FROM Parameters WHERE parameter_id = ?", (parameter_id,))
            return cur.fetchone()
        except sqlite3.Error as exc:
            logger.error("ParameterOperations.get_parameter_by_id failed: %s", exc)
            return None

    def get_parameter_by_kind(self, kind: str):
        try:
            cur = self.get_db().execute("SELECT * FROM Parameters WHERE kind = ?", (kind,))
            return cur.fetchone()
        except sqlite3.Error as exc:
            logger.error("ParameterOperations.get_parameter_by_kind failed: %s", exc)
            return None

    def list_parameters(self) -> list:
        try:
            cur = self.get_db().execute("SELECT * FROM Parameters ORDER BY parameter_id")
            return cur.fetchall()
        except sqlite3.Error as exc:
            logger.error("ParameterOperations.list_parameters failed: %s", exc)
            return []
