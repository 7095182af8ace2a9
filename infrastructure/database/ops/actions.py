from __future__ import annotations

import logging
import sqlite3

from greenhouse.domain.exceptions import ConflictError, RepositoryError
from greenhouse.utils.time import iso_now

logger = logging.getLogger(__name__)


class ActionOperations:
    """Database operations for Actions.

    Terminal statuses are written with ``WHERE status = 'pending'`` so an
    action can leave the pending state at most once.
    """

    def insert_action(
        self,
        equipment_id: int,
        kind: str,
        *,
        parameter_id: int | None = None,
        target_value: float | None = None,
        observed_value: float | None = None,
        is_automatic: bool = False,
        alert_event_id: str | None = None,
    ) -> int:
        try:
            with self.connection() as db:
                cur = db.execute(
                    """
                    INSERT INTO Actions (
                        equipment_id, parameter_id, kind, target_value, observed_value,
                        status, is_automatic, alert_event_id, created_at
                    ) VALUES (?, ?, ?, ?, ?, 'pending', ?, ?, ?)
                    """,
                    (
                        equipment_id,
                        parameter_id,
                        kind,
                        target_value,
                        observed_value,
                        1 if is_automatic else 0,
                        alert_event_id,
                        iso_now(),
                    ),
                )
                return int(cur.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(f"An action already exists for alert event {alert_event_id}") from exc
        except sqlite3.Error as exc:
            logger.error("ActionOperations.insert_action failed: %s", exc)
            raise RepositoryError("Failed to insert action") from exc

    def claim_action(self, action_id: int, claimed_at: str, stale_before: str) -> bool:
        """Mark a pending action as being executed.

        Fails while another claim younger than *stale_before* holds the action,
        and always once the action is terminal.
        """
        try:
            with self.connection() as db:
                cur = db.execute(
                    """
                    UPDATE Actions SET claimed_at = ?
                    WHERE action_id = ? AND status = 'pending'
                      AND (claimed_at IS NULL OR claimed_at < ?)
                    """,
                    (claimed_at, action_id, stale_before),
                )
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("ActionOperations.claim_action failed: %s", exc)
            raise RepositoryError("Failed to claim action") from exc

    def finalize_action(self, action_id: int, status: str, executed_at: str | None, result: str | None) -> bool:
        """Move a pending action to *status*; False if it was not pending."""
        try:
            with self.connection() as db:
                cur = db.execute(
                    """
                    UPDATE Actions SET status = ?, executed_at = ?, result = ?
                    WHERE action_id = ? AND status = 'pending'
                    """,
                    (status, executed_at, result, action_id),
                )
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            logger.error("ActionOperations.finalize_action failed: %s", exc)
            raise RepositoryError("Failed to finalize action") from exc

    def get_action_by_id(self, action_id: int):
        try:
            cur = self.get_db().execute("SELECT * FROM Actions WHERE action_id = ?", (action_id,))
            return cur.fetchone()
        except sqlite3.Error as exc:
            logger.error("ActionOperations.get_action_by_id failed: %s", exc)
            return None

    def get_action_by_alert_event(self, alert_event_id: str):
        try:
            cur = self.get_db().execute("SELECT * FROM Actions WHERE alert_event_id = ?", (alert_event_id,))
            return cur.fetchone()
        except sqlite3.Error as exc:
            logger.error("ActionOperations.get_action_by_alert_event failed: %s", exc)
            return None

    def list_actions(self, *, limit: int = 100, offset: int = 0) -> list:
        try:
            cur = self.get_db().execute(
                "SELECT * FROM Actions ORDER BY created_at DESC, action_id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
            return cur.fetchall()
        except sqlite3.Error as exc:
            logger.error("ActionOperations.list_actions failed: %s", exc)
            return []

    def list_actions_for_equipment(self, equipment_id: int, *, limit: int = 100, offset: int = 0) -> list:
        try:
            cur = self.get_db().execute(
                """
                SELECT * FROM Actions WHERE equipment_id = ?
                ORDER BY executed_at IS NULL, executed_at DESC, action_id DESC
                LIMIT ? OFFSET ?
                """,
                (equipment_id, limit, offset),
            )
            return cur.fetchall()
        except sqlite3.Error as exc:
            logger.error("ActionOperations.list_actions_for_equipment failed: %s", exc)
            return []

    def count_actions(self, *, equipment_id: int | None = None) -> int:
        try:
            if equipment_id is None:
                row = self.get_db().execute("SELECT COUNT(*) FROM Actions").fetchone()
            else:
                row = self.get_db().execute(
                    "SELECT COUNT(*) FROM Actions WHERE equipment_id = ?", (equipment_id,)
                ).fetchone()
            return int(row[0])
        except sqlite3.Error as exc:
            logger.error("ActionOperations.count_actions failed: %s", exc)
            return 0
