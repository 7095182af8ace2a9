import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from flask import Flask

from infrastructure.database.ops.actions import ActionOperations
from infrastructure.database.ops.equipment import EquipmentOperations
from infrastructure.database.ops.measurements import MeasurementOperations
from infrastructure.database.ops.parameters import ParameterOperations

logger = logging.getLogger(__name__)


class SQLiteDatabaseHandler(
    ParameterOperations,
    MeasurementOperations,
    EquipmentOperations,
    ActionOperations,
):
    """Thread-safe SQLite handler decoupled from Flask globals.

    Each thread gets its own connection. HTTP request threads and consumer
    workers share only the database file.
    """

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        self._local = threading.local()

        if database_path != ":memory:":
            db_path = Path(database_path)
            if not db_path.parent.exists():
                db_path.parent.mkdir(parents=True, exist_ok=True)
                logger.info("Created database directory: %s", db_path.parent)

    @property
    def database_path(self) -> str:
        return self._database_path

    # --- Lifecycle ------------------------------------------------------------
    def init_app(self, app: Flask | None = None) -> None:
        if app is not None:
            app.teardown_appcontext(self.close_db)
        self.create_tables()

    def get_db(self) -> sqlite3.Connection:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is None:
            connection = self._open_connection()
            self._local.connection = connection
        return connection

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._database_path, check_same_thread=False, timeout=30)
        try:
            connection.row_factory = sqlite3.Row
            self._configure_connection(connection)
            return connection
        except Exception:
            connection.close()
            raise

    def _configure_connection(self, connection: sqlite3.Connection) -> None:
        """Configure the connection for concurrent readers and one writer.

        - WAL mode: readers do not block the writer
        - NORMAL synchronous: safe with WAL
        - foreign keys enforced
        """
        connection.execute("PRAGMA journal_mode=WAL")
        connection.execute("PRAGMA synchronous=NORMAL")
        connection.execute("PRAGMA foreign_keys=ON")
        connection.execute("PRAGMA temp_store=MEMORY")
        connection.commit()

    def close_db(self, _e: Optional[BaseException] = None) -> None:
        connection: Optional[sqlite3.Connection] = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            delattr(self._local, "connection")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.get_db()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        else:
            conn.commit()

    # --- Schema ----------------------------------------------------------------
    def create_tables(self) -> None:
        """Creates the necessary tables in the database if they do not already exist."""
        with self.connection() as db:
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS Parameters (
                    parameter_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    min_value REAL NOT NULL,
                    max_value REAL NOT NULL,
                    unit TEXT DEFAULT '',
                    created_at TEXT,
                    updated_at TEXT,
                    CHECK (min_value < max_value)
                )
                """
            )
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS Measurements (
                    measurement_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    parameter_id INTEGER NOT NULL,
                    value REAL NOT NULL,
                    measured_at TEXT NOT NULL,
                    is_alert INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT,
                    FOREIGN KEY (parameter_id) REFERENCES Parameters(parameter_id)
                )
                """
            )
            db.execute(
                "CREATE INDEX IF NOT EXISTS idx_measurements_parameter_time "
                "ON Measurements(parameter_id, measured_at)"
            )
            db.execute("CREATE INDEX IF NOT EXISTS idx_measurements_alert ON Measurements(is_alert)")
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS Equipment (
                    equipment_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    state TEXT NOT NULL DEFAULT 'active',
                    parameter_id INTEGER,
                    last_action_at TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
                """
            )
            db.execute("CREATE INDEX IF NOT EXISTS idx_equipment_category_state ON Equipment(category, state)")
            db.execute(
                """
                CREATE TABLE IF NOT EXISTS Actions (
                    action_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    equipment_id INTEGER NOT NULL,
                    parameter_id INTEGER,
                    kind TEXT NOT NULL,
                    target_value REAL,
                    observed_value REAL,
                    status TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'executed', 'failed')),
                    executed_at TEXT,
                    result TEXT,
                    claimed_at TEXT,
                    is_automatic INTEGER NOT NULL DEFAULT 0,
                    alert_event_id TEXT,
                    created_at TEXT,
                    FOREIGN KEY (equipment_id) REFERENCES Equipment(equipment_id)
                )
                """
            )
            # Add claimed_at to Actions tables created before execution claims
            columns = {row[1] for row in db.execute("PRAGMA table_info(Actions)")}
            if "claimed_at" not in columns:
                db.execute("ALTER TABLE Actions ADD COLUMN claimed_at TEXT")
                logger.info("Added claimed_at column to Actions table")
            db.execute("CREATE INDEX IF NOT EXISTS idx_actions_equipment ON Actions(equipment_id)")
            db.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_actions_alert_event "
                "ON Actions(alert_event_id) WHERE alert_event_id IS NOT NULL"
            )
        logger.debug("Database schema ready at %s", self._database_path)
