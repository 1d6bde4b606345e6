"""
Persisted schema version marker and migration history.

The tracker is a plain accessor: it never begins, commits or rolls back.
Writes are only legal inside the migration runner's unit of work.
"""

import logging
import sqlite3
from typing import Optional

from ..exceptions import ConcurrentMigration, CorruptMarker, StoreUnavailable
from ..models import MigrationRecord
from ..sqlite_utils import is_store_locked
from .base import Migration

MARKER_TABLE = "schema_version"
HISTORY_TABLE = "migration_history"


class SchemaStateTracker:
    """Reads and writes the single-row schema_version table."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?",
            (name,)
        )
        return cursor.fetchone() is not None

    @staticmethod
    def _require_transaction(conn: sqlite3.Connection, operation: str) -> None:
        if not conn.in_transaction:
            raise RuntimeError(f"{operation} must run inside the migration unit of work")

    def _read_failed(self, what: str, error: sqlite3.Error, error_class: type) -> Exception:
        if is_store_locked(error):
            self.logger.warning(f"{what} is locked by another connection: {error}")
            return ConcurrentMigration(f"{what} is locked by another connection: {error}")
        self.logger.error(f"{what} is unreadable: {error}")
        return error_class(f"{what} is unreadable: {error}")

    def read(self, conn: sqlite3.Connection) -> int:
        """
        Get the current schema version.

        Args:
            conn: SQLite connection

        Returns:
            Stored version, or 0 if the database has no marker yet

        Raises:
            CorruptMarker: If several values are stored or the value is not a non-negative integer
            ConcurrentMigration: If another connection holds the store lock past the busy timeout
            StoreUnavailable: If the schema catalog cannot be read
        """
        try:
            exists = self._table_exists(conn, MARKER_TABLE)
        except sqlite3.Error as e:
            raise self._read_failed("Schema catalog", e, StoreUnavailable) from e
        if not exists:
            return 0

        try:
            rows = conn.execute(f"SELECT version FROM {MARKER_TABLE}").fetchall()
        except sqlite3.Error as e:
            raise self._read_failed("Schema version marker", e, CorruptMarker) from e

        if not rows:
            return 0
        if len(rows) > 1:
            self.logger.error(f"Schema version marker has {len(rows)} rows")
            raise CorruptMarker(f"Schema version marker has {len(rows)} rows, expected one")

        value = rows[0][0]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            self.logger.error(f"Schema version marker holds an invalid value: {value!r}")
            raise CorruptMarker(f"Schema version marker holds an invalid value: {value!r}")
        return value

    def ensure_tables(self, conn: sqlite3.Connection) -> None:
        """Create the marker and history tables if they do not exist."""
        self._require_transaction(conn, "Creating tracker tables")
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {MARKER_TABLE} (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL CHECK (version >= 0),
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {HISTORY_TABLE} (
                version INTEGER PRIMARY KEY,
                description TEXT NOT NULL,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    def write(self, conn: sqlite3.Connection, version: int) -> None:
        """
        Upsert the marker.

        Args:
            conn: SQLite connection with an open unit of work
            version: Version of the last fully applied migration

        Raises:
            RuntimeError: If no unit of work is open on conn
        """
        self._require_transaction(conn, "Writing the schema version")
        self.ensure_tables(conn)
        conn.execute(f"""
            INSERT INTO {MARKER_TABLE} (id, version, updated_at)
            VALUES (1, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(id) DO UPDATE SET
                version = excluded.version,
                updated_at = excluded.updated_at
        """, (version,))

    def record(self, conn: sqlite3.Connection, migration: Migration) -> None:
        """
        Record an applied migration in history.

        Args:
            conn: SQLite connection with an open unit of work
            migration: Migration that was applied
        """
        self._require_transaction(conn, "Recording migration history")
        conn.execute(f"""
            INSERT OR REPLACE INTO {HISTORY_TABLE} (version, description, applied_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
        """, (migration.version, migration.description))

    def history(self, conn: sqlite3.Connection) -> list[MigrationRecord]:
        """
        Get migration history.

        Returns:
            Applied migrations ordered by version (empty for a fresh database)
        """
        if not self._table_exists(conn, HISTORY_TABLE):
            return []

        cursor = conn.execute(f"""
            SELECT version, description, applied_at
            FROM {HISTORY_TABLE}
            ORDER BY version
        """)
        return [
            MigrationRecord(version=row[0], description=row[1], applied_at=row[2])
            for row in cursor.fetchall()
        ]
