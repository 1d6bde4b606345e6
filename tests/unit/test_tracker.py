"""
Unit tests for the schema version marker.

@testCovers profit_taker_db/lib/migrations/tracker.py
"""

import logging
import shutil
import sqlite3
import tempfile
import unittest
from contextlib import closing
from pathlib import Path

from profit_taker_db.lib.exceptions import ConcurrentMigration, CorruptMarker
from profit_taker_db.lib.migrations import SchemaStateTracker, SqlMigration
from profit_taker_db.lib.models import ConnectionOptions
from profit_taker_db.lib.sqlite_utils import open_connection


class TestSchemaStateTracker(unittest.TestCase):
    """Test marker reads, writes and corruption detection."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "test.db"
        self.logger = logging.getLogger("test_tracker")
        self.logger.setLevel(logging.CRITICAL)  # Corruption tests log errors on purpose
        self.tracker = SchemaStateTracker(self.logger)

    def tearDown(self):
        if Path(self.temp_dir).exists():
            shutil.rmtree(self.temp_dir)

    def _raw(self, *statements):
        """Run statements on a plain connection and commit."""
        with closing(sqlite3.connect(str(self.db_path))) as conn:
            for statement in statements:
                conn.execute(statement)
            conn.commit()

    def test_fresh_database_reads_zero(self):
        """Test a database without marker table is at version 0."""
        with open_connection(self.db_path) as handle:
            self.assertEqual(self.tracker.read(handle.connection), 0)
            tables = handle.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()

        self.assertEqual(tables, [])

    def test_empty_marker_table_reads_zero(self):
        """Test a marker table without rows is at version 0."""
        with open_connection(self.db_path) as handle:
            with handle.transaction():
                self.tracker.ensure_tables(handle.connection)
            self.assertEqual(self.tracker.read(handle.connection), 0)

    def test_write_then_read(self):
        """Test a written version is read back."""
        with open_connection(self.db_path) as handle:
            with handle.transaction():
                self.tracker.write(handle.connection, 4)
            self.assertEqual(self.tracker.read(handle.connection), 4)

    def test_write_keeps_single_row(self):
        """Test repeated writes update the one marker row."""
        with open_connection(self.db_path) as handle:
            with handle.transaction():
                self.tracker.write(handle.connection, 1)
            with handle.transaction():
                self.tracker.write(handle.connection, 2)

            rows = handle.execute("SELECT id, version FROM schema_version").fetchall()
            self.assertEqual(rows, [(1, 2)])

    def test_write_requires_transaction(self):
        """Test the marker is never written outside a unit of work."""
        with open_connection(self.db_path) as handle:
            with self.assertRaises(RuntimeError):
                self.tracker.write(handle.connection, 1)
            with self.assertRaises(RuntimeError):
                self.tracker.ensure_tables(handle.connection)

            self.assertEqual(self.tracker.read(handle.connection), 0)

    def test_write_rolled_back_with_unit(self):
        """Test a marker write disappears when its unit of work rolls back."""
        with open_connection(self.db_path) as handle:
            with self.assertRaises(ValueError):
                with handle.transaction():
                    self.tracker.write(handle.connection, 3)
                    raise ValueError("abort")

            self.assertEqual(self.tracker.read(handle.connection), 0)

    def test_multiple_rows_corrupt(self):
        """Test more than one stored value raises CorruptMarker."""
        self._raw(
            "CREATE TABLE schema_version (version INTEGER)",
            "INSERT INTO schema_version VALUES (1)",
            "INSERT INTO schema_version VALUES (2)",
        )

        with open_connection(self.db_path) as handle:
            with self.assertRaises(CorruptMarker):
                self.tracker.read(handle.connection)

    def test_text_value_corrupt(self):
        """Test a non-numeric value raises CorruptMarker."""
        self._raw(
            "CREATE TABLE schema_version (version)",
            "INSERT INTO schema_version VALUES ('three')",
        )

        with open_connection(self.db_path) as handle:
            with self.assertRaises(CorruptMarker):
                self.tracker.read(handle.connection)

    def test_negative_value_corrupt(self):
        """Test a negative value raises CorruptMarker."""
        self._raw(
            "CREATE TABLE schema_version (version INTEGER)",
            "INSERT INTO schema_version VALUES (-1)",
        )

        with open_connection(self.db_path) as handle:
            with self.assertRaises(CorruptMarker):
                self.tracker.read(handle.connection)

    def test_real_value_corrupt(self):
        """Test a fractional value raises CorruptMarker."""
        self._raw(
            "CREATE TABLE schema_version (version REAL)",
            "INSERT INTO schema_version VALUES (1.5)",
        )

        with open_connection(self.db_path) as handle:
            with self.assertRaises(CorruptMarker):
                self.tracker.read(handle.connection)

    def test_null_value_corrupt(self):
        """Test a NULL value raises CorruptMarker."""
        self._raw(
            "CREATE TABLE schema_version (version INTEGER)",
            "INSERT INTO schema_version VALUES (NULL)",
        )

        with open_connection(self.db_path) as handle:
            with self.assertRaises(CorruptMarker):
                self.tracker.read(handle.connection)

    def test_missing_column_corrupt(self):
        """Test a marker table without a version column raises CorruptMarker."""
        self._raw("CREATE TABLE schema_version (something TEXT)")

        with open_connection(self.db_path) as handle:
            with self.assertRaises(CorruptMarker):
                self.tracker.read(handle.connection)

    def test_locked_store_read_is_concurrent_migration(self):
        """Test a marker read blocked by another connection's lock is reported as ConcurrentMigration."""
        options = ConnectionOptions(journal_mode="DELETE", busy_timeout_ms=200)
        with open_connection(self.db_path, options) as handle:
            with handle.transaction():
                self.tracker.write(handle.connection, 2)

        with open_connection(self.db_path, options) as other, open_connection(self.db_path, options) as handle:
            other.begin("EXCLUSIVE")
            try:
                with self.assertRaises(ConcurrentMigration):
                    self.tracker.read(handle.connection)
            finally:
                other.rollback()

            self.assertEqual(self.tracker.read(handle.connection), 2)

    def test_history(self):
        """Test recorded migrations come back ordered by version."""
        with open_connection(self.db_path) as handle:
            self.assertEqual(self.tracker.history(handle.connection), [])

            with handle.transaction():
                self.tracker.ensure_tables(handle.connection)
                self.tracker.record(handle.connection, SqlMigration(2, "Second", []))
                self.tracker.record(handle.connection, SqlMigration(1, "First", []))

            history = self.tracker.history(handle.connection)

        self.assertEqual([(r.version, r.description) for r in history], [(1, "First"), (2, "Second")])
        self.assertIsNotNone(history[0].applied_at)


if __name__ == '__main__':
    unittest.main()
