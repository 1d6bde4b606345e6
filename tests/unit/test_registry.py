"""
Unit tests for the migration registry and migration definitions.

@testCovers profit_taker_db/lib/migrations/registry.py
@testCovers profit_taker_db/lib/migrations/base.py
"""

import logging
import sqlite3
import unittest

from profit_taker_db.lib.exceptions import RegistryError
from profit_taker_db.lib.migrations import Migration, MigrationRegistry, SqlMigration


def _migration(version, baseline=False):
    return SqlMigration(version, f"Migration {version}", [f"CREATE TABLE t{version} (id INTEGER)"], baseline=baseline)


class TestMigrationRegistry(unittest.TestCase):
    """Test registry ordering and construction-time validation."""

    def test_sorted_regardless_of_registration_order(self):
        """Test migrations come back ascending by version."""
        registry = MigrationRegistry([_migration(3), _migration(1), _migration(2)])

        self.assertEqual([m.version for m in registry.all()], [1, 2, 3])
        self.assertEqual([m.version for m in registry], [1, 2, 3])
        self.assertEqual(registry.latest_version(), 3)
        self.assertEqual(len(registry), 3)

    def test_empty_registry(self):
        """Test an empty registry has latest version 0."""
        registry = MigrationRegistry()

        self.assertEqual(registry.all(), ())
        self.assertEqual(registry.latest_version(), 0)
        self.assertEqual(registry.pending(0), [])
        self.assertIsNone(registry.baseline)

    def test_all_is_immutable(self):
        """Test all() returns a tuple, not the internal list."""
        registry = MigrationRegistry([_migration(1)])
        self.assertIsInstance(registry.all(), tuple)

    def test_pending(self):
        """Test pending() returns migrations above the given version in order."""
        registry = MigrationRegistry([_migration(2), _migration(1), _migration(3)])

        self.assertEqual([m.version for m in registry.pending(0)], [1, 2, 3])
        self.assertEqual([m.version for m in registry.pending(1)], [2, 3])
        self.assertEqual(registry.pending(3), [])

    def test_get(self):
        """Test lookup by version."""
        m2 = _migration(2)
        registry = MigrationRegistry([_migration(1), m2])

        self.assertIs(registry.get(2), m2)
        self.assertIsNone(registry.get(7))

    def test_duplicate_version_rejected(self):
        """Test two migrations with the same version fail fast."""
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration(1), _migration(2), _migration(2)])

    def test_non_positive_version_rejected(self):
        """Test version 0 and negative versions fail fast."""
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration(0), _migration(1)])
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration(-1)])

    def test_non_integer_version_rejected(self):
        """Test versions must be real integers."""
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration("1")])
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration(True)])
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration(1.0)])

    def test_gap_rejected(self):
        """Test a gap in the sequence fails fast."""
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration(1), _migration(2), _migration(4)])

    def test_start_above_one_without_baseline_rejected(self):
        """Test a sequence starting above 1 needs a baseline."""
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration(3), _migration(4)])

    def test_baseline_start(self):
        """Test a baseline may start the sequence above 1."""
        registry = MigrationRegistry([_migration(6), _migration(5, baseline=True)])

        self.assertEqual(registry.baseline.version, 5)
        self.assertEqual(registry.latest_version(), 6)

    def test_baseline_must_be_first(self):
        """Test a baseline in the middle of the sequence is rejected."""
        with self.assertRaises(RegistryError):
            MigrationRegistry([_migration(1), _migration(2, baseline=True)])

    def test_registry_error_is_value_error(self):
        """Test RegistryError can be caught as ValueError."""
        with self.assertRaises(ValueError):
            MigrationRegistry([_migration(2)])


class TestSqlMigration(unittest.TestCase):
    """Test declarative migrations."""

    def test_attributes(self):
        """Test version, description, statements and baseline are exposed."""
        migration = SqlMigration(4, "Add notes", ["ALTER TABLE runs ADD COLUMN notes TEXT"])

        self.assertIsInstance(migration, Migration)
        self.assertEqual(migration.version, 4)
        self.assertEqual(migration.description, "Add notes")
        self.assertEqual(migration.statements, ("ALTER TABLE runs ADD COLUMN notes TEXT",))
        self.assertFalse(migration.baseline)
        self.assertEqual(repr(migration), "<Migration 4: Add notes>")

    def test_single_string_statement(self):
        """Test a single SQL string is treated as one statement."""
        migration = SqlMigration(1, "Create runs", "CREATE TABLE runs (id INTEGER)")
        self.assertEqual(migration.statements, ("CREATE TABLE runs (id INTEGER)",))

    def test_upgrade_executes_statements_with_parameters(self):
        """Test plain and parameterized statements run in order."""
        migration = SqlMigration(1, "Seed", [
            "CREATE TABLE tags (id INTEGER PRIMARY KEY, name TEXT)",
            ("INSERT INTO tags (id, name) VALUES (?, ?)", (1, "fast")),
            ("INSERT INTO tags (id, name) VALUES (?, ?)", (2, "solo")),
        ])
        conn = sqlite3.connect(":memory:")
        try:
            migration.upgrade(conn)
            rows = conn.execute("SELECT id, name FROM tags ORDER BY id").fetchall()
        finally:
            conn.close()

        self.assertEqual(rows, [(1, "fast"), (2, "solo")])

    def test_upgrade_logs_each_statement(self):
        """Test every statement is logged at debug level on the migration's logger."""
        logger = logging.getLogger("test_registry.sql_migration")
        migration = SqlMigration(7, "Seed", [
            "CREATE TABLE tags (\n    id INTEGER PRIMARY KEY,\n    name TEXT\n)",
            ("INSERT INTO tags (id, name) VALUES (?, ?)", (1, "fast")),
        ], logger=logger)
        conn = sqlite3.connect(":memory:")
        try:
            with self.assertLogs(logger, level=logging.DEBUG) as logs:
                migration.upgrade(conn)
        finally:
            conn.close()

        self.assertEqual(len(logs.records), 2)
        self.assertIn("Migration 7 statement 1/2: CREATE TABLE tags ( id INTEGER PRIMARY KEY, name TEXT )",
                      logs.output[0])
        self.assertIn("statement 2/2: INSERT INTO tags", logs.output[1])

    def test_statements_are_copied(self):
        """Test later changes to the source list do not alter the migration."""
        statements = ["CREATE TABLE a (id INTEGER)"]
        migration = SqlMigration(1, "Create a", statements)
        statements.append("DROP TABLE a")

        self.assertEqual(len(migration.statements), 1)


if __name__ == '__main__':
    unittest.main()
