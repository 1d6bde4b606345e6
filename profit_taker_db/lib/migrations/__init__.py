"""
Database migration system for the Profit Taker SQLite database.

Provides versioned, forward-only migrations applied atomically:
- Ordered, validated registry of migrations
- Version tracking in the database itself (schema_version table)
- One exclusive transaction per batch, rolled back entirely on failure
- Optional backups before migrating an existing database

Usage:
    from profit_taker_db.lib.migrations import MigrationRunner
    from profit_taker_db.lib.migrations.versions import default_registry

    runner = MigrationRunner(default_registry())
    runner.run(handle)
"""

from .base import Migration, SqlMigration
from .manager import MigrationRunner
from .registry import MigrationRegistry
from .tracker import SchemaStateTracker

__all__ = ["Migration", "SqlMigration", "MigrationRunner", "MigrationRegistry", "SchemaStateTracker"]
