"""
Database migration versions.

Each migration should be a separate file in this directory. Released
migrations are never edited; append a new one instead.
"""

import logging
from typing import Optional

from ..registry import MigrationRegistry
from .m001_initial_schema import Migration001InitialSchema
from .m002_add_run_flags import Migration002AddRunFlags
from .m003_add_run_tags import Migration003AddRunTags

# List all migrations in order
ALL_MIGRATIONS = [
    Migration001InitialSchema,
    Migration002AddRunFlags,
    Migration003AddRunTags,
]


def default_registry(logger: Optional[logging.Logger] = None) -> MigrationRegistry:
    """Build the application's migration registry."""
    return MigrationRegistry(migration_class(logger) for migration_class in ALL_MIGRATIONS)


__all__ = ["ALL_MIGRATIONS", "default_registry"]
