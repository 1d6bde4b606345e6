"""
Application entry point to the database.

ensure_schema_current() opens the database, brings its schema to the
latest version and returns the ready handle. Call it once at startup,
before handing connections to the rest of the application:

    with ensure_schema_current("data/profit_taker.db") as db:
        rows = db.execute("SELECT * FROM runs").fetchall()
"""

import logging
from pathlib import Path
from typing import Optional, Union

from profit_taker_db.config import get_settings
from .migrations import MigrationRegistry, MigrationRunner
from .migrations.versions import default_registry
from .models import ConnectionOptions, SchemaStatus
from .sqlite_utils import ConnectionHandle, open_connection

logger = logging.getLogger(__name__)


def build_runner(registry: Optional[MigrationRegistry] = None) -> MigrationRunner:
    """Create a runner configured from settings."""
    settings = get_settings()
    return MigrationRunner(
        registry if registry is not None else default_registry(),
        lock_timeout=settings.migration_lock_timeout,
        backup=settings.backup_before_migrate,
        backup_keep=settings.backup_keep,
    )


def ensure_schema_current(
    db_path: Optional[Union[str, Path]] = None,
    options: Optional[ConnectionOptions] = None,
    registry: Optional[MigrationRegistry] = None,
    runner: Optional[MigrationRunner] = None
) -> ConnectionHandle:
    """
    Open the database and apply all pending migrations.

    Args:
        db_path: Path to the database file (defaults to settings DB_PATH)
        options: Connection options (defaults to settings)
        registry: Migrations to apply (defaults to the application registry)
        runner: Preconfigured runner; mutually exclusive with registry

    Returns:
        Open handle with schema_version set. The caller owns it and must close it.

    Raises:
        StoreUnavailable, ConfigurationRejected, CorruptMarker,
        UnsupportedSchemaVersion, ConcurrentMigration, MigrationFailed
    """
    if registry is not None and runner is not None:
        raise ValueError("Pass either registry or runner, not both")

    if db_path is None:
        db_path = get_settings().db_path
    if options is None:
        options = get_settings().connection_options()
    if runner is None:
        runner = build_runner(registry)

    handle = open_connection(db_path, options)
    try:
        handle.schema_version = runner.run(handle)
    except BaseException:
        handle.close()
        raise

    logger.info(f"Database {handle.path.name} ready at schema version {handle.schema_version}")
    return handle


def schema_status(
    db_path: Optional[Union[str, Path]] = None,
    registry: Optional[MigrationRegistry] = None
) -> SchemaStatus:
    """
    Report where a database stands without migrating it.

    Opens the database read-only, so a missing file raises StoreUnavailable.
    """
    if db_path is None:
        db_path = get_settings().db_path
    runner = MigrationRunner(registry if registry is not None else default_registry())
    options = ConnectionOptions(read_only=True)
    with open_connection(db_path, options) as handle:
        return runner.status(handle)
