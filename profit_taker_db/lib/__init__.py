"""
Library module exports for the Profit Taker database layer.

Usage:
    from profit_taker_db.lib import ensure_schema_current, setup_logging_from_settings

    setup_logging_from_settings()
    with ensure_schema_current(path) as db:
        ...
"""

from .database import ensure_schema_current, schema_status
from .exceptions import (
    ConcurrentMigration,
    ConfigurationRejected,
    CorruptMarker,
    MigrationFailed,
    RegistryError,
    StoreError,
    StoreUnavailable,
    UnsupportedSchemaVersion,
)
from .logging_utils import setup_logging, setup_logging_from_settings
from .models import ConnectionOptions
from .sqlite_utils import ConnectionHandle, connection_scope, open_connection

__all__ = [
    "ensure_schema_current",
    "schema_status",
    "setup_logging",
    "setup_logging_from_settings",
    "open_connection",
    "connection_scope",
    "ConnectionHandle",
    "ConnectionOptions",
    "StoreError",
    "StoreUnavailable",
    "ConfigurationRejected",
    "CorruptMarker",
    "MigrationFailed",
    "ConcurrentMigration",
    "RegistryError",
    "UnsupportedSchemaVersion",
]
