"""
Error types raised by the database layer.

All errors derive from StoreError so callers can catch the whole family.
None of them are retried automatically.
"""

from typing import Optional


class StoreError(Exception):
    """Base class for all database layer errors."""


class StoreUnavailable(StoreError):
    """The database file cannot be opened, created, or read."""


class ConfigurationRejected(StoreError):
    """The store refused a requested connection option."""

    def __init__(self, option: str, requested: object, actual: object = None, message: Optional[str] = None):
        self.option = option
        self.requested = requested
        self.actual = actual
        if message is None:
            message = f"Store rejected {option}={requested!r} (store reports {actual!r})"
        super().__init__(message)


class CorruptMarker(StoreError):
    """The persisted schema version marker is unreadable or invalid."""


class MigrationFailed(StoreError):
    """
    A statement of a pending migration failed.

    The whole batch was rolled back, so the database is exactly as it was
    before the run.
    """

    def __init__(self, version: int, cause: BaseException):
        self.version = version
        self.cause = cause
        super().__init__(f"Migration {version} failed: {cause}")


class ConcurrentMigration(StoreError):
    """Another runner holds the exclusive migration phase."""


class RegistryError(StoreError, ValueError):
    """The migration registry definition is invalid."""


class UnsupportedSchemaVersion(StoreError):
    """The database is at a version this registry cannot migrate from."""

    def __init__(self, current: int, latest: int, reason: str):
        self.current = current
        self.latest = latest
        super().__init__(f"Database schema version {current} is unsupported (latest {latest}): {reason}")
