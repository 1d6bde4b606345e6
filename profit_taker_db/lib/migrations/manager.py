"""
Migration runner for SQLite databases.

Brings a database from whatever version it is at to the registry's latest
version. All pending migrations are applied in one exclusive unit of work:
either the whole batch and the new version marker commit, or nothing does.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..exceptions import (
    ConcurrentMigration,
    ConfigurationRejected,
    MigrationFailed,
    StoreUnavailable,
    UnsupportedSchemaVersion,
)
from ..models import MigrationRecord, SchemaStatus
from ..sqlite_utils import ConnectionHandle, is_store_locked, store_locked_error, with_db_lock
from .base import Migration
from .registry import MigrationRegistry
from .tracker import SchemaStateTracker

DEFAULT_LOCK_TIMEOUT = 5.0  # seconds
DEFAULT_BACKUP_KEEP = 5


class MigrationRunner:
    """
    Applies pending migrations from a registry to a connection handle.

    Features:
    - One atomic unit of work per batch, version marker written last
    - No writes and no locking when the database is already current
    - Exclusive phase guarded by the store lock and an in-process lock,
      both with a bounded wait
    - Optional backup before migrating an existing database
    """

    def __init__(
        self,
        registry: MigrationRegistry,
        tracker: Optional[SchemaStateTracker] = None,
        logger: Optional[logging.Logger] = None,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        backup: bool = False,
        backup_keep: int = DEFAULT_BACKUP_KEEP
    ):
        """
        Initialize migration runner.

        Args:
            registry: Migrations to apply
            tracker: Schema version accessor (defaults to SchemaStateTracker())
            logger: Optional logger instance
            lock_timeout: Seconds to wait for the exclusive phase before ConcurrentMigration
            backup: Back up an existing database before migrating it
            backup_keep: Number of backups to keep per database
        """
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self.tracker = tracker or SchemaStateTracker(self.logger)
        self.lock_timeout = lock_timeout
        self.backup = backup
        self.backup_keep = backup_keep

    def _check_supported(self, current_version: int) -> None:
        latest = self.registry.latest_version()
        if current_version > latest:
            self.logger.error(f"Database version {current_version} is newer than latest known version {latest}")
            raise UnsupportedSchemaVersion(
                current_version, latest, "database was written by a newer schema"
            )

        baseline = self.registry.baseline
        if baseline is not None and 0 < current_version < baseline.version:
            self.logger.error(
                f"Database version {current_version} predates baseline migration {baseline.version}"
            )
            raise UnsupportedSchemaVersion(
                current_version, latest,
                f"migrations before baseline {baseline.version} are no longer available"
            )

    def pending(self, handle: ConnectionHandle) -> List[Migration]:
        """
        Get migrations that a run would apply.

        Args:
            handle: Open connection handle

        Returns:
            List of pending migrations in order
        """
        current_version = self.tracker.read(handle.connection)
        self._check_supported(current_version)
        return self.registry.pending(current_version)

    def status(self, handle: ConnectionHandle) -> SchemaStatus:
        """
        Report where the database stands without migrating it.

        Raises:
            UnsupportedSchemaVersion: If the database is ahead of the registry or behind its baseline
        """
        current_version = self.tracker.read(handle.connection)
        self._check_supported(current_version)
        return SchemaStatus(
            current=current_version,
            latest=self.registry.latest_version(),
            pending=[m.version for m in self.registry.pending(current_version)]
        )

    def history(self, handle: ConnectionHandle) -> List[MigrationRecord]:
        return self.tracker.history(handle.connection)

    def _backup_database(self, handle: ConnectionHandle, current_version: int) -> Path:
        """
        Create a backup of the database using the SQLite online backup API.

        Returns:
            Path to backup file

        Raises:
            StoreUnavailable: If backup fails
            ConcurrentMigration: If another connection holds the store lock past the busy timeout
        """
        db_path = handle.path
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        backup_path = db_path.parent / f"{db_path.stem}_backup_v{current_version}_{timestamp}{db_path.suffix}"

        self.logger.info(f"Creating database backup: {backup_path}")
        try:
            target = sqlite3.connect(str(backup_path))
            try:
                handle.connection.backup(target)
            finally:
                target.close()
        except sqlite3.Error as e:
            if is_store_locked(e):
                raise store_locked_error(db_path, e) from e
            self.logger.error(f"Failed to create backup: {e}")
            raise StoreUnavailable(f"Failed to back up {db_path.name}: {e}") from e

        self._prune_backups(db_path)
        return backup_path

    def _prune_backups(self, db_path: Path) -> None:
        # Pruning failures never fail the run
        try:
            backups = sorted(
                db_path.parent.glob(f"{db_path.stem}_backup_v*{db_path.suffix}"),
                key=lambda p: (p.stat().st_mtime, p.name)
            )
            keep = max(self.backup_keep, 1)
            for old in backups[:-keep]:
                self.logger.debug(f"Removing old backup: {old.name}")
                old.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Could not prune old backups of {db_path.name}: {e}")

    @contextmanager
    def _exclusive_phase(self, handle: ConnectionHandle):
        """
        Hold the in-process lock and an EXCLUSIVE transaction on the store.

        Raises:
            ConcurrentMigration: If either lock is not obtained within lock_timeout
        """
        try:
            with with_db_lock(handle.path, timeout=self.lock_timeout):
                handle.set_busy_timeout(int(self.lock_timeout * 1000))
                try:
                    try:
                        handle.begin("EXCLUSIVE")
                    except sqlite3.OperationalError as e:
                        self.logger.warning(f"Could not lock {handle.path.name} for migration: {e}")
                        raise ConcurrentMigration(
                            f"Another migration holds {handle.path.name}: {e}"
                        ) from e
                    yield
                finally:
                    if not handle.closed:
                        handle.set_busy_timeout(handle.options.busy_timeout_ms)
        except TimeoutError as e:
            self.logger.warning(f"Migration already in progress for {handle.path.name} in this process")
            raise ConcurrentMigration(str(e)) from e

    def _apply(self, conn: sqlite3.Connection, migration: Migration) -> None:
        self.logger.info(f"Applying migration {migration.version}: {migration.description}")
        try:
            migration.upgrade(conn)
            if not conn.in_transaction:
                raise RuntimeError("migration ended the unit of work")
            self.tracker.record(conn, migration)
        except Exception as e:
            self.logger.error(f"Migration {migration.version} failed: {e}")
            raise MigrationFailed(migration.version, e) from e

    def run(self, handle: ConnectionHandle) -> int:
        """
        Run all pending migrations.

        Args:
            handle: Open, writable connection handle

        Returns:
            Schema version after the run

        Raises:
            CorruptMarker: If the version marker is invalid
            UnsupportedSchemaVersion: If the database is ahead of the registry or behind its baseline
            ConcurrentMigration: If another runner holds the exclusive phase
            MigrationFailed: If any statement fails; nothing from the batch is committed
        """
        if handle.options.read_only:
            raise ConfigurationRejected(
                "read_only", True, message="Migrations need a writable connection"
            )
        if handle.in_transaction:
            raise RuntimeError("Migrations cannot run inside an open transaction")

        conn = handle.connection
        current_version = self.tracker.read(conn)
        self.logger.info(f"Current database version: {current_version}")
        self._check_supported(current_version)

        pending = self.registry.pending(current_version)
        if not pending:
            self.logger.info("No pending migrations")
            return current_version

        self.logger.info(f"Found {len(pending)} pending migrations")

        backup_path = None
        if self.backup and current_version > 0:
            backup_path = self._backup_database(handle, current_version)

        with self._exclusive_phase(handle):
            try:
                # Another runner may have finished while we waited for the lock
                current_version = self.tracker.read(conn)
                self._check_supported(current_version)
                pending = self.registry.pending(current_version)
                if not pending:
                    handle.rollback()
                    self.logger.info(f"Database already migrated to version {current_version}")
                    return current_version

                self.tracker.ensure_tables(conn)
                for migration in pending:
                    self._apply(conn, migration)

                new_version = pending[-1].version
                self.tracker.write(conn, new_version)
                try:
                    handle.commit()
                except sqlite3.Error as e:
                    self.logger.error(f"Commit of migrations up to {new_version} failed: {e}")
                    raise MigrationFailed(new_version, e) from e

            except BaseException:
                if handle.in_transaction:
                    handle.rollback()
                if backup_path:
                    self.logger.info(f"Database backup available at: {backup_path}")
                raise

        self.logger.info(f"Successfully applied {len(pending)} migrations, database at version {new_version}")
        if backup_path:
            self.logger.info(f"Backup saved at: {backup_path}")
        return new_version
