"""
Centralized SQLite connection utilities.

Opens (and creates) the database file, applies the process-wide connection
options and hands out a ConnectionHandle that owns the connection until it
is closed. Handles run in explicit transaction mode: nothing is committed
unless a unit of work is begun and committed.

All database code should use these utilities instead of raw sqlite3.connect().
"""

import logging
import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional, Union

from .exceptions import ConcurrentMigration, ConfigurationRejected, StoreUnavailable
from .models import ConnectionOptions

logger = logging.getLogger(__name__)

# Per-database locks for the exclusive migration phase within this process
_db_locks: dict[str, threading.RLock] = {}  # RLock allows same thread to acquire multiple times
_db_locks_lock = threading.Lock()  # Lock for accessing _db_locks dict

TRANSACTION_MODES = ("DEFERRED", "IMMEDIATE", "EXCLUSIVE")

SYNCHRONOUS_LEVELS = {"OFF": 0, "NORMAL": 1, "FULL": 2, "EXTRA": 3}

_PRAGMA_VALUE = re.compile(r'^[A-Z0-9_]+$')

# Primary result codes of a store held by another connection
SQLITE_BUSY = 5
SQLITE_LOCKED = 6


class ConnectionHandle:
    """
    Exclusive ownership of one open SQLite connection.

    Use as a context manager so the connection is closed on every exit path:

        with open_connection(path) as handle:
            with handle.transaction():
                handle.execute("INSERT INTO runs ...")
    """

    def __init__(self, conn: sqlite3.Connection, db_path: Path, options: ConnectionOptions):
        self._conn: Optional[sqlite3.Connection] = conn
        self.path = db_path
        self.options = options
        # Set by ensure_schema_current() once migrations have run
        self.schema_version: Optional[int] = None

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError(f"Connection handle for {self.path.name} is closed")
        return self._conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        return self.connection.execute(sql, params)

    def begin(self, mode: str = "DEFERRED") -> None:
        """
        Begin a unit of work.

        Args:
            mode: DEFERRED, IMMEDIATE or EXCLUSIVE

        Raises:
            ValueError: If mode is not a SQLite transaction mode
            sqlite3.OperationalError: If the lock cannot be taken within the busy timeout
        """
        mode = mode.upper()
        if mode not in TRANSACTION_MODES:
            raise ValueError(f"Unknown transaction mode: {mode}")
        self.connection.execute(f"BEGIN {mode}")

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()

    @contextmanager
    def transaction(self, mode: str = "DEFERRED") -> Generator["ConnectionHandle", None, None]:
        """
        Context manager for a unit of work.

        Commits on success, rolls back on exception.

        Usage:
            with handle.transaction():
                handle.execute("INSERT INTO runs ...")
                handle.execute("INSERT INTO phases ...")
        """
        self.begin(mode)
        try:
            yield self
            self.commit()
        except BaseException:
            if self.in_transaction:
                self.rollback()
            raise

    def set_busy_timeout(self, timeout_ms: int) -> None:
        self.connection.execute(f"PRAGMA busy_timeout = {int(timeout_ms)}")

    def close(self) -> None:
        """Close the connection, rolling back any open unit of work. Safe to call twice."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            if conn.in_transaction:
                conn.rollback()
        except sqlite3.Error as e:
            logger.warning(f"Rollback on close failed for {self.path.name}: {e}")
        finally:
            conn.close()
        logger.debug(f"Closed connection to {self.path.name}")

    def __enter__(self) -> "ConnectionHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<ConnectionHandle {self.path} ({state})>"


def _get_db_lock(db_path: Path) -> threading.RLock:
    """
    Get or create a reentrant lock for a specific database.

    Args:
        db_path: Path to the SQLite database file

    Returns:
        RLock for this database
    """
    db_key = str(db_path.resolve())
    with _db_locks_lock:
        if db_key not in _db_locks:
            _db_locks[db_key] = threading.RLock()
        return _db_locks[db_key]


@contextmanager
def with_db_lock(db_path: Path, timeout: Optional[float] = None):
    """
    Context manager that acquires the in-process lock for a database.

    This only serializes threads of the current process; other processes
    are kept out by the store's own exclusive lock.

    Args:
        db_path: Path to the SQLite database file
        timeout: Seconds to wait for the lock (None = wait forever)

    Raises:
        TimeoutError: If the lock is not acquired within timeout
    """
    db_lock = _get_db_lock(Path(db_path))
    acquired = db_lock.acquire(timeout=-1 if timeout is None else timeout)
    if not acquired:
        raise TimeoutError(f"Timed out waiting for lock on {Path(db_path).name}")
    try:
        yield
    finally:
        db_lock.release()


def is_store_locked(error: sqlite3.Error) -> bool:
    """
    Check whether an error means another connection holds the store lock.

    Uses the extended result code when sqlite3 exposes it (Python 3.11+),
    the error message otherwise.
    """
    code = getattr(error, "sqlite_errorcode", None)
    if code is not None:
        return (code & 0xFF) in (SQLITE_BUSY, SQLITE_LOCKED)
    message = str(error).lower()
    return "database is locked" in message or "database table is locked" in message


def store_locked_error(db_path: Path, error: sqlite3.Error) -> ConcurrentMigration:
    logger.warning(f"{db_path.name} is locked by another connection: {error}")
    return ConcurrentMigration(f"{db_path.name} is locked by another connection: {error}")


def _database_uri(db_path: Path, options: ConnectionOptions) -> str:
    if options.read_only:
        mode = "ro"
    elif options.create:
        mode = "rwc"
    else:
        mode = "rw"
    return f"{db_path.resolve().as_uri()}?mode={mode}"


def _pragma(conn: sqlite3.Connection, db_path: Path, name: str, value: object) -> object:
    """Set a pragma and return the value the store reports afterwards."""
    try:
        row = conn.execute(f"PRAGMA {name} = {value}").fetchone()
        if row is None:
            row = conn.execute(f"PRAGMA {name}").fetchone()
    except sqlite3.Error as e:
        # journal_mode needs the store lock; a held lock is not a refusal
        if is_store_locked(e):
            raise store_locked_error(db_path, e) from e
        raise ConfigurationRejected(name, value, message=f"Store rejected {name}={value!r}: {e}") from e
    return row[0] if row else None


def _apply_options(conn: sqlite3.Connection, db_path: Path, options: ConnectionOptions) -> None:
    """
    Apply connection options and verify the store accepted each one.

    Raises:
        ConfigurationRejected: If the store reports a different value than requested
        ConcurrentMigration: If another connection holds the store lock past the busy timeout
    """
    foreign_keys = 1 if options.foreign_keys else 0
    actual = _pragma(conn, db_path, "foreign_keys", "ON" if foreign_keys else "OFF")
    if actual != foreign_keys:
        raise ConfigurationRejected("foreign_keys", options.foreign_keys, actual)

    actual = _pragma(conn, db_path, "busy_timeout", options.busy_timeout_ms)
    if actual != options.busy_timeout_ms:
        raise ConfigurationRejected("busy_timeout", options.busy_timeout_ms, actual)

    # A read-only connection cannot switch the journal mode
    if not options.read_only:
        if not _PRAGMA_VALUE.match(options.journal_mode):
            raise ConfigurationRejected("journal_mode", options.journal_mode)
        actual = _pragma(conn, db_path, "journal_mode", options.journal_mode)
        if str(actual).upper() != options.journal_mode:
            raise ConfigurationRejected("journal_mode", options.journal_mode, actual)

    # SQLite silently maps unknown levels to a default, so check the name first
    level = SYNCHRONOUS_LEVELS.get(options.synchronous)
    if level is None and options.synchronous.isdigit():
        level = int(options.synchronous)
    if level is None or not _PRAGMA_VALUE.match(options.synchronous):
        raise ConfigurationRejected("synchronous", options.synchronous)
    actual = _pragma(conn, db_path, "synchronous", options.synchronous)
    if actual != level:
        raise ConfigurationRejected("synchronous", options.synchronous, actual)


def open_connection(
    db_path: Union[str, Path],
    options: Optional[ConnectionOptions] = None
) -> ConnectionHandle:
    """
    Open the database and apply connection options.

    Creates the parent directory and the file if they are missing (unless
    options.create is False). Options are applied before the handle is
    returned, so migrations always run with their final settings.

    Args:
        db_path: Path to the SQLite database file
        options: Connection options (defaults to ConnectionOptions())

    Returns:
        ConnectionHandle owning the open connection

    Raises:
        StoreUnavailable: If the file cannot be opened, created, or is not a database
        ConfigurationRejected: If the store rejects a requested option
        ConcurrentMigration: If another connection holds the store lock past the busy timeout
    """
    options = options or ConnectionOptions()
    db_path = Path(db_path)

    if options.read_only or not options.create:
        if not db_path.exists():
            logger.error(f"Database file does not exist: {db_path}")
            raise StoreUnavailable(f"Database file does not exist: {db_path}")
    else:
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create database directory {db_path.parent}: {e}")
            raise StoreUnavailable(f"Cannot create database directory {db_path.parent}: {e}") from e

    try:
        conn = sqlite3.connect(
            _database_uri(db_path, options),
            uri=True,
            timeout=options.busy_timeout_ms / 1000.0,
            isolation_level=None,  # explicit BEGIN/COMMIT only
            check_same_thread=False
        )
    except sqlite3.Error as e:
        logger.error(f"Cannot open database {db_path}: {e}")
        raise StoreUnavailable(f"Cannot open database {db_path}: {e}") from e

    handle = ConnectionHandle(conn, db_path, options)
    try:
        # Force a read of the file header so corruption surfaces here
        try:
            conn.execute("PRAGMA schema_version").fetchone()
        except sqlite3.Error as e:
            if is_store_locked(e):
                raise store_locked_error(db_path, e) from e
            logger.error(f"Cannot read database {db_path}: {e}")
            raise StoreUnavailable(f"Cannot read database {db_path}: {e}") from e

        _apply_options(conn, db_path, options)
    except BaseException:
        handle.close()
        raise

    logger.debug(
        f"Opened {db_path.name} (journal_mode={options.journal_mode}, "
        f"foreign_keys={options.foreign_keys}, read_only={options.read_only})"
    )
    return handle


@contextmanager
def connection_scope(
    db_path: Union[str, Path],
    options: Optional[ConnectionOptions] = None
) -> Generator[ConnectionHandle, None, None]:
    """
    Open a connection for the duration of a with-block.

    Yields:
        ConnectionHandle: Configured handle, closed when the block exits
    """
    handle = open_connection(db_path, options)
    try:
        yield handle
    finally:
        handle.close()
