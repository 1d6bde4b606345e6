"""
Base class for database migrations.

Each migration should:
1. Have a unique, positive version number
2. Provide a description
3. Implement upgrade()

Migrations are forward-only and never rewritten once released; schema
changes ship as new migrations appended to the registry.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Union

# A statement is either plain SQL or SQL with its parameters
Statement = Union[str, tuple[str, tuple]]


class Migration(ABC):
    """
    Base class for database migrations.

    Subclasses must implement version, description and upgrade().
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize migration.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)

    @property
    @abstractmethod
    def version(self) -> int:
        """
        Migration version number.

        Must be unique and sequential (1, 2, 3, ...).
        """
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """
        Human-readable description of the migration.
        """
        pass

    @property
    def baseline(self) -> bool:
        """
        True if this migration stands in for a squashed range 1..version.

        Only the first migration of a registry may be a baseline.
        """
        return False

    @abstractmethod
    def upgrade(self, conn: sqlite3.Connection) -> None:
        """
        Apply the migration.

        Args:
            conn: SQLite connection (inside the runner's unit of work)

        Raises:
            Exception: If migration fails
        """
        pass

    def __repr__(self) -> str:
        return f"<Migration {self.version}: {self.description}>"


class SqlMigration(Migration):
    """
    Declarative migration built from a list of SQL statements.

    Example:
        SqlMigration(
            version=4,
            description="Add notes column to runs",
            statements=["ALTER TABLE runs ADD COLUMN notes TEXT"],
        )
    """

    def __init__(
        self,
        version: int,
        description: str,
        statements: Union[str, Sequence[Statement]],
        baseline: bool = False,
        logger: Optional[logging.Logger] = None
    ):
        super().__init__(logger)
        if isinstance(statements, str):
            statements = (statements,)
        self._version = version
        self._description = description
        self._statements = tuple(statements)
        self._baseline = baseline

    @property
    def version(self) -> int:
        return self._version

    @property
    def description(self) -> str:
        return self._description

    @property
    def baseline(self) -> bool:
        return self._baseline

    @property
    def statements(self) -> tuple[Statement, ...]:
        return self._statements

    def upgrade(self, conn: sqlite3.Connection) -> None:
        for number, statement in enumerate(self._statements, start=1):
            if isinstance(statement, tuple):
                sql, params = statement
            else:
                sql, params = statement, ()
            self.logger.debug(
                f"Migration {self.version} statement {number}/{len(self._statements)}: {' '.join(sql.split())}"
            )
            conn.execute(sql, params)
