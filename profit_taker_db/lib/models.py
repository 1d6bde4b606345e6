"""
Pydantic models for connection options and schema bookkeeping.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConnectionOptions(BaseModel):
    """
    Process-wide connection configuration applied on open.

    Values are passed to SQLite as-is (upper-cased); the store decides
    whether it accepts them and the connection provider verifies the result.
    """
    model_config = ConfigDict(frozen=True)

    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    foreign_keys: bool = True
    busy_timeout_ms: int = Field(default=5000, ge=0)
    create: bool = True  # Create the file (and parent directory) if missing
    read_only: bool = False

    @field_validator('journal_mode', 'synchronous')
    @classmethod
    def normalize_pragma_value(cls, v: str) -> str:
        return v.strip().upper()


class MigrationRecord(BaseModel):
    """A row of the migration_history table."""
    model_config = ConfigDict(from_attributes=True)

    version: int
    description: str
    applied_at: Optional[datetime] = None


class SchemaStatus(BaseModel):
    """Snapshot of where a database stands relative to a registry."""

    current: int
    latest: int
    pending: list[int] = Field(default_factory=list)

    @property
    def up_to_date(self) -> bool:
        return self.current == self.latest and not self.pending
