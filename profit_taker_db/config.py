from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from functools import lru_cache
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from profit_taker_db.lib.models import ConnectionOptions


class Settings(BaseSettings):
    """Database settings loaded from .env (or custom env file)"""

    # Allow overriding env_file via PROFIT_TAKER_DB_ENV_FILE environment variable
    model_config = SettingsConfigDict(  # type: ignore[misc]
        env_file=os.environ.get('PROFIT_TAKER_DB_ENV_FILE', '.env'),
        env_file_encoding='utf-8',
        env_prefix='PROFIT_TAKER_',
        extra='ignore'
    )

    # Paths
    DB_PATH: str = "data/profit_taker.db"

    # Connection
    JOURNAL_MODE: str = "WAL"
    SYNCHRONOUS: str = "NORMAL"
    FOREIGN_KEYS: bool = True
    BUSY_TIMEOUT_MS: int = 5000

    # Migrations
    MIGRATION_LOCK_TIMEOUT: float = 5.0  # seconds to wait for the exclusive phase
    BACKUP_BEFORE_MIGRATE: bool = False
    BACKUP_KEEP: int = 5

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_CATEGORIES: str = ""

    @property
    def db_path(self) -> Path:
        return Path(self.DB_PATH)

    @property
    def migration_lock_timeout(self) -> float:
        return self.MIGRATION_LOCK_TIMEOUT

    @property
    def backup_before_migrate(self) -> bool:
        return self.BACKUP_BEFORE_MIGRATE

    @property
    def backup_keep(self) -> int:
        return self.BACKUP_KEEP

    @property
    def log_level(self) -> str:
        return self.LOG_LEVEL.upper()

    @property
    def log_categories(self) -> list[str]:
        if not self.LOG_CATEGORIES:
            return []
        return [cat.strip() for cat in self.LOG_CATEGORIES.split(',')]

    def connection_options(self) -> "ConnectionOptions":
        """Connection options for writable handles"""
        from profit_taker_db.lib.models import ConnectionOptions

        return ConnectionOptions(
            journal_mode=self.JOURNAL_MODE,
            synchronous=self.SYNCHRONOUS,
            foreign_keys=self.FOREIGN_KEYS,
            busy_timeout_ms=self.BUSY_TIMEOUT_MS,
        )

@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
