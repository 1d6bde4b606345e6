"""
Migration 003: Add run tags

User-defined labels attached to runs.
"""

import logging
from typing import Optional

from profit_taker_db.lib.migrations.base import SqlMigration


class Migration003AddRunTags(SqlMigration):

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(
            version=3,
            description="Add run_tags table",
            statements=[
                """
                CREATE TABLE run_tags (
                    run_id INTEGER NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
                    tag TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (run_id, tag)
                )
                """,
                "CREATE INDEX idx_run_tags_tag ON run_tags(tag)",
            ],
            logger=logger
        )
