"""
Migration 002: Add run flags

Adds favorite, bugged and aborted flags to runs and an index for listing
runs by time.
"""

import logging
from typing import Optional

from profit_taker_db.lib.migrations.base import SqlMigration


class Migration002AddRunFlags(SqlMigration):
    """
    Add boolean flags to the runs table.

    Existing runs default to not favorite, not bugged, not aborted.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(
            version=2,
            description="Add favorite, bugged and aborted flags to runs",
            statements=[
                "ALTER TABLE runs ADD COLUMN is_favorite BOOLEAN NOT NULL DEFAULT 0",
                "ALTER TABLE runs ADD COLUMN is_bugged_run BOOLEAN NOT NULL DEFAULT 0",
                "ALTER TABLE runs ADD COLUMN is_aborted_run BOOLEAN NOT NULL DEFAULT 0",
                "CREATE INDEX idx_runs_time_stamp ON runs(time_stamp)",
            ],
            logger=logger
        )
