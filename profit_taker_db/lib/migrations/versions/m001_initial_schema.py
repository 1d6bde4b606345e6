"""
Migration 001: Initial Profit Taker run schema

Creates the run tables and the lookup tables for status effects and leg
positions, seeded with their fixed ids.
"""

import logging
from typing import Optional

from profit_taker_db.lib.migrations.base import SqlMigration

STATUS_EFFECTS = [
    (1, "Impact"),
    (2, "Puncture"),
    (3, "Slash"),
    (4, "Heat"),
    (5, "Cold"),
    (6, "Electricity"),
    (7, "Toxin"),
    (8, "Blast"),
    (9, "Corrosive"),
    (10, "Gas"),
    (11, "Magnetic"),
    (12, "Radiation"),
    (13, "Viral"),
    (14, "Void"),
    (15, "Tau"),
    (16, "True"),
]

LEG_POSITIONS = [
    (1, "FL"),
    (2, "FR"),
    (3, "BR"),
    (4, "BL"),
]

STATEMENTS = [
    """
    CREATE TABLE status_effects (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE leg_positions (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        time_stamp INTEGER NOT NULL,
        run_name TEXT NOT NULL,
        player_name TEXT NOT NULL,
        is_solo BOOLEAN NOT NULL DEFAULT 1,
        total_time REAL NOT NULL DEFAULT 0,
        total_flight_time REAL NOT NULL DEFAULT 0,
        total_shield_time REAL NOT NULL DEFAULT 0,
        total_leg_time REAL NOT NULL DEFAULT 0,
        total_body_time REAL NOT NULL DEFAULT 0,
        total_pylon_time REAL NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE squad_members (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
        member_name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE phases (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL REFERENCES runs(id) ON DELETE CASCADE,
        phase_number INTEGER NOT NULL CHECK (phase_number BETWEEN 1 AND 4),
        total_time REAL NOT NULL DEFAULT 0,
        total_shield_time REAL NOT NULL DEFAULT 0,
        total_leg_time REAL NOT NULL DEFAULT 0,
        total_body_kill_time REAL NOT NULL DEFAULT 0,
        total_pylon_time REAL NOT NULL DEFAULT 0,
        UNIQUE (run_id, phase_number)
    )
    """,
    """
    CREATE TABLE shield_changes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        phase_id INTEGER NOT NULL REFERENCES phases(id) ON DELETE CASCADE,
        shield_time REAL NOT NULL,
        status_effect_id INTEGER NOT NULL REFERENCES status_effects(id)
    )
    """,
    """
    CREATE TABLE leg_breaks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        phase_id INTEGER NOT NULL REFERENCES phases(id) ON DELETE CASCADE,
        break_time REAL NOT NULL,
        break_order INTEGER NOT NULL,
        leg_position_id INTEGER NOT NULL REFERENCES leg_positions(id)
    )
    """,
    "CREATE INDEX idx_squad_members_run ON squad_members(run_id)",
    "CREATE INDEX idx_phases_run ON phases(run_id)",
    "CREATE INDEX idx_shield_changes_phase ON shield_changes(phase_id)",
    "CREATE INDEX idx_leg_breaks_phase ON leg_breaks(phase_id)",
]
STATEMENTS += [
    ("INSERT INTO status_effects (id, name) VALUES (?, ?)", row) for row in STATUS_EFFECTS
]
STATEMENTS += [
    ("INSERT INTO leg_positions (id, name) VALUES (?, ?)", row) for row in LEG_POSITIONS
]


class Migration001InitialSchema(SqlMigration):
    """
    Create the run schema.

    Schema changes:
    1. Lookup tables status_effects and leg_positions
    2. runs, squad_members, phases, shield_changes, leg_breaks
    3. Indexes on the foreign keys used for run lookups

    Data changes:
    1. Seed status effects 1-16 and leg positions 1-4
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(
            version=1,
            description="Create run, phase and lookup tables",
            statements=STATEMENTS,
            logger=logger
        )
