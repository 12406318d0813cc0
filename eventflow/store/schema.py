"""Database schema definitions."""

from __future__ import annotations

import sqlite3

TOURNAMENT_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS tournaments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    background_path TEXT,
    mode TEXT NOT NULL DEFAULT 'elimination' CHECK (mode IN ('elimination', 'sequential')),
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""

PARTICIPANT_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS participants (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
"""

MATCH_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS matches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tournament_id INTEGER NOT NULL,
    participant1_id INTEGER,
    participant2_id INTEGER,
    winner_id INTEGER,
    score1 INTEGER,
    score2 INTEGER,
    next_match_id INTEGER,
    next_match_slot INTEGER,
    CHECK (next_match_slot IN (1, 2) OR next_match_slot IS NULL),
    FOREIGN KEY (tournament_id) REFERENCES tournaments(id) ON DELETE CASCADE,
    FOREIGN KEY (participant1_id) REFERENCES participants(id) ON DELETE SET NULL,
    FOREIGN KEY (participant2_id) REFERENCES participants(id) ON DELETE SET NULL,
    FOREIGN KEY (winner_id) REFERENCES participants(id) ON DELETE SET NULL,
    FOREIGN KEY (next_match_id) REFERENCES matches(id) ON DELETE SET NULL
);
"""

PERFORMER_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS performers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tournament_id INTEGER NOT NULL,
    participant_id INTEGER,
    display_name TEXT,
    order_index INTEGER NOT NULL,
    total_score REAL NOT NULL DEFAULT 0,
    is_selected_winner INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (tournament_id) REFERENCES tournaments(id) ON DELETE CASCADE,
    FOREIGN KEY (participant_id) REFERENCES participants(id) ON DELETE SET NULL
);
"""

PERFORMANCE_STATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS performance_state (
    tournament_id INTEGER NOT NULL PRIMARY KEY,
    current_index INTEGER NOT NULL DEFAULT -1,
    show_view TEXT NOT NULL DEFAULT 'order',
    max_winners INTEGER NOT NULL DEFAULT 10,
    scoring_enabled INTEGER NOT NULL DEFAULT 1,
    finalized INTEGER NOT NULL DEFAULT 0,
    CHECK (show_view IN ('order', 'winners')),
    FOREIGN KEY (tournament_id) REFERENCES tournaments(id) ON DELETE CASCADE
);
"""

SETTINGS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS settings (
    setting_key TEXT NOT NULL PRIMARY KEY,
    setting_value TEXT,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""

BACKGROUND_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS backgrounds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_path TEXT,
    url TEXT NOT NULL,
    name TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""

PAGE_BACKGROUND_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS page_backgrounds (
    page_name TEXT NOT NULL PRIMARY KEY,
    background_id INTEGER,
    FOREIGN KEY (background_id) REFERENCES backgrounds(id) ON DELETE SET NULL
);
"""

INDEXES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_matches_tournament ON matches (tournament_id);",
    "CREATE INDEX IF NOT EXISTS idx_matches_next ON matches (next_match_id);",
    "CREATE INDEX IF NOT EXISTS idx_performers_tournament ON performers (tournament_id, order_index);",
]


SCHEMA_SQL = [
    TOURNAMENT_TABLE_SQL,
    PARTICIPANT_TABLE_SQL,
    MATCH_TABLE_SQL,
    PERFORMER_TABLE_SQL,
    PERFORMANCE_STATE_TABLE_SQL,
    SETTINGS_TABLE_SQL,
    BACKGROUND_TABLE_SQL,
    PAGE_BACKGROUND_TABLE_SQL,
    *INDEXES_SQL,
]


def initialize_schema(connection: sqlite3.Connection) -> None:
    """Initialize database schema if needed."""
    connection.execute("BEGIN")
    try:
        for statement in SCHEMA_SQL:
            connection.execute(statement)
    except sqlite3.Error:
        connection.execute("ROLLBACK")
        raise
    connection.execute("COMMIT")
