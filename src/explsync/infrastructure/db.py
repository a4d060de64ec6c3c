"""SQLite database layer: connection management, schema, meta helpers."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

# Bump on breaking schema changes.
SCHEMA_VERSION = "1"

_SCHEMA_SQL = """\
-- Explanation content, keyed by the path-derived id
CREATE TABLE IF NOT EXISTS explanation (
    id          TEXT PRIMARY KEY,
    explanation TEXT NOT NULL
);

-- Questions are owned by the question bank; only the link is written here
CREATE TABLE IF NOT EXISTS question (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    external_id    TEXT NOT NULL UNIQUE,
    text           TEXT NOT NULL DEFAULT '',
    explanation_id TEXT REFERENCES explanation(id) ON DELETE SET NULL
);

-- Ordered question↔explanation links
CREATE TABLE IF NOT EXISTS question_to_explanation (
    id             TEXT PRIMARY KEY,
    question_id    INTEGER NOT NULL REFERENCES question(id) ON DELETE CASCADE,
    explanation_id TEXT NOT NULL REFERENCES explanation(id) ON DELETE CASCADE,
    "order"        INTEGER NOT NULL,
    UNIQUE(question_id, "order"),
    UNIQUE(question_id, explanation_id)
);

-- Sync metadata
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_question_explanation ON question(explanation_id);
CREATE INDEX IF NOT EXISTS idx_q2e_question ON question_to_explanation(question_id);
CREATE INDEX IF NOT EXISTS idx_q2e_explanation ON question_to_explanation(explanation_id);
"""

_COUNTED_TABLES = ("explanation", "question", "question_to_explanation")


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) a SQLite database with proper PRAGMAs.

    Sets WAL journal mode (persistent per-file) and enables foreign keys
    (per-connection, required on every open).

    Returns a connection with ``sqlite3.Row`` row factory.
    """
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes if they don't exist.

    Safe to call multiple times (uses IF NOT EXISTS).
    """
    conn.executescript(_SCHEMA_SQL)
    set_meta(conn, "schema_version", SCHEMA_VERSION)


def get_meta(conn: sqlite3.Connection, key: str, default: str | None = None) -> str | None:
    """Read a value from the ``meta`` table.

    Returns *default* (``None``) if the key doesn't exist.
    """
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
    if row is None:
        return default
    return str(row[0])


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Insert or update a key in the ``meta`` table."""
    conn.execute(
        "INSERT INTO meta (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )
    conn.commit()


def table_counts(conn: sqlite3.Connection) -> dict[str, int]:
    """Row counts for the explanation, question and link tables."""
    counts: dict[str, int] = {}
    for table in _COUNTED_TABLES:
        counts[table] = conn.execute(f"SELECT count(*) FROM {table}").fetchone()[0]  # noqa: S608
    counts["linked_questions"] = conn.execute(
        "SELECT count(*) FROM question WHERE explanation_id IS NOT NULL"
    ).fetchone()[0]
    return counts
