"""SQLite index store: connection management, schema, meta helpers."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

# Bumped whenever the table layout changes incompatibly.
SCHEMA_VERSION = "1"

_SCHEMA_SQL = """\
-- One row per indexed project
CREATE TABLE IF NOT EXISTS projects (
    name       TEXT PRIMARY KEY,
    path       TEXT NOT NULL,
    indexed_at TEXT NOT NULL
);

-- File inventory
CREATE TABLE IF NOT EXISTS files (
    id       INTEGER PRIMARY KEY AUTOINCREMENT,
    project  TEXT NOT NULL REFERENCES projects(name) ON DELETE CASCADE,
    path     TEXT NOT NULL,
    language TEXT NOT NULL,
    hash     TEXT NOT NULL,
    UNIQUE(project, path)
);

-- Markdown sections
CREATE TABLE IF NOT EXISTS sections (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    file_id     INTEGER NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    chunk_index INTEGER NOT NULL,
    heading     TEXT NOT NULL DEFAULT '',
    content     TEXT NOT NULL
);

-- Index metadata
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_files_project ON files(project);
CREATE INDEX IF NOT EXISTS idx_sections_file ON sections(file_id);
"""


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open *db_path* in WAL mode with foreign keys on and ``sqlite3.Row`` rows.

    WAL lets HTTP readers keep using the last committed index while a
    reindex transaction is open.
    """
    conn = sqlite3.connect(str(db_path), timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create missing tables and indexes; idempotent."""
    conn.executescript(_SCHEMA_SQL)


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Insert or update a key in the ``meta`` table."""
    conn.execute(
        "INSERT INTO meta (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )
    conn.commit()


def get_meta(conn: sqlite3.Connection, key: str) -> str | None:
    """Return the ``meta`` value for *key*, or None when unset."""
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
    return None if row is None else str(row["value"])
