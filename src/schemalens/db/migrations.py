"""Forward-only migration runner for the index database.

Per-source collection tables (chunks_*, chunks_fts_*, vec_chunks_*) are NOT
migration-managed; ``schemalens.db.collections`` creates and drops them.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS collections (
    source_id       TEXT PRIMARY KEY,
    slug            TEXT NOT NULL UNIQUE,
    chunk_count     INTEGER NOT NULL DEFAULT 0,
    dimensions      INTEGER,
    ann_indexed     INTEGER NOT NULL DEFAULT 0,
    indexed_at      TEXT,
    replaced_at     DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

# Append-only. Each entry: (version: int, sql: str).
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
