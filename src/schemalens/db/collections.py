"""Per-source collection tables: naming, creation and removal.

Every source gets three tables keyed by a slug derived from its id:

- ``chunks_{slug}``      chunk rows (content, summary, embedding blob)
- ``chunks_fts_{slug}``  FTS5 index over content, rowid = chunk rowid
- ``vec_chunks_{slug}``  sqlite-vec ANN index, only for large collections
"""

from __future__ import annotations

import hashlib
import re
import sqlite3

_SLUG_RE = re.compile(r"[a-z0-9_]+")


def source_to_slug(source_id: str) -> str:
    """Convert an arbitrary source id into a safe, unique table-name suffix.

    Non-alphanumerics become underscores and the result is lower-cased (SQLite
    table names are case-insensitive). A short digest of the raw id keeps ids
    that sanitize identically, such as ``prod-db`` and ``prod_db``, apart.

    Examples:
        "prod-db"  -> "prod_db_<8 hex chars>"
        "Prod DB"  -> "prod_db_<different 8 hex chars>"
    """
    readable = re.sub(r"[^a-z0-9]", "_", source_id.lower())[:48]
    digest = hashlib.sha1(source_id.encode("utf-8")).hexdigest()[:8]
    return f"{readable}_{digest}"


def chunks_table(slug: str) -> str:
    return f"chunks_{_checked(slug)}"


def fts_table(slug: str) -> str:
    return f"chunks_fts_{_checked(slug)}"


def vec_table(slug: str) -> str:
    return f"vec_chunks_{_checked(slug)}"


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    return (
        conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        ).fetchone()
        is not None
    )


def create_collection(conn: sqlite3.Connection, slug: str) -> None:
    """Create the chunk table and its FTS5 index. Caller owns the transaction."""
    conn.execute(
        f"""
        CREATE TABLE {chunks_table(slug)} (
            id              TEXT NOT NULL UNIQUE,
            source_id       TEXT NOT NULL,
            object_type     TEXT NOT NULL,
            object_name     TEXT NOT NULL,
            schema_name     TEXT NOT NULL,
            content         TEXT NOT NULL,
            summary         TEXT NOT NULL DEFAULT '',
            embedding       BLOB,
            indexed_at      TEXT NOT NULL DEFAULT ''
        )
        """
    )
    conn.execute(
        f"CREATE INDEX idx_{chunks_table(slug)}_type ON {chunks_table(slug)}(object_type)"
    )
    conn.execute(
        f"CREATE VIRTUAL TABLE {fts_table(slug)} USING fts5(content, tokenize='porter ascii')"
    )


def create_vec_index(conn: sqlite3.Connection, slug: str, dimensions: int) -> str:
    """Create the vec0 ANN table for *slug*. Caller owns the transaction.

    Embeddings are expected to be L2-normalised, so cosine distance is used.
    ``object_type`` is a vec0 metadata column, allowing type-filtered KNN.

    Returns:
        The table name (vec_chunks_{slug}).
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")
    table = vec_table(slug)
    conn.execute(
        f"CREATE VIRTUAL TABLE {table} USING vec0("
        f"object_type text, embedding float[{dimensions}] distance_metric=cosine)"
    )
    return table


def drop_collection(conn: sqlite3.Connection, slug: str) -> bool:
    """Drop every table of the collection. Returns True if anything existed."""
    existed = False
    for table in (vec_table(slug), fts_table(slug), chunks_table(slug)):
        if table_exists(conn, table):
            conn.execute(f"DROP TABLE {table}")
            existed = True
    return existed


def _checked(slug: str) -> str:
    if not _SLUG_RE.fullmatch(slug):
        raise ValueError(f"Invalid slug '{slug}': use source_to_slug() to sanitize.")
    return slug
