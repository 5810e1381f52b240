"""SQLite connection layer with the sqlite-vec extension loaded."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import sqlite_vec

_BUSY_TIMEOUT_MS = 30_000


class Database:
    """Local index database holding one collection per source.

    Connections run in autocommit mode (``isolation_level=None``); writers that
    need atomicity open their own ``BEGIN IMMEDIATE`` transaction. Each thread
    should use its own connection, obtained from ``connect()`` or ``session()``.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. The file is created on first connect.

        Args:
            db_path: Path to the SQLite database file, or ``":memory:"``.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute(f"PRAGMA busy_timeout = {_BUSY_TIMEOUT_MS}")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        """Yield a fresh connection with migrations applied; close it afterwards."""
        from schemalens.db.migrations import run_migrations

        conn = self.connect()
        try:
            run_migrations(conn)
            yield conn
        finally:
            conn.close()

    def exists(self) -> bool:
        return self.db_path == ":memory:" or Path(self.db_path).exists()
