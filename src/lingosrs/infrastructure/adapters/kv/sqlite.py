"""
SQLite Key-Value Store: infrastructure adapter for a local database file.

Implements KeyValueStore on a single `kv` table. Each call opens its own
connection and commits (or rolls back) as one transaction, so `mset`
is all-or-nothing.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from pathlib import Path

from lingosrs.domain.errors import StorageUnavailable
from lingosrs.domain.ports import KeyValueStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class SqliteKeyValueStore(KeyValueStore):
    """
    Stores whole-record blobs in SQLite.

    Backend errors are wrapped in StorageUnavailable; nothing is retried.
    """

    def __init__(self, db_path: Path, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._initialised = False

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            if not self._initialised:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with closing(sqlite3.connect(self.db_path, timeout=self.timeout)) as conn:
                with conn:
                    if not self._initialised:
                        conn.execute(SCHEMA)
                        self._initialised = True
                    yield conn
        except (sqlite3.Error, OSError) as e:
            logger.error(f"SQLite store {self.db_path} failed: {e}")
            raise StorageUnavailable(f"Key-value store unavailable: {e}") from e

    async def get(self, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    async def mset(self, entries: dict[str, str]) -> None:
        if not entries:
            return
        with self._connect() as conn:
            conn.executemany(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                list(entries.items()),
            )

    async def get_by_prefix(self, prefix: str) -> dict[str, str]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return {k: v for k, v in rows}

    async def mdel(self, keys: list[str]) -> int:
        if not keys:
            return 0
        removed = 0
        with self._connect() as conn:
            for key in keys:
                removed += conn.execute("DELETE FROM kv WHERE key = ?", (key,)).rowcount
        return removed
