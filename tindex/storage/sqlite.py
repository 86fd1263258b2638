"""SQLite implementation of the ``Database`` capability.

Every call opens its own connection in a worker thread, so concurrent
importer workers never share a transaction: each stat update commits or
rolls back on its own.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from collections.abc import AsyncIterator, Callable
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from tindex.models import TrackerKey
from tindex.utils.exceptions import DatabaseError, DatabaseUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS torrents (
    torrent_id INTEGER PRIMARY KEY AUTOINCREMENT,
    info_hash TEXT NOT NULL UNIQUE,
    seeders INTEGER NOT NULL DEFAULT 0,
    leechers INTEGER NOT NULL DEFAULT 0,
    completed INTEGER NOT NULL DEFAULT 0,
    stats_updated_at REAL
);
CREATE TABLE IF NOT EXISTS tracker_keys (
    tracker_key_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    tracker_key TEXT NOT NULL,
    date_expiry INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_tracker_keys_user ON tracker_keys(user_id, date_expiry);
"""


@dataclass(frozen=True)
class TorrentStats:
    """Stored tracker counters for one torrent."""

    info_hash: str
    seeders: int
    leechers: int
    completed: int
    updated_at: float | None


class SqliteDatabase:
    """SQLite-backed storage for torrents and tracker keys."""

    def __init__(self, path: str | Path, page_size: int = 500, busy_timeout: float = 5.0):
        """Initialize the database handle.

        Args:
            path: Database file; parent directories are created on ``initialize``
            page_size: Info-hashes fetched per page while enumerating
            busy_timeout: Seconds to wait on a locked database before failing

        """
        self.path = Path(path)
        self.page_size = page_size
        self.busy_timeout = busy_timeout

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(str(self.path), timeout=self.busy_timeout)
        except sqlite3.Error as e:
            msg = f"Cannot open database {self.path}: {e}"
            raise DatabaseUnavailableError(msg) from e

    def _execute(self, operation: str, func: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``func`` in a single transaction, translating sqlite errors."""
        with closing(self._connect()) as conn:
            try:
                with conn:
                    return func(conn)
            except sqlite3.OperationalError as e:
                reason = str(e).lower()
                if "locked" in reason or "busy" in reason:
                    msg = f"Database busy during {operation}: {e}"
                    raise DatabaseError(msg) from e
                msg = f"Database unusable during {operation}: {e}"
                raise DatabaseUnavailableError(msg) from e
            except sqlite3.Error as e:
                msg = f"Database error during {operation}: {e}"
                raise DatabaseError(msg) from e

    async def _run(self, operation: str, func: Callable[[sqlite3.Connection], T]) -> T:
        return await asyncio.to_thread(self._execute, operation, func)

    async def initialize(self) -> None:
        """Create the database file and schema if missing."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Cannot create database directory {self.path.parent}: {e}"
            raise DatabaseUnavailableError(msg) from e

        def _create(conn: sqlite3.Connection) -> None:
            conn.executescript(SCHEMA)

        await self._run("initialize", _create)
        logger.debug("Database ready at %s", self.path)

    async def get_user_tracker_key(self, user_id: int) -> TrackerKey | None:
        """Return the newest non-expired key for the user."""
        now = int(time.time())

        def _select(conn: sqlite3.Connection) -> tuple[Any, ...] | None:
            return conn.execute(
                """
                SELECT tracker_key, date_expiry FROM tracker_keys
                WHERE user_id = ? AND date_expiry > ?
                ORDER BY date_expiry DESC LIMIT 1
                """,
                (user_id, now),
            ).fetchone()

        row = await self._run("get_user_tracker_key", _select)
        if row is None:
            return None
        return TrackerKey(key=row[0], valid_until=row[1])

    async def add_tracker_key(self, user_id: int, tracker_key: TrackerKey) -> None:
        """Insert a new key row; older rows are left to expire."""

        def _insert(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT INTO tracker_keys (user_id, tracker_key, date_expiry) VALUES (?, ?, ?)",
                (user_id, tracker_key.key, tracker_key.valid_until),
            )

        await self._run("add_tracker_key", _insert)

    async def list_torrent_info_hashes(self) -> AsyncIterator[str]:
        """Yield info-hashes page by page using keyset pagination."""
        last_id = 0
        while True:

            def _page(conn: sqlite3.Connection, after: int = last_id) -> list[tuple[int, str]]:
                return conn.execute(
                    "SELECT torrent_id, info_hash FROM torrents WHERE torrent_id > ? ORDER BY torrent_id LIMIT ?",
                    (after, self.page_size),
                ).fetchall()

            try:
                rows = await self._run("list_torrent_info_hashes", _page)
            except DatabaseError as e:
                if isinstance(e, DatabaseUnavailableError):
                    raise
                # Enumeration cannot skip a page, so any failure here is fatal.
                raise DatabaseUnavailableError(e.message) from e

            for _torrent_id, info_hash in rows:
                yield info_hash

            if len(rows) < self.page_size:
                return
            last_id = rows[-1][0]

    async def update_torrent_stats(
        self,
        info_hash: str,
        seeders: int,
        leechers: int,
        completed: int,
    ) -> None:
        """Overwrite the counters of one torrent."""
        now = time.time()

        def _update(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                """
                UPDATE torrents
                SET seeders = ?, leechers = ?, completed = ?, stats_updated_at = ?
                WHERE info_hash = ?
                """,
                (seeders, leechers, completed, now, info_hash),
            )
            return cursor.rowcount

        updated = await self._run("update_torrent_stats", _update)
        if updated == 0:
            msg = f"No stored torrent with info-hash {info_hash}"
            raise DatabaseError(msg, {"info_hash": info_hash})

    async def add_torrent(self, info_hash: str) -> int:
        """Register a torrent and return its id."""

        def _insert(conn: sqlite3.Connection) -> int:
            cursor = conn.execute("INSERT INTO torrents (info_hash) VALUES (?)", (info_hash,))
            return int(cursor.lastrowid)

        return await self._run("add_torrent", _insert)

    async def get_torrent_stats(self, info_hash: str) -> TorrentStats | None:
        """Read back the stored counters of one torrent."""

        def _select(conn: sqlite3.Connection) -> tuple[Any, ...] | None:
            return conn.execute(
                "SELECT info_hash, seeders, leechers, completed, stats_updated_at FROM torrents WHERE info_hash = ?",
                (info_hash,),
            ).fetchone()

        row = await self._run("get_torrent_stats", _select)
        if row is None:
            return None
        return TorrentStats(*row)
