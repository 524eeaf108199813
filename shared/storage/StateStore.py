"""
SQLite state store
==================

- One connection per process, shared by all repositories.
- Blocking calls run in worker threads (asyncio.to_thread) behind one asyncio.Lock.
- WAL so independent worker processes can share the same database file.
"""

import asyncio
import pathlib
import sqlite3

from shared.helper.HelperConfig import HelperConfig
from shared.storage.repositories import IndexLogRepo, ProfileRepo, QueueRepo, WatcherRepo


def connect(path: str) -> sqlite3.Connection:
    # Autocommit; multi-statement writes open their own transaction.
    conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
    if path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    # Reduce SQLITE_BUSY errors when several workers share the file
    conn.execute("PRAGMA busy_timeout=5000;")
    conn.row_factory = sqlite3.Row
    return conn


def migrate(conn: sqlite3.Connection) -> None:
    """Execute schema.sql (idempotent)."""
    schema_file = pathlib.Path(__file__).with_name("schema.sql")
    conn.executescript(schema_file.read_text(encoding="utf-8"))


class StateStore:
    """Owns the sqlite connection and hands out the repositories."""

    def __init__(self, helper_config: HelperConfig, path: str):
        self.logging = helper_config.get_logger()
        self.path = path
        self.conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()
        self.profiles: ProfileRepo | None = None
        self.watchers: WatcherRepo | None = None
        self.queue: QueueRepo | None = None
        self.logs: IndexLogRepo | None = None

    async def open(self) -> None:
        def _open() -> sqlite3.Connection:
            conn = connect(self.path)
            migrate(conn)
            return conn

        self.conn = await asyncio.to_thread(_open)
        self.profiles = ProfileRepo(self.conn, self._lock)
        self.watchers = WatcherRepo(self.conn, self._lock)
        self.queue = QueueRepo(self.conn, self._lock)
        self.logs = IndexLogRepo(self.conn, self._lock)
        self.logging.info("State store ready at %s", self.path)

    async def close(self) -> None:
        if self.conn is None:
            return
        async with self._lock:
            await asyncio.to_thread(self.conn.close)
        self.conn = None
