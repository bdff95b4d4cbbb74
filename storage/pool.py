"""Fixed-size SQLite connection pool with scoped acquisition."""

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, TypeVar

from ingestion.errors import StoreConnectError

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30.0

T = TypeVar("T")


class SqlitePool:
    """
    Hands out SQLite connections to one database file.

    Connections are created up front and returned to the pool when the
    ``acquire()`` block exits. Each connection is used by one task at a
    time; ``run()`` executes blocking calls on it through ``asyncio.to_thread``.
    Write serialization is left to SQLite's own file locking.
    """

    def __init__(self, db_path: str, size: int = 4):
        self.db_path = db_path
        self.size = size
        self._queue: Optional[asyncio.Queue] = None
        self._connections: List[sqlite3.Connection] = []

    def _connect(self) -> sqlite3.Connection:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self.db_path,
            timeout=BUSY_TIMEOUT_SECONDS,
            check_same_thread=False,
        )
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    async def open(self) -> "SqlitePool":
        """
        Create the pool's connections.

        Raises:
            StoreConnectError: the database file cannot be opened
        """
        if self._queue is not None:
            return self

        queue: asyncio.Queue = asyncio.Queue()
        try:
            for _ in range(self.size):
                conn = await asyncio.to_thread(self._connect)
                self._connections.append(conn)
                queue.put_nowait(conn)
        except (sqlite3.Error, OSError) as e:
            await self._close_all()
            raise StoreConnectError(f"cannot open {self.db_path}: {e}") from e

        self._queue = queue
        logger.debug(f"Opened {self.size} connections to {self.db_path}")
        return self

    async def _checkout(self) -> sqlite3.Connection:
        if self._queue is None:
            raise StoreConnectError("pool is not open")
        return await self._queue.get()

    def _checkin(self, conn: sqlite3.Connection) -> None:
        if self._queue is not None:
            self._queue.put_nowait(conn)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[sqlite3.Connection]:
        """Borrow a connection for the duration of the block."""
        conn = await self._checkout()
        try:
            yield conn
        finally:
            self._checkin(conn)

    async def run(self, fn: Callable[..., T], *args) -> T:
        """
        Call ``fn(conn, *args)`` in a worker thread on a pooled connection.

        If the caller is cancelled the thread still runs to completion, and
        the connection only goes back to the pool once it has finished.
        """
        conn = await self._checkout()
        future = asyncio.ensure_future(asyncio.to_thread(fn, conn, *args))
        future.add_done_callback(lambda _: self._checkin(conn))
        return await asyncio.shield(future)

    async def close(self) -> None:
        await self._close_all()
        self._queue = None

    async def _close_all(self) -> None:
        for conn in self._connections:
            await asyncio.to_thread(conn.close)
        self._connections = []

    @property
    def is_open(self) -> bool:
        return self._queue is not None
