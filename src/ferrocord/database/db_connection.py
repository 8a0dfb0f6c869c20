"""
Database connection management: one long-lived aiosqlite connection.

SQLite performs best with a single connection kept open for the whole bot
lifecycle (pragmas applied once, page cache stays warm). Every statement of
the bot goes through one :class:`ConnectionManager` instance owned by
:class:`ferrocord.database.database.Database` and handed to repositories.

Concurrency model
-----------------
A single connection has a single transaction scope, so two coroutines must
never interleave statements on it. ``_lock`` serialises whole units of work:

* ``transaction()`` holds it from the first statement until commit/rollback.
* ``read()`` holds it for the duration of the read so a reader never observes
  another coroutine's uncommitted rows.

Uniqueness of tag and alias names is *not* enforced by this lock. It is
enforced by primary keys and triggers in the schema; the lock only keeps
statements of different units of work from mixing on the shared connection.

Usage
-----
    manager = ConnectionManager()
    await manager.open(path)

    async with manager.transaction() as conn:
        await conn.execute("INSERT ...")
        await conn.execute("UPDATE ...")
        # commits automatically on clean exit, rolls back on exception

    async with manager.read() as conn:
        cursor = await conn.execute("SELECT ...")

    await manager.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from ferrocord.util.logger import get_logger

logger = get_logger("database_connection")

# ── Pragmas applied once when the connection is opened ──────────────────────
_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",       # required for alias cascade delete
    "PRAGMA synchronous = NORMAL",    # safe with WAL; faster than FULL
    "PRAGMA temp_store = MEMORY",
    "PRAGMA wal_autocheckpoint = 1000",
]


class ConnectionManager:
    """
    Wrapper around a single aiosqlite connection.

    Instances are independent: tests open one per temporary database file.
    """

    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._path: Path | None = None
        self._timeout = timeout_seconds

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self, path: Path) -> None:
        """
        Open the database and apply pragmas.

        Args:
            path: Path to the SQLite database file.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists; ignoring")
            return

        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)

        # ``timeout`` is SQLite's busy timeout: a transaction blocked on the
        # file lock gives up (and is rolled back) after this many seconds.
        self._conn = await aiosqlite.connect(path, timeout=self._timeout)
        self._conn.row_factory = aiosqlite.Row

        for pragma in _PRAGMAS:
            await self._conn.execute(pragma)
        await self._conn.commit()

        logger.info("[DB CONNECTION] Opened connection to %s", path)

    async def close(self) -> None:
        """Flush the WAL and close the connection."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except Exception:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            RuntimeError: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise RuntimeError(
                "ConnectionManager: connection is not open. "
                "Call await manager.open(path) at startup."
            )
        return self._conn

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager that provides an atomic write transaction.

        * Commits automatically on clean exit.
        * Rolls back automatically if an exception is raised, then re-raises.

        Raises:
            RuntimeError: If the connection is not open.
        """
        conn = self.connection

        async with self._lock:
            try:
                yield conn
                await conn.commit()
            except BaseException:
                await conn.rollback()
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager for read operations.

        Holds the same lock as ``transaction()`` so reads only ever see
        committed state.
        """
        conn = self.connection
        async with self._lock:
            yield conn
