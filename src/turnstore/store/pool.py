"""
Shared connection pool for ChatStore.

A single ``StorePool`` instance manages one ``aiosqlite.Connection`` per
database path. All ``ChatStore`` objects pointing at the same path share that
connection, so concurrent request handlers never fight over SQLite's
single-writer lock.

Usage::

    pool = StorePool()

    store_a = ChatStore(config, pool=pool)
    store_b = ChatStore(config, pool=pool)   # same DB path → same connection

    await store_a.initialize()   # opens the connection (idempotent on 2nd call)
    await store_b.initialize()   # reuses existing connection

    # … use stores …

    await pool.close_all()       # close all managed connections once at shutdown
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite
import structlog

_logger = structlog.get_logger("turnstore.store.pool")


def resolve_db_path(db_path: str) -> str:
    return str(Path(db_path).expanduser().resolve())


async def open_connection(
    db_path: str,
    *,
    wal_mode: bool = True,
    connection_timeout: float = 30.0,
) -> aiosqlite.Connection:
    """Open and configure a connection. Closes it again if configuration fails."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(db_path, timeout=connection_timeout)
    try:
        conn.row_factory = aiosqlite.Row
        if wal_mode:
            await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute("PRAGMA synchronous=NORMAL")
    except Exception:
        await conn.close()
        raise
    return conn


class StorePool:
    """
    Process-scoped registry of open ``aiosqlite.Connection`` objects.

    Thread-safety: only safe to use from a single asyncio event loop.

    For each unique *resolved* database path the pool holds exactly one
    connection. Callers may call ``acquire()`` concurrently; only the first
    caller opens the connection, subsequent callers receive the same object.

    The pool also manages a per-path ``asyncio.Lock``. Every coroutine sharing
    the connection also shares its transaction, so ``ChatStore`` holds this
    lock for the whole of each transaction and for each read; otherwise a
    reader could observe another coroutine's half-written turn.
    """

    def __init__(self) -> None:
        self._connections: dict[str, aiosqlite.Connection] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._open_locks: dict[str, asyncio.Lock] = {}

    # ── Public API ─────────────────────────────────────────────────────────────

    async def acquire(
        self,
        db_path: str,
        *,
        wal_mode: bool = True,
        connection_timeout: float = 30.0,
    ) -> aiosqlite.Connection:
        """
        Return the shared connection for *db_path*, opening it if needed.

        Args:
            db_path: Path to the database file (``~`` is expanded).
            wal_mode: Enable WAL journal mode on first open.
            connection_timeout: SQLite busy timeout in seconds.

        Returns:
            The shared ``aiosqlite.Connection`` for this path.
        """
        resolved = resolve_db_path(db_path)

        if resolved in self._connections:
            return self._connections[resolved]

        if resolved not in self._open_locks:
            self._open_locks[resolved] = asyncio.Lock()

        async with self._open_locks[resolved]:
            # Double-check after acquiring the lock
            if resolved in self._connections:
                return self._connections[resolved]

            conn = await open_connection(
                resolved, wal_mode=wal_mode, connection_timeout=connection_timeout
            )
            self._connections[resolved] = conn
            self._locks[resolved] = asyncio.Lock()
            _logger.debug("pool_connection_opened", db_path=resolved)
            return conn

    def lock(self, db_path: str) -> asyncio.Lock:
        """
        Return the transaction lock for *db_path*.

        Raises ``KeyError`` if called before ``acquire()`` for this path.
        """
        return self._locks[resolve_db_path(db_path)]

    async def close_path(self, db_path: str) -> None:
        """Close and remove the connection for a single path."""
        resolved = resolve_db_path(db_path)
        conn = self._connections.pop(resolved, None)
        self._locks.pop(resolved, None)
        self._open_locks.pop(resolved, None)
        if conn is not None:
            await conn.close()
            _logger.debug("pool_connection_closed", db_path=resolved)

    async def close_all(self) -> None:
        """Close every connection managed by this pool."""
        for path in list(self._connections):
            await self.close_path(path)

    def __len__(self) -> int:
        return len(self._connections)
