"""SQLite-backed store for conversations, turns and per-kind part tables."""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from turnstore.models.config import StoreConfig
from turnstore.models.turn import Conversation, Role, Turn
from turnstore.store.pool import open_connection
from turnstore.store.rows import (
    ConversationRows,
    DataRow,
    FileRow,
    PartBatches,
    ReasoningRow,
    SourceDocumentRow,
    SourceUrlRow,
    TextRow,
    ToolRow,
)

if TYPE_CHECKING:
    from turnstore.store.pool import StorePool

# ── Exceptions ─────────────────────────────────────────────────────────────────


class TurnStoreError(Exception):
    """Base class for store errors."""


class StoreNotInitializedError(TurnStoreError):
    """Raised when the store is used before ``initialize()`` or after ``close()``."""

    def __init__(self) -> None:
        super().__init__("Store is not initialized. Call initialize() first.")


class ConversationNotFoundError(TurnStoreError):
    """Raised when a turn references a conversation that does not exist."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id!r}")
        self.conversation_id = conversation_id


class DuplicateIDError(TurnStoreError):
    """
    Raised when a turn or one of its parts reuses a stored primary key.

    ``table`` names the table the collision happened in (``"turns"`` or one
    of the ``part_*`` tables) and ``record_id`` the key that collided.
    """

    def __init__(self, record_id: str, table: str | None = None) -> None:
        where = f" in {table}" if table else ""
        super().__init__(f"Duplicate ID{where}: {record_id!r}")
        self.record_id = record_id
        self.table = table


# ── Column mapping ─────────────────────────────────────────────────────────────


def _dump(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def _load(value: str | None) -> Any:
    return None if value is None else json.loads(value)


# kind -> (INSERT statement, row -> params)
_INSERTS: dict[str, tuple[str, Callable[[Any], tuple[Any, ...]]]] = {
    "text": (
        "INSERT INTO part_texts (id, turn_id, conversation_id, text, provider_metadata)"
        " VALUES (?, ?, ?, ?, ?)",
        lambda r: (r.id, r.turn_id, r.conversation_id, r.text, _dump(r.provider_metadata)),
    ),
    "reasoning": (
        "INSERT INTO part_reasoning (id, turn_id, conversation_id, text, provider_metadata)"
        " VALUES (?, ?, ?, ?, ?)",
        lambda r: (r.id, r.turn_id, r.conversation_id, r.text, _dump(r.provider_metadata)),
    ),
    "tool": (
        """
        INSERT INTO part_tools
            (id, turn_id, conversation_id, tool_call_id, tool_name, state,
             input, output, error_text, call_provider_metadata)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        lambda r: (
            r.id,
            r.turn_id,
            r.conversation_id,
            r.tool_call_id,
            r.tool_name,
            r.state,
            _dump(r.input),
            _dump(r.output),
            r.error_text,
            _dump(r.call_provider_metadata),
        ),
    ),
    "source-url": (
        """
        INSERT INTO part_source_urls
            (id, turn_id, conversation_id, source_id, url, title, provider_metadata)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        lambda r: (
            r.id,
            r.turn_id,
            r.conversation_id,
            r.source_id,
            r.url,
            r.title,
            _dump(r.provider_metadata),
        ),
    ),
    "data": (
        "INSERT INTO part_data (id, turn_id, conversation_id, data_type, data)"
        " VALUES (?, ?, ?, ?, ?)",
        lambda r: (r.id, r.turn_id, r.conversation_id, r.data_type, _dump(r.data)),
    ),
    "file": (
        """
        INSERT INTO part_files
            (id, turn_id, conversation_id, media_type, url, filename, provider_metadata)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        lambda r: (
            r.id,
            r.turn_id,
            r.conversation_id,
            r.media_type,
            r.url,
            r.filename,
            _dump(r.provider_metadata),
        ),
    ),
    "source-document": (
        """
        INSERT INTO part_source_documents
            (id, turn_id, conversation_id, source_id, media_type, title, filename,
             provider_metadata)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        lambda r: (
            r.id,
            r.turn_id,
            r.conversation_id,
            r.source_id,
            r.media_type,
            r.title,
            r.filename,
            _dump(r.provider_metadata),
        ),
    ),
}

_KIND_TABLES: dict[str, str] = {
    "text": "part_texts",
    "reasoning": "part_reasoning",
    "tool": "part_tools",
    "source-url": "part_source_urls",
    "data": "part_data",
    "file": "part_files",
    "source-document": "part_source_documents",
}


def _unique_violation_table(exc: aiosqlite.IntegrityError) -> str | None:
    """Table named by ``UNIQUE constraint failed: <table>.<column>``, if any."""
    _, found, target = str(exc).partition("UNIQUE constraint failed: ")
    if not found:
        return None
    return target.split(".", 1)[0] or None


def _row_to_text(row: aiosqlite.Row) -> TextRow:
    return TextRow(
        id=row["id"],
        turn_id=row["turn_id"],
        conversation_id=row["conversation_id"],
        text=row["text"],
        provider_metadata=_load(row["provider_metadata"]),
    )


def _row_to_reasoning(row: aiosqlite.Row) -> ReasoningRow:
    return ReasoningRow(
        id=row["id"],
        turn_id=row["turn_id"],
        conversation_id=row["conversation_id"],
        text=row["text"],
        provider_metadata=_load(row["provider_metadata"]),
    )


def _row_to_tool(row: aiosqlite.Row) -> ToolRow:
    return ToolRow(
        id=row["id"],
        turn_id=row["turn_id"],
        conversation_id=row["conversation_id"],
        tool_call_id=row["tool_call_id"],
        tool_name=row["tool_name"],
        state=row["state"],
        input=_load(row["input"]),
        output=_load(row["output"]),
        error_text=row["error_text"],
        call_provider_metadata=_load(row["call_provider_metadata"]),
    )


def _row_to_source_url(row: aiosqlite.Row) -> SourceUrlRow:
    return SourceUrlRow(
        id=row["id"],
        turn_id=row["turn_id"],
        conversation_id=row["conversation_id"],
        source_id=row["source_id"],
        url=row["url"],
        title=row["title"],
        provider_metadata=_load(row["provider_metadata"]),
    )


def _row_to_data(row: aiosqlite.Row) -> DataRow:
    return DataRow(
        id=row["id"],
        turn_id=row["turn_id"],
        conversation_id=row["conversation_id"],
        data_type=row["data_type"],
        data=_load(row["data"]),
    )


def _row_to_file(row: aiosqlite.Row) -> FileRow:
    return FileRow(
        id=row["id"],
        turn_id=row["turn_id"],
        conversation_id=row["conversation_id"],
        media_type=row["media_type"],
        url=row["url"],
        filename=row["filename"],
        provider_metadata=_load(row["provider_metadata"]),
    )


def _row_to_source_document(row: aiosqlite.Row) -> SourceDocumentRow:
    return SourceDocumentRow(
        id=row["id"],
        turn_id=row["turn_id"],
        conversation_id=row["conversation_id"],
        source_id=row["source_id"],
        media_type=row["media_type"],
        title=row["title"],
        filename=row["filename"],
        provider_metadata=_load(row["provider_metadata"]),
    )


def _row_to_turn(row: aiosqlite.Row) -> Turn:
    return Turn(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        created_at=row["created_at"],
    )


# ── ChatStore ──────────────────────────────────────────────────────────────────


class ChatStore:
    """
    SQLite-backed store for conversations, turns and their parts.

    Each part kind lives in its own table; every part row carries both its
    turn id and its conversation id so a whole conversation is read with one
    range query per table.

    When a ``StorePool`` is supplied the store borrows a shared connection
    from it and ``close()`` leaves that connection open (the pool owns its
    lifetime). Otherwise the store opens and owns a private connection.

    Usage::

        pool = StorePool()
        store = ChatStore(config.store, pool=pool)
        await store.initialize()
        try:
            await store.ensure_conversation("c1")
            await store.write_turn(turn, batches)
            rows = await store.read_conversation("c1")
        finally:
            await store.close()
            await pool.close_all()
    """

    def __init__(self, config: StoreConfig, pool: StorePool | None = None) -> None:
        self._config = config
        self._db_path = str(Path(config.db_path).expanduser())
        self._pool = pool
        self._conn: aiosqlite.Connection | None = None
        self._lock: asyncio.Lock | None = None
        self._logger = structlog.get_logger("turnstore.store")

    @property
    def db_path(self) -> str:
        return self._db_path

    async def initialize(self) -> None:
        """
        Open (or borrow) a database connection and apply the schema.

        The schema uses ``CREATE ... IF NOT EXISTS`` throughout, so this is
        safe to call against an existing database.

        Raises:
            aiosqlite.Error: If the database cannot be opened or the schema fails.
        """
        if self._pool is not None:
            conn = await self._pool.acquire(
                self._db_path,
                wal_mode=self._config.wal_mode,
                connection_timeout=self._config.connection_timeout,
            )
            lock = self._pool.lock(self._db_path)
        else:
            conn = await open_connection(
                self._db_path,
                wal_mode=self._config.wal_mode,
                connection_timeout=self._config.connection_timeout,
            )
            lock = asyncio.Lock()

        schema = (Path(__file__).parent / "schema.sql").read_text()
        async with lock:
            await conn.executescript(schema)
            await conn.commit()

        self._conn = conn
        self._lock = lock
        self._logger.info("store_initialized", db_path=self._db_path)

    async def close(self) -> None:
        """
        Release the database connection.

        A no-op for pooled connections; private connections are closed.
        """
        if self._conn is None:
            return
        if self._pool is None:
            await self._conn.close()
        self._conn = None
        self._lock = None

    def _conn_or_raise(self) -> tuple[aiosqlite.Connection, asyncio.Lock]:
        if self._conn is None or self._lock is None:
            raise StoreNotInitializedError()
        return self._conn, self._lock

    # ── Conversations ──────────────────────────────────────────────────────────

    async def ensure_conversation(self, conversation_id: str) -> bool:
        """
        Create the conversation row unless it already exists.

        Uniqueness is enforced by the primary key with ``ON CONFLICT DO
        NOTHING``, so concurrent first turns (in this process or another one
        sharing the file) leave exactly one row and none of them errors.

        Returns:
            True if this call created the row, False if it already existed.
        """
        conn, lock = self._conn_or_raise()
        now = int(time.time() * 1000)
        async with lock:
            cursor = await conn.execute(
                "INSERT INTO conversations (id, created_at) VALUES (?, ?)"
                " ON CONFLICT(id) DO NOTHING",
                (conversation_id, now),
            )
            created = cursor.rowcount == 1
            await cursor.close()
            await conn.commit()

        if created:
            self._logger.debug("conversation_created", conversation_id=conversation_id)
        return created

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Fetch a conversation by ID. Returns None if not found."""
        conn, lock = self._conn_or_raise()
        async with lock:
            async with conn.execute(
                "SELECT id, created_at FROM conversations WHERE id = ?", (conversation_id,)
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return Conversation(id=row["id"], created_at=row["created_at"])

    # ── Turns ──────────────────────────────────────────────────────────────────

    async def write_turn(self, turn: Turn, batches: PartBatches) -> None:
        """
        Insert a turn row and all of its part rows in one transaction.

        The per-kind inserts are issued concurrently and all of them are
        awaited before the commit. If any insert fails the whole transaction
        is rolled back, so readers never see the turn with only some of its
        parts.

        Args:
            turn: The turn row. Its conversation must already exist.
            batches: Rows from :func:`~turnstore.decompose.decompose`.

        Raises:
            ConversationNotFoundError: If ``turn.conversation_id`` does not exist.
            DuplicateIDError: If the turn or one of its parts is already stored.
        """
        conn, lock = self._conn_or_raise()

        async def _insert(kind: str, rows: Sequence[Any]) -> None:
            sql, to_params = _INSERTS[kind]
            await conn.executemany(sql, [to_params(r) for r in rows])

        async with lock:
            try:
                await conn.execute(
                    "INSERT INTO turns (id, conversation_id, role, created_at)"
                    " VALUES (?, ?, ?, ?)",
                    (turn.id, turn.conversation_id, turn.role, turn.created_at),
                )
                results = await asyncio.gather(
                    *(_insert(kind, rows) for kind, rows in batches.non_empty()),
                    return_exceptions=True,
                )
                for result in results:
                    if isinstance(result, BaseException):
                        raise result
                await conn.commit()
            except BaseException as exc:
                await conn.rollback()
                self._logger.warning(
                    "turn_write_failed",
                    turn_id=turn.id,
                    conversation_id=turn.conversation_id,
                    error=str(exc),
                )
                if isinstance(exc, aiosqlite.IntegrityError):
                    if "FOREIGN KEY" in str(exc):
                        raise ConversationNotFoundError(turn.conversation_id) from exc
                    table = _unique_violation_table(exc)
                    if table is not None:
                        record_id = await self._conflicting_id(conn, table, turn, batches)
                        raise DuplicateIDError(record_id, table) from exc
                raise

        self._logger.debug(
            "turn_written",
            turn_id=turn.id,
            conversation_id=turn.conversation_id,
            parts=len(batches),
        )

    @staticmethod
    async def _conflicting_id(
        conn: aiosqlite.Connection, table: str, turn: Turn, batches: PartBatches
    ) -> str:
        """Find the key behind a unique violation in ``table`` after rollback."""
        kind = next((k for k, t in _KIND_TABLES.items() if t == table), None)
        if kind is None:
            return turn.id
        ids = [row.id for row in batches.by_kind()[kind]]
        seen: set[str] = set()
        for record_id in ids:
            if record_id in seen:
                return record_id
            seen.add(record_id)
        placeholders = ", ".join("?" for _ in ids)
        async with conn.execute(
            f"SELECT id FROM {table} WHERE id IN ({placeholders}) ORDER BY id LIMIT 1", ids
        ) as cursor:
            row = await cursor.fetchone()
        return row["id"] if row is not None else turn.id

    async def count_turns(self, conversation_id: str, *, role: Role | None = None) -> int:
        """Count the turns of a conversation, optionally only those of one role."""
        conn, lock = self._conn_or_raise()
        sql = "SELECT COUNT(*) FROM turns WHERE conversation_id = ?"
        params: list[Any] = [conversation_id]
        if role is not None:
            sql += " AND role = ?"
            params.append(role)
        async with lock:
            async with conn.execute(sql, params) as cursor:
                row = await cursor.fetchone()
        return row[0] if row else 0

    # ── Reads ──────────────────────────────────────────────────────────────────

    async def read_conversation(self, conversation_id: str) -> ConversationRows:
        """
        Fetch every turn and every part row of a conversation.

        The turn table and the seven part tables are queried concurrently.
        Nothing is sorted or filtered; that is the reassembler's job. An
        unknown conversation yields empty results.
        """
        conn, lock = self._conn_or_raise()

        async def _select(table: str) -> list[aiosqlite.Row]:
            async with conn.execute(
                f"SELECT * FROM {table} WHERE conversation_id = ?", (conversation_id,)
            ) as cursor:
                return list(await cursor.fetchall())

        async with lock:
            (
                turn_rows,
                texts,
                reasoning,
                tools,
                source_urls,
                data,
                files,
                source_documents,
            ) = await asyncio.gather(
                _select("turns"),
                _select("part_texts"),
                _select("part_reasoning"),
                _select("part_tools"),
                _select("part_source_urls"),
                _select("part_data"),
                _select("part_files"),
                _select("part_source_documents"),
            )

        return ConversationRows(
            turns=[_row_to_turn(r) for r in turn_rows],
            parts=PartBatches(
                texts=[_row_to_text(r) for r in texts],
                reasoning=[_row_to_reasoning(r) for r in reasoning],
                tools=[_row_to_tool(r) for r in tools],
                source_urls=[_row_to_source_url(r) for r in source_urls],
                data=[_row_to_data(r) for r in data],
                files=[_row_to_file(r) for r in files],
                source_documents=[_row_to_source_document(r) for r in source_documents],
            ),
        )

    # ── Health ─────────────────────────────────────────────────────────────────

    async def check_connection(self) -> bool:
        """
        Check the database with a trivial query.

        Returns False (and logs why) instead of raising, so callers can render
        a status without handling store errors.
        """
        if self._conn is None:
            self._logger.warning("connection_check_failed", error="store not initialized")
            return False
        try:
            async with self._conn.execute("SELECT sqlite_version()") as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            self._logger.warning("connection_check_failed", error=str(exc))
            return False
        self._logger.debug("connection_checked", sqlite_version=row[0] if row else None)
        return True
