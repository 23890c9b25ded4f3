"""ChatHistory: the public entry point for persisting and reloading turns."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from turnstore.decompose import decompose
from turnstore.ids import make_id
from turnstore.models.config import TurnStoreConfig
from turnstore.models.parts import MessagePart
from turnstore.models.turn import Role, Turn, TurnWithParts
from turnstore.reassemble import reassemble
from turnstore.store.chat_store import ChatStore
from turnstore.store.pool import StorePool
from turnstore.tools import ToolRegistry

TURN_ID_PREFIX = "msg"


class ChatHistory:
    """
    Persists finished turns and reloads whole conversations.

    The streaming layer hands over each turn only once it is complete (the
    user's message on arrival, the assistant's response when streaming
    finishes). Reloading returns every turn with its parts in the order they
    were produced, each led by a step-start marker.

    Usage::

        pool = StorePool()
        async with await ChatHistory.open(config, pool=pool) as history:
            await history.persist_turn("chat_1", "user", [TextPart(text="Hi")])
            turns = await history.load_turns("chat_1")
        await pool.close_all()
    """

    def __init__(self, store: ChatStore, tools: ToolRegistry) -> None:
        self._store = store
        self._tools = tools
        self._logger = structlog.get_logger("turnstore.history")

    @classmethod
    async def open(
        cls,
        config: TurnStoreConfig | None = None,
        *,
        db_path: str | None = None,
        pool: StorePool | None = None,
    ) -> ChatHistory:
        """
        Build a history backed by an initialized store.

        Args:
            config: Store settings and tool allow-list. Defaults apply if None.
            db_path: Overrides ``config.store.db_path``.
            pool: Shared connection pool. Without one the store owns a
                private connection, released by :meth:`close`.
        """
        cfg = config or TurnStoreConfig.default()
        store_config = cfg.store
        if db_path is not None:
            store_config = cfg.store.model_copy(update={"db_path": db_path})
        store = ChatStore(store_config, pool=pool)
        await store.initialize()
        return cls(store, ToolRegistry.from_config(cfg))

    @property
    def store(self) -> ChatStore:
        return self._store

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    async def ensure_conversation(self, conversation_id: str) -> bool:
        """Create the conversation if it does not exist yet. Safe to race."""
        return await self._store.ensure_conversation(conversation_id)

    async def persist_turn(
        self,
        conversation_id: str,
        role: Role,
        parts: Sequence[MessagePart],
    ) -> Turn:
        """
        Store one finished turn.

        The turn is decomposed before anything touches the store, so a tool
        part naming an unregistered tool aborts with nothing written.

        Args:
            conversation_id: Conversation to attach the turn to; created if new.
            role: ``"user"``, ``"assistant"`` or ``"system"``.
            parts: The turn's parts in production order.

        Returns:
            The stored turn row.

        Raises:
            UnknownToolError: If a tool part names an unregistered tool.
            TurnStoreError: If the write fails; nothing of the turn is kept.
        """
        turn = Turn(id=make_id(TURN_ID_PREFIX), conversation_id=conversation_id, role=role)
        batches = decompose(conversation_id, turn.id, parts, self._tools)

        await self._store.ensure_conversation(conversation_id)
        await self._store.write_turn(turn, batches)

        self._logger.info(
            "turn_persisted",
            conversation_id=conversation_id,
            turn_id=turn.id,
            role=role,
            parts=len(batches),
        )
        return turn

    async def load_turns(self, conversation_id: str) -> list[TurnWithParts]:
        """Return every turn of a conversation, oldest first, with ordered parts."""
        rows = await self._store.read_conversation(conversation_id)
        return reassemble(rows.turns, rows.parts)

    async def count_turns(self, conversation_id: str, *, role: Role | None = None) -> int:
        """Count stored turns, e.g. user turns when enforcing a per-chat quota."""
        return await self._store.count_turns(conversation_id, role=role)

    async def close(self) -> None:
        await self._store.close()

    async def __aenter__(self) -> ChatHistory:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
