"""Tests for ChatStore and StorePool."""

from __future__ import annotations

import asyncio

import pytest

from turnstore.models.config import StoreConfig
from turnstore.store.chat_store import (
    ChatStore,
    ConversationNotFoundError,
    DuplicateIDError,
    StoreNotInitializedError,
)
from turnstore.store.pool import StorePool
from turnstore.store.rows import (
    DataRow,
    FileRow,
    PartBatches,
    SourceDocumentRow,
    SourceUrlRow,
    TextRow,
    ToolRow,
)
from tests.conftest import make_turn


async def _count(store: ChatStore, table: str) -> int:
    conn, _ = store._conn_or_raise()
    async with conn.execute(f"SELECT COUNT(*) FROM {table}") as cursor:
        row = await cursor.fetchone()
    return row[0]


class TestStorePool:
    async def test_same_path_shares_connection(self, config):
        pool = StorePool()
        try:
            a = await pool.acquire(config.store.db_path)
            b = await pool.acquire(config.store.db_path)
            assert a is b
            assert len(pool) == 1
        finally:
            await pool.close_all()
        assert len(pool) == 0

    async def test_concurrent_acquire_opens_once(self, config):
        pool = StorePool()
        try:
            conns = await asyncio.gather(*(pool.acquire(config.store.db_path) for _ in range(5)))
            assert all(c is conns[0] for c in conns)
        finally:
            await pool.close_all()

    async def test_pools_are_independent(self, config):
        """Each pool owns its connections; none is shared through module state."""
        first, second = StorePool(), StorePool()
        try:
            a = await first.acquire(config.store.db_path)
            b = await second.acquire(config.store.db_path)
            assert a is not b
            assert first.lock(config.store.db_path) is not second.lock(config.store.db_path)
        finally:
            await first.close_all()
            await second.close_all()
        assert not hasattr(StorePool, "default")

    async def test_lock_requires_acquire(self, config):
        with pytest.raises(KeyError):
            StorePool().lock(config.store.db_path)


class TestConversations:
    async def test_ensure_creates_then_noops(self, store):
        assert await store.ensure_conversation("c1") is True
        assert await store.ensure_conversation("c1") is False
        assert await _count(store, "conversations") == 1

    async def test_get_conversation(self, store):
        assert await store.get_conversation("c1") is None
        await store.ensure_conversation("c1")
        conversation = await store.get_conversation("c1")
        assert conversation is not None
        assert conversation.id == "c1"
        assert conversation.created_at > 0

    async def test_concurrent_ensure_same_store(self, store):
        """Racing creators on one connection: one wins, none errors."""
        results = await asyncio.gather(*(store.ensure_conversation("c1") for _ in range(10)))
        assert results.count(True) == 1
        assert await _count(store, "conversations") == 1

    async def test_concurrent_ensure_separate_connections(self, config):
        """Racing creators on private connections to the same file."""
        a = ChatStore(config.store)
        b = ChatStore(config.store)
        await a.initialize()
        await b.initialize()
        try:
            results = await asyncio.gather(
                a.ensure_conversation("c1"), b.ensure_conversation("c1")
            )
            assert sorted(results) == [False, True]
            assert await _count(a, "conversations") == 1
        finally:
            await a.close()
            await b.close()


class TestWriteTurn:
    async def test_write_and_read_back_every_table(self, store):
        await store.ensure_conversation("c1")
        batches = PartBatches(
            texts=[TextRow(id="part_01", turn_id="msg_1", conversation_id="c1", text="hi")],
            tools=[
                ToolRow(
                    id="part_02",
                    turn_id="msg_1",
                    conversation_id="c1",
                    tool_call_id="call_1",
                    tool_name="countCharacters",
                    state="output-available",
                    input={"text": "hi"},
                    output={"characterCount": 2, "isWithinLimit": True},
                    call_provider_metadata={"openai": {"id": "fc_1"}},
                )
            ],
            source_urls=[
                SourceUrlRow(
                    id="part_03",
                    turn_id="msg_1",
                    conversation_id="c1",
                    source_id="s1",
                    url="https://example.com",
                )
            ],
            data=[
                DataRow(
                    id="part_04",
                    turn_id="msg_1",
                    conversation_id="c1",
                    data_type="progress",
                    data={"text": "..."},
                )
            ],
            files=[
                FileRow(
                    id="part_05",
                    turn_id="msg_1",
                    conversation_id="c1",
                    media_type="image/png",
                    url="data:image/png;base64,AAAA",
                )
            ],
            source_documents=[
                SourceDocumentRow(
                    id="part_06",
                    turn_id="msg_1",
                    conversation_id="c1",
                    source_id="d1",
                    media_type="application/pdf",
                    title="Doc",
                    filename="doc.pdf",
                )
            ],
        )
        await store.write_turn(make_turn("c1", "msg_1", role="assistant"), batches)

        rows = await store.read_conversation("c1")
        assert [t.id for t in rows.turns] == ["msg_1"]
        assert rows.turns[0].role == "assistant"
        assert rows.parts == batches

    async def test_missing_conversation_raises(self, store):
        batches = PartBatches(
            texts=[TextRow(id="part_01", turn_id="msg_1", conversation_id="nope", text="hi")]
        )
        with pytest.raises(ConversationNotFoundError):
            await store.write_turn(make_turn("nope", "msg_1"), batches)
        assert await _count(store, "turns") == 0

    async def test_failed_part_insert_rolls_back_whole_turn(self, store):
        """A failing kind batch leaves neither the turn nor any other batch behind."""
        await store.ensure_conversation("c1")
        batches = PartBatches(
            texts=[
                TextRow(id="part_01", turn_id="msg_1", conversation_id="c1", text="a"),
                TextRow(id="part_01", turn_id="msg_1", conversation_id="c1", text="dup"),
            ],
            data=[
                DataRow(id="part_02", turn_id="msg_1", conversation_id="c1", data_type="progress")
            ],
        )
        with pytest.raises(DuplicateIDError) as exc_info:
            await store.write_turn(make_turn("c1", "msg_1"), batches)
        assert exc_info.value.table == "part_texts"
        assert exc_info.value.record_id == "part_01"

        rows = await store.read_conversation("c1")
        assert rows.turns == []
        assert len(rows.parts) == 0

        # The connection is still usable after the rollback.
        await store.write_turn(make_turn("c1", "msg_2"), PartBatches())
        assert await store.count_turns("c1") == 1

    async def test_duplicate_turn_id_raises(self, store):
        await store.ensure_conversation("c1")
        await store.write_turn(make_turn("c1", "msg_1"), PartBatches())
        with pytest.raises(DuplicateIDError) as exc_info:
            await store.write_turn(make_turn("c1", "msg_1"), PartBatches())
        assert exc_info.value.table == "turns"
        assert exc_info.value.record_id == "msg_1"

    async def test_reused_part_id_names_the_part(self, store):
        """A part id already stored by an earlier turn is reported, not the new turn."""
        await store.ensure_conversation("c1")
        first = PartBatches(
            tools=[
                ToolRow(
                    id="part_x",
                    turn_id="msg_1",
                    conversation_id="c1",
                    tool_call_id="call_1",
                    tool_name="countCharacters",
                    state="output-available",
                )
            ]
        )
        await store.write_turn(make_turn("c1", "msg_1"), first)

        second = PartBatches(
            texts=[TextRow(id="part_y", turn_id="msg_2", conversation_id="c1", text="ok")],
            tools=[
                ToolRow(
                    id="part_x",
                    turn_id="msg_2",
                    conversation_id="c1",
                    tool_call_id="call_2",
                    tool_name="countCharacters",
                    state="output-error",
                    error_text="boom",
                )
            ],
        )
        with pytest.raises(DuplicateIDError) as exc_info:
            await store.write_turn(make_turn("c1", "msg_2"), second)
        assert exc_info.value.table == "part_tools"
        assert exc_info.value.record_id == "part_x"

        rows = await store.read_conversation("c1")
        assert [t.id for t in rows.turns] == ["msg_1"]
        assert [r.id for r in rows.parts.all_rows()] == ["part_x"]

    async def test_count_turns_by_role(self, store):
        await store.ensure_conversation("c1")
        await store.write_turn(make_turn("c1", "msg_1", role="user"), PartBatches())
        await store.write_turn(make_turn("c1", "msg_2", role="assistant"), PartBatches())
        await store.write_turn(make_turn("c1", "msg_3", role="user"), PartBatches())
        assert await store.count_turns("c1") == 3
        assert await store.count_turns("c1", role="user") == 2
        assert await store.count_turns("other") == 0


class TestReadConversation:
    async def test_unknown_conversation_is_empty(self, store):
        rows = await store.read_conversation("missing")
        assert rows.turns == []
        assert len(rows.parts) == 0

    async def test_scoped_to_conversation(self, store):
        for cid in ("c1", "c2"):
            await store.ensure_conversation(cid)
            await store.write_turn(
                make_turn(cid, f"msg_{cid}"),
                PartBatches(
                    texts=[
                        TextRow(
                            id=f"part_{cid}",
                            turn_id=f"msg_{cid}",
                            conversation_id=cid,
                            text=cid,
                        )
                    ]
                ),
            )
        rows = await store.read_conversation("c2")
        assert [t.id for t in rows.turns] == ["msg_c2"]
        assert [r.text for r in rows.parts.texts] == ["c2"]

    async def test_deleting_conversation_cascades(self, store):
        await store.ensure_conversation("c1")
        await store.write_turn(
            make_turn("c1", "msg_1"),
            PartBatches(texts=[TextRow(id="part_01", turn_id="msg_1", conversation_id="c1", text="x")]),
        )
        conn, _ = store._conn_or_raise()
        await conn.execute("DELETE FROM conversations WHERE id = ?", ("c1",))
        await conn.commit()
        assert await _count(store, "turns") == 0
        assert await _count(store, "part_texts") == 0


class TestLifecycle:
    async def test_use_before_initialize_raises(self, config):
        store = ChatStore(config.store)
        with pytest.raises(StoreNotInitializedError):
            await store.ensure_conversation("c1")

    async def test_initialize_is_idempotent_on_existing_db(self, config, pool):
        first = ChatStore(config.store, pool=pool)
        await first.initialize()
        await first.ensure_conversation("c1")
        second = ChatStore(config.store, pool=pool)
        await second.initialize()
        assert await second.get_conversation("c1") is not None

    async def test_check_connection(self, store):
        assert await store.check_connection() is True
        await store.close()
        assert await store.check_connection() is False

    async def test_private_connection_closed(self, tmp_path):
        store = ChatStore(StoreConfig(db_path=str(tmp_path / "nested" / "private.db")))
        await store.initialize()
        assert (tmp_path / "nested" / "private.db").exists()
        await store.close()
        with pytest.raises(StoreNotInitializedError):
            await store.read_conversation("c1")
