"""Shared fixtures for turnstore tests."""

from __future__ import annotations

from typing import Any

import pytest
import pytest_asyncio

from turnstore.history import ChatHistory
from turnstore.models.config import StoreConfig, TurnStoreConfig
from turnstore.models.parts import (
    DataPart,
    FilePart,
    MessagePart,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
)
from turnstore.models.turn import Turn
from turnstore.store.chat_store import ChatStore
from turnstore.store.pool import StorePool
from turnstore.tools import ToolRegistry


@pytest.fixture
def config(tmp_path):
    """TurnStoreConfig with a temp database path and two registered tools."""
    return TurnStoreConfig(
        store=StoreConfig(db_path=str(tmp_path / "test.db")),
        tools=["countCharacters", "searchDocs"],
    )


@pytest.fixture
def tools(config):
    return ToolRegistry.from_config(config)


@pytest_asyncio.fixture
async def pool():
    """StorePool for the test database. Closed after each test."""
    p = StorePool()
    yield p
    await p.close_all()


@pytest_asyncio.fixture
async def store(config, pool):
    """Initialized ChatStore backed by a temp SQLite database (pool-managed)."""
    s = ChatStore(config.store, pool=pool)
    await s.initialize()
    yield s
    await s.close()  # no-op for pool-managed conn; pool fixture closes the connection


@pytest_asyncio.fixture
async def history(config, pool):
    """ChatHistory sharing the test pool."""
    h = await ChatHistory.open(config, pool=pool)
    yield h
    await h.close()


def make_turn(conversation_id: str, turn_id: str, role: str = "user") -> Turn:
    """Helper to create a test Turn."""
    return Turn(id=turn_id, conversation_id=conversation_id, role=role)


def character_count_tool(
    state: str = "output-available",
    tool_call_id: str = "call_001",
    text: str = "Hello world",
    metadata: dict[str, Any] | None = None,
) -> ToolPart:
    """A countCharacters tool part in the given state."""
    if state == "output-available":
        return ToolPart(
            tool_name="countCharacters",
            tool_call_id=tool_call_id,
            state=state,
            input={"text": text},
            call_provider_metadata=metadata,
            output={
                "characterCount": len(text),
                "remainingCharacters": 280 - len(text),
                "isWithinLimit": True,
                "status": f"{len(text)}/280 characters ({280 - len(text)} remaining)",
            },
        )
    if state == "output-error":
        return ToolPart(
            tool_name="countCharacters",
            tool_call_id=tool_call_id,
            state=state,
            input={"text": text},
            call_provider_metadata=metadata,
            error_text="tool crashed",
        )
    return ToolPart(
        tool_name="countCharacters",
        tool_call_id=tool_call_id,
        state=state,
        input={"text": text},
        call_provider_metadata=metadata,
    )


def every_kind_parts() -> list[MessagePart]:
    """
    One durable part of every kind, kinds interleaved, led by a step boundary.

    Every kind that carries provider metadata has some, so round-trips cover it.
    """
    return [
        StepStartPart(),
        ReasoningPart(text="The user wants a tweet.", provider_metadata={"openai": {"itemId": "rs_1"}}),
        TextPart(text="Let me count that.", provider_metadata={"openai": {"itemId": "msg_a"}}),
        character_count_tool(metadata={"openai": {"itemId": "fc_1"}}),
        DataPart(name="progress", data={"text": "Checking length"}),
        TextPart(text="Here is your draft."),
        SourceUrlPart(
            source_id="src_1",
            url="https://example.com/a",
            title="Example",
            provider_metadata={"perplexity": {"rank": 1}},
        ),
        FilePart(
            media_type="image/png",
            url="https://example.com/a.png",
            filename="a.png",
            provider_metadata={"google": {"fileUri": "files/a"}},
        ),
        SourceDocumentPart(
            source_id="doc_1",
            media_type="application/pdf",
            title="Style guide",
            filename="guide.pdf",
            provider_metadata={"anthropic": {"citationIndex": 0}},
        ),
        character_count_tool(
            state="output-error",
            tool_call_id="call_002",
            metadata={"openai": {"itemId": "fc_2"}},
        ),
        ReasoningPart(text="Done."),
    ]
