"""
Example 01: Persist and Reload
==============================

Demonstrates the full persistence cycle of ChatHistory:
- Persisting a user turn and a multi-part assistant turn (reasoning, a tool
  call, progress data and text)
- Closing the store as a server would at shutdown
- Reopening it and reading the conversation back in production order

Run:
    uv run python examples/01_persist_and_reload.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path when running directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


async def main() -> None:
    from turnstore import (
        ChatHistory,
        DataPart,
        ReasoningPart,
        StepStartPart,
        StoreConfig,
        TextPart,
        ToolPart,
        TurnStoreConfig,
        make_id,
    )
    from turnstore.store import StorePool

    print("=== turnstore Persist and Reload Example ===\n")

    config = TurnStoreConfig(
        store=StoreConfig(db_path="/tmp/turnstore_example_01.db"),
        tools=["countCharacters"],
    )
    chat_id = make_id("chat")
    draft = "Shipping our new persistence layer today. Every tool call survives a reload."

    pool = StorePool()
    async with await ChatHistory.open(config, pool=pool) as history:
        await history.persist_turn(
            chat_id, "user", [TextPart(text="Draft a tweet about our launch.")]
        )
        await history.persist_turn(
            chat_id,
            "assistant",
            [
                StepStartPart(),
                ReasoningPart(text="Keep it short, then verify the length."),
                DataPart(name="progress", data={"text": "Counting characters"}),
                ToolPart(
                    tool_name="countCharacters",
                    tool_call_id="call_001",
                    state="output-available",
                    input={"text": draft},
                    output={"characterCount": len(draft), "isWithinLimit": len(draft) <= 280},
                ),
                TextPart(text=draft),
            ],
        )
    await pool.close_all()
    print("Stored 2 turns, store closed.\n")

    # A fresh process would start here.
    async with await ChatHistory.open(config) as history:
        for turn in await history.load_turns(chat_id):
            print(f"[{turn.role}] {turn.id}")
            for part in turn.parts:
                print(f"  - {part.type}: {part.model_dump(exclude={'type'}, exclude_none=True)}")
            print()


if __name__ == "__main__":
    asyncio.run(main())
