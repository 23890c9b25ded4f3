"""
turnstore: durable, order-preserving persistence for multi-part chat turns.

Primary entry point::

    from turnstore import ChatHistory, TextPart, TurnStoreConfig

    async with await ChatHistory.open(TurnStoreConfig(tools=["countCharacters"])) as history:
        await history.persist_turn("chat_1", "user", [TextPart(text="Hi")])
        for turn in await history.load_turns("chat_1"):
            print(turn.role, turn.parts)
"""

from turnstore.decompose import decompose
from turnstore.history import ChatHistory
from turnstore.ids import make_id
from turnstore.models import (
    Conversation,
    DataPart,
    FilePart,
    MessagePart,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    StoreConfig,
    TextPart,
    ToolPart,
    Turn,
    TurnStoreConfig,
    TurnWithParts,
    parse_parts,
)
from turnstore.reassemble import reassemble
from turnstore.store import (
    ChatStore,
    ConversationNotFoundError,
    DuplicateIDError,
    PartBatches,
    StorePool,
    TurnStoreError,
)
from turnstore.tools import ToolRegistry, UnknownToolError

__version__ = "0.1.0"

__all__ = [
    # Core
    "ChatHistory",
    "make_id",
    "decompose",
    "reassemble",
    # Config
    "TurnStoreConfig",
    "StoreConfig",
    # Models
    "StepStartPart",
    "TextPart",
    "ReasoningPart",
    "ToolPart",
    "SourceUrlPart",
    "DataPart",
    "FilePart",
    "SourceDocumentPart",
    "MessagePart",
    "parse_parts",
    "Conversation",
    "Turn",
    "TurnWithParts",
    # Tools
    "ToolRegistry",
    "UnknownToolError",
    # Store
    "ChatStore",
    "StorePool",
    "PartBatches",
    "TurnStoreError",
    "ConversationNotFoundError",
    "DuplicateIDError",
]
