"""turnstore persistence layer."""

from turnstore.store.chat_store import (
    ChatStore,
    ConversationNotFoundError,
    DuplicateIDError,
    StoreNotInitializedError,
    TurnStoreError,
)
from turnstore.store.pool import StorePool
from turnstore.store.rows import (
    ConversationRows,
    DataRow,
    FileRow,
    PartBatches,
    PartRow,
    ReasoningRow,
    SourceDocumentRow,
    SourceUrlRow,
    TextRow,
    ToolRow,
)

__all__ = [
    "ChatStore",
    "StorePool",
    "PartBatches",
    "ConversationRows",
    "PartRow",
    "TextRow",
    "ReasoningRow",
    "ToolRow",
    "SourceUrlRow",
    "DataRow",
    "FileRow",
    "SourceDocumentRow",
    "TurnStoreError",
    "StoreNotInitializedError",
    "ConversationNotFoundError",
    "DuplicateIDError",
]
