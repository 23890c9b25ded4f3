"""turnstore data models."""

from turnstore.models.config import StoreConfig, TurnStoreConfig
from turnstore.models.parts import (
    DATA_PART_NAMES,
    TERMINAL_TOOL_STATES,
    DataPart,
    FilePart,
    MessagePart,
    ReasoningPart,
    SourceDocumentPart,
    SourceUrlPart,
    StepStartPart,
    TextPart,
    ToolPart,
    ToolState,
    parse_parts,
)
from turnstore.models.turn import Conversation, Role, Turn, TurnWithParts

__all__ = [
    # Config
    "StoreConfig",
    "TurnStoreConfig",
    # Parts
    "StepStartPart",
    "TextPart",
    "ReasoningPart",
    "ToolPart",
    "ToolState",
    "TERMINAL_TOOL_STATES",
    "SourceUrlPart",
    "DataPart",
    "DATA_PART_NAMES",
    "FilePart",
    "SourceDocumentPart",
    "MessagePart",
    "parse_parts",
    # Turns
    "Role",
    "Conversation",
    "Turn",
    "TurnWithParts",
]
