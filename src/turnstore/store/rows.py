"""
Storage-ready rows, one dataclass per part table.

Rows are plain dataclasses rather than Pydantic models: they are built in
bulk on every write and read, and their shape is already guaranteed by the
typed parts they come from or by the table schema they are read from.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from turnstore.models.turn import Turn


@dataclass
class TextRow:
    id: str
    turn_id: str
    conversation_id: str
    text: str
    provider_metadata: dict[str, Any] | None = None


@dataclass
class ReasoningRow:
    id: str
    turn_id: str
    conversation_id: str
    text: str
    provider_metadata: dict[str, Any] | None = None


@dataclass
class ToolRow:
    id: str
    turn_id: str
    conversation_id: str
    tool_call_id: str
    tool_name: str
    state: str
    """Always a terminal state when written by the decomposer."""
    input: Any = None
    output: Any = None
    error_text: str | None = None
    call_provider_metadata: dict[str, Any] | None = None


@dataclass
class SourceUrlRow:
    id: str
    turn_id: str
    conversation_id: str
    source_id: str
    url: str
    title: str | None = None
    provider_metadata: dict[str, Any] | None = None


@dataclass
class DataRow:
    id: str
    turn_id: str
    conversation_id: str
    data_type: str
    data: Any = None


@dataclass
class FileRow:
    id: str
    turn_id: str
    conversation_id: str
    media_type: str
    url: str
    filename: str | None = None
    provider_metadata: dict[str, Any] | None = None


@dataclass
class SourceDocumentRow:
    id: str
    turn_id: str
    conversation_id: str
    source_id: str
    media_type: str
    title: str
    filename: str | None = None
    provider_metadata: dict[str, Any] | None = None


PartRow = TextRow | ReasoningRow | ToolRow | SourceUrlRow | DataRow | FileRow | SourceDocumentRow


@dataclass
class PartBatches:
    """
    Rows for one or more turns, split by kind table.

    Produced by the decomposer for a single turn and by the store for a whole
    conversation. Lists keep insertion order but readers must not rely on it;
    the row ``id`` is the only ordering key.
    """

    texts: list[TextRow] = field(default_factory=list)
    reasoning: list[ReasoningRow] = field(default_factory=list)
    tools: list[ToolRow] = field(default_factory=list)
    source_urls: list[SourceUrlRow] = field(default_factory=list)
    data: list[DataRow] = field(default_factory=list)
    files: list[FileRow] = field(default_factory=list)
    source_documents: list[SourceDocumentRow] = field(default_factory=list)

    def by_kind(self) -> dict[str, list[Any]]:
        """Return every batch keyed by part kind, empty batches included."""
        return {
            "text": self.texts,
            "reasoning": self.reasoning,
            "tool": self.tools,
            "source-url": self.source_urls,
            "data": self.data,
            "file": self.files,
            "source-document": self.source_documents,
        }

    def non_empty(self) -> Iterator[tuple[str, list[Any]]]:
        """Yield ``(kind, rows)`` for each populated batch."""
        for kind, rows in self.by_kind().items():
            if rows:
                yield kind, rows

    def all_rows(self) -> Iterator[PartRow]:
        for rows in self.by_kind().values():
            yield from rows

    def __len__(self) -> int:
        return sum(len(rows) for rows in self.by_kind().values())


@dataclass
class ConversationRows:
    """Everything stored for one conversation, unsorted."""

    turns: list[Turn] = field(default_factory=list)
    parts: PartBatches = field(default_factory=PartBatches)
