"""Split a finished turn into per-kind storage rows."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog

from turnstore.ids import make_id
from turnstore.models.parts import (
    DATA_PART_NAMES,
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
from turnstore.store.rows import (
    DataRow,
    FileRow,
    PartBatches,
    ReasoningRow,
    SourceDocumentRow,
    SourceUrlRow,
    TextRow,
    ToolRow,
)
from turnstore.tools import ToolRegistry

_logger = structlog.get_logger("turnstore.decompose")

PART_ID_PREFIX = "part"
"""Shared by every kind so identifiers compare across kind tables."""

BLANK_CHARS = (
    " \t\n\v\f\r\u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005\u2006"
    "\u2007\u2008\u2009\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"
)
"""Whitespace that makes a text part blank, byte-order mark included.

The U+001C to U+001F separators are content here, unlike with bare
``str.strip()``.
"""


def normalize_metadata(metadata: Any) -> dict[str, Any] | None:
    """Collapse missing, non-dict and empty metadata to ``None``."""
    if not metadata or not isinstance(metadata, dict):
        return None
    return metadata


def decompose(
    conversation_id: str,
    turn_id: str,
    parts: Sequence[MessagePart],
    tools: ToolRegistry,
) -> PartBatches:
    """
    Fan one turn's ordered parts out into per-kind row batches.

    Every stored part gets a freshly generated identifier in iteration order,
    which is what later restores the cross-kind order. Client-supplied part
    ids are never reused.

    Dropped silently: step boundaries, blank text and reasoning, tool calls
    that have not reached a terminal state, data parts with an unrecognised
    name.

    Args:
        conversation_id: Owning conversation.
        turn_id: Owning turn.
        parts: The turn's parts in production order.
        tools: Registry of valid tool names.

    Returns:
        The populated batches.

    Raises:
        UnknownToolError: If a tool part names an unregistered tool. Nothing
            is returned in that case, so nothing of the turn gets written.
    """
    batches = PartBatches()
    dropped = 0

    for part in parts:
        if isinstance(part, StepStartPart):
            continue

        if isinstance(part, TextPart):
            if not part.text.strip(BLANK_CHARS):
                dropped += 1
                continue
            batches.texts.append(
                TextRow(
                    id=make_id(PART_ID_PREFIX),
                    turn_id=turn_id,
                    conversation_id=conversation_id,
                    text=part.text,
                    provider_metadata=normalize_metadata(part.provider_metadata),
                )
            )
        elif isinstance(part, ReasoningPart):
            if not part.text.strip(BLANK_CHARS):
                dropped += 1
                continue
            batches.reasoning.append(
                ReasoningRow(
                    id=make_id(PART_ID_PREFIX),
                    turn_id=turn_id,
                    conversation_id=conversation_id,
                    text=part.text,
                    provider_metadata=normalize_metadata(part.provider_metadata),
                )
            )
        elif isinstance(part, ToolPart):
            # Registry check comes before the state filter: an unknown tool is
            # drift even while its call is still streaming.
            tools.require(part.tool_name)
            if part.state == "output-available":
                batches.tools.append(
                    ToolRow(
                        id=make_id(PART_ID_PREFIX),
                        turn_id=turn_id,
                        conversation_id=conversation_id,
                        tool_call_id=part.tool_call_id,
                        tool_name=part.tool_name,
                        state=part.state,
                        input=part.input,
                        output=part.output,
                        call_provider_metadata=normalize_metadata(part.call_provider_metadata),
                    )
                )
            elif part.state == "output-error":
                batches.tools.append(
                    ToolRow(
                        id=make_id(PART_ID_PREFIX),
                        turn_id=turn_id,
                        conversation_id=conversation_id,
                        tool_call_id=part.tool_call_id,
                        tool_name=part.tool_name,
                        state=part.state,
                        input=part.input,
                        error_text=part.error_text,
                        call_provider_metadata=normalize_metadata(part.call_provider_metadata),
                    )
                )
            else:
                dropped += 1
        elif isinstance(part, SourceUrlPart):
            batches.source_urls.append(
                SourceUrlRow(
                    id=make_id(PART_ID_PREFIX),
                    turn_id=turn_id,
                    conversation_id=conversation_id,
                    source_id=part.source_id,
                    url=part.url,
                    title=part.title,
                    provider_metadata=normalize_metadata(part.provider_metadata),
                )
            )
        elif isinstance(part, DataPart):
            if part.name not in DATA_PART_NAMES:
                dropped += 1
                continue
            batches.data.append(
                DataRow(
                    id=make_id(PART_ID_PREFIX),
                    turn_id=turn_id,
                    conversation_id=conversation_id,
                    data_type=part.name,
                    data=part.data,
                )
            )
        elif isinstance(part, FilePart):
            batches.files.append(
                FileRow(
                    id=make_id(PART_ID_PREFIX),
                    turn_id=turn_id,
                    conversation_id=conversation_id,
                    media_type=part.media_type,
                    url=part.url,
                    filename=part.filename,
                    provider_metadata=normalize_metadata(part.provider_metadata),
                )
            )
        elif isinstance(part, SourceDocumentPart):
            batches.source_documents.append(
                SourceDocumentRow(
                    id=make_id(PART_ID_PREFIX),
                    turn_id=turn_id,
                    conversation_id=conversation_id,
                    source_id=part.source_id,
                    media_type=part.media_type,
                    title=part.title,
                    filename=part.filename,
                    provider_metadata=normalize_metadata(part.provider_metadata),
                )
            )
        else:
            raise TypeError(f"Unsupported part type: {type(part).__name__}")

    _logger.debug(
        "turn_decomposed",
        conversation_id=conversation_id,
        turn_id=turn_id,
        counts={kind: len(rows) for kind, rows in batches.non_empty()},
        dropped=dropped,
    )
    return batches
