"""Rebuild ordered, typed turns from stored rows."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

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
from turnstore.models.turn import Turn, TurnWithParts
from turnstore.store.rows import (
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

DEFAULT_TOOL_ERROR = "Unknown error"


def row_to_part(row: PartRow) -> MessagePart | None:
    """
    Map one stored row to its typed part.

    Returns ``None`` for rows that have no live representation: tool rows in a
    non-terminal state and data rows with an unrecognised name.
    """
    if isinstance(row, TextRow):
        return TextPart(text=row.text, provider_metadata=row.provider_metadata)
    if isinstance(row, ReasoningRow):
        return ReasoningPart(text=row.text, provider_metadata=row.provider_metadata)
    if isinstance(row, ToolRow):
        if row.state == "output-available":
            return ToolPart(
                tool_name=row.tool_name,
                tool_call_id=row.tool_call_id,
                state="output-available",
                input=row.input,
                output=row.output,
                call_provider_metadata=row.call_provider_metadata,
            )
        if row.state == "output-error":
            return ToolPart(
                tool_name=row.tool_name,
                tool_call_id=row.tool_call_id,
                state="output-error",
                input=row.input,
                error_text=row.error_text or DEFAULT_TOOL_ERROR,
                call_provider_metadata=row.call_provider_metadata,
            )
        return None
    if isinstance(row, SourceUrlRow):
        return SourceUrlPart(
            source_id=row.source_id,
            url=row.url,
            title=row.title,
            provider_metadata=row.provider_metadata,
        )
    if isinstance(row, DataRow):
        if row.data_type not in DATA_PART_NAMES:
            return None
        return DataPart(name=row.data_type, data=row.data)
    if isinstance(row, FileRow):
        return FilePart(
            media_type=row.media_type,
            url=row.url,
            filename=row.filename,
            provider_metadata=row.provider_metadata,
        )
    if isinstance(row, SourceDocumentRow):
        return SourceDocumentPart(
            source_id=row.source_id,
            media_type=row.media_type,
            title=row.title,
            filename=row.filename,
            provider_metadata=row.provider_metadata,
        )
    raise TypeError(f"Unsupported row type: {type(row).__name__}")


def reassemble(turns: Iterable[Turn], parts: PartBatches) -> list[TurnWithParts]:
    """
    Merge per-kind rows back into per-turn, correctly ordered part lists.

    Algorithm:
    1. Group every row, whatever its kind, by ``turn_id``.
    2. Sort each group by ``id``. Part identifiers are time-ordered, so this
       interleaves the kinds back into production order.
    3. Map rows to typed parts, skipping rows with no live representation.
    4. Prepend one ``StepStartPart`` to every turn.

    Turns are returned in ascending ``id`` order. Rows whose turn is not in
    *turns* are ignored.
    """
    rows_by_turn: dict[str, list[PartRow]] = defaultdict(list)
    for row in parts.all_rows():
        rows_by_turn[row.turn_id].append(row)

    result: list[TurnWithParts] = []
    for turn in sorted(turns, key=lambda t: t.id):
        typed: list[MessagePart] = [StepStartPart()]
        for row in sorted(rows_by_turn.get(turn.id, []), key=lambda r: r.id):
            part = row_to_part(row)
            if part is not None:
                typed.append(part)
        result.append(TurnWithParts(turn=turn, parts=typed))
    return result
