"""Typed message part models for chat turns."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

# ── Tool lifecycle ─────────────────────────────────────────────────────────────

ToolState = Literal[
    "input-streaming",
    "input-available",
    "approval-requested",
    "approval-responded",
    "output-available",
    "output-error",
    "output-denied",
]

TERMINAL_TOOL_STATES: frozenset[str] = frozenset({"output-available", "output-error"})
"""Tool states that are durable. Anything else is in flight and never persisted."""

# ── Data part subtypes ─────────────────────────────────────────────────────────

DATA_PART_NAMES: frozenset[str] = frozenset({"progress"})
"""Recognised custom data subtypes. Data parts with any other name are dropped."""


# ── Part Models ────────────────────────────────────────────────────────────────


class StepStartPart(BaseModel):
    """
    Marker for the start of a reasoning/tool-use step.

    Only exists in the live representation. It is never stored; exactly one
    is synthesized at the front of every turn read back from the store.
    """

    type: Literal["step-start"] = "step-start"


class TextPart(BaseModel):
    """A plain text segment of a turn."""

    type: Literal["text"] = "text"
    text: str
    provider_metadata: dict[str, Any] | None = None


class ReasoningPart(BaseModel):
    """Chain-of-thought reasoning text streamed by the model."""

    type: Literal["reasoning"] = "reasoning"
    text: str
    provider_metadata: dict[str, Any] | None = None


class ToolPart(BaseModel):
    """
    A tool invocation and, once finished, its result or error.

    ``tool_name`` must be registered in the :class:`~turnstore.tools.ToolRegistry`
    handed to the decomposer.
    """

    type: Literal["tool"] = "tool"
    tool_name: str
    tool_call_id: str
    state: ToolState
    input: Any = None
    output: Any = None
    error_text: str | None = None
    call_provider_metadata: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_TOOL_STATES


class SourceUrlPart(BaseModel):
    """A URL citation."""

    type: Literal["source-url"] = "source-url"
    source_id: str
    url: str
    title: str | None = None
    provider_metadata: dict[str, Any] | None = None


class DataPart(BaseModel):
    """Custom structured data streamed alongside the model output."""

    type: Literal["data"] = "data"
    name: str
    """Data subtype, e.g. ``"progress"``."""
    data: Any = None


class FilePart(BaseModel):
    """A file attachment referenced by URL (remote or ``data:`` URL)."""

    type: Literal["file"] = "file"
    media_type: str
    url: str
    filename: str | None = None
    provider_metadata: dict[str, Any] | None = None


class SourceDocumentPart(BaseModel):
    """A document citation."""

    type: Literal["source-document"] = "source-document"
    source_id: str
    media_type: str
    title: str
    filename: str | None = None
    provider_metadata: dict[str, Any] | None = None


# Discriminated union; the ``type`` field is the discriminator key.
MessagePart = Annotated[
    StepStartPart
    | TextPart
    | ReasoningPart
    | ToolPart
    | SourceUrlPart
    | DataPart
    | FilePart
    | SourceDocumentPart,
    Field(discriminator="type"),
]

_parts_adapter: TypeAdapter[list[MessagePart]] = TypeAdapter(list[MessagePart])


def parse_parts(raw: list[dict[str, Any]]) -> list[MessagePart]:
    """Validate a list of plain dicts into typed parts, preserving order."""
    return _parts_adapter.validate_python(raw)
