"""Conversation and turn models."""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, Field

from turnstore.models.parts import MessagePart, TextPart

Role = Literal["user", "assistant", "system"]


def _now_ms() -> int:
    return int(time.time() * 1000)


class Conversation(BaseModel):
    """A conversation row. Created lazily on the first persisted turn."""

    id: str
    """Externally supplied identifier."""
    created_at: int = Field(default_factory=_now_ms)
    """Unix millisecond timestamp."""


class Turn(BaseModel):
    """
    A single turn (message) of a conversation.

    The turn row does not record the order of its parts; that is recovered
    from the part identifiers.
    """

    id: str
    """ULID-based sortable ID, e.g. ``msg_01JXYZ6K3MNPQR4STUVWXYZ01``."""
    conversation_id: str
    role: Role
    created_at: int = Field(default_factory=_now_ms)


class TurnWithParts(BaseModel):
    """A turn together with its ordered list of typed parts."""

    turn: Turn
    parts: list[MessagePart] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.turn.id

    @property
    def role(self) -> str:
        return self.turn.role

    def text_content(self) -> str:
        """Concatenate text from all TextPart objects in this turn."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))
