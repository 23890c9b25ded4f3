"""Configuration models for turnstore."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class StoreConfig(BaseModel):
    """Configuration for the SQLite persistence layer."""

    db_path: str = Field(
        default="~/.turnstore/chats.db",
        description="Path to the SQLite database file. ~ is expanded at runtime.",
    )

    wal_mode: bool = True
    """Use WAL journal mode for better concurrent read performance."""

    connection_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait on a locked database before raising.",
    )


class TurnStoreConfig(BaseModel):
    """
    Top-level configuration.

    Example::

        config = TurnStoreConfig(
            store=StoreConfig(db_path="/var/lib/chat/chats.db"),
            tools=["countCharacters"],
        )
    """

    store: StoreConfig = Field(default_factory=StoreConfig)

    tools: list[str] = Field(
        default_factory=list,
        description=(
            "Names of the tools the execution layer exposes. Tool parts naming "
            "anything else are rejected when a turn is persisted."
        ),
    )

    @field_validator("tools")
    @classmethod
    def validate_tools(cls, value: list[str]) -> list[str]:
        if any(not name.strip() for name in value):
            raise ValueError("tool names must be non-empty")
        if len(set(value)) != len(value):
            raise ValueError("tool names must be unique")
        return value

    @classmethod
    def default(cls) -> TurnStoreConfig:
        """Return a config instance with all defaults."""
        return cls()
