"""Allow-list of tool names accepted by the persistence layer."""

from __future__ import annotations

from collections.abc import Iterable

from turnstore.models.config import TurnStoreConfig


class UnknownToolError(ValueError):
    """
    Raised when a tool part names a tool missing from the registry.

    This means the tool-execution layer and the persistence layer disagree
    about which tools exist. It is never swallowed.
    """

    def __init__(self, tool_name: str, known: Iterable[str]) -> None:
        self.tool_name = tool_name
        self.known = sorted(known)
        super().__init__(
            f"Invalid tool type: {tool_name!r}. Valid types: {', '.join(self.known) or '(none)'}"
        )


class ToolRegistry:
    """Fixed set of tool names, injected wherever tool parts are validated."""

    def __init__(self, names: Iterable[str] = ()) -> None:
        self._names: frozenset[str] = frozenset(names)

    @classmethod
    def from_config(cls, config: TurnStoreConfig) -> ToolRegistry:
        return cls(config.tools)

    @property
    def names(self) -> frozenset[str]:
        return self._names

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    def require(self, name: str) -> None:
        """
        Assert that *name* is a registered tool.

        Raises:
            UnknownToolError: If the tool is not registered.
        """
        if name not in self._names:
            raise UnknownToolError(name, self._names)
