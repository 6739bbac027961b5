"""Merged tool catalog across all providers."""

from __future__ import annotations

from blueberry.ai.tools.base import Tool
from blueberry.log import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """Catalog of invocable tools keyed by name.

    Names are unique: the first tool registered under a name wins and later
    duplicates are dropped with a warning. After :meth:`freeze` the catalog
    is read-only for the rest of the session.
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._frozen = False

    def register(self, tool: Tool) -> bool:
        """Add a tool. Returns False if the name was already taken."""
        if self._frozen:
            raise RuntimeError("Tool catalog is frozen")

        existing = self._tools.get(tool.name)
        if existing is not None:
            logger.warning(
                "tool_duplicate_dropped",
                tool_name=tool.name,
                provider=tool.provider_name,
                kept_provider=existing.provider_name,
            )
            return False

        self._tools[tool.name] = tool
        logger.debug("tool_registered", tool_name=tool.name, provider=tool.provider_name)
        return True

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def all_tools(self) -> tuple[Tool, ...]:
        return tuple(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def clear(self) -> None:
        self._tools.clear()
        self._frozen = False

    def __len__(self) -> int:
        return len(self._tools)
