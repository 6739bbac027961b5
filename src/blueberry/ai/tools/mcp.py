"""Tools discovered from MCP providers."""

from __future__ import annotations

import weakref
from typing import TYPE_CHECKING, Any

from blueberry.ai.tools.base import Tool, ToolExecutionError

if TYPE_CHECKING:
    from blueberry.services.mcp_manager import McpProvider

_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


def flatten_content(content: list[Any] | None) -> str:
    """Join MCP result content items into one text block."""
    parts: list[str] = []
    for item in content or []:
        text = getattr(item, "text", None)
        parts.append(text if text is not None else str(item))
    return "\n".join(parts)


class McpTool(Tool):
    """A tool advertised by an MCP provider.

    Holds only a weak reference to its provider: the manager owns provider
    lifetime, the tool just routes calls to it.
    """

    def __init__(self, provider: McpProvider, name: str, description: str | None, input_schema: dict[str, Any] | None):
        self._provider_ref = weakref.ref(provider)
        self._provider_name = provider.name
        self._name = name
        self._description = description or ""
        schema = dict(input_schema or _EMPTY_SCHEMA)
        schema.setdefault("type", "object")
        self._input_schema = schema

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def input_schema(self) -> dict[str, Any]:
        return self._input_schema

    @property
    def provider_name(self) -> str:
        return self._provider_name

    async def execute(self, **kwargs: Any) -> str:
        provider = self._provider_ref()
        if provider is None or provider.session is None:
            raise ToolExecutionError(f"MCP provider '{self._provider_name}' is no longer running")

        result = await provider.session.call_tool(self._name, kwargs)
        text = flatten_content(result.content)
        if result.isError:
            raise ToolExecutionError(text or f"{self._name} failed")
        return text
