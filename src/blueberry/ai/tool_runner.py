"""Iterative tool execution loop wrapped around a streaming chat client."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional, Sequence

from blueberry.ai.client import ChatClient
from blueberry.ai.models import (
    Message,
    StreamFragment,
    TextFragment,
    ToolCall,
    ToolCallRequest,
    ToolCallResult,
)
from blueberry.ai.tools.base import Tool
from blueberry.ai.tools.registry import ToolRegistry
from blueberry.log import get_logger

logger = get_logger(__name__)

MAX_TOOL_ROUNDS = 10
LIMIT_REACHED_TEXT = "[Tool execution limit reached]"


class ToolInvokingClient(ChatClient):
    """Runs requested tools between model rounds and splices their results into the stream.

    Each round streams one model response. If the response requested tools,
    they are executed through the registry, the assistant tool-call message
    and the tool results are appended to a private working copy of the
    conversation, and the model is called again. The caller's history is
    never mutated; it rebuilds the same messages from the fragments.
    """

    def __init__(self, inner: ChatClient, registry: ToolRegistry, max_rounds: int = MAX_TOOL_ROUNDS):
        super().__init__(inner.model_name)
        self._inner = inner
        self._registry = registry
        self._max_rounds = max_rounds

    @property
    def model_name(self) -> str:
        return self._inner.model_name

    async def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool] = (),
    ) -> AsyncIterator[StreamFragment]:
        working = list(messages)
        rounds = 0

        while rounds < self._max_rounds:
            text_parts: list[str] = []
            calls: list[ToolCall] = []

            async for fragment in self._inner.stream(working, tools):
                match fragment:
                    case TextFragment(text=text):
                        text_parts.append(text)
                    case ToolCallRequest(call=call):
                        calls.append(call)
                    case _:
                        pass
                yield fragment

            if not calls:
                return

            results = await asyncio.gather(*(self._execute_one(call) for call in calls))
            for result in results:
                yield result

            working.append(Message.assistant("".join(text_parts), tuple(calls)))
            working.extend(Message.tool_result(r.call_id, r.result) for r in results)
            rounds += 1

        logger.warning("tool_round_limit_reached", max_rounds=self._max_rounds)
        yield TextFragment(LIMIT_REACHED_TEXT)

    async def _execute_one(self, call: ToolCall) -> ToolCallResult:
        tool = self._registry.get(call.name)
        if tool is None:
            logger.warning("tool_unknown", tool=call.name)
            return ToolCallResult(call.id, call.name, f"Error: unknown tool '{call.name}'", is_error=True)
        try:
            output = await tool.execute(**call.arguments)
        except Exception as e:
            logger.error("tool_execution_error", tool=call.name, provider=tool.provider_name, error=str(e))
            return ToolCallResult(call.id, call.name, f"Error executing {call.name}: {e}", is_error=True)
        logger.debug("tool_executed", tool=call.name, result_length=len(output))
        return ToolCallResult(call.id, call.name, output)

    async def complete(self, messages: Sequence[Message], max_tokens: Optional[int] = None) -> str:
        return await self._inner.complete(messages, max_tokens)

    async def close(self) -> None:
        await self._inner.close()
