"""Streaming chat client abstraction with Anthropic and OpenAI-compatible backends."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional, Sequence

from blueberry.ai.conversation import to_anthropic_messages, to_openai_messages
from blueberry.ai.models import (
    Message,
    StreamFragment,
    TextFragment,
    ToolCall,
    ToolCallRequest,
    UsageFragment,
)
from blueberry.ai.tools.base import Tool
from blueberry.config import DEFAULT_OPENAI_ENDPOINT, ModelConfig
from blueberry.log import get_logger

logger = get_logger(__name__)


class ChatClient(ABC):
    """Abstract base class for streaming model backends.

    ``stream`` yields text as it arrives, then one ``ToolCallRequest`` per
    requested tool call and finally a ``UsageFragment`` when the backend
    reports usage. It never executes tools itself.
    """

    def __init__(self, model: str, max_tokens: int = 4096, temperature: Optional[float] = None):
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def model_name(self) -> str:
        return self._model

    @abstractmethod
    def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool] = (),
    ) -> AsyncIterator[StreamFragment]:
        """Send the conversation and stream back fragments."""
        ...

    async def complete(self, messages: Sequence[Message], max_tokens: Optional[int] = None) -> str:
        """Return the full text of a tool-less completion (used for MCP sampling)."""
        parts: list[str] = []
        async for fragment in self.stream(messages):
            if isinstance(fragment, TextFragment):
                parts.append(fragment.text)
        return "".join(parts)

    async def close(self) -> None:
        """Release network resources held by the backend."""


class AnthropicClient(ChatClient):
    """Anthropic Messages API backend using the official SDK."""

    def __init__(self, config: ModelConfig):
        import anthropic

        super().__init__(config.model, config.max_tokens, config.temperature)
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.endpoint,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    async def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool] = (),
    ) -> AsyncIterator[StreamFragment]:
        system, api_messages = to_anthropic_messages(messages)
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": api_messages,
        }
        if system:
            kwargs["system"] = system
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        if tools:
            kwargs["tools"] = [t.to_anthropic_dict() for t in tools]

        logger.debug("api_request", backend="anthropic", message_count=len(api_messages))
        async with self._client.messages.stream(**kwargs) as stream:
            async for event in stream:
                if event.type == "text":
                    yield TextFragment(event.text)
            final = await stream.get_final_message()

        for block in final.content:
            if block.type == "tool_use":
                yield ToolCallRequest(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))

        usage = final.usage
        cached = usage.cache_read_input_tokens or 0
        cache_writes = usage.cache_creation_input_tokens or 0
        logger.debug(
            "api_response",
            backend="anthropic",
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
            stop_reason=final.stop_reason,
        )
        # Anthropic reports cached input separately; fold it back into input_tokens.
        yield UsageFragment(
            input_tokens=usage.input_tokens + cached + cache_writes,
            output_tokens=usage.output_tokens,
            cached_tokens=cached,
        )

    async def close(self) -> None:
        await self._client.close()


class OpenAIClient(ChatClient):
    """OpenAI-compatible chat completions backend (OpenAI, Ollama, Cerebras, ...)."""

    def __init__(self, config: ModelConfig):
        from openai import AsyncOpenAI

        super().__init__(config.model, config.max_tokens, config.temperature)
        self._client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.endpoint or DEFAULT_OPENAI_ENDPOINT,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )

    async def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool] = (),
    ) -> AsyncIterator[StreamFragment]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": to_openai_messages(messages),
            _max_tokens_param(self._model): self._max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        if tools:
            kwargs["tools"] = [t.to_openai_dict() for t in tools]

        logger.debug("api_request", backend="openai", message_count=len(messages))
        response = await self._client.chat.completions.create(**kwargs)

        pending: dict[int, dict[str, str]] = {}
        usage = None
        async for chunk in response:
            if chunk.usage is not None:
                usage = chunk.usage
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta.content:
                yield TextFragment(delta.content)
            for tc in delta.tool_calls or []:
                slot = pending.setdefault(tc.index, {"id": "", "name": "", "arguments": ""})
                if tc.id:
                    slot["id"] = tc.id
                if tc.function is not None:
                    slot["name"] += tc.function.name or ""
                    slot["arguments"] += tc.function.arguments or ""

        for index in sorted(pending):
            slot = pending[index]
            yield ToolCallRequest(
                ToolCall(
                    id=slot["id"] or f"call_{index}",
                    name=slot["name"],
                    arguments=_parse_arguments(slot["arguments"], slot["name"]),
                )
            )

        if usage is not None:
            details = getattr(usage, "prompt_tokens_details", None)
            cached = (getattr(details, "cached_tokens", None) or 0) if details is not None else 0
            logger.debug(
                "api_response",
                backend="openai",
                input_tokens=usage.prompt_tokens,
                output_tokens=usage.completion_tokens,
            )
            yield UsageFragment(
                input_tokens=usage.prompt_tokens or 0,
                output_tokens=usage.completion_tokens or 0,
                cached_tokens=cached,
            )

    async def close(self) -> None:
        await self._client.close()


_REASONING_MODEL_PREFIXES = ("gpt-5", "o1", "o3", "o4")


def _max_tokens_param(model: str) -> str:
    """Reasoning models reject ``max_tokens`` and take ``max_completion_tokens`` instead."""
    name = model.lower().rsplit("/", 1)[-1]
    if name.startswith(_REASONING_MODEL_PREFIXES):
        return "max_completion_tokens"
    return "max_tokens"


def _parse_arguments(raw: str, tool_name: str) -> dict[str, Any]:
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("tool_arguments_invalid_json", tool=tool_name, raw=raw[:200])
        return {}
    return parsed if isinstance(parsed, dict) else {}


def create_chat_client(config: ModelConfig) -> ChatClient:
    """Create a chat client for the configured backend."""
    match config.backend:
        case "anthropic":
            return AnthropicClient(config)
        case "openai":
            return OpenAIClient(config)
        case _:
            raise ValueError(f"Unknown AI backend: {config.backend}")
