"""Turn handler: streams one model turn, classifies failures and retries rate limits."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence, assert_never

from blueberry.ai.client import ChatClient
from blueberry.ai.models import (
    Message,
    TextFragment,
    ToolCall,
    ToolCallRequest,
    ToolCallResult,
    UsageFragment,
)
from blueberry.ai.tools.base import Tool
from blueberry.ai.tools.summary import summarize_call, summarize_result
from blueberry.config import RetryConfig
from blueberry.errors import FailureKind, QuotaExceededError, classify_failure
from blueberry.log import get_logger
from blueberry.repl.presenter import Presenter
from blueberry.storage.conversation_repo import ConversationStore

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class TurnResult:
    """Outcome of one turn.

    ``messages`` are the Assistant and ToolResult messages to append to the
    history, in stream order. ``usage`` sums every model round of the turn;
    ``context_tokens`` is the size of the last round (its input plus output).
    """

    completed: bool = False
    messages: list[Message] = field(default_factory=list)
    text: str = ""
    usage: Optional[UsageFragment] = None
    context_tokens: Optional[int] = None
    attempts: int = 0

    @classmethod
    def failed(cls, attempts: int) -> TurnResult:
        return cls(completed=False, attempts=attempts)


class _Accumulator:
    """Rebuilds history messages from the fragments of one stream attempt."""

    def __init__(self) -> None:
        self.messages: list[Message] = []
        self.text_parts: list[str] = []
        self.usage: Optional[UsageFragment] = None
        self.last_round: Optional[UsageFragment] = None
        self._round_text: list[str] = []
        self._round_calls: list[ToolCall] = []

    def add_text(self, text: str) -> None:
        self.text_parts.append(text)
        self._round_text.append(text)

    def add_call(self, call: ToolCall) -> None:
        self._round_calls.append(call)

    def add_result(self, result: ToolCallResult) -> None:
        if self._round_calls:
            self._flush()
        self.messages.append(Message.tool_result(result.call_id, result.result))

    def add_usage(self, usage: UsageFragment) -> None:
        self.last_round = usage
        if self.usage is None:
            self.usage = usage
            return
        self.usage = UsageFragment(
            input_tokens=self.usage.input_tokens + usage.input_tokens,
            output_tokens=self.usage.output_tokens + usage.output_tokens,
            cached_tokens=self.usage.cached_tokens + usage.cached_tokens,
        )

    def finish(self, attempts: int) -> TurnResult:
        self._flush()
        context = None
        if self.last_round is not None:
            context = self.last_round.input_tokens + self.last_round.output_tokens
        return TurnResult(
            completed=True,
            messages=self.messages,
            text="".join(self.text_parts),
            usage=self.usage,
            context_tokens=context,
            attempts=attempts,
        )

    def _flush(self) -> None:
        if self._round_text or self._round_calls:
            self.messages.append(Message.assistant("".join(self._round_text), tuple(self._round_calls)))
        self._round_text = []
        self._round_calls = []


class TurnHandler:
    """Runs one turn against the model with rate-limit retry.

    Failures are classified into exactly one kind:

    * quota exceeded: a quota snapshot of ``history`` is written, the raw
      provider message is shown and :class:`QuotaExceededError` is raised;
    * rate limited: wait and retry with a doubling delay, up to
      ``retry.max_attempts`` stream calls in total;
    * anything else: the turn fails and an uncompleted result is returned.
    """

    def __init__(
        self,
        client: ChatClient,
        presenter: Presenter,
        store: ConversationStore,
        retry: Optional[RetryConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self._client = client
        self._presenter = presenter
        self._store = store
        self._retry = retry or RetryConfig()
        self._sleep = sleep

    async def run(self, history: Sequence[Message], tools: Sequence[Tool] = ()) -> TurnResult:
        delay = self._retry.initial_delay
        attempt = 0

        while True:
            attempt += 1
            try:
                return await self._stream_once(history, tools, attempt)
            except Exception as exc:
                kind = classify_failure(exc)
                match kind:
                    case FailureKind.QUOTA_EXCEEDED:
                        self._quota_exceeded(history, exc)
                    case FailureKind.RATE_LIMITED:
                        if attempt >= self._retry.max_attempts:
                            logger.error("rate_limit_retries_exhausted", attempts=attempt, error=str(exc))
                            self._presenter.error(
                                f"Rate limit retries exhausted after {attempt} attempts. Please try again later."
                            )
                            return TurnResult.failed(attempt)
                        logger.warning("rate_limited", attempt=attempt, delay=delay)
                        self._presenter.rate_limited(attempt, delay)
                        await self._sleep(delay)
                        delay = min(delay * 2, self._retry.max_delay)
                    case FailureKind.OTHER:
                        logger.error("turn_failed", error=str(exc), error_type=type(exc).__name__)
                        self._presenter.error(str(exc) or type(exc).__name__)
                        return TurnResult.failed(attempt)
                    case _:
                        assert_never(kind)

    async def _stream_once(self, history: Sequence[Message], tools: Sequence[Tool], attempt: int) -> TurnResult:
        acc = _Accumulator()
        self._presenter.assistant_start()
        try:
            async for fragment in self._client.stream(history, tools):
                match fragment:
                    case TextFragment(text=text):
                        self._presenter.text(text)
                        acc.add_text(text)
                    case ToolCallRequest(call=call):
                        self._presenter.tool_call(summarize_call(call))
                        acc.add_call(call)
                    case ToolCallResult():
                        self._presenter.tool_result(summarize_result(fragment), fragment.is_error)
                        acc.add_result(fragment)
                    case UsageFragment():
                        acc.add_usage(fragment)
                    case _:
                        assert_never(fragment)
        finally:
            self._presenter.assistant_end()
        return acc.finish(attempt)

    def _quota_exceeded(self, history: Sequence[Message], exc: Exception) -> None:
        message = str(exc)
        snapshot: Optional[str] = None
        try:
            snapshot = str(self._store.save_quota_exceeded_snapshot(history))
        except OSError as e:
            logger.error("quota_snapshot_failed", error=str(e))
        logger.error("quota_exceeded", error=message, snapshot=snapshot)
        self._presenter.quota_exceeded(message, snapshot)
        raise QuotaExceededError(message, snapshot) from exc
