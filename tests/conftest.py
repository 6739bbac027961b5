from __future__ import annotations

import io
from typing import Any, AsyncIterator, Optional, Sequence

import pytest
from rich.console import Console

from blueberry.ai.client import ChatClient
from blueberry.ai.models import Message, StreamFragment
from blueberry.ai.tools.base import Tool, ToolExecutionError
from blueberry.repl.base import InputSource
from blueberry.repl.presenter import Presenter
from blueberry.storage.conversation_repo import ConversationStore


class ScriptedClient(ChatClient):
    """Plays back one script per ``stream`` call: a fragment list, or an exception to raise."""

    def __init__(self, scripts: Sequence[Any], model: str = "test-model", repeat_last: bool = False):
        super().__init__(model)
        self._scripts = list(scripts)
        self._repeat_last = repeat_last
        self.calls: list[list[Message]] = []
        self.tool_names: list[list[str]] = []
        self.closed = False

    async def stream(
        self,
        messages: Sequence[Message],
        tools: Sequence[Tool] = (),
    ) -> AsyncIterator[StreamFragment]:
        self.calls.append(list(messages))
        self.tool_names.append([t.name for t in tools])
        if self._repeat_last and len(self._scripts) == 1:
            script = self._scripts[0]
        else:
            script = self._scripts.pop(0)
        if isinstance(script, BaseException):
            raise script
        for fragment in script:
            yield fragment

    async def close(self) -> None:
        self.closed = True


class FakeTool(Tool):
    def __init__(self, name: str, result: str = "ok", error: Optional[str] = None, provider: str = "fake"):
        self._name = name
        self._result = result
        self._error = error
        self._provider = provider
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"{self._name} tool"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"path": {"type": "string"}}}

    @property
    def provider_name(self) -> str:
        return self._provider

    async def execute(self, **kwargs: Any) -> str:
        self.calls.append(kwargs)
        if self._error is not None:
            raise ToolExecutionError(self._error)
        return self._result


class ScriptedInput(InputSource):
    """Feeds fixed lines, then reports end of input."""

    def __init__(self, lines: Sequence[str]):
        self._lines = list(lines)
        self.reads = 0
        self.closed = False

    async def read(self, prompt: str) -> Optional[str]:
        self.reads += 1
        if not self._lines:
            return None
        return self._lines.pop(0)

    def close(self) -> None:
        self.closed = True


class StatusError(Exception):
    """Stands in for an SDK error carrying an HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


@pytest.fixture
def console_output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def presenter(console_output: io.StringIO) -> Presenter:
    return Presenter(Console(file=console_output, width=200, color_system=None, highlight=False))


@pytest.fixture
def store(tmp_path) -> ConversationStore:
    return ConversationStore(tmp_path / "history")


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep
