from __future__ import annotations

from conftest import FakeTool, ScriptedClient

from blueberry.ai.models import (
    Message,
    Role,
    TextFragment,
    ToolCall,
    ToolCallRequest,
    ToolCallResult,
    UsageFragment,
)
from blueberry.ai.tool_runner import LIMIT_REACHED_TEXT, ToolInvokingClient
from blueberry.ai.tools.registry import ToolRegistry


async def _collect(client, messages, tools=()):
    return [fragment async for fragment in client.stream(messages, tools)]


def _registry(*tools) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    registry.freeze()
    return registry


async def test_plain_text_passes_through():
    inner = ScriptedClient([[TextFragment("hi"), UsageFragment(5, 1)]])
    client = ToolInvokingClient(inner, _registry())

    fragments = await _collect(client, [Message.system("s"), Message.user("hello")])

    assert fragments == [TextFragment("hi"), UsageFragment(5, 1)]
    assert len(inner.calls) == 1


async def test_tool_round_feeds_results_back_to_model():
    tool = FakeTool("read_file", result="file body")
    call = ToolCall(id="c1", name="read_file", arguments={"path": "a.txt"})
    inner = ScriptedClient([
        [TextFragment("Let me look."), ToolCallRequest(call), UsageFragment(10, 3)],
        [TextFragment("It says file body."), UsageFragment(20, 5)],
    ])
    client = ToolInvokingClient(inner, _registry(tool))
    history = [Message.system("s"), Message.user("read a.txt")]

    fragments = await _collect(client, history, [tool])

    assert ToolCallResult("c1", "read_file", "file body") in fragments
    assert tool.calls == [{"path": "a.txt"}]
    second_request = inner.calls[1]
    assert second_request[2] == Message.assistant("Let me look.", (call,))
    assert second_request[3] == Message.tool_result("c1", "file body")
    assert len(history) == 2


async def test_unknown_tool_and_failing_tool_become_error_results():
    broken = FakeTool("broken", error="disk on fire")
    inner = ScriptedClient([
        [ToolCallRequest(ToolCall("c1", "missing")), ToolCallRequest(ToolCall("c2", "broken"))],
        [TextFragment("sorry")],
    ])
    client = ToolInvokingClient(inner, _registry(broken))

    fragments = await _collect(client, [Message.system("s"), Message.user("go")])
    results = [f for f in fragments if isinstance(f, ToolCallResult)]

    assert results[0] == ToolCallResult("c1", "missing", "Error: unknown tool 'missing'", is_error=True)
    assert results[1] == ToolCallResult("c2", "broken", "Error executing broken: disk on fire", is_error=True)
    assert inner.calls[1][-1].role == Role.TOOL


async def test_round_limit_stops_the_loop():
    tool = FakeTool("ping")
    inner = ScriptedClient([[ToolCallRequest(ToolCall("c", "ping"))]], repeat_last=True)
    client = ToolInvokingClient(inner, _registry(tool), max_rounds=3)

    fragments = await _collect(client, [Message.system("s"), Message.user("loop")])

    assert len(inner.calls) == 3
    assert fragments[-1] == TextFragment(LIMIT_REACHED_TEXT)


async def test_complete_and_model_name_delegate():
    inner = ScriptedClient([[TextFragment("a"), TextFragment("b")]], model="inner-model")
    client = ToolInvokingClient(inner, _registry())

    assert client.model_name == "inner-model"
    assert await client.complete([Message.user("x")]) == "ab"
