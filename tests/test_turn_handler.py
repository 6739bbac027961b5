from __future__ import annotations

import json

import pytest
from conftest import ScriptedClient, StatusError

from blueberry.ai.handler import TurnHandler
from blueberry.ai.models import (
    Message,
    TextFragment,
    ToolCall,
    ToolCallRequest,
    ToolCallResult,
    UsageFragment,
)
from blueberry.config import RetryConfig
from blueberry.errors import QuotaExceededError
from blueberry.storage.models import SnapshotTag

HISTORY = [Message.system("sys"), Message.user("2+2?")]
ANSWER = [TextFragment("The answer"), TextFragment(" is 4."), UsageFragment(input_tokens=10, output_tokens=6)]


def _handler(client, presenter, store, fake_sleep, max_attempts=50):
    return TurnHandler(client, presenter, store, RetryConfig(max_attempts=max_attempts), sleep=fake_sleep)


async def test_successful_turn_accumulates_text_and_usage(presenter, store, fake_sleep, console_output):
    handler = _handler(ScriptedClient([ANSWER]), presenter, store, fake_sleep)

    result = await handler.run(HISTORY)

    assert result.completed
    assert result.text == "The answer is 4."
    assert result.messages == [Message.assistant("The answer is 4.")]
    assert result.usage == UsageFragment(10, 6)
    assert result.context_tokens == 16
    assert "The answer is 4." in console_output.getvalue()


async def test_tool_fragments_become_history_messages(presenter, store, fake_sleep, console_output):
    call = ToolCall("c1", "read_file", {"path": "notes.md"})
    client = ScriptedClient([[
        TextFragment("Checking."),
        ToolCallRequest(call),
        UsageFragment(10, 2),
        ToolCallResult("c1", "read_file", "notes"),
        TextFragment("Done."),
        UsageFragment(30, 4),
    ]])
    handler = _handler(client, presenter, store, fake_sleep)

    result = await handler.run(HISTORY)

    assert result.messages == [
        Message.assistant("Checking.", (call,)),
        Message.tool_result("c1", "notes"),
        Message.assistant("Done."),
    ]
    assert result.usage == UsageFragment(40, 6)
    assert result.context_tokens == 34
    output = console_output.getvalue()
    assert "read_file notes.md" in output
    assert "file read" in output


async def test_rate_limited_twice_then_success(presenter, store, fake_sleep, sleeps, console_output):
    client = ScriptedClient([
        StatusError("Too Many Requests", status_code=429),
        StatusError("rate limit reached"),
        ANSWER,
    ])
    handler = _handler(client, presenter, store, fake_sleep)

    result = await handler.run(HISTORY)

    assert result.completed
    assert result.attempts == 3
    assert sleeps == [1.0, 2.0]
    assert "Retrying in 1s... (attempt 1)" in console_output.getvalue()
    assert "Retrying in 2s... (attempt 2)" in console_output.getvalue()


async def test_always_rate_limited_stops_at_max_attempts(presenter, store, fake_sleep, sleeps):
    client = ScriptedClient([StatusError("slow down", status_code=429)], repeat_last=True)
    handler = _handler(client, presenter, store, fake_sleep, max_attempts=5)

    result = await handler.run(HISTORY)

    assert not result.completed
    assert result.messages == []
    assert len(client.calls) == 5
    assert sleeps == [1.0, 2.0, 4.0, 8.0]


async def test_backoff_delay_is_capped(presenter, store, fake_sleep, sleeps):
    client = ScriptedClient([StatusError("429", status_code=429)], repeat_last=True)
    handler = TurnHandler(
        client, presenter, store, RetryConfig(max_attempts=9, max_delay=60.0), sleep=fake_sleep
    )

    await handler.run(HISTORY)

    assert sleeps == [1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 60.0, 60.0]


async def test_quota_exceeded_writes_snapshot_and_raises(presenter, store, fake_sleep, console_output):
    client = ScriptedClient([StatusError("Error: token_quota_exceeded for this org", status_code=429)])
    handler = _handler(client, presenter, store, fake_sleep)

    with pytest.raises(QuotaExceededError) as excinfo:
        await handler.run(HISTORY)

    snapshots = store.list_snapshots(SnapshotTag.QUOTA_EXCEEDED)
    assert len(snapshots) == 1
    assert excinfo.value.snapshot_path == str(snapshots[0].path)
    saved = json.loads(snapshots[0].path.read_text(encoding="utf-8"))
    assert [m["text"] for m in saved] == ["sys", "2+2?"]
    assert "token_quota_exceeded" in console_output.getvalue()
    assert store.list_snapshots() == []


async def test_other_error_fails_turn_without_retry(presenter, store, fake_sleep, sleeps, console_output):
    client = ScriptedClient([ValueError("connection reset")])
    handler = _handler(client, presenter, store, fake_sleep)

    result = await handler.run(HISTORY)

    assert not result.completed
    assert sleeps == []
    assert len(client.calls) == 1
    assert "connection reset" in console_output.getvalue()
