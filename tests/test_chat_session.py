from __future__ import annotations

import json
from decimal import Decimal

from conftest import FakeTool, ScriptedClient, ScriptedInput, StatusError

from blueberry.ai.conversation import Conversation
from blueberry.ai.handler import TurnHandler
from blueberry.ai.models import Message, Role, TextFragment, UsageFragment
from blueberry.ai.usage import UsageLedger
from blueberry.config import RetryConfig
from blueberry.core.session import EXIT_OK, EXIT_QUOTA_EXCEEDED, ChatSession
from blueberry.storage.models import SnapshotTag

ANSWER = [TextFragment("The answer"), TextFragment(" is 4."), UsageFragment(input_tokens=10, output_tokens=6)]


def _session(client, presenter, store, fake_sleep, lines=(), conversation=None, tools=tuple, max_attempts=50):
    handler = TurnHandler(client, presenter, store, RetryConfig(max_attempts=max_attempts), sleep=fake_sleep)
    input_source = ScriptedInput(lines)
    session = ChatSession(
        handler=handler,
        conversation=conversation or Conversation("sys"),
        store=store,
        ledger=UsageLedger(),
        presenter=presenter,
        input_source=input_source,
        model_name="test-model",
        max_context_tokens=32_000,
        tools=tools,
    )
    return session, input_source


async def test_successful_turn_is_recorded_and_saved_once(presenter, store, fake_sleep):
    session, _ = _session(ScriptedClient([ANSWER]), presenter, store, fake_sleep)

    result = await session.run_turn("2+2?")

    assert result.text == "The answer is 4."
    assert session.conversation.messages == [
        Message.system("sys"),
        Message.user("2+2?"),
        Message.assistant("The answer is 4."),
    ]
    summary = session.ledger.summary()
    assert summary.total_requests == 1
    assert summary.total_cost == Decimal("0.000028")
    snapshots = store.list_snapshots()
    assert len(snapshots) == 1
    saved = json.loads(snapshots[0].path.read_text(encoding="utf-8"))
    assert [m["role"] for m in saved] == ["system", "user", "assistant"]


async def test_turn_passes_current_tool_catalog(presenter, store, fake_sleep):
    client = ScriptedClient([ANSWER])
    tool = FakeTool("read_file")
    session, _ = _session(client, presenter, store, fake_sleep, tools=lambda: (tool,))

    await session.run_turn("2+2?")

    assert client.tool_names == [["read_file"]]


async def test_missing_usage_is_estimated(presenter, store, fake_sleep):
    client = ScriptedClient([[TextFragment("x" * 40)]])
    session, _ = _session(client, presenter, store, fake_sleep)

    await session.run_turn("y" * 20)

    record = session.ledger.history[0]
    assert record.output_tokens == 10
    assert record.input_tokens == 5
    assert record.context_length == 15


async def test_failed_turn_rolls_back_user_message(presenter, store, fake_sleep):
    session, _ = _session(ScriptedClient([RuntimeError("boom")]), presenter, store, fake_sleep)

    result = await session.run_turn("hello")

    assert not result.completed
    assert session.conversation.messages == [Message.system("sys")]
    assert store.list_snapshots() == []
    assert session.ledger.summary().total_requests == 0


async def test_rate_limit_exhaustion_returns_to_input(presenter, store, fake_sleep, sleeps):
    client = ScriptedClient([StatusError("too many requests", status_code=429), ANSWER])
    session, source = _session(
        client, presenter, store, fake_sleep, lines=["first", "second", "exit"], max_attempts=1
    )

    code = await session.run()

    assert code == EXIT_OK
    assert sleeps == []
    assert [m.text for m in session.conversation if m.role == Role.USER] == ["second"]
    assert source.closed


async def test_quota_exceeded_stops_reading_input(presenter, store, fake_sleep):
    client = ScriptedClient([StatusError("insufficient_quota: you exceeded your quota")])
    session, source = _session(client, presenter, store, fake_sleep, lines=["2+2?", "never read"])

    code = await session.run()

    assert code == EXIT_QUOTA_EXCEEDED
    assert source.reads == 1
    quota = store.list_snapshots(SnapshotTag.QUOTA_EXCEEDED)
    assert len(quota) == 1
    saved = json.loads(quota[0].path.read_text(encoding="utf-8"))
    assert [m["text"] for m in saved] == ["sys", "2+2?"]
    assert store.list_snapshots(SnapshotTag.SESSION_FINAL) != []


async def test_clear_saves_pre_clear_snapshot_and_resets(presenter, store, fake_sleep):
    conversation = Conversation("sys", [
        Message.user("a"), Message.assistant("b"), Message.user("c"), Message.assistant("d"),
    ])
    session, _ = _session(ScriptedClient([]), presenter, store, fake_sleep, conversation=conversation)

    assert await session.handle_input("/clear") is True

    pre_clear = store.list_snapshots(SnapshotTag.PRE_CLEAR)
    assert len(pre_clear) == 1
    assert len(json.loads(pre_clear[0].path.read_text(encoding="utf-8"))) == 5
    assert session.conversation.messages == [Message.system("sys")]


async def test_clear_on_empty_conversation_writes_nothing(presenter, store, fake_sleep):
    session, _ = _session(ScriptedClient([]), presenter, store, fake_sleep)

    await session.handle_input("/clear")

    assert store.list_snapshots(SnapshotTag.PRE_CLEAR) == []


async def test_resume_loads_latest_snapshot(presenter, store, fake_sleep, console_output):
    store.save_snapshot([Message.system("stale"), Message.user("earlier"), Message.assistant("reply")])
    session, _ = _session(ScriptedClient([]), presenter, store, fake_sleep)

    await session.handle_input("/resume")

    assert session.conversation.messages == [
        Message.system("sys"),
        Message.user("earlier"),
        Message.assistant("reply"),
    ]
    assert "earlier" in console_output.getvalue()


async def test_resume_without_snapshot_keeps_conversation(presenter, store, fake_sleep, console_output):
    session, _ = _session(ScriptedClient([]), presenter, store, fake_sleep)

    await session.handle_input("/resume")

    assert session.conversation.messages == [Message.system("sys")]
    assert "No saved conversation" in console_output.getvalue()


async def test_repeat_last_resends_previous_input(presenter, store, fake_sleep):
    client = ScriptedClient([ANSWER, ANSWER])
    session, _ = _session(client, presenter, store, fake_sleep, lines=["2+2?", "!!", "quit"])

    await session.run()

    assert [m.text for m in session.conversation if m.role == Role.USER] == ["2+2?", "2+2?"]
    assert len(client.calls) == 2


async def test_commands_do_not_reach_the_model(presenter, store, fake_sleep, console_output):
    client = ScriptedClient([])
    session, _ = _session(client, presenter, store, fake_sleep, lines=["", "   ", "/help", "summary", "/exit"])

    code = await session.run()

    assert code == EXIT_OK
    assert client.calls == []
    output = console_output.getvalue()
    assert "/resume" in output
    assert "Session summary" in output


async def test_end_of_input_writes_final_report(presenter, store, fake_sleep):
    session, source = _session(ScriptedClient([ANSWER]), presenter, store, fake_sleep, lines=["2+2?"])

    code = await session.run()

    assert code == EXIT_OK
    reports = store.list_snapshots(SnapshotTag.SESSION_FINAL)
    assert len(reports) == 1
    report = json.loads(reports[0].path.read_text(encoding="utf-8"))
    assert report["summary"]["total_requests"] == 1
    assert source.closed


async def test_repeat_last_skips_commands(presenter, store, fake_sleep):
    client = ScriptedClient([ANSWER, ANSWER])
    session, _ = _session(client, presenter, store, fake_sleep, lines=["2+2?", "summary", "/help", "!!", "quit"])

    await session.run()

    assert [m.text for m in session.conversation if m.role == Role.USER] == ["2+2?", "2+2?"]
    assert len(client.calls) == 2


async def test_repeat_last_without_model_turn_warns(presenter, store, fake_sleep, console_output):
    client = ScriptedClient([])
    session, _ = _session(client, presenter, store, fake_sleep, lines=["summary", "!!", "exit"])

    await session.run()

    assert client.calls == []
    assert "No previous input to repeat." in console_output.getvalue()


async def test_commands_match_exact_tokens(presenter, store, fake_sleep):
    client = ScriptedClient([ANSWER, ANSWER])
    session, _ = _session(client, presenter, store, fake_sleep, lines=["EXIT", "Summary", "exit"])

    code = await session.run()

    assert code == EXIT_OK
    assert [m.text for m in session.conversation if m.role == Role.USER] == ["EXIT", "Summary"]
