from __future__ import annotations

import json

import pytest

from blueberry.ai.conversation import Conversation, to_anthropic_messages, to_openai_messages
from blueberry.ai.models import Message, Role, ToolCall


def _tool_exchange() -> list[Message]:
    call = ToolCall(id="c1", name="read_file", arguments={"path": "a.txt"})
    return [
        Message.user("read a.txt"),
        Message.assistant("", (call,)),
        Message.tool_result("c1", "contents"),
        Message.assistant("It says contents."),
    ]


def test_new_conversation_holds_only_system_prompt():
    conversation = Conversation("be brief")
    assert len(conversation) == 1
    assert conversation[0] == Message.system("be brief")


def test_append_rejects_system_and_orphan_tool_results():
    conversation = Conversation("sys")
    with pytest.raises(ValueError):
        conversation.append(Message.system("other"))
    with pytest.raises(ValueError):
        conversation.append(Message.tool_result("missing", "x"))


def test_extend_accepts_tool_result_after_its_call():
    conversation = Conversation("sys")
    conversation.extend(_tool_exchange())
    assert len(conversation) == 5


def test_truncate_never_drops_system_message():
    conversation = Conversation("sys", _tool_exchange())
    conversation.truncate(2)
    assert [m.role for m in conversation] == [Role.SYSTEM, Role.USER]
    conversation.truncate(0)
    assert len(conversation) == 1


def test_reset_keeps_only_new_system_prompt():
    conversation = Conversation("sys", _tool_exchange())
    conversation.reset("fresh")
    assert conversation.messages == [Message.system("fresh")]


def test_replace_inserts_missing_system_and_drops_orphans():
    conversation = Conversation("sys")
    conversation.replace([
        Message.user("hi"),
        Message.system("stray"),
        Message.tool_result("nope", "orphan"),
        Message.assistant("hello"),
    ])
    assert conversation.messages == [Message.system("sys"), Message.user("hi"), Message.assistant("hello")]


def test_messages_property_is_a_copy():
    conversation = Conversation("sys")
    conversation.messages.append(Message.user("sneaky"))
    assert len(conversation) == 1


def test_anthropic_format_groups_tool_results():
    call_a = ToolCall(id="a", name="x")
    call_b = ToolCall(id="b", name="y")
    history = [
        Message.system("sys"),
        Message.user("go"),
        Message.assistant("working", (call_a, call_b)),
        Message.tool_result("a", "ra"),
        Message.tool_result("b", "rb"),
    ]

    system, out = to_anthropic_messages(history)

    assert system == "sys"
    assert out[1]["content"][0] == {"type": "text", "text": "working"}
    assert [b["id"] for b in out[1]["content"][1:]] == ["a", "b"]
    assert out[2]["role"] == "user"
    assert [b["tool_use_id"] for b in out[2]["content"]] == ["a", "b"]


def test_openai_format_serializes_arguments():
    out = to_openai_messages([Message.system("sys")] + _tool_exchange())

    assistant = out[2]
    assert assistant["content"] is None
    call = assistant["tool_calls"][0]
    assert json.loads(call["function"]["arguments"]) == {"path": "a.txt"}
    assert out[3] == {"role": "tool", "tool_call_id": "c1", "content": "contents"}


def test_message_dict_round_trip_lowercases_role():
    message = Message.from_dict({"role": "ASSISTANT", "text": "hi", "tool_calls": [{"id": "1", "name": "n"}]})
    assert message.role == Role.ASSISTANT
    assert Message.from_dict(message.to_dict()) == message
