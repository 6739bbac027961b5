"""In-memory conversation history and conversion to provider message formats."""

from __future__ import annotations

import json
from typing import Any, Iterable, Iterator, Sequence

from blueberry.ai.models import Message, Role
from blueberry.log import get_logger

logger = get_logger(__name__)


class Conversation:
    """Ordered message history whose first element is always the System message.

    History only grows by :meth:`append`; :meth:`replace` and :meth:`reset`
    swap it wholesale.
    """

    def __init__(self, system_prompt: str, messages: Iterable[Message] | None = None):
        self._messages: list[Message] = [Message.system(system_prompt)]
        if messages is not None:
            self.replace(messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    @property
    def messages(self) -> list[Message]:
        """A copy of the history, safe to hand to clients and storage."""
        return list(self._messages)

    @property
    def system_prompt(self) -> str:
        return self._messages[0].text

    def append(self, message: Message) -> None:
        if message.role == Role.SYSTEM:
            raise ValueError("System message can only be set through reset() or replace()")
        if message.role == Role.TOOL and message.tool_call_id not in self._known_call_ids():
            raise ValueError(f"Tool result references unknown tool call '{message.tool_call_id}'")
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def truncate(self, length: int) -> None:
        """Drop everything after the first ``length`` messages (never the System message)."""
        del self._messages[max(1, length):]

    def reset(self, system_prompt: str) -> None:
        self._messages = [Message.system(system_prompt)]

    def replace(self, messages: Iterable[Message]) -> None:
        """Swap in a whole history, repairing it so the invariants hold.

        A missing leading System message is inserted using the current prompt
        and orphaned tool results are dropped.
        """
        incoming = list(messages)
        if not incoming or incoming[0].role != Role.SYSTEM:
            incoming.insert(0, Message.system(self.system_prompt))

        repaired = [incoming[0]]
        call_ids: set[str] = set()
        for message in incoming[1:]:
            if message.role == Role.SYSTEM:
                logger.warning("conversation_extra_system_dropped")
                continue
            if message.role == Role.TOOL and message.tool_call_id not in call_ids:
                logger.warning("conversation_orphan_tool_result_dropped", tool_call_id=message.tool_call_id)
                continue
            call_ids.update(c.id for c in message.tool_calls)
            repaired.append(message)
        self._messages = repaired

    def _known_call_ids(self) -> set[str]:
        return {c.id for m in self._messages if m.role == Role.ASSISTANT for c in m.tool_calls}


def to_anthropic_messages(messages: Sequence[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Convert history into the Anthropic ``(system, messages)`` request shape.

    Consecutive tool results are grouped into one user message of
    ``tool_result`` blocks, as the Messages API requires.
    """
    system_parts: list[str] = []
    out: list[dict[str, Any]] = []
    i = 0

    while i < len(messages):
        msg = messages[i]

        if msg.role == Role.SYSTEM:
            system_parts.append(msg.text)
            i += 1

        elif msg.role == Role.USER:
            out.append({"role": "user", "content": msg.text})
            i += 1

        elif msg.role == Role.ASSISTANT:
            if msg.tool_calls:
                blocks: list[dict[str, Any]] = []
                if msg.text:
                    blocks.append({"type": "text", "text": msg.text})
                for call in msg.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": call.arguments,
                        }
                    )
                out.append({"role": "assistant", "content": blocks})
            else:
                out.append({"role": "assistant", "content": msg.text})
            i += 1

        else:
            result_blocks: list[dict[str, Any]] = []
            while i < len(messages) and messages[i].role == Role.TOOL:
                result_blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": messages[i].tool_call_id,
                        "content": messages[i].text,
                    }
                )
                i += 1
            out.append({"role": "user", "content": result_blocks})

    return "\n\n".join(system_parts), out


def to_openai_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Convert history into OpenAI chat-completions message dicts."""
    out: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == Role.TOOL:
            out.append({"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.text})
            continue

        entry: dict[str, Any] = {"role": msg.role.value, "content": msg.text}
        if msg.tool_calls:
            entry["content"] = msg.text or None
            entry["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
                }
                for call in msg.tool_calls
            ]
        out.append(entry)
    return out
