"""Terminal output for the interactive session, rendered with rich."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from rich.console import Console
from rich.text import Text

from blueberry.ai.models import Message, Role
from blueberry.ai.tokens import ContextWarning, format_token_count
from blueberry.ai.tools.summary import preview
from blueberry.ai.usage import SessionSummary

_ROLE_STYLES = {
    Role.SYSTEM: "dim",
    Role.USER: "bold magenta",
    Role.ASSISTANT: "cyan",
    Role.TOOL: "yellow",
}


def format_cost(cost: Decimal) -> str:
    return f"${cost:.6f}"


class Presenter:
    """Every user-facing line goes through here; logs go to stderr via structlog."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)

    # ── streamed assistant output ───────────────────────────────

    def assistant_start(self) -> None:
        self.console.print(Text("assistant> ", style="bold cyan"), end="")

    def text(self, chunk: str) -> None:
        self.console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)

    def assistant_end(self) -> None:
        self.console.print()

    def tool_call(self, summary: str) -> None:
        self.console.print(Text(f"\n  → {summary}", style="yellow"))

    def tool_result(self, summary: str, is_error: bool = False) -> None:
        style = "red" if is_error else "green"
        self.console.print(Text(f"  ← {summary}", style=style))

    # ── status lines ────────────────────────────────────────────

    def info(self, message: str) -> None:
        self.console.print(Text(message))

    def success(self, message: str) -> None:
        self.console.print(Text(message, style="green"))

    def warning(self, message: str) -> None:
        self.console.print(Text(message, style="yellow"))

    def error(self, message: str) -> None:
        self.console.print(Text(f"Error: {message}", style="bold red"))

    def rate_limited(self, attempt: int, delay: float) -> None:
        self.warning(f"Rate limit encountered. Retrying in {delay:g}s... (attempt {attempt})")

    def quota_exceeded(self, message: str, snapshot_path: Optional[str]) -> None:
        self.console.print(Text("Token quota exceeded. The session will end.", style="bold red"))
        self.console.print(Text(message, style="red"))
        if snapshot_path:
            self.console.print(Text(f"Conversation saved to {snapshot_path}", style="dim"))

    # ── session state ───────────────────────────────────────────

    def session_header(self, cost: Decimal, context_used: int, context_max: int, model: str) -> None:
        pct = context_used / context_max * 100 if context_max > 0 else 0.0
        line = (
            f"[{format_cost(cost)} | context {format_token_count(context_used)}/"
            f"{format_token_count(context_max)} ({pct:.1f}%) | {model}]"
        )
        self.console.print(Text(line, style="dim"))

    def context_warning(self, level: ContextWarning, context_used: int, context_max: int) -> None:
        pct = context_used / context_max * 100 if context_max > 0 else 0.0
        message = f"Context window {pct:.0f}% full ({format_token_count(context_used)} tokens). Consider /clear."
        if level == ContextWarning.HIGH:
            self.console.print(Text(message, style="bold red"))
        else:
            self.warning(message)

    def summary(self, summary: SessionSummary) -> None:
        minutes, seconds = divmod(int(summary.session_duration.total_seconds()), 60)
        self.console.print(Text("Session summary", style="bold"))
        self.console.print(f"  Requests      : {summary.total_requests}", markup=False)
        self.console.print(
            f"  Tokens        : {format_token_count(summary.total_tokens)} "
            f"(in {format_token_count(summary.total_input_tokens)}, "
            f"out {format_token_count(summary.total_output_tokens)})",
            markup=False,
        )
        self.console.print(f"  Cost          : {format_cost(summary.total_cost)}", markup=False)
        self.console.print(f"  Max context   : {format_token_count(summary.max_context_used)}", markup=False)
        self.console.print(f"  Avg context   : {summary.avg_context_utilization * 100:.1f}%", markup=False)
        self.console.print(f"  Duration      : {minutes}m {seconds}s", markup=False)

    def show_conversation(self, messages: Sequence[Message]) -> None:
        for message in messages:
            if message.role == Role.SYSTEM:
                continue
            style = _ROLE_STYLES[message.role]
            if message.role == Role.TOOL:
                self.console.print(Text(f"  ← {preview(message.text)}", style=style))
                continue
            if message.text:
                self.console.print(Text(f"{message.role.value}> ", style=f"bold {style}"), end="")
                self.console.print(message.text, markup=False, highlight=False)
            for call in message.tool_calls:
                self.console.print(Text(f"  → {call.name}", style="yellow"))
