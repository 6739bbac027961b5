"""Interactive chat session: the read, dispatch, stream and record loop."""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from blueberry.ai.conversation import Conversation
from blueberry.ai.handler import TurnHandler, TurnResult
from blueberry.ai.models import Message
from blueberry.ai.tokens import context_warning, estimate_message_tokens, estimate_tokens
from blueberry.ai.tools.base import Tool
from blueberry.ai.usage import UsageLedger
from blueberry.constants import Commands
from blueberry.errors import QuotaExceededError
from blueberry.log import get_logger
from blueberry.repl.base import InputSource
from blueberry.repl.presenter import Presenter
from blueberry.storage.conversation_repo import ConversationStore

logger = get_logger(__name__)

PROMPT = "bb> "
EXIT_OK = 0
EXIT_QUOTA_EXCEEDED = 2


class ChatSession:
    """Owns the live conversation and drives one turn per user input.

    A successful turn appends its messages, is recorded in the usage ledger
    and is persisted as exactly one snapshot. A failed turn leaves the
    history exactly as it was before the input, including the user message.
    """

    def __init__(
        self,
        handler: TurnHandler,
        conversation: Conversation,
        store: ConversationStore,
        ledger: UsageLedger,
        presenter: Presenter,
        input_source: InputSource,
        model_name: str,
        max_context_tokens: int,
        tools: Callable[[], Sequence[Tool]] = tuple,
    ):
        self._handler = handler
        self._conversation = conversation
        self._store = store
        self._ledger = ledger
        self._presenter = presenter
        self._input = input_source
        self._model_name = model_name
        self._max_context = max_context_tokens
        self._tools = tools
        self._last_input: Optional[str] = None
        self._context_tokens = estimate_message_tokens(conversation)

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def ledger(self) -> UsageLedger:
        return self._ledger

    async def run(self) -> int:
        """Read inputs until exit, end of input or quota exhaustion. Returns the exit code."""
        exit_code = EXIT_OK
        try:
            while True:
                self._show_header()
                line = await self._input.read(PROMPT)
                if line is None:
                    break
                if not await self.handle_input(line):
                    break
        except QuotaExceededError:
            exit_code = EXIT_QUOTA_EXCEEDED
        finally:
            self._finish()
        return exit_code

    async def handle_input(self, line: str) -> bool:
        """Process one input line. Returns False when the session should end."""
        text = line.strip()
        if not text:
            return True

        if text == Commands.REPEAT_LAST:
            if self._last_input is None:
                self._presenter.warning("No previous input to repeat.")
                return True
            text = self._last_input
            self._presenter.info(f"Repeating: {text}")

        if text in Commands.EXIT:
            return False
        if text == Commands.HELP:
            self._input.show_help(self._presenter)
        elif text == Commands.CLEAR:
            self.clear()
        elif text == Commands.RESUME:
            self.resume()
        elif text == Commands.SUMMARY:
            self._presenter.summary(self._ledger.summary())
        else:
            # Only inputs sent to the model can be repeated.
            self._last_input = text
            await self.run_turn(text)
        return True

    # ── turns ───────────────────────────────────────────────────

    async def run_turn(self, text: str) -> TurnResult:
        checkpoint = len(self._conversation)
        self._conversation.append(Message.user(text))

        # QuotaExceededError propagates with the user message still in place.
        result = await self._handler.run(self._conversation.messages, self._tools())
        if not result.completed:
            self._conversation.truncate(checkpoint)
            logger.info("turn_rolled_back", history_length=checkpoint)
            return result

        prompt_tokens = estimate_message_tokens(self._conversation)
        self._conversation.extend(result.messages)
        self._record_usage(result, prompt_tokens)
        self._save_snapshot()
        return result

    def _record_usage(self, result: TurnResult, prompt_tokens: int) -> None:
        if result.usage is not None:
            input_tokens = result.usage.input_tokens
            output_tokens = result.usage.output_tokens
            cached_tokens = result.usage.cached_tokens
        else:
            logger.debug("usage_estimated", model=self._model_name)
            input_tokens = prompt_tokens
            output_tokens = estimate_tokens(result.text)
            cached_tokens = 0

        context = result.context_tokens
        if context is None:
            context = input_tokens + output_tokens
        self._context_tokens = context

        self._ledger.record(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cached_tokens=cached_tokens,
            model_name=self._model_name,
            context_length=context,
            max_context_length=self._max_context,
        )

    def _save_snapshot(self) -> None:
        try:
            self._store.save_snapshot(self._conversation.messages)
        except OSError as e:
            logger.error("snapshot_save_failed", error=str(e))
            self._presenter.warning(f"Could not save conversation: {e}")

    # ── commands ────────────────────────────────────────────────

    def clear(self) -> None:
        try:
            path = self._store.save_pre_clear_snapshot(self._conversation.messages)
        except OSError as e:
            logger.error("pre_clear_snapshot_failed", error=str(e))
            path = None
        self._conversation.reset(self._conversation.system_prompt)
        self._context_tokens = estimate_message_tokens(self._conversation)
        if path is not None:
            self._presenter.success(f"Conversation cleared. Previous conversation saved to {path.name}")
        else:
            self._presenter.success("Conversation cleared.")

    def resume(self) -> None:
        messages = self._store.load_latest(self._conversation.system_prompt)
        if self._store.last_loaded is None:
            self._presenter.warning("No saved conversation to resume.")
            return
        self._conversation.replace(messages)
        self._context_tokens = estimate_message_tokens(self._conversation)
        self._presenter.success(
            f"Resumed {self._store.last_loaded.name} ({len(self._conversation)} messages)."
        )
        self._presenter.show_conversation(self._conversation.messages)

    # ── display ─────────────────────────────────────────────────

    def _show_header(self) -> None:
        summary = self._ledger.summary()
        self._presenter.session_header(summary.total_cost, self._context_tokens, self._max_context, self._model_name)
        level = context_warning(self._context_tokens, self._max_context)
        if level is not None:
            self._presenter.context_warning(level, self._context_tokens, self._max_context)

    def _finish(self) -> None:
        summary = self._ledger.summary()
        self._presenter.summary(summary)
        path = self._store.report_path()
        if self._ledger.save_report(path):
            self._presenter.info(f"Session report saved to {path}")
        self._input.close()
        logger.info("session_ended", requests=summary.total_requests, cost=str(summary.total_cost))
