"""prompt_toolkit line editor with persistent command history."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import FileHistory

from blueberry.log import get_logger
from blueberry.repl.base import InputSource

logger = get_logger(__name__)

CONTINUATION = "\\"


class PromptToolkitInput(InputSource):
    """Reads lines with prompt_toolkit, recording each entry in a history file.

    A line ending in a backslash continues on the next line; the pieces are
    joined with newlines. Ctrl-C and Ctrl-D both end input.
    """

    def __init__(self, history_file: str | Path):
        path = Path(history_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        self._session: PromptSession[str] = PromptSession(
            history=FileHistory(str(path)),
            enable_history_search=True,
        )
        logger.debug("command_history_opened", path=str(path))

    async def read(self, prompt: str) -> Optional[str]:
        lines: list[str] = []
        message = FormattedText([("bold fg:ansimagenta", prompt)])
        while True:
            try:
                line = await self._session.prompt_async(message)
            except (EOFError, KeyboardInterrupt):
                return None
            if line.endswith(CONTINUATION):
                lines.append(line[: -len(CONTINUATION)])
                message = FormattedText([("fg:ansimagenta", "... ")])
                continue
            lines.append(line)
            return "\n".join(lines)
