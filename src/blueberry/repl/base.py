"""Abstract input source for the interactive session."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from blueberry.repl.presenter import Presenter

HELP_TEXT = """\
Commands:
  /help      Show this help
  /clear     Save a snapshot, then start a fresh conversation
  /resume    Reload the most recent saved conversation
  summary    Show token usage and cost for this session
  !!         Repeat the last input
  exit, quit End the session

Multi-line input: end a line with a backslash to continue on the next one.
"""


class InputSource(ABC):
    """Base class for anything that feeds user lines to the session.

    To add a new front end, subclass this and implement ``read``.
    """

    @abstractmethod
    async def read(self, prompt: str) -> Optional[str]:
        """Return the next input line, or None when input has ended (Ctrl-D)."""
        ...

    def show_help(self, presenter: Presenter) -> None:
        presenter.info(HELP_TEXT)

    def close(self) -> None:
        """Release terminal resources."""
