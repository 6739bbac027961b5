"""Command tokens, snapshot prefixes and default paths."""

from __future__ import annotations

from pathlib import Path

HOME = Path.home()
CONFIG_DIR = HOME / ".bb"
HISTORY_DIR = HOME / ".bb-history"
MCP_CONFIG_FILE = CONFIG_DIR / "mcp.json"
SYSTEM_PROMPT_FILE = CONFIG_DIR / "system-prompt.txt"
COMMAND_HISTORY_FILE = ".bb-command-history"


class Commands:
    """Literal REPL inputs handled without an LLM turn."""

    EXIT = frozenset({"exit", "quit", "/exit", "/quit"})
    HELP = "/help"
    CLEAR = "/clear"
    RESUME = "/resume"
    SUMMARY = "summary"
    REPEAT_LAST = "!!"


class SnapshotPrefixes:
    CONVERSATION = "bb-"
    PRE_CLEAR = "bb-pre-clear-"
    QUOTA_EXCEEDED = "bb-quota-exceeded-"
    SESSION_FINAL = "bb-session-final-"
    # Written by the HTTP wire logger, which shares the history directory.
    HTTP_REQUEST = "bb-req-"
    HTTP_RESPONSE = "bb-resp-"


DEFAULT_SYSTEM_PROMPT = """\
You are an expert software engineer and coding assistant. When given a task:

1. Always complete the full implementation yourself
2. Write working, tested code with proper error handling
3. Don't ask for confirmation on standard practices
4. Only ask questions if requirements are genuinely unclear
5. Be thorough - implement edge cases and consider performance
6. Take initiative to suggest improvements when you see opportunities
7. Write complete code implementations rather than partial solutions
8. Make reasonable assumptions about requirements
9. Test your implementations when possible

You should be proactive and autonomous in solving problems. Complete tasks \
fully rather than handing work back to the user unless you genuinely need \
clarification.
"""
