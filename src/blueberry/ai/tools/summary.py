"""One-line human-readable summaries of tool calls and their results."""

from __future__ import annotations

from typing import Any, Optional

from blueberry.ai.models import ToolCall, ToolCallResult

_PATH_KEYS = ("path", "file_path", "filepath")

_PATH_TOOLS = frozenset({
    "read_file", "write_file", "list_directory", "create_directory", "delete_file",
})
_QUOTED_ARG = {
    "execute_shell_command": "command",
    "search_web": "query",
    "execute_query": "query",
    "execute_non_query": "query",
}
_PLAIN_ARG = {
    "get_web_page_content": "url",
}
_TRANSFER_TOOLS = frozenset({"move_file", "copy_file"})

_RESULT_SUMMARIES = {
    "read_file": "file read",
    "write_file": "file written",
    "list_directory": "directory listed",
    "execute_shell_command": "command executed",
    "search_web": "web search completed",
    "get_web_page_content": "web page retrieved",
    "execute_query": "query executed",
    "execute_non_query": "non-query executed",
    "test_connection": "connection tested",
    "list_available_schemas": "schemas listed",
    "create_directory": "directory created",
    "delete_file": "file deleted",
    "move_file": "file moved",
    "copy_file": "file copied",
}

MAX_RESULT_PREVIEW = 100


def _path_arg(args: dict[str, Any]) -> Optional[str]:
    for key in _PATH_KEYS:
        if args.get(key) is not None:
            return str(args[key])
    return None


def summarize_call(call: ToolCall) -> str:
    """``read_file src/app.py``, ``execute_shell_command "ls -la"``, or just the name."""
    args = call.arguments or {}
    name = call.name

    if name in _PATH_TOOLS:
        path = _path_arg(args)
        return f"{name} {path}" if path else name
    if name in _QUOTED_ARG and _QUOTED_ARG[name] in args:
        return f'{name} "{args[_QUOTED_ARG[name]]}"'
    if name in _PLAIN_ARG and _PLAIN_ARG[name] in args:
        return f"{name} {args[_PLAIN_ARG[name]]}"
    if name in _TRANSFER_TOOLS and "source" in args and "destination" in args:
        return f"{name} {args['source']} → {args['destination']}"

    path = _path_arg(args)
    return f"{name} {path}" if path else name


def summarize_result(result: ToolCallResult) -> str:
    if result.is_error:
        return f"{result.name} failed: {preview(result.result)}"
    return _RESULT_SUMMARIES.get(result.name, "completed")


def preview(text: str, limit: int = MAX_RESULT_PREVIEW) -> str:
    """Collapse whitespace and clip to ``limit`` characters."""
    cleaned = " ".join(text.replace('\\"', '"').split())
    if len(cleaned) > limit:
        return cleaned[: limit - 3] + "..."
    return cleaned
