"""Token estimation, model context windows and context-usage warnings."""

from __future__ import annotations

from enum import StrEnum
from typing import Iterable, Optional, TypeVar

from blueberry.ai.models import Message

CHARS_PER_TOKEN = 4
DEFAULT_MAX_TOKENS = 32_000

T = TypeVar("T")

WARNING_HIGH_THRESHOLD = 0.9
WARNING_LOW_THRESHOLD = 0.7

MODEL_MAX_TOKENS: dict[str, int] = {
    # OpenAI
    "gpt-5": 128_000,
    "gpt-5-mini": 128_000,
    "gpt-5-nano": 128_000,
    "gpt-4.1": 128_000,
    "gpt-4.1-mini": 128_000,
    "gpt-4.1-nano": 128_000,
    "gpt-4o": 128_000,
    "gpt-4o-mini": 128_000,
    "gpt-4o-2024-05-13": 128_000,
    "gpt-4-turbo": 128_000,
    "gpt-4-1106-preview": 128_000,
    "gpt-4": 8_192,
    "gpt-3.5-turbo": 16_385,
    "gpt-oss": 131_072,
    # O-series
    "o1": 200_000,
    "o1-pro": 200_000,
    "o1-mini": 200_000,
    "o3": 200_000,
    "o3-pro": 200_000,
    "o3-mini": 200_000,
    "o3-deep-research": 200_000,
    "o4-mini": 200_000,
    "o4-mini-deep-research": 200_000,
    # Anthropic
    "claude": 200_000,
    # Cerebras
    "llama3.1-8b": 128_000,
    "llama3.1-70b": 128_000,
    "llama-3.3-70b": 128_000,
}


class ContextWarning(StrEnum):
    HIGH = "high"
    LOW = "low"


def lookup_by_family(table: dict[str, T], model_name: str) -> Optional[T]:
    """Exact (case-insensitive) key match, else the longest key contained in the name.

    Preferring the longest key keeps ``gpt-4o-mini-2024-07-18`` on
    ``gpt-4o-mini`` rather than ``gpt-4o``.
    """
    name = model_name.lower()
    lowered = {key.lower(): value for key, value in table.items()}
    if name in lowered:
        return lowered[name]

    matches = [key for key in lowered if key in name]
    if not matches:
        return None
    return lowered[max(matches, key=len)]


def get_max_tokens(model_name: str) -> int:
    found = lookup_by_family(MODEL_MAX_TOKENS, model_name)
    return found if found is not None else DEFAULT_MAX_TOKENS


def estimate_tokens(text: str) -> int:
    """Rough ~4 characters per token estimate; real tokenization varies by model."""
    if not text:
        return 0
    return len(text) // CHARS_PER_TOKEN


def estimate_message_tokens(messages: Iterable[Message]) -> int:
    return sum(estimate_tokens(m.text) for m in messages)


def format_token_count(tokens: int) -> str:
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 1_000:
        return f"{tokens / 1_000:.1f}K"
    return str(tokens)


def context_warning(current_tokens: int, max_tokens: int) -> Optional[ContextWarning]:
    """Severity of the context-near-limit warning, or None below 70%."""
    if max_tokens <= 0:
        return None
    utilization = current_tokens / max_tokens
    if utilization >= WARNING_HIGH_THRESHOLD:
        return ContextWarning.HIGH
    if utilization >= WARNING_LOW_THRESHOLD:
        return ContextWarning.LOW
    return None
