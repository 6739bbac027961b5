"""Exception types and transport failure classification."""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

_QUOTA_MARKERS = (
    "token_quota_exceeded",
    "insufficient_quota",
    "too many tokens processed",
)
_RATE_LIMIT_MARKERS = (
    "429",
    "rate limit",
    "rate_limit",
    "too many requests",
)


class TransportError(Exception):
    """Raised by chat clients for failed requests, with an optional HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class QuotaExceededError(Exception):
    """The provider's token quota is exhausted; the session must end."""

    def __init__(self, message: str, snapshot_path: Optional[str] = None):
        super().__init__(message)
        self.snapshot_path = snapshot_path


class FailureKind(StrEnum):
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    OTHER = "other"


def classify_failure(exc: BaseException) -> FailureKind:
    """Sort a transport exception into exactly one failure kind.

    Works on any exception carrying ``status_code``/``code`` attributes, which
    covers both the anthropic and openai SDK error types as well as
    :class:`TransportError`. Quota exhaustion is checked first because
    providers often report it with a 429 status as well.
    """
    message = str(exc).lower()
    code = str(getattr(exc, "code", "") or "").lower()

    if code in _QUOTA_MARKERS or any(marker in message for marker in _QUOTA_MARKERS):
        return FailureKind.QUOTA_EXCEEDED

    if getattr(exc, "status_code", None) == 429:
        return FailureKind.RATE_LIMITED
    if any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return FailureKind.RATE_LIMITED

    return FailureKind.OTHER
