"""Data models for the snapshot storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from blueberry.constants import SnapshotPrefixes


class SnapshotTag(StrEnum):
    CONVERSATION = "conversation"
    PRE_CLEAR = "pre_clear"
    QUOTA_EXCEEDED = "quota_exceeded"
    SESSION_FINAL = "session_final"

    @property
    def prefix(self) -> str:
        return _PREFIXES[self]


_PREFIXES = {
    SnapshotTag.CONVERSATION: SnapshotPrefixes.CONVERSATION,
    SnapshotTag.PRE_CLEAR: SnapshotPrefixes.PRE_CLEAR,
    SnapshotTag.QUOTA_EXCEEDED: SnapshotPrefixes.QUOTA_EXCEEDED,
    SnapshotTag.SESSION_FINAL: SnapshotPrefixes.SESSION_FINAL,
}

# Files sharing the "bb-" prefix that are never ordinary conversation snapshots.
NON_CONVERSATION_PREFIXES = (
    SnapshotPrefixes.PRE_CLEAR,
    SnapshotPrefixes.QUOTA_EXCEEDED,
    SnapshotPrefixes.SESSION_FINAL,
    SnapshotPrefixes.HTTP_REQUEST,
    SnapshotPrefixes.HTTP_RESPONSE,
)


@dataclass(frozen=True, slots=True)
class SnapshotInfo:
    path: Path
    tag: SnapshotTag
    timestamp_ms: int

