"""Timestamped JSON snapshots of the conversation, with latest-snapshot recovery."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from blueberry.ai.models import Message, Role
from blueberry.log import get_logger
from blueberry.storage.models import NON_CONVERSATION_PREFIXES, SnapshotInfo, SnapshotTag

logger = get_logger(__name__)


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class ConversationStore:
    """Writes one immutable file per snapshot into the history directory.

    File names are ``{tag prefix}{unix millis}.json``. Existing files are
    never overwritten; a same-millisecond collision moves the timestamp
    forward. Write errors (``OSError``) propagate to the caller.
    """

    def __init__(self, history_dir: str | Path, clock: Callable[[], int] = _now_ms):
        self._dir = Path(history_dir).expanduser()
        self._clock = clock
        self.last_loaded: Optional[Path] = None

    @property
    def directory(self) -> Path:
        return self._dir

    # ── write path ──────────────────────────────────────────────

    def save_snapshot(self, messages: Sequence[Message], tag: SnapshotTag = SnapshotTag.CONVERSATION) -> Path:
        payload = json.dumps([m.to_dict() for m in messages], ensure_ascii=False)
        path = self._write_new(tag, payload)
        logger.debug("snapshot_saved", tag=tag.value, path=str(path), messages=len(messages))
        return path

    def save_pre_clear_snapshot(self, messages: Sequence[Message]) -> Optional[Path]:
        """Snapshot before /clear. Nothing is written for a System-only history."""
        if len(messages) <= 1:
            return None
        return self.save_snapshot(messages, SnapshotTag.PRE_CLEAR)

    def save_quota_exceeded_snapshot(self, messages: Sequence[Message]) -> Path:
        return self.save_snapshot(messages, SnapshotTag.QUOTA_EXCEEDED)

    def report_path(self) -> Path:
        """A fresh path for the usage ledger's final report."""
        return self._dir / f"{SnapshotTag.SESSION_FINAL.prefix}{self._clock()}.json"

    def _write_new(self, tag: SnapshotTag, payload: str) -> Path:
        self._dir.mkdir(parents=True, exist_ok=True)
        timestamp = self._clock()
        while True:
            path = self._dir / f"{tag.prefix}{timestamp}.json"
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(payload)
                return path
            except FileExistsError:
                timestamp += 1

    # ── read path ───────────────────────────────────────────────

    def list_snapshots(self, tag: SnapshotTag = SnapshotTag.CONVERSATION) -> list[SnapshotInfo]:
        """Snapshots of one tag, newest (by modification time) first."""
        if not self._dir.is_dir():
            return []

        found: list[tuple[int, SnapshotInfo]] = []
        for path in self._dir.glob(f"{tag.prefix}*.json"):
            if tag == SnapshotTag.CONVERSATION and path.name.startswith(NON_CONVERSATION_PREFIXES):
                continue
            stamp = path.name[len(tag.prefix):-len(".json")]
            if not stamp.isdigit():
                continue
            try:
                mtime = path.stat().st_mtime_ns
            except OSError:
                continue
            found.append((mtime, SnapshotInfo(path=path, tag=tag, timestamp_ms=int(stamp))))

        found.sort(key=lambda item: (item[0], item[1].timestamp_ms), reverse=True)
        return [info for _, info in found]

    def load_latest(self, system_prompt: str) -> list[Message]:
        """Load the newest ordinary snapshot, or a fresh System-only conversation.

        The stored system prompt is never trusted: the first message is always
        replaced with ``system_prompt``.
        """
        self.last_loaded = None
        snapshots = self.list_snapshots(SnapshotTag.CONVERSATION)
        if not snapshots:
            return [Message.system(system_prompt)]

        latest = snapshots[0].path
        try:
            raw = json.loads(latest.read_text(encoding="utf-8"))
            messages = [Message.from_dict(item) for item in raw]
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as e:
            logger.error("snapshot_load_failed", path=str(latest), error=str(e))
            return [Message.system(system_prompt)]

        if not messages:
            return [Message.system(system_prompt)]

        if messages[0].role == Role.SYSTEM:
            messages[0] = Message.system(system_prompt)
        else:
            messages.insert(0, Message.system(system_prompt))

        self.last_loaded = latest
        logger.info("snapshot_loaded", path=str(latest), messages=len(messages))
        return messages
