"""Snapshot store — pre-mutation copies of workspace files.

Storage layout:
    <data_dir>/snapshots/index.json
    <data_dir>/snapshots/<session_id>/<snapshot_id>_<flattened path>

A snapshot is taken right before a destructive tool runs and only if
the target file exists. The index is rewritten in full on every
change; blobs are written once and never modified.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from webbot.engine.errors import WebBotError
from webbot.engine.tools.line_diff import compute_line_diff, split_lines
from webbot.engine.tools.sandbox import resolve_workspace_path, workspace_relative
from webbot.shared.services.durable_write import atomic_write_bytes, atomic_write_json

logger = logging.getLogger(__name__)

SNAPSHOT_ACTIONS = ("before_write", "before_delete", "before_rename")
FILE_DELETED_SENTINEL = "(file deleted)"
NO_CHANGES = "(no changes)"


@dataclass(frozen=True)
class SnapshotEntry:
    id: str
    session_id: str
    file_path: str
    absolute_path: str
    timestamp: datetime
    action: str
    file_size: int

    @property
    def blob_name(self) -> str:
        return f"{self.id}_{self.file_path.replace('/', '__').replace(chr(92), '__')}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "file_path": self.file_path,
            "absolute_path": self.absolute_path,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "file_size": self.file_size,
        }

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "filePath": self.file_path,
            "absolutePath": self.absolute_path,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "fileSize": self.file_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotEntry:
        ts = datetime.fromisoformat(data["timestamp"])
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            id=str(data["id"]),
            session_id=str(data["session_id"]),
            file_path=str(data["file_path"]),
            absolute_path=str(data["absolute_path"]),
            timestamp=ts,
            action=str(data["action"]),
            file_size=int(data.get("file_size", 0)),
        )


class SnapshotStore:
    """Save, list and restore pre-mutation file copies."""

    def __init__(self, base_dir: Path, retention: int = 0, workspace: Path | None = None) -> None:
        self._dir = Path(base_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._index_path = self._dir / "index.json"
        # 0 means unlimited.
        self._retention = max(0, retention)
        self._workspace = Path(workspace) if workspace is not None else None
        self._entries: list[SnapshotEntry] = self._load_index()

    def _load_index(self) -> list[SnapshotEntry]:
        if not self._index_path.exists():
            return []
        try:
            raw = json.loads(self._index_path.read_text(encoding="utf-8"))
            entries = [SnapshotEntry.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Snapshot index %s unreadable, starting empty: %s", self._index_path, exc)
            return []
        logger.info("Loaded %d snapshot(s) from %s", len(entries), self._dir)
        return entries

    def _save_index(self) -> None:
        atomic_write_json(self._index_path, [e.to_dict() for e in self._entries])

    def _blob_path(self, entry: SnapshotEntry) -> Path:
        return self._dir / entry.session_id / entry.blob_name

    def __len__(self) -> int:
        return len(self._entries)

    def _new_id(self) -> str:
        taken = {e.id for e in self._entries}
        while True:
            candidate = uuid.uuid4().hex[:8]
            if candidate not in taken:
                return candidate

    def save(
        self,
        session_id: str,
        absolute_path: str | Path,
        workspace: str | Path,
        action: str,
    ) -> SnapshotEntry | None:
        """Capture the current bytes of ``absolute_path``.

        Returns None when the file does not exist (nothing to restore).
        """
        if action not in SNAPSHOT_ACTIONS:
            raise ValueError(f"Unknown snapshot action: {action}")
        source = Path(absolute_path)
        if not source.is_file():
            return None
        content = source.read_bytes()
        entry = SnapshotEntry(
            id=self._new_id(),
            session_id=session_id,
            file_path=workspace_relative(workspace, source),
            absolute_path=str(source),
            timestamp=datetime.now(timezone.utc),
            action=action,
            file_size=len(content),
        )
        atomic_write_bytes(self._blob_path(entry), content)
        self._entries.append(entry)
        self._prune()
        self._save_index()
        logger.info(
            "Saved snapshot %s for %s (%s, %d bytes) session=%s",
            entry.id, entry.file_path, action, entry.file_size, session_id,
        )
        return entry

    def _prune(self) -> None:
        if not self._retention or len(self._entries) <= self._retention:
            return
        excess = len(self._entries) - self._retention
        dropped, self._entries = self._entries[:excess], self._entries[excess:]
        for entry in dropped:
            self._blob_path(entry).unlink(missing_ok=True)
        logger.info("Pruned %d snapshot(s) past retention=%d", len(dropped), self._retention)

    def list(self, session_id: str | None = None) -> list[SnapshotEntry]:
        """Entries, newest first, optionally for one session."""
        return [
            e for e in reversed(self._entries)
            if session_id is None or e.session_id == session_id
        ]

    def get(self, snapshot_id: str) -> SnapshotEntry | None:
        for entry in self._entries:
            if entry.id == snapshot_id:
                return entry
        return None

    def get_content(self, snapshot_id: str) -> bytes | None:
        entry = self.get(snapshot_id)
        if entry is None:
            return None
        try:
            return self._blob_path(entry).read_bytes()
        except FileNotFoundError:
            logger.warning("Snapshot %s blob missing at %s", snapshot_id, self._blob_path(entry))
            return None

    def restore_target(self, entry: SnapshotEntry) -> Path:
        """Where ``entry`` lives now: re-resolved under the workspace when one is set."""
        if self._workspace is None:
            return Path(entry.absolute_path)
        return resolve_workspace_path(self._workspace, entry.file_path)

    def rollback(self, snapshot_id: str) -> dict[str, Any]:
        """Rewrite the original file with the captured bytes."""
        entry = self.get(snapshot_id)
        if entry is None:
            return {"success": False, "error": "Snapshot not found"}
        content = self.get_content(snapshot_id)
        if content is None:
            return {"success": False, "error": "Snapshot file not found"}
        try:
            target = self.restore_target(entry)
            atomic_write_bytes(target, content)
        except (OSError, WebBotError) as exc:
            logger.warning("Rollback of snapshot %s failed: %s", snapshot_id, exc)
            return {"success": False, "error": str(exc)}
        logger.info("Rolled back %s to snapshot %s", entry.file_path, snapshot_id)
        return {"success": True, "filePath": entry.file_path, "snapshotId": snapshot_id}

    def diff(self, snapshot_id: str) -> dict[str, Any]:
        """Positional diff of the snapshot against the live file."""
        entry = self.get(snapshot_id)
        if entry is None:
            return {"error": "Snapshot not found"}
        content = self.get_content(snapshot_id)
        if content is None:
            return {"error": "Snapshot file not found"}
        try:
            target = self.restore_target(entry)
        except WebBotError as exc:
            return {"error": str(exc)}
        try:
            current = target.read_bytes().decode("utf-8", errors="replace")
            deleted = False
        except FileNotFoundError:
            current = FILE_DELETED_SENTINEL
            deleted = True
        result = compute_line_diff(
            split_lines(content.decode("utf-8", errors="replace")),
            split_lines(current),
        )
        rendered, _ = result.render(limit=None)
        return {
            "diff": rendered or NO_CHANGES,
            "filePath": entry.file_path,
            "fileDeleted": deleted,
            "added": result.added,
            "removed": result.removed,
        }

    def clear(self, session_id: str | None = None) -> int:
        """Drop entries and blobs, for one session or all of them."""
        dropped = [e for e in self._entries if session_id is None or e.session_id == session_id]
        if not dropped:
            return 0
        dropped_ids = {e.id for e in dropped}
        self._entries = [e for e in self._entries if e.id not in dropped_ids]
        for entry in dropped:
            self._blob_path(entry).unlink(missing_ok=True)
        self._save_index()
        logger.info("Cleared %d snapshot(s) session=%s", len(dropped), session_id or "<all>")
        return len(dropped)
