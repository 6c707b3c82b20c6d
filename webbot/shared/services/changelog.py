"""Change log — durable audit trail of completed file mutations.

One JSON array at ``<data_dir>/changelog.json``, rewritten atomically
on every append or clear. Entries are only ever added, listed or
bulk-removed.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from webbot.shared.services.durable_write import atomic_write_json

logger = logging.getLogger(__name__)

CHANGE_ACTIONS = ("write", "delete", "rename")
DEFAULT_PAGE_SIZE = 50


@dataclass(frozen=True)
class ChangeEntry:
    id: str
    timestamp: datetime
    session_id: str
    action: str
    file_path: str
    summary: str
    new_file_path: str | None = None
    snapshot_id: str | None = None
    lines_changed: int | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "session_id": self.session_id,
            "action": self.action,
            "file_path": self.file_path,
            "summary": self.summary,
        }
        if self.new_file_path is not None:
            d["new_file_path"] = self.new_file_path
        if self.snapshot_id is not None:
            d["snapshot_id"] = self.snapshot_id
        if self.lines_changed is not None:
            d["lines_changed"] = self.lines_changed
        return d

    def to_wire(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "sessionId": self.session_id,
            "action": self.action,
            "filePath": self.file_path,
            "summary": self.summary,
        }
        if self.new_file_path is not None:
            d["newFilePath"] = self.new_file_path
        if self.snapshot_id is not None:
            d["snapshotId"] = self.snapshot_id
        if self.lines_changed is not None:
            d["linesChanged"] = self.lines_changed
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangeEntry:
        ts = datetime.fromisoformat(data["timestamp"])
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        lines = data.get("lines_changed")
        return cls(
            id=str(data["id"]),
            timestamp=ts,
            session_id=str(data["session_id"]),
            action=str(data["action"]),
            file_path=str(data["file_path"]),
            summary=str(data.get("summary", "")),
            new_file_path=data.get("new_file_path"),
            snapshot_id=data.get("snapshot_id"),
            lines_changed=int(lines) if lines is not None else None,
        )


class ChangeLog:
    """Append-only list of ``ChangeEntry`` records."""

    def __init__(self, path: Path, retention: int = 0) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._retention = max(0, retention)
        self._entries: list[ChangeEntry] = self._load()

    def _load(self) -> list[ChangeEntry]:
        if not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            entries = [ChangeEntry.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Change log %s unreadable, starting empty: %s", self._path, exc)
            return []
        logger.info("Loaded %d change log entries from %s", len(entries), self._path)
        return entries

    def _save(self) -> None:
        atomic_write_json(self._path, [e.to_dict() for e in self._entries])

    def __len__(self) -> int:
        return len(self._entries)

    def _new_id(self) -> str:
        taken = {e.id for e in self._entries}
        while True:
            candidate = uuid.uuid4().hex[:8]
            if candidate not in taken:
                return candidate

    def append(
        self,
        *,
        session_id: str,
        action: str,
        file_path: str,
        summary: str,
        new_file_path: str | None = None,
        snapshot_id: str | None = None,
        lines_changed: int | None = None,
    ) -> ChangeEntry:
        if action not in CHANGE_ACTIONS:
            raise ValueError(f"Unknown change action: {action}")
        entry = ChangeEntry(
            id=self._new_id(),
            timestamp=datetime.now(timezone.utc),
            session_id=session_id,
            action=action,
            file_path=file_path,
            summary=summary,
            new_file_path=new_file_path,
            snapshot_id=snapshot_id,
            lines_changed=lines_changed,
        )
        self._entries.append(entry)
        if self._retention and len(self._entries) > self._retention:
            pruned = len(self._entries) - self._retention
            self._entries = self._entries[pruned:]
            logger.info("Pruned %d change log entries past retention=%d", pruned, self._retention)
        self._save()
        logger.info("ChangeLog %s: %s — %s session=%s", action, file_path, summary, session_id)
        return entry

    def list(
        self,
        session_id: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Newest-first page of entries plus the filtered total."""
        filtered = [
            e for e in reversed(self._entries)
            if session_id is None or e.session_id == session_id
        ]
        offset = max(0, offset)
        limit = max(0, limit)
        return {"entries": filtered[offset:offset + limit], "total": len(filtered)}

    def clear(self, session_id: str | None = None) -> int:
        before = len(self._entries)
        if session_id is None:
            self._entries = []
        else:
            self._entries = [e for e in self._entries if e.session_id != session_id]
        removed = before - len(self._entries)
        self._save()
        logger.info("ChangeLog cleared %d entries session=%s", removed, session_id or "<all>")
        return removed
