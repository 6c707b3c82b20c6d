"""Session persistence — save and load sessions to disk.

Storage layout:
    <data_dir>/sessions/{session_id}.json

Each file is rewritten atomically on every save. Corrupt files are
skipped on load with a warning rather than aborting startup.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from webbot.engine.errors import InvalidInputError
from webbot.shared.models.message import ImageContent, Message, MessageRole, ToolCall
from webbot.shared.models.session import Session, is_valid_session_id
from webbot.shared.services.durable_write import _fsync_dir, atomic_write_json

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


class SessionStore:
    """Save and load sessions as one JSON file per session id."""

    def __init__(self, sessions_dir: Path) -> None:
        self._dir = Path(sessions_dir)
        if not self._dir.exists():
            self._dir.mkdir(parents=True, exist_ok=True)
            logger.info("Created sessions directory %s", self._dir)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, session_id: str) -> Path:
        if not is_valid_session_id(session_id):
            raise InvalidInputError(f"Invalid session id: {session_id!r}")
        return self._dir / f"{session_id}.json"

    def save(self, session: Session) -> Path:
        """Serialize ``session`` to its JSON file."""
        data = _session_to_dict(session)
        data["saved_at"] = datetime.now(timezone.utc).isoformat()
        data["version"] = FORMAT_VERSION
        path = self._path_for(session.id)
        atomic_write_json(path, data)
        logger.debug("Session %s saved to %s (%d messages)", session.id, path, session.message_count)
        return path

    def load_all(self) -> dict[str, Session]:
        """Load every persisted session, skipping unreadable files."""
        sessions: dict[str, Session] = {}
        for path in sorted(self._dir.glob("*.json")):
            try:
                session = _dict_to_session(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("Skipping unreadable session file %s: %s", path, exc)
                continue
            sessions[session.id] = session
        if sessions:
            logger.info("Loaded %d session(s) from %s", len(sessions), self._dir)
        return sessions

    def delete(self, session_id: str) -> bool:
        path = self._path_for(session_id)
        if not path.exists():
            return False
        path.unlink()
        _fsync_dir(self._dir)
        logger.info("Deleted session file %s", path)
        return True

    def list_session_ids(self) -> list[str]:
        return sorted(p.stem for p in self._dir.glob("*.json"))


def _ensure_aware(dt: datetime) -> datetime:
    """Ensure a datetime is timezone-aware (assume UTC if naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    return _ensure_aware(datetime.fromisoformat(value))


def _image_to_dict(image: ImageContent) -> dict[str, Any]:
    d = {"type": image.type, "data": image.data}
    if image.media_type:
        d["media_type"] = image.media_type
    return d


def _message_to_dict(msg: Message) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": msg.id,
        "role": msg.role.value,
        "content": msg.content,
        "timestamp": msg.timestamp.isoformat(),
    }
    if msg.images:
        d["images"] = [_image_to_dict(img) for img in msg.images]
    if msg.tool_calls:
        d["tool_calls"] = [
            {"id": tc.id, "name": tc.name, "input": tc.input}
            for tc in msg.tool_calls
        ]
    if msg.tool_results:
        d["tool_results"] = list(msg.tool_results)
    return d


def _dict_to_message(data: dict[str, Any]) -> Message:
    kwargs: dict[str, Any] = dict(
        role=MessageRole(data["role"]),
        content=data.get("content") or "",
        images=[
            ImageContent(
                type=img.get("type", "base64"),
                data=img.get("data", ""),
                media_type=img.get("media_type"),
            )
            for img in data.get("images", [])
        ],
        tool_calls=[
            ToolCall(id=tc["id"], name=tc["name"], input=tc.get("input"))
            for tc in data.get("tool_calls", [])
        ],
        tool_results=list(data.get("tool_results", [])),
        timestamp=_parse_timestamp(data.get("timestamp")),
    )
    if data.get("id"):
        kwargs["id"] = data["id"]
    return Message(**kwargs)


def _session_to_dict(session: Session) -> dict[str, Any]:
    return {
        "id": session.id,
        "created_at": session.created_at.isoformat(),
        "updated_at": session.updated_at.isoformat(),
        "messages": [_message_to_dict(m) for m in session.messages],
    }


def _dict_to_session(data: dict[str, Any]) -> Session:
    return Session(
        id=str(data["id"]),
        messages=[_dict_to_message(m) for m in data.get("messages", [])],
        created_at=_parse_timestamp(data.get("created_at")),
        updated_at=_parse_timestamp(data.get("updated_at")),
    )
