"""Session state — one conversation's ordered message history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import re

from webbot.shared.models.message import Message

DEFAULT_SESSION_ID = "main"
SYSTEM_SESSION_ID = "system"

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_valid_session_id(session_id: object) -> bool:
    """Session ids name files in the durable store, so keep them filename-safe."""
    return isinstance(session_id, str) and _SESSION_ID_RE.match(session_id) is not None


@dataclass
class Session:
    """Holds all conversation state for a session."""

    id: str = DEFAULT_SESSION_ID
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def append(self, *messages: Message) -> None:
        self.messages.extend(messages)
        self.touch()

    def clear(self) -> None:
        self.messages = []
        self.touch()

    def touch(self) -> None:
        self.updated_at = _utcnow()

    @property
    def message_count(self) -> int:
        return len(self.messages)
