"""Message, image and tool call models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_id() -> str:
    return str(uuid.uuid4())[:8]


class MessageRole(Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class ImageContent:
    """Inline image attached to a user turn.

    ``type`` is "base64" (``data`` is a data URI or raw base64) or
    "url" (``data`` is a fetchable URL).
    """

    type: str
    data: str
    media_type: str | None = None

    def as_url(self) -> str:
        if self.type == "base64" and not self.data.startswith("data:"):
            return f"data:{self.media_type or 'image/png'};base64,{self.data}"
        return self.data


@dataclass
class ToolCall:
    id: str
    name: str
    input: Any = None


@dataclass
class Message:
    role: MessageRole
    content: str
    images: list[ImageContent] = field(default_factory=list)
    # Recorded on assistant messages only.
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[dict[str, Any]] = field(default_factory=list)
    id: str = field(default_factory=_gen_id)
    timestamp: datetime = field(default_factory=_utcnow)
