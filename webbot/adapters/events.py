"""Event types emitted by the agent runner.

Each event is a typed dataclass; ``event_to_dict`` turns it into the
camelCase payload carried inside a ``chat`` event frame.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AgentEvent:
    """Base event from the agent runner."""
    event_type: str = ""


@dataclass
class TextDelta(AgentEvent):
    event_type: str = "text.delta"
    text: str = ""


@dataclass
class TextDone(AgentEvent):
    event_type: str = "text.done"


@dataclass
class ToolCallEvent(AgentEvent):
    event_type: str = "tool.call"
    tool_call_id: str = ""
    tool_name: str = ""
    tool_input: Any = None


@dataclass
class ToolResultEvent(AgentEvent):
    event_type: str = "tool.result"
    tool_call_id: str = ""
    tool_name: str = ""
    tool_output: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return bool(self.tool_output.get("error"))


@dataclass
class ErrorEvent(AgentEvent):
    event_type: str = "error"
    error: str = ""
    code: str | None = None


@dataclass
class DoneEvent(AgentEvent):
    event_type: str = "done"


@dataclass
class UsageEvent(AgentEvent):
    event_type: str = "usage"
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def event_to_dict(event: AgentEvent, session_id: str | None = None) -> dict[str, Any]:
    """Convert a typed event to the wire payload of a ``chat`` frame."""
    d: dict[str, Any] = {}
    if session_id is not None:
        d["sessionId"] = session_id
    d["type"] = event.event_type
    if isinstance(event, UsageEvent):
        d["usage"] = {
            "promptTokens": event.prompt_tokens,
            "completionTokens": event.completion_tokens,
            "totalTokens": event.total_tokens,
        }
        return d
    for f in event.__dataclass_fields__:
        if f == "event_type":
            continue
        val = getattr(event, f)
        if val is not None:
            d[_camel(f)] = val
    return d
