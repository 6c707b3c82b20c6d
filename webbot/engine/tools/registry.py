"""Tool registry keyed by a closed set of tool kinds.

The inference backend names tools by string. That string is parsed
into a ``ToolKind`` once, at the registry boundary; everything past
that point dispatches on the enum. Adding a tool means adding a
``ToolKind`` member and a handler, and ``ToolRegistry`` refuses to
build if any kind is left without one.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from webbot.engine.errors import InvalidInputError, WebBotError

logger = logging.getLogger(__name__)

ToolResult = dict[str, Any]


class ToolKind(str, Enum):
    FILE_READ = "file_read"
    FILE_WRITE = "file_write"
    FILE_DELETE = "file_delete"
    FILE_RENAME = "file_rename"
    FILE_LIST = "file_list"
    FILE_SEARCH = "file_search"
    FILE_DIFF = "file_diff"

    @classmethod
    def parse(cls, name: str) -> ToolKind | None:
        try:
            return cls(name)
        except ValueError:
            return None

    @property
    def is_destructive(self) -> bool:
        return self in _DESTRUCTIVE

    @property
    def snapshot_action(self) -> str | None:
        """Snapshot classification taken before this tool runs."""
        return _SNAPSHOT_ACTIONS.get(self)

    @property
    def change_action(self) -> str | None:
        """Change-log action recorded after this tool succeeds."""
        return _CHANGE_ACTIONS.get(self)


_DESTRUCTIVE = frozenset({ToolKind.FILE_WRITE, ToolKind.FILE_DELETE, ToolKind.FILE_RENAME})

_SNAPSHOT_ACTIONS = {
    ToolKind.FILE_WRITE: "before_write",
    ToolKind.FILE_DELETE: "before_delete",
    ToolKind.FILE_RENAME: "before_rename",
}

_CHANGE_ACTIONS = {
    ToolKind.FILE_WRITE: "write",
    ToolKind.FILE_DELETE: "delete",
    ToolKind.FILE_RENAME: "rename",
}


@dataclass(frozen=True)
class ToolContext:
    workspace: Path
    session_id: str


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[ToolResult]]


def tool_error(exc: WebBotError | str, code: str = "error") -> ToolResult:
    if isinstance(exc, WebBotError):
        return {"error": str(exc), "code": exc.code}
    return {"error": exc, "code": code}


def is_error_result(result: object) -> bool:
    return not isinstance(result, dict) or bool(result.get("error"))


@dataclass
class Tool:
    kind: ToolKind
    description: str
    handler: ToolHandler
    properties: dict[str, Any] = field(default_factory=dict)
    required: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.kind.value

    def schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": self.properties,
                "required": list(self.required),
            },
        }

    async def execute(self, params: Any, context: ToolContext) -> ToolResult:
        """Run the handler; expected failures come back as ``{"error": ...}``."""
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return tool_error(InvalidInputError(f"{self.name} expects an object of arguments"))
        missing = [key for key in self.required if params.get(key) is None]
        if missing:
            return tool_error(InvalidInputError(
                f"Missing required parameter(s) for {self.name}: {', '.join(missing)}"
            ))
        try:
            return await self.handler(params, context)
        except WebBotError as exc:
            logger.info("Tool %s refused session=%s: %s", self.name, context.session_id, exc)
            return tool_error(exc)
        except (OSError, UnicodeError) as exc:
            logger.warning("Tool %s failed session=%s: %s", self.name, context.session_id, exc)
            return tool_error(f"{self.name} failed: {exc}", code="io_error")


class ToolRegistry:
    """Exhaustive ``ToolKind`` → ``Tool`` mapping."""

    def __init__(self, tools: Iterable[Tool]) -> None:
        self._tools: dict[ToolKind, Tool] = {}
        for tool in tools:
            if tool.kind in self._tools:
                raise ValueError(f"Duplicate tool registration: {tool.name}")
            self._tools[tool.kind] = tool
        missing = [kind.value for kind in ToolKind if kind not in self._tools]
        if missing:
            raise ValueError(f"No handler registered for tool kind(s): {', '.join(missing)}")
        logger.debug("Registered %d tools: %s", len(self._tools), ", ".join(self.names()))

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools[kind] for kind in ToolKind)

    def __len__(self) -> int:
        return len(self._tools)

    def names(self) -> list[str]:
        return [kind.value for kind in ToolKind]

    def get(self, name_or_kind: str | ToolKind) -> Tool | None:
        kind = name_or_kind if isinstance(name_or_kind, ToolKind) else ToolKind.parse(name_or_kind)
        if kind is None:
            return None
        return self._tools[kind]

    def schemas(self) -> list[dict[str, Any]]:
        return [tool.schema() for tool in self]

    async def execute(self, name: str, params: Any, context: ToolContext) -> ToolResult:
        tool = self.get(name)
        if tool is None:
            return tool_error(f"Unknown tool: {name}", code="unknown_tool")
        return await tool.execute(params, context)
