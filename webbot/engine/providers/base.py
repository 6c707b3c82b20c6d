"""Abstract base for inference backends.

A backend takes an OpenAI-style message list plus tool schemas and
streams back incremental chunks. The runner owns the conversation and
tool loop; a backend only knows how to make one streaming round trip.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, AsyncIterator


@dataclass
class ToolCallFragment:
    """One piece of a streamed tool call.

    ``index`` identifies which call the fragment belongs to; ``id`` and
    ``name`` normally arrive on the first fragment only and
    ``arguments`` is a partial JSON string to be concatenated.
    """
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class BackendChunk:
    """A single streamed delta from the backend."""
    text: str = ""
    tool_calls: list[ToolCallFragment] = field(default_factory=list)
    finish_reason: str | None = None
    usage: Usage | None = None


class ChatBackend(abc.ABC):
    """Streaming chat-completions interface consumed by ``AgentRunner``."""

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short backend name (e.g. 'openai')."""

    @abc.abstractmethod
    def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[BackendChunk]:
        """Run one round trip, yielding chunks as they arrive.

        Network and protocol failures raise ``BackendError``.
        """

    async def close(self) -> None:
        """Release transport resources. Default: nothing to release."""
