"""Agent runner — the streaming tool-calling inference loop.

``AgentRunner.run`` is an async generator. Text deltas are yielded as
they arrive from the backend; tool calls are accumulated from stream
fragments and dispatched as soon as they are complete. Dispatch yields
a ``ToolCallEvent`` and only executes the tool once the consumer pulls
the next event, so whoever iterates the runner gets to act (snapshot,
lock) between "about to run" and "ran".

The loop makes another backend round trip whenever tools ran in the
previous one, and stops after a round with no tool use, on a backend
failure, or when ``max_tool_rounds`` is exhausted. It never yields a
``DoneEvent``; completing the turn is the caller's business.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from webbot.adapters.events import (
    AgentEvent,
    ErrorEvent,
    TextDelta,
    TextDone,
    ToolCallEvent,
    ToolResultEvent,
    UsageEvent,
)
from webbot.engine.errors import BackendError, InvalidInputError
from webbot.engine.prompts import WEBBOT_SYSTEM_PROMPT
from webbot.engine.providers.base import ChatBackend, ToolCallFragment
from webbot.engine.tools.registry import ToolContext, ToolRegistry, tool_error
from webbot.shared.models.message import Message, MessageRole

logger = logging.getLogger(__name__)


@dataclass
class _PendingCall:
    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""
    dispatched: bool = False
    result: dict[str, Any] = field(default_factory=dict)

    def merge(self, frag: ToolCallFragment) -> None:
        if frag.id:
            self.id = frag.id
        if frag.name and not self.name:
            self.name = frag.name
        self.arguments += frag.arguments


def format_message(msg: Message) -> dict[str, Any] | None:
    """Render a stored message as a chat-completions message."""
    if msg.images:
        parts: list[dict[str, Any]] = []
        if msg.content:
            parts.append({"type": "text", "text": msg.content})
        for img in msg.images:
            parts.append({"type": "image_url", "image_url": {"url": img.as_url()}})
        return {"role": msg.role.value, "content": parts}
    if msg.role is MessageRole.ASSISTANT and not msg.content:
        # Tool-only turns carry nothing the model can use as plain history.
        return None
    return {"role": msg.role.value, "content": msg.content}


class AgentRunner:
    """Drives one backend conversation per ``run`` call."""

    def __init__(
        self,
        backend: ChatBackend,
        tools: ToolRegistry,
        *,
        system_prompt: str | None = None,
        max_context_messages: int = 40,
        max_tool_rounds: int = 25,
    ) -> None:
        self._backend = backend
        self._tools = tools
        self._system_prompt = system_prompt or WEBBOT_SYSTEM_PROMPT
        self._max_context = max_context_messages
        self._max_tool_rounds = max_tool_rounds

    @property
    def backend(self) -> ChatBackend:
        return self._backend

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def format_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        history = messages
        if self._max_context > 0 and len(messages) > self._max_context:
            history = messages[-self._max_context:]
            logger.info(
                "Context truncated: %d -> %d messages", len(messages), len(history),
            )
        formatted: list[dict[str, Any]] = [{"role": "system", "content": self._system_prompt}]
        for msg in history:
            rendered = format_message(msg)
            if rendered is not None:
                formatted.append(rendered)
        return formatted

    async def run(
        self,
        messages: list[Message],
        context: ToolContext,
    ) -> AsyncIterator[AgentEvent]:
        conversation = self.format_messages(messages)
        schemas = self._tools.schemas()
        prompt_tokens = 0
        completion_tokens = 0
        tool_rounds = 0

        while True:
            pending: dict[int, _PendingCall] = {}
            text_parts: list[str] = []
            try:
                async for chunk in self._backend.stream(conversation, schemas):
                    if chunk.usage is not None:
                        prompt_tokens += chunk.usage.prompt_tokens
                        completion_tokens += chunk.usage.completion_tokens
                    if chunk.text:
                        text_parts.append(chunk.text)
                        yield TextDelta(text=chunk.text)
                    for frag in chunk.tool_calls:
                        if frag.index not in pending:
                            # A new call starting means every earlier one is complete.
                            for call in self._ready(pending, before=frag.index):
                                async for event in self._dispatch(call, context):
                                    yield event
                            pending[frag.index] = _PendingCall(index=frag.index)
                        pending[frag.index].merge(frag)
            except BackendError as exc:
                logger.warning("Backend failure session=%s: %s", context.session_id, exc)
                if text_parts:
                    yield TextDone()
                usage = self._usage(prompt_tokens, completion_tokens)
                if usage is not None:
                    yield usage
                yield ErrorEvent(error=str(exc), code=exc.code)
                return

            for call in self._ready(pending):
                async for event in self._dispatch(call, context):
                    yield event
            if text_parts:
                yield TextDone()

            calls = [pending[i] for i in sorted(pending)]
            if not calls:
                break
            self._append_round(conversation, "".join(text_parts), calls)
            tool_rounds += 1
            if tool_rounds >= self._max_tool_rounds:
                logger.warning(
                    "Tool round limit reached session=%s rounds=%d",
                    context.session_id, tool_rounds,
                )
                usage = self._usage(prompt_tokens, completion_tokens)
                if usage is not None:
                    yield usage
                yield ErrorEvent(
                    error=f"Stopped after {tool_rounds} tool rounds without a final answer",
                    code="tool_round_limit",
                )
                return

        usage = self._usage(prompt_tokens, completion_tokens)
        if usage is not None:
            yield usage

    @staticmethod
    def _ready(pending: dict[int, _PendingCall], before: int | None = None) -> list[_PendingCall]:
        return [
            pending[i] for i in sorted(pending)
            if not pending[i].dispatched and (before is None or i < before)
        ]

    async def _dispatch(self, call: _PendingCall, context: ToolContext) -> AsyncIterator[AgentEvent]:
        call.dispatched = True
        if not call.id:
            call.id = f"call_{uuid.uuid4().hex[:12]}"

        params: Any
        try:
            params = json.loads(call.arguments) if call.arguments.strip() else {}
            parse_error = None
        except json.JSONDecodeError as exc:
            params = call.arguments
            parse_error = InvalidInputError(f"Invalid JSON arguments for {call.name}: {exc}")

        yield ToolCallEvent(tool_call_id=call.id, tool_name=call.name, tool_input=params)

        if parse_error is not None:
            call.result = tool_error(parse_error)
        else:
            try:
                call.result = await self._tools.execute(call.name, params, context)
            except Exception as exc:
                logger.exception("Tool %s crashed session=%s", call.name, context.session_id)
                call.result = tool_error(f"Tool execution failed: {exc}")

        yield ToolResultEvent(tool_call_id=call.id, tool_name=call.name, tool_output=call.result)

    @staticmethod
    def _append_round(
        conversation: list[dict[str, Any]],
        text: str,
        calls: list[_PendingCall],
    ) -> None:
        conversation.append({
            "role": "assistant",
            "content": text or None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments or "{}"},
                }
                for call in calls
            ],
        })
        for call in calls:
            conversation.append({
                "role": "tool",
                "tool_call_id": call.id,
                "content": json.dumps(call.result, ensure_ascii=False),
            })

    @staticmethod
    def _usage(prompt_tokens: int, completion_tokens: int) -> UsageEvent | None:
        if not prompt_tokens and not completion_tokens:
            return None
        logger.info(
            "Token usage: prompt=%d completion=%d total=%d",
            prompt_tokens, completion_tokens, prompt_tokens + completion_tokens,
        )
        return UsageEvent(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)
