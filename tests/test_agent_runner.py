"""Tests for the streaming tool-calling loop in ``AgentRunner``."""

from __future__ import annotations

import copy
import json
from pathlib import Path

import pytest

from webbot.adapters.events import (
    ErrorEvent,
    TextDelta,
    TextDone,
    ToolCallEvent,
    ToolResultEvent,
    UsageEvent,
    event_to_dict,
)
from webbot.engine.errors import BackendError
from webbot.engine.providers.base import BackendChunk, ChatBackend, ToolCallFragment, Usage
from webbot.engine.runner import AgentRunner, format_message
from webbot.engine.tools import ToolContext, build_default_registry
from webbot.shared.models.message import ImageContent, Message, MessageRole


class ScriptedBackend(ChatBackend):
    """Plays back one list of chunks per round trip; an exception entry raises."""

    def __init__(self, rounds: list) -> None:
        self._rounds = list(rounds)
        self.requests: list[list[dict]] = []
        self.tool_schemas: list[dict] = []

    @property
    def name(self) -> str:
        return "scripted"

    async def stream(self, messages, tools):
        self.requests.append(copy.deepcopy(messages))
        self.tool_schemas = tools
        script = self._rounds.pop(0) if self._rounds else [BackendChunk(text="(idle)")]
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item


def _user(text: str) -> Message:
    return Message(role=MessageRole.USER, content=text)


def _call(index: int, name: str, args: dict, call_id: str | None = None) -> BackendChunk:
    return BackendChunk(tool_calls=[
        ToolCallFragment(index=index, id=call_id or f"call_{index}", name=name, arguments=json.dumps(args)),
    ])


async def _collect(runner: AgentRunner, messages: list[Message], workspace: Path) -> list:
    return [e async for e in runner.run(messages, ToolContext(workspace=workspace, session_id="main"))]


@pytest.mark.asyncio
async def test_text_only_turn(tmp_path: Path) -> None:
    backend = ScriptedBackend([[
        BackendChunk(text="Hel"),
        BackendChunk(text="lo", finish_reason="stop", usage=Usage(prompt_tokens=10, completion_tokens=2)),
    ]])
    runner = AgentRunner(backend, build_default_registry())

    events = await _collect(runner, [_user("hi")], tmp_path)

    assert [e.event_type for e in events] == ["text.delta", "text.delta", "text.done", "usage"]
    assert "".join(e.text for e in events if isinstance(e, TextDelta)) == "Hello"
    assert events[-1].total_tokens == 12
    assert backend.requests[0][0]["role"] == "system"
    assert backend.requests[0][-1] == {"role": "user", "content": "hi"}
    assert {s["name"] for s in backend.tool_schemas} >= {"file_read", "file_write"}


@pytest.mark.asyncio
async def test_tool_call_runs_and_feeds_result_back(tmp_path: Path) -> None:
    backend = ScriptedBackend([
        [
            BackendChunk(tool_calls=[ToolCallFragment(index=0, id="call_a", name="file_write", arguments='{"path": "index')]),
            BackendChunk(tool_calls=[ToolCallFragment(index=0, arguments='.html", "content": "<h1>Hi</h1>"}')]),
            BackendChunk(finish_reason="tool_calls"),
        ],
        [BackendChunk(text="Created index.html.")],
    ])
    runner = AgentRunner(backend, build_default_registry())

    events = await _collect(runner, [_user("make a page")], tmp_path)

    kinds = [e.event_type for e in events]
    assert kinds == ["tool.call", "tool.result", "text.delta", "text.done"]
    call = events[0]
    assert isinstance(call, ToolCallEvent)
    assert call.tool_input == {"path": "index.html", "content": "<h1>Hi</h1>"}
    result = events[1]
    assert isinstance(result, ToolResultEvent)
    assert result.tool_call_id == "call_a"
    assert result.tool_output["success"] is True
    assert (tmp_path / "index.html").read_text(encoding="utf-8") == "<h1>Hi</h1>"

    second = backend.requests[1]
    assistant, tool_msg = second[-2], second[-1]
    assert assistant["role"] == "assistant"
    assert assistant["tool_calls"][0]["function"]["name"] == "file_write"
    assert tool_msg["role"] == "tool"
    assert tool_msg["tool_call_id"] == "call_a"
    assert json.loads(tool_msg["content"])["success"] is True


@pytest.mark.asyncio
async def test_tool_executes_only_after_call_event_is_consumed(tmp_path: Path) -> None:
    backend = ScriptedBackend([[_call(0, "file_write", {"path": "a.txt", "content": "x"})], []])
    runner = AgentRunner(backend, build_default_registry())
    stream = runner.run([_user("go")], ToolContext(workspace=tmp_path, session_id="main"))

    first = await stream.__anext__()
    assert isinstance(first, ToolCallEvent)
    assert not (tmp_path / "a.txt").exists()

    second = await stream.__anext__()
    assert isinstance(second, ToolResultEvent)
    assert (tmp_path / "a.txt").exists()
    await stream.aclose()


@pytest.mark.asyncio
async def test_multiple_calls_dispatch_in_index_order(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("A", encoding="utf-8")
    (tmp_path / "b.txt").write_text("B", encoding="utf-8")
    backend = ScriptedBackend([
        [_call(0, "file_read", {"path": "a.txt"}), _call(1, "file_read", {"path": "b.txt"})],
        [BackendChunk(text="ok")],
    ])
    runner = AgentRunner(backend, build_default_registry())

    events = await _collect(runner, [_user("read both")], tmp_path)

    results = [e for e in events if isinstance(e, ToolResultEvent)]
    assert [r.tool_output["content"] for r in results] == ["A", "B"]
    tool_msgs = [m for m in backend.requests[1] if m["role"] == "tool"]
    assert [m["tool_call_id"] for m in tool_msgs] == ["call_0", "call_1"]


@pytest.mark.asyncio
async def test_unknown_tool_and_bad_json_become_error_results(tmp_path: Path) -> None:
    backend = ScriptedBackend([
        [
            _call(0, "shell_exec", {"command": "rm -rf /"}),
            BackendChunk(tool_calls=[ToolCallFragment(index=1, id="call_1", name="file_read", arguments="{not json")]),
        ],
        [BackendChunk(text="sorry")],
    ])
    runner = AgentRunner(backend, build_default_registry())

    events = await _collect(runner, [_user("x")], tmp_path)

    results = [e for e in events if isinstance(e, ToolResultEvent)]
    assert results[0].tool_output["code"] == "unknown_tool"
    assert results[1].is_error
    assert results[1].tool_output["code"] == "invalid_input"
    bad_call = [e for e in events if isinstance(e, ToolCallEvent)][1]
    assert bad_call.tool_input == "{not json"
    assert not any(isinstance(e, ErrorEvent) for e in events)


@pytest.mark.asyncio
async def test_missing_call_id_is_generated(tmp_path: Path) -> None:
    backend = ScriptedBackend([
        [BackendChunk(tool_calls=[ToolCallFragment(index=0, name="file_list", arguments="")])],
        [],
    ])
    runner = AgentRunner(backend, build_default_registry())

    events = await _collect(runner, [_user("ls")], tmp_path)

    call = events[0]
    assert call.tool_call_id.startswith("call_")
    assert events[1].tool_call_id == call.tool_call_id
    assert events[1].tool_output["success"] is True


@pytest.mark.asyncio
async def test_backend_failure_ends_with_error(tmp_path: Path) -> None:
    backend = ScriptedBackend([[
        BackendChunk(text="partial", usage=Usage(prompt_tokens=5, completion_tokens=1)),
        BackendError("Backend returned HTTP 500", status=500),
    ]])
    runner = AgentRunner(backend, build_default_registry())

    events = await _collect(runner, [_user("hi")], tmp_path)

    assert [e.event_type for e in events] == ["text.delta", "text.done", "usage", "error"]
    assert events[-1].code == "backend_failure"
    assert "500" in events[-1].error


@pytest.mark.asyncio
async def test_tool_round_limit(tmp_path: Path) -> None:
    rounds = [[_call(0, "file_list", {}, call_id=f"call_{i}")] for i in range(5)]
    backend = ScriptedBackend(rounds)
    runner = AgentRunner(backend, build_default_registry(), max_tool_rounds=3)

    events = await _collect(runner, [_user("loop")], tmp_path)

    assert len(backend.requests) == 3
    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].code == "tool_round_limit"


def test_context_is_truncated_to_recent_messages() -> None:
    runner = AgentRunner(ScriptedBackend([]), build_default_registry(), max_context_messages=3, system_prompt="SYS")
    history = [_user(f"m{i}") for i in range(6)]
    formatted = runner.format_messages(history)
    assert formatted[0] == {"role": "system", "content": "SYS"}
    assert [m["content"] for m in formatted[1:]] == ["m3", "m4", "m5"]


def test_format_message_renders_images_and_skips_tool_only_turns() -> None:
    with_image = Message(
        role=MessageRole.USER,
        content="like this",
        images=[ImageContent(type="url", data="https://example.com/shot.png")],
    )
    assert format_message(with_image) == {
        "role": "user",
        "content": [
            {"type": "text", "text": "like this"},
            {"type": "image_url", "image_url": {"url": "https://example.com/shot.png"}},
        ],
    }
    assert format_message(Message(role=MessageRole.ASSISTANT, content="")) is None


def test_event_to_dict_uses_camel_case() -> None:
    event = ToolResultEvent(tool_call_id="c1", tool_name="file_read", tool_output={"success": True})
    assert event_to_dict(event, session_id="main") == {
        "sessionId": "main",
        "type": "tool.result",
        "toolCallId": "c1",
        "toolName": "file_read",
        "toolOutput": {"success": True},
    }
    assert event_to_dict(ErrorEvent(error="boom")) == {"type": "error", "error": "boom"}
    assert event_to_dict(TextDone()) == {"type": "text.done"}
    assert event_to_dict(UsageEvent(prompt_tokens=3, completion_tokens=4))["usage"]["totalTokens"] == 7
