"""OpenAI-compatible chat-completions backend.

Speaks the streaming ``/chat/completions`` protocol over aiohttp. The
same wire format is served by OpenAI and DeepSeek, so both providers
use this class with different base URLs.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator

import aiohttp

from webbot.engine.errors import BackendError
from .base import BackendChunk, ChatBackend, ToolCallFragment, Usage

logger = logging.getLogger(__name__)

_DONE = "[DONE]"
# Cap how much of an HTTP error body ends up in logs and error events.
_MAX_ERROR_BODY = 500


def parse_sse_payload(payload: dict[str, Any]) -> BackendChunk:
    """Convert one decoded ``data:`` object into a ``BackendChunk``."""
    chunk = BackendChunk()
    usage = payload.get("usage")
    if isinstance(usage, dict):
        chunk.usage = Usage(
            prompt_tokens=int(usage.get("prompt_tokens") or 0),
            completion_tokens=int(usage.get("completion_tokens") or 0),
        )
    choices = payload.get("choices") or []
    if not choices:
        return chunk
    choice = choices[0]
    chunk.finish_reason = choice.get("finish_reason")
    delta = choice.get("delta") or {}
    chunk.text = delta.get("content") or ""
    for raw in delta.get("tool_calls") or []:
        fn = raw.get("function") or {}
        chunk.tool_calls.append(ToolCallFragment(
            index=int(raw.get("index") or 0),
            id=raw.get("id"),
            name=fn.get("name"),
            arguments=fn.get("arguments") or "",
        ))
    return chunk


class OpenAIChatBackend(ChatBackend):
    """Streaming client for an OpenAI-compatible endpoint."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str,
        max_tokens: int = 4096,
        timeout_seconds: float = 0.0,
        provider_name: str = "openai",
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._max_tokens = max_tokens
        # <= 0 disables the total timeout.
        self._timeout = aiohttp.ClientTimeout(
            total=timeout_seconds if timeout_seconds > 0 else None,
        )
        self._provider_name = provider_name
        self._session: aiohttp.ClientSession | None = None

    @property
    def name(self) -> str:
        return self._provider_name

    @property
    def model(self) -> str:
        return self._model

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _build_body(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "max_tokens": self._max_tokens,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if tools:
            body["tools"] = [{"type": "function", "function": t} for t in tools]
            body["tool_choice"] = "auto"
        return body

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AsyncIterator[BackendChunk]:
        url = f"{self._base_url}/chat/completions"
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        body = self._build_body(messages, tools)

        start = time.monotonic()
        logger.info(
            "Backend request provider=%s model=%s messages=%d tools=%d",
            self._provider_name, self._model, len(messages), len(tools),
        )
        try:
            async with self._get_session().post(url, json=body, headers=headers) as resp:
                if resp.status >= 400:
                    detail = (await resp.text())[:_MAX_ERROR_BODY]
                    logger.warning(
                        "Backend HTTP error provider=%s status=%d body=%s",
                        self._provider_name, resp.status, detail,
                    )
                    raise BackendError(
                        f"{self._provider_name} API error {resp.status}: {detail}",
                        status=resp.status,
                    )
                async for chunk in self._iter_sse(resp):
                    yield chunk
        except aiohttp.ClientError as exc:
            logger.warning("Backend transport error provider=%s: %s", self._provider_name, exc)
            raise BackendError(f"{self._provider_name} request failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            logger.warning("Backend timeout provider=%s", self._provider_name)
            raise BackendError(f"{self._provider_name} request timed out") from exc
        logger.debug(
            "Backend round trip provider=%s finished in %.1fms",
            self._provider_name, (time.monotonic() - start) * 1000,
        )

    async def _iter_sse(self, resp: aiohttp.ClientResponse) -> AsyncIterator[BackendChunk]:
        # aiohttp's content iterator yields one line at a time.
        async for raw_line in resp.content:
            line = raw_line.decode("utf-8", errors="replace").strip()
            if not line or line.startswith(":") or not line.startswith("data:"):
                continue
            data = line[len("data:"):].strip()
            if data == _DONE:
                return
            try:
                payload = json.loads(data)
            except json.JSONDecodeError as exc:
                raise BackendError(f"Malformed stream payload: {data[:100]}") from exc
            if not isinstance(payload, dict):
                raise BackendError(f"Malformed stream payload: {data[:100]}")
            if payload.get("error"):
                err = payload["error"]
                message = err.get("message") if isinstance(err, dict) else str(err)
                raise BackendError(f"{self._provider_name} stream error: {message}")
            yield parse_sse_payload(payload)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
