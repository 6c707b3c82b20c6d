"""WebBot gateway — aiohttp WebSocket server and request dispatcher.

Clients speak JSON frames over a WebSocket:

    request   {"id": "...", "method": "...", "params": {...}}
    response  {"id": "...", "result": ...} | {"id": "...", "error": {"message", "code"}}
    event     {"event": "...", "data": ...}

Every inbound request runs as its own task so a long ``chat.send`` does
not block pings or a second (rejected) ``chat.send`` on the same
connection. Destructive tool calls are bracketed with a path lock, a
snapshot before the tool runs and a change-log entry after it succeeds.
"""
from __future__ import annotations

import asyncio
import contextlib
import hmac
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

from aiohttp import WSCloseCode, WSMsgType, web

from webbot.adapters.events import (
    AgentEvent,
    DoneEvent,
    ErrorEvent,
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
    event_to_dict,
)
from webbot.engine.errors import InvalidInputError, NotFoundError, UnauthorizedError, WebBotError
from webbot.engine.tools.file_tools import MutationPlan, plan_mutation, read_text
from webbot.engine.tools.line_diff import split_lines
from webbot.engine.tools.registry import ToolContext, ToolKind, is_error_result
from webbot.gateway.context import GatewayContext
from webbot.gateway.session_registry import validate_session_id
from webbot.shared.models.message import ImageContent, Message, MessageRole, ToolCall
from webbot.shared.models.session import DEFAULT_SESSION_ID, SYSTEM_SESSION_ID, Session

logger = logging.getLogger(__name__)

POLICY_VIOLATION = WSCloseCode.POLICY_VIOLATION  # 1008
UNKNOWN_FRAME_ID = "unknown"

RequestHandler = Callable[["_Connection", dict[str, Any]], Awaitable[Any]]


@dataclass
class _Connection:
    id: str
    ws: web.WebSocketResponse
    session_id: str = DEFAULT_SESSION_ID


@dataclass
class _PendingAudit:
    """Bookkeeping between a destructive tool.call and its tool.result."""
    plan: MutationPlan
    lock_keys: list[str]
    snapshot_id: str | None
    previous_lines: int | None
    released: bool = False


def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def _count_lines(path: Path) -> int | None:
    if not path.is_file():
        return None
    try:
        return len(split_lines(read_text(path)))
    except (OSError, UnicodeDecodeError):
        return None


def _optional_str(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise InvalidInputError(f"{key} must be a string")
    return value


def _required_str(params: dict[str, Any], key: str) -> str:
    value = _optional_str(params, key)
    if value is None:
        raise InvalidInputError(f"{key} is required")
    return value


def _optional_int(params: dict[str, Any], key: str, default: int) -> int:
    value = params.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInputError(f"{key} must be a non-negative integer")
    return value


def _parse_images(raw: Any) -> list[ImageContent]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidInputError("images must be a list")
    images: list[ImageContent] = []
    for item in raw:
        if not isinstance(item, dict):
            raise InvalidInputError("each image must be an object")
        kind = item.get("type", "base64")
        data = item.get("data")
        if kind not in ("base64", "url") or not isinstance(data, str) or not data:
            raise InvalidInputError("image needs type 'base64' or 'url' and non-empty data")
        media_type = item.get("mediaType")
        images.append(ImageContent(
            type=kind,
            data=data,
            media_type=media_type if isinstance(media_type, str) else None,
        ))
    return images


def _message_to_wire(msg: Message) -> dict[str, Any]:
    d: dict[str, Any] = {
        "id": msg.id,
        "role": msg.role.value,
        "content": msg.content,
        "timestamp": msg.timestamp.isoformat(),
    }
    if msg.images:
        d["images"] = [
            {"type": img.type, "data": img.data, "mediaType": img.media_type}
            for img in msg.images
        ]
    if msg.tool_calls:
        d["toolCalls"] = [{"id": tc.id, "name": tc.name, "input": tc.input} for tc in msg.tool_calls]
    if msg.tool_results:
        d["toolResults"] = list(msg.tool_results)
    return d


def _session_summary(session: Session, busy: bool) -> dict[str, Any]:
    return {
        "id": session.id,
        "messageCount": session.message_count,
        "createdAt": session.created_at.isoformat(),
        "updatedAt": session.updated_at.isoformat(),
        "busy": busy,
    }


class GatewayServer:
    """WebSocket gateway over a ``GatewayContext``."""

    def __init__(self, context: GatewayContext) -> None:
        self._ctx = context
        self._config = context.config
        self._connections: dict[str, _Connection] = {}
        self._tasks: set[asyncio.Task] = set()
        self._started_at = time.time()
        self._closing = False
        self._app = web.Application(middlewares=[self._request_logging_middleware])
        self._app.on_shutdown.append(self._on_app_shutdown)
        self._methods: dict[str, RequestHandler] = {
            "chat.send": self._chat_send,
            "session.list": self._session_list,
            "session.get": self._session_get,
            "session.clear": self._session_clear,
            "session.delete": self._session_delete,
            "file.read": self._file_read,
            "file.write": self._file_write,
            "file.list": self._file_list,
            "snapshot.list": self._snapshot_list,
            "snapshot.rollback": self._snapshot_rollback,
            "snapshot.diff": self._snapshot_diff,
            "snapshot.content": self._snapshot_content,
            "changelog.list": self._changelog_list,
            "changelog.clear": self._changelog_clear,
            "ping": self._ping,
        }
        self._setup_routes()
        logger.info(
            "GatewayServer init host=%s port=%s workspace=%s auth=%s heartbeat=%ss",
            self._config.host, self._config.port, context.workspace,
            "on" if self._config.auth_token else "off", self._config.heartbeat_seconds,
        )

    @property
    def app(self) -> web.Application:
        return self._app

    @property
    def context(self) -> GatewayContext:
        return self._ctx

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        logger.info("HTTP %s %s req=%s from=%s", request.method, request.path, req_id, request.remote)
        try:
            response = await handler(request)
            logger.info(
                "HTTP %s %s req=%s status=%s duration_ms=%.1f",
                request.method, request.path, req_id,
                getattr(response, "status", "?"), (time.monotonic() - start) * 1000,
            )
            return response
        except Exception:
            logger.exception(
                "HTTP %s %s req=%s failed duration_ms=%.1f",
                request.method, request.path, req_id, (time.monotonic() - start) * 1000,
            )
            raise

    # ── Route setup ──

    def _setup_routes(self) -> None:
        r = self._app.router
        r.add_get("/", self._handle_ws)
        r.add_get("/ws", self._handle_ws)
        r.add_get("/health", self._handle_health)

    # ── Lifecycle ──

    async def run(self) -> None:
        """Serve until cancelled, then shut down cleanly."""
        runner = web.AppRunner(self._app)
        await runner.setup()
        site = web.TCPSite(runner, self._config.host, self._config.port)
        await site.start()
        logger.info("WebBot gateway listening on ws://%s:%d/ws", self._config.host, self._config.port)
        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Gateway shutting down")
        finally:
            # cleanup() fires on_shutdown, which calls shutdown().
            await runner.cleanup()

    async def _on_app_shutdown(self, app: web.Application) -> None:
        await self.shutdown()

    async def shutdown(self) -> None:
        """Drain in-flight requests, persist state and close every socket."""
        if self._closing:
            return
        self._closing = True
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            grace = max(0.0, self._config.shutdown_grace_seconds)
            logger.info("Waiting up to %.1fs for %d in-flight request(s)", grace, len(pending))
            _, still_running = await asyncio.wait(pending, timeout=grace)
            for task in still_running:
                task.cancel()
            if still_running:
                logger.warning("Cancelled %d request(s) still running after grace period", len(still_running))
                await asyncio.gather(*still_running, return_exceptions=True)
        for conn in list(self._connections.values()):
            if not conn.ws.closed:
                await conn.ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
        self._connections.clear()
        await self._ctx.close()
        logger.info("Gateway shutdown complete")

    # ── HTTP handlers ──

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "connections": len(self._connections),
            "sessions": len(self._ctx.sessions),
            "busySessions": sorted(self._ctx.sessions.busy_sessions),
            "uptimeSeconds": round(max(0.0, time.time() - self._started_at), 3),
        })

    def _authorize(self, request: web.Request) -> None:
        expected = self._config.auth_token
        if not expected:
            return
        supplied = request.query.get("token", "")
        if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
            raise UnauthorizedError("Missing or invalid token")

    async def _handle_ws(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse(heartbeat=self._config.heartbeat_seconds or None)
        if not ws.can_prepare(request).ok:
            return web.json_response({"service": "webbot", "websocket": "/ws"})
        await ws.prepare(request)

        try:
            self._authorize(request)
        except UnauthorizedError as exc:
            logger.warning("Rejected WebSocket connection from %s: %s", request.remote, exc)
            await ws.close(code=POLICY_VIOLATION, message=str(exc).encode("utf-8"))
            return ws
        if self._closing:
            await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutting down")
            return ws

        conn = _Connection(id=str(uuid.uuid4()), ws=ws)
        self._connections[conn.id] = conn
        logger.info("Client connected: %s from=%s active=%d", conn.id, request.remote, len(self._connections))
        await self._send_event(conn, "connected", {"connectionId": conn.id})

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    self._spawn(self._handle_frame(conn, msg.data))
                elif msg.type == WSMsgType.BINARY:
                    await self._send_error(conn, UNKNOWN_FRAME_ID, InvalidInputError("Binary frames are not supported"))
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("WebSocket error on %s: %s", conn.id, ws.exception())
        finally:
            self._connections.pop(conn.id, None)
            logger.info(
                "Client disconnected: %s close_code=%s active=%d",
                conn.id, ws.close_code, len(self._connections),
            )
        return ws

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # ── Outbound frames ──

    async def _send(self, conn: _Connection, payload: dict[str, Any]) -> None:
        if conn.ws.closed:
            logger.debug("Dropping frame for closed connection %s", conn.id)
            return
        try:
            await conn.ws.send_str(_dumps(payload))
        except (ConnectionResetError, RuntimeError) as exc:
            logger.debug("Send to %s failed: %s", conn.id, exc)

    async def _send_event(self, conn: _Connection, event: str, data: Any) -> None:
        await self._send(conn, {"event": event, "data": data})

    async def _send_chat(self, conn: _Connection, session_id: str, event: AgentEvent) -> None:
        await self._send_event(conn, "chat", event_to_dict(event, session_id))

    async def _send_error(self, conn: _Connection, frame_id: str, exc: WebBotError | str) -> None:
        if isinstance(exc, WebBotError):
            error = {"message": str(exc), "code": exc.code}
        else:
            error = {"message": exc}
        await self._send(conn, {"id": frame_id, "error": error})

    async def _broadcast(self, event: str, data: Any) -> None:
        for conn in list(self._connections.values()):
            await self._send_event(conn, event, data)

    # ── Dispatch ──

    async def _handle_frame(self, conn: _Connection, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except ValueError:
            await self._send_error(conn, UNKNOWN_FRAME_ID, InvalidInputError("Malformed JSON frame"))
            return
        frame_id = frame.get("id") if isinstance(frame, dict) else None
        method = frame.get("method") if isinstance(frame, dict) else None
        if not isinstance(frame_id, str) or not frame_id or not isinstance(method, str) or not method:
            reply_id = frame_id if isinstance(frame_id, str) and frame_id else UNKNOWN_FRAME_ID
            await self._send_error(conn, reply_id, InvalidInputError("Invalid request frame"))
            return

        start = time.monotonic()
        outcome = "ok"
        try:
            handler = self._methods.get(method)
            if handler is None:
                raise InvalidInputError(f"Unknown method: {method}")
            params = frame.get("params")
            if params is None:
                params = {}
            if not isinstance(params, dict):
                raise InvalidInputError("params must be an object")
            result = await handler(conn, params)
        except WebBotError as exc:
            outcome = exc.code
            logger.info("Request %s id=%s failed: %s", method, frame_id, exc)
            await self._send_error(conn, frame_id, exc)
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        except Exception as exc:
            outcome = "internal"
            logger.exception("Request %s id=%s crashed", method, frame_id)
            await self._send_error(conn, frame_id, f"Internal error: {exc}")
        else:
            await self._send(conn, {"id": frame_id, "result": result})
        finally:
            logger.info(
                "Request %s id=%s conn=%s outcome=%s duration_ms=%.1f",
                method, frame_id, conn.id, outcome, (time.monotonic() - start) * 1000,
            )

    # ── Audit around destructive tools ──

    async def _before_tool(self, tool_name: str, tool_input: Any, session_id: str) -> _PendingAudit | None:
        """Lock and snapshot the target of a destructive call.

        Calls the tool will refuse (bad path, protected file, malformed
        arguments) get neither a lock nor a snapshot.
        """
        kind = ToolKind.parse(tool_name)
        if kind is None or not kind.is_destructive:
            return None
        try:
            plan = plan_mutation(kind, tool_input, self._ctx.workspace)
        except WebBotError as exc:
            logger.info("No snapshot for refused %s session=%s: %s", tool_name, session_id, exc)
            return None

        keys = await self._ctx.path_locks.acquire(plan.lock_paths)
        try:
            previous_lines = _count_lines(plan.target) if kind is not ToolKind.FILE_RENAME else None
            snapshot = self._ctx.snapshots.save(
                session_id, plan.target, self._ctx.workspace, kind.snapshot_action,
            )
        except BaseException:
            self._ctx.path_locks.release(keys)
            raise
        return _PendingAudit(
            plan=plan,
            lock_keys=keys,
            snapshot_id=snapshot.id if snapshot else None,
            previous_lines=previous_lines,
        )

    def _release(self, audit: _PendingAudit) -> None:
        if not audit.released:
            audit.released = True
            self._ctx.path_locks.release(audit.lock_keys)

    def _after_tool(self, audit: _PendingAudit, output: Any, session_id: str) -> dict[str, Any] | None:
        """Record a successful mutation; returns the preview.reload payload."""
        try:
            if is_error_result(output):
                return None
            plan = audit.plan
            kind = plan.kind
            lines_changed: int | None = None
            new_path: str | None = None
            if kind is ToolKind.FILE_WRITE:
                new_lines = int(output.get("lines", 0))
                lines_changed = new_lines - (audit.previous_lines or 0)
                verb = "Created" if output.get("created") else "Updated"
                summary = f"{verb} {plan.path} ({new_lines} lines, {lines_changed:+d})"
            elif kind is ToolKind.FILE_DELETE:
                lines_changed = -(audit.previous_lines or 0)
                summary = f"Deleted {plan.path} ({output.get('deletedBytes', 0)} bytes)"
            else:
                new_path = plan.new_path
                summary = f"Renamed {plan.path} -> {new_path}"
            self._ctx.changelog.append(
                session_id=session_id,
                action=kind.change_action,
                file_path=plan.path,
                summary=summary,
                new_file_path=new_path,
                snapshot_id=audit.snapshot_id,
                lines_changed=lines_changed,
            )
            return {
                "filePath": new_path or plan.path,
                "sessionId": session_id,
                "action": kind.change_action,
            }
        finally:
            self._release(audit)

    # ── chat.send ──

    async def _chat_send(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        session_id = _optional_str(params, "sessionId") or conn.session_id
        content = params.get("content", "")
        if not isinstance(content, str):
            raise InvalidInputError("content must be a string")
        images = _parse_images(params.get("images"))
        if not content.strip() and not images:
            raise InvalidInputError("content must not be empty")

        with self._ctx.sessions.claim(session_id) as session:
            await self._run_turn(conn, session, Message(role=MessageRole.USER, content=content, images=images))
        return {"sessionId": session_id}

    async def _run_turn(self, conn: _Connection, session: Session, user_msg: Message) -> None:
        context = ToolContext(workspace=self._ctx.workspace, session_id=session.id)
        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        tool_results: list[dict[str, Any]] = []
        audits: dict[str, _PendingAudit] = {}
        failed = False
        logger.info("Turn start session=%s history=%d conn=%s", session.id, session.message_count, conn.id)
        try:
            events = self._ctx.runner.run([*session.messages, user_msg], context)
            async with contextlib.aclosing(events):
                async for event in events:
                    reload: dict[str, Any] | None = None
                    if isinstance(event, TextDelta):
                        text_parts.append(event.text)
                    elif isinstance(event, ToolCallEvent):
                        tool_calls.append(ToolCall(
                            id=event.tool_call_id, name=event.tool_name, input=event.tool_input,
                        ))
                        audit = await self._before_tool(event.tool_name, event.tool_input, session.id)
                        if audit is not None:
                            audits[event.tool_call_id] = audit
                    elif isinstance(event, ToolResultEvent):
                        tool_results.append({"toolCallId": event.tool_call_id, **event.tool_output})
                        audit = audits.pop(event.tool_call_id, None)
                        if audit is not None:
                            reload = self._after_tool(audit, event.tool_output, session.id)
                    elif isinstance(event, ErrorEvent):
                        failed = True
                    await self._send_chat(conn, session.id, event)
                    if reload is not None:
                        await self._broadcast("preview.reload", reload)
        except asyncio.CancelledError:
            failed = True
            await self._send_chat(conn, session.id, ErrorEvent(error="Turn cancelled: server shutting down", code="cancelled"))
            raise
        except Exception as exc:
            failed = True
            logger.exception("Turn crashed session=%s", session.id)
            await self._send_chat(conn, session.id, ErrorEvent(error=f"Internal error: {exc}", code="internal"))
        finally:
            for audit in audits.values():
                self._release(audit)
            session.append(
                user_msg,
                Message(
                    role=MessageRole.ASSISTANT,
                    content="".join(text_parts),
                    tool_calls=tool_calls,
                    tool_results=tool_results,
                ),
            )
            try:
                self._ctx.sessions.save(session)
            except OSError:
                logger.exception("Failed to persist session %s", session.id)
            logger.info(
                "Turn end session=%s tools=%d failed=%s", session.id, len(tool_calls), failed,
            )
        if not failed:
            await self._send_chat(conn, session.id, DoneEvent())

    # ── session.* ──

    async def _session_list(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        registry = self._ctx.sessions
        return {"sessions": [_session_summary(s, registry.is_busy(s.id)) for s in registry.list()]}

    async def _session_get(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        session = self._ctx.sessions.require(_required_str(params, "sessionId"))
        data = _session_summary(session, self._ctx.sessions.is_busy(session.id))
        data["messages"] = [_message_to_wire(m) for m in session.messages]
        return data

    async def _session_clear(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        session_id = validate_session_id(_optional_str(params, "sessionId") or conn.session_id)
        if session_id not in self._ctx.sessions:
            return {"cleared": False, "sessionId": session_id}
        self._ctx.sessions.clear(session_id)
        return {"cleared": True, "sessionId": session_id}

    async def _session_delete(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        session_id = _required_str(params, "sessionId")
        self._ctx.sessions.delete(session_id)
        return {"deleted": True, "sessionId": session_id}

    # ── file.* (direct, outside any conversation) ──

    def _system_context(self) -> ToolContext:
        return ToolContext(workspace=self._ctx.workspace, session_id=SYSTEM_SESSION_ID)

    async def _file_read(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        return await self._ctx.tools.execute(ToolKind.FILE_READ.value, params, self._system_context())

    async def _file_list(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        return await self._ctx.tools.execute(ToolKind.FILE_LIST.value, params, self._system_context())

    async def _file_write(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        name = ToolKind.FILE_WRITE.value
        audit = await self._before_tool(name, params, SYSTEM_SESSION_ID)
        reload = None
        try:
            result = await self._ctx.tools.execute(name, params, self._system_context())
            if audit is not None:
                reload = self._after_tool(audit, result, SYSTEM_SESSION_ID)
        finally:
            if audit is not None:
                self._release(audit)
        if reload is not None:
            await self._broadcast("preview.reload", reload)
        return result

    # ── snapshot.* ──

    async def _snapshot_list(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        entries = self._ctx.snapshots.list(_optional_str(params, "sessionId"))
        return {"snapshots": [e.to_wire() for e in entries]}

    async def _snapshot_rollback(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        snapshot_id = _required_str(params, "snapshotId")
        entry = self._ctx.snapshots.get(snapshot_id)
        if entry is None:
            raise NotFoundError("Snapshot", snapshot_id)
        target = self._ctx.snapshots.restore_target(entry)
        async with self._ctx.path_locks.hold([target]):
            previous_lines = _count_lines(target) or 0
            result = self._ctx.snapshots.rollback(snapshot_id)
            if not result.get("success"):
                return result
            restored_lines = _count_lines(target) or 0
            self._ctx.changelog.append(
                session_id=entry.session_id,
                action="write",
                file_path=entry.file_path,
                summary=f"Rolled back {entry.file_path} to snapshot {snapshot_id}",
                snapshot_id=snapshot_id,
                lines_changed=restored_lines - previous_lines,
            )
        await self._broadcast("preview.reload", {
            "filePath": entry.file_path,
            "sessionId": entry.session_id,
            "action": "rollback",
        })
        return result

    async def _snapshot_diff(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        return self._ctx.snapshots.diff(_required_str(params, "snapshotId"))

    async def _snapshot_content(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        snapshot_id = _required_str(params, "snapshotId")
        entry = self._ctx.snapshots.get(snapshot_id)
        content = self._ctx.snapshots.get_content(snapshot_id) if entry else None
        if entry is None or content is None:
            raise NotFoundError("Snapshot", snapshot_id)
        return {"snapshot": entry.to_wire(), "content": content.decode("utf-8", errors="replace")}

    # ── changelog.* ──

    async def _changelog_list(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        page = self._ctx.changelog.list(
            session_id=_optional_str(params, "sessionId"),
            limit=_optional_int(params, "limit", 50),
            offset=_optional_int(params, "offset", 0),
        )
        return {"entries": [e.to_wire() for e in page["entries"]], "total": page["total"]}

    async def _changelog_clear(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        session_id = _optional_str(params, "sessionId")
        cleared = self._ctx.changelog.clear(session_id)
        snapshots_cleared = self._ctx.snapshots.clear(session_id)
        return {"cleared": cleared, "snapshotsCleared": snapshots_cleared}

    async def _ping(self, conn: _Connection, params: dict[str, Any]) -> dict[str, Any]:
        return {"pong": True, "timestamp": datetime.now(timezone.utc).isoformat()}
