"""WebBot CLI — main application entry point."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import uuid
from logging.handlers import RotatingFileHandler
from pathlib import Path

from webbot import __version__

logger = logging.getLogger(__name__)


def _setup_server_logging(log_dir: Path, level: str) -> Path:
    """Root logger -> rotating file under ``log_dir`` plus stderr."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "webbot.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    return log_file


def _build_config(args):
    from webbot.engine.config import GatewayConfig
    from webbot.engine.yaml_config import find_default_config, load_yaml_config

    config = GatewayConfig.from_env()
    config_path = args.config
    if config_path:
        logger.info("Using explicit config path: %s", config_path)
    else:
        discovered = find_default_config()
        if discovered is not None:
            config_path = str(discovered)
            logger.info("Auto-discovered config: %s", config_path)
        else:
            logger.info("No webbot.yaml in %s; using env and defaults", Path.cwd())
    if config_path:
        config = load_yaml_config(config_path, base=config)

    # CLI flags win over env and YAML.
    flag_overrides = {
        "host": args.host,
        "port": args.port,
        "workspace": args.workspace,
        "model": args.model,
        "provider": args.provider,
        "base_url": args.base_url,
        "auth_token": args.token,
        "data_dir": args.data_dir,
    }
    for key, value in flag_overrides.items():
        if value is not None:
            setattr(config, key, value)
    if args.verbose:
        config.log_level = "DEBUG"
    return config


def _cmd_serve(args) -> int:
    from webbot.engine.errors import ConfigError
    from webbot.gateway.context import GatewayContext
    from webbot.gateway.server import GatewayServer

    try:
        config = _build_config(args)
    except ConfigError as exc:
        print(f"webbot: {exc}", file=sys.stderr)
        return 2

    log_file = _setup_server_logging(config.log_dir, config.log_level)
    logger.info(
        "Starting WebBot %s host=%s port=%s workspace=%s provider=%s model=%s log=%s",
        __version__, config.host, config.port, config.workspace_path,
        config.provider, config.model, log_file,
    )
    try:
        context = GatewayContext.from_config(config)
    except ConfigError as exc:
        logger.error("Refusing to start: %s", exc)
        return 2
    server = GatewayServer(context)
    try:
        asyncio.run(server.run())
    except KeyboardInterrupt:
        pass
    return 0


async def _chat_once(url: str, message: str, session_id: str | None, token: str | None = None) -> int:
    import aiohttp

    frame_id = str(uuid.uuid4())[:8]
    params = {"content": message}
    if session_id:
        params["sessionId"] = session_id
    exit_code = 1
    async with aiohttp.ClientSession() as http:
        async with http.ws_connect(url, params={"token": token} if token else None) as ws:
            await ws.send_str(json.dumps({"id": frame_id, "method": "chat.send", "params": params}))
            async for msg in ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    break
                frame = json.loads(msg.data)
                if frame.get("id") == frame_id:
                    if "error" in frame:
                        print(f"\nerror: {frame['error'].get('message')}", file=sys.stderr)
                        exit_code = 1
                    break
                if frame.get("event") != "chat":
                    continue
                data = frame.get("data") or {}
                kind = data.get("type")
                if kind == "text.delta":
                    sys.stdout.write(data.get("text", ""))
                    sys.stdout.flush()
                elif kind == "tool.call":
                    print(f"\n[tool] {data.get('toolName')} {json.dumps(data.get('toolInput'), ensure_ascii=False)}")
                elif kind == "tool.result" and (data.get("toolOutput") or {}).get("error"):
                    print(f"[tool error] {data['toolOutput']['error']}")
                elif kind == "error":
                    print(f"\nerror: {data.get('error')}", file=sys.stderr)
                    exit_code = 1
                elif kind == "done":
                    print()
                    exit_code = 0
        if ws.close_code is not None and ws.close_code != 1000 and exit_code != 0:
            print(f"connection closed (code {ws.close_code})", file=sys.stderr)
    return exit_code


def _cmd_chat(args) -> int:
    import aiohttp

    try:
        return asyncio.run(_chat_once(args.url, args.message, args.session, args.token))
    except aiohttp.ClientError as exc:
        print(f"webbot: cannot reach gateway at {args.url}: {exc}", file=sys.stderr)
        return 1


def main(argv: list[str] | None = None) -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="webbot",
        description="WebBot — a conversational agent that edits a website workspace",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the WebSocket gateway")
    serve.add_argument("--host", help="Listen address (default 127.0.0.1)")
    serve.add_argument("--port", type=int, help="Listen port (default 8080)")
    serve.add_argument("--workspace", metavar="DIR", help="Website project root")
    serve.add_argument("--data-dir", dest="data_dir", metavar="DIR", help="Sessions, snapshots and logs")
    serve.add_argument("--config", metavar="PATH", help="YAML config file (default ./webbot.yaml)")
    serve.add_argument("--model", help="Model name passed to the backend")
    serve.add_argument("--provider", choices=["openai", "deepseek"], help="Inference provider")
    serve.add_argument("--base-url", dest="base_url", help="Override the provider endpoint")
    serve.add_argument("--token", help="Require ?token=... on WebSocket connections")
    serve.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    chat = sub.add_parser("chat", help="Send one message to a running gateway")
    chat.add_argument("message", help="Message text")
    chat.add_argument("--url", default="ws://127.0.0.1:8080/ws", help="Gateway WebSocket URL")
    chat.add_argument("--session", help="Session id (default: main)")
    chat.add_argument("--token", help="Auth token")

    sub.add_parser("version", help="Print the version and exit")

    args = parser.parse_args(argv)
    if args.command == "serve":
        sys.exit(_cmd_serve(args))
    if args.command == "chat":
        logging.basicConfig(level=logging.WARNING)
        sys.exit(_cmd_chat(args))
    if args.command == "version":
        print(f"webbot {__version__}")
        sys.exit(0)
    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
