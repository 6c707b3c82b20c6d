from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from aiohttp import test_utils, web

from webbot import __version__
from webbot.app import _build_config, _chat_once, _setup_server_logging, main


def _serve_args(**overrides) -> argparse.Namespace:
    values = dict(
        host=None, port=None, workspace=None, model=None, provider=None,
        base_url=None, token=None, data_dir=None, config=None, verbose=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if not k.startswith("WEBBOT_")}


def test_version_command(capsys) -> None:
    with pytest.raises(SystemExit) as info:
        main(["version"])
    assert info.value.code == 0
    assert capsys.readouterr().out.strip() == f"webbot {__version__}"


def test_no_command_prints_help(capsys) -> None:
    with pytest.raises(SystemExit) as info:
        main([])
    assert info.value.code == 2
    assert "serve" in capsys.readouterr().out


def test_flags_override_yaml_and_env(tmp_path: Path, monkeypatch) -> None:
    cfg = tmp_path / "custom.yaml"
    cfg.write_text("server:\n  port: 9100\nagent:\n  model: yaml-model\n", encoding="utf-8")
    env = _clean_env()
    env["WEBBOT_HOST"] = "0.0.0.0"
    monkeypatch.chdir(tmp_path)
    with patch.dict(os.environ, env, clear=True):
        config = _build_config(_serve_args(config=str(cfg), model="flag-model", verbose=True))
    assert config.host == "0.0.0.0"
    assert config.port == 9100
    assert config.model == "flag-model"
    assert config.log_level == "DEBUG"


def test_yaml_in_cwd_is_discovered(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "webbot.yaml").write_text("storage:\n  workspace: ./site\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    with patch.dict(os.environ, _clean_env(), clear=True):
        config = _build_config(_serve_args())
    assert config.workspace == "./site"


def test_serve_with_bad_config_exits_2(tmp_path: Path, capsys) -> None:
    with pytest.raises(SystemExit) as info:
        main(["serve", "--config", str(tmp_path / "missing.yaml")])
    assert info.value.code == 2
    assert "not found" in capsys.readouterr().err


def test_server_logging_writes_rotating_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        log_file = _setup_server_logging(tmp_path / "logs", "debug")
        logging.getLogger("webbot.test").info("hello log")
        for handler in root.handlers:
            handler.flush()
        assert log_file == tmp_path / "logs" / "webbot.log"
        assert "hello log" in log_file.read_text(encoding="utf-8")
        assert root.level == logging.DEBUG
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


@pytest.mark.asyncio
async def test_chat_sends_token_as_encoded_query_param(capsys) -> None:
    seen: dict = {}

    async def handler(request: web.Request) -> web.WebSocketResponse:
        seen["token"] = request.query.get("token")
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        frame = await ws.receive_json()
        seen["frame"] = frame
        data = {"sessionId": "main"}
        await ws.send_json({"event": "chat", "data": {**data, "type": "text.delta", "text": "hi"}})
        await ws.send_json({"event": "chat", "data": {**data, "type": "done"}})
        await ws.send_json({"id": frame["id"], "result": data})
        await ws.close()
        return ws

    app = web.Application()
    app.router.add_get("/ws", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        token = "a&b=c d#e?"
        code = await _chat_once(str(server.make_url("/ws")), "hello", "main", token)
    finally:
        await server.close()

    assert code == 0
    assert seen["token"] == token
    assert seen["frame"]["params"] == {"content": "hello", "sessionId": "main"}
    assert capsys.readouterr().out.startswith("hi")
