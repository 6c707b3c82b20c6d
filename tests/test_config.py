from __future__ import annotations

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from webbot.engine.config import GatewayConfig
from webbot.engine.errors import ConfigError
from webbot.engine.yaml_config import find_default_config, load_yaml_config


def _clean_env() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if not k.startswith("WEBBOT_")}


def test_defaults_without_env() -> None:
    with patch.dict(os.environ, _clean_env(), clear=True):
        config = GatewayConfig.from_env()
    assert config.host == "127.0.0.1"
    assert config.port == 8080
    assert config.auth_token is None
    assert config.provider == "openai"
    assert config.resolved_base_url() == "https://api.openai.com/v1"


def test_env_overrides() -> None:
    env = _clean_env()
    env.update({
        "WEBBOT_PORT": "9001",
        "WEBBOT_PROVIDER": "DeepSeek",
        "WEBBOT_AUTH_TOKEN": "s3cret",
        "WEBBOT_HEARTBEAT": "5.5",
        "WEBBOT_DATA_DIR": "/tmp/wb-data",
    })
    with patch.dict(os.environ, env, clear=True):
        config = GatewayConfig.from_env()
    assert config.port == 9001
    assert config.provider == "deepseek"
    assert config.auth_token == "s3cret"
    assert config.heartbeat_seconds == 5.5
    assert config.changelog_path == Path("/tmp/wb-data/changelog.json")
    assert config.snapshots_dir == Path("/tmp/wb-data/snapshots")
    assert config.resolved_base_url() == "https://api.deepseek.com"


def test_bad_numeric_env_falls_back_with_warning(caplog) -> None:
    env = _clean_env()
    env["WEBBOT_PORT"] = "eighty"
    with patch.dict(os.environ, env, clear=True), caplog.at_level(logging.WARNING):
        config = GatewayConfig.from_env()
    assert config.port == 8080
    assert "WEBBOT_PORT" in caplog.text


def test_auth_token_is_masked_in_logs(caplog) -> None:
    env = _clean_env()
    env["WEBBOT_AUTH_TOKEN"] = "do-not-log-me"
    with patch.dict(os.environ, env, clear=True), caplog.at_level(logging.DEBUG):
        GatewayConfig.from_env()
    assert "do-not-log-me" not in caplog.text


def test_explicit_base_url_wins() -> None:
    config = GatewayConfig(provider="deepseek", base_url="http://localhost:11434/v1")
    assert config.resolved_base_url() == "http://localhost:11434/v1"


def test_yaml_layers_over_base(tmp_path: Path) -> None:
    cfg = tmp_path / "webbot.yaml"
    cfg.write_text(
        "server:\n"
        "  port: 9100\n"
        "  heartbeat_seconds: 15\n"
        "agent:\n"
        "  provider: DEEPSEEK\n"
        "  model: deepseek-chat\n"
        "  system_prompt: |\n"
        "    Be brief.\n"
        "storage:\n"
        "  workspace: ./site\n"
        "  snapshot_retention: 10\n",
        encoding="utf-8",
    )
    base = GatewayConfig(host="0.0.0.0", model="base-model")
    config = load_yaml_config(cfg, base=base)
    assert config.host == "0.0.0.0"
    assert config.port == 9100
    assert config.heartbeat_seconds == 15.0
    assert config.provider == "deepseek"
    assert config.model == "deepseek-chat"
    assert config.system_prompt == "Be brief.\n"
    assert config.workspace == "./site"
    assert config.snapshot_retention == 10
    # base is not mutated
    assert base.port == 8080


def test_yaml_unknown_keys_are_ignored_with_warning(tmp_path: Path, caplog) -> None:
    cfg = tmp_path / "webbot.yaml"
    cfg.write_text("server:\n  colour: blue\nplugins:\n  - x\n", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        config = load_yaml_config(cfg, base=GatewayConfig())
    assert config == GatewayConfig()
    assert "colour" in caplog.text
    assert "plugins" in caplog.text


@pytest.mark.parametrize(
    "text, fragment",
    [
        ("server: [1, 2\n", "Invalid YAML"),
        ("- just\n- a list\n", "mapping"),
        ("server:\n  port: eighty\n", "integer"),
        ("server: 5\n", "section"),
        ("agent:\n  model:\n", "must not be empty"),
    ],
)
def test_yaml_errors(tmp_path: Path, text: str, fragment: str) -> None:
    cfg = tmp_path / "webbot.yaml"
    cfg.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError, match=fragment):
        load_yaml_config(cfg, base=GatewayConfig())


def test_missing_yaml_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_yaml_config(tmp_path / "absent.yaml", base=GatewayConfig())


def test_find_default_config(tmp_path: Path) -> None:
    assert find_default_config(tmp_path) is None
    (tmp_path / "webbot.yaml").write_text("{}\n", encoding="utf-8")
    assert find_default_config(tmp_path) == tmp_path / "webbot.yaml"
