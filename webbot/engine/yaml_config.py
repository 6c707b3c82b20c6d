"""YAML configuration loader.

Layers a YAML file on top of an env-derived ``GatewayConfig``. When no
file is given or discovered, env vars and CLI flags work on their own.

Example YAML:
    server:
      host: 0.0.0.0
      port: 8080
      auth_token: change-me
      heartbeat_seconds: 30

    agent:
      provider: deepseek
      model: deepseek-chat
      api_key_env: DEEPSEEK_API_KEY
      max_context_messages: 40
      system_prompt: |
        You are a careful web developer...

    storage:
      workspace: ./site
      data_dir: ~/.webbot
      snapshot_retention: 1000
      changelog_retention: 5000
"""
from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

import yaml

from .config import GatewayConfig
from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "webbot.yaml"

# Which GatewayConfig fields each YAML section may set.
_SECTIONS: dict[str, frozenset[str]] = {
    "server": frozenset({
        "host", "port", "auth_token", "heartbeat_seconds",
        "shutdown_grace_seconds", "log_level",
    }),
    "agent": frozenset({
        "provider", "model", "base_url", "api_key_env", "max_tokens",
        "max_context_messages", "max_tool_rounds",
        "backend_timeout_seconds", "system_prompt",
    }),
    "storage": frozenset({
        "workspace", "data_dir", "snapshot_retention", "changelog_retention",
    }),
}

_FIELD_TYPES = {f.name: f.type for f in dataclasses.fields(GatewayConfig)}


def _coerce(section: str, key: str, value: Any) -> Any:
    """Check a YAML scalar against the field's declared type."""
    declared = str(_FIELD_TYPES[key])
    if value is None:
        if "None" in declared:
            return None
        raise ConfigError(f"{section}.{key} must not be empty")
    if declared.startswith("int"):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{section}.{key} must be an integer, got {value!r}")
        return value
    if declared.startswith("float"):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{section}.{key} must be a number, got {value!r}")
        return float(value)
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be a string, got {value!r}")
    return str(value)


def find_default_config(cwd: str | Path | None = None) -> Path | None:
    """Return ``./webbot.yaml`` if it exists."""
    candidate = Path(cwd or Path.cwd()) / DEFAULT_CONFIG_NAME
    return candidate if candidate.is_file() else None


def load_yaml_config(path: str | Path, base: GatewayConfig | None = None) -> GatewayConfig:
    """Load a YAML config file and apply it on top of ``base``.

    ``base`` defaults to ``GatewayConfig.from_env()``. Unknown sections
    and keys are logged and ignored.
    """
    path = Path(path)
    logger.info("load_yaml_config: loading %s (exists=%s)", path, path.exists())
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        logger.error("load_yaml_config: config file not found at %s", path.absolute())
        raise ConfigError(f"Config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        logger.error("load_yaml_config: YAML parse error in %s: %s", path, exc)
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: top level must be a mapping, got {type(raw).__name__}")

    config = base if base is not None else GatewayConfig.from_env()
    overrides: dict[str, Any] = {}
    for section, body in raw.items():
        allowed = _SECTIONS.get(section)
        if allowed is None:
            logger.warning("load_yaml_config: ignoring unknown section '%s' in %s", section, path.name)
            continue
        if body is None:
            continue
        if not isinstance(body, dict):
            raise ConfigError(f"{path}: section '{section}' must be a mapping")
        for key, value in body.items():
            if key not in allowed:
                logger.warning("load_yaml_config: ignoring unknown key '%s.%s'", section, key)
                continue
            overrides[key] = _coerce(section, key, value)

    if "provider" in overrides:
        overrides["provider"] = overrides["provider"].lower()
    logger.info(
        "Parsed YAML config %s — overrides: %s",
        path.name, ", ".join(sorted(k for k in overrides if k != "auth_token")) or "(none)",
    )
    return dataclasses.replace(config, **overrides)
