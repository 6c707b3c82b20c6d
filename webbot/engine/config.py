"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via WEBBOT_* env vars,
a YAML file (see ``yaml_config``) or CLI flags, in that order.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_URLS = {
    "openai": "https://api.openai.com/v1",
    "deepseek": "https://api.deepseek.com",
}
FALLBACK_API_KEY_ENV = "DEEPSEEK_API_KEY"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer (using %d)", name, raw, default)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number (using %s)", name, raw, default)
        return default


@dataclass
class GatewayConfig:
    """WebBot gateway configuration."""

    # Listener
    host: str = "127.0.0.1"
    port: int = 8080
    # Shared-secret token checked against the ?token= query parameter.
    # None disables authentication.
    auth_token: str | None = None
    # WebSocket ping interval; a connection that misses a pong is closed.
    heartbeat_seconds: float = 30.0
    shutdown_grace_seconds: float = 10.0

    # Workspace and durable state
    workspace: str = "."
    data_dir: str = "~/.webbot"
    # 0 disables the cap.
    snapshot_retention: int = 1000
    changelog_retention: int = 5000

    # Inference backend
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    api_key_env: str = "OPENAI_API_KEY"
    max_tokens: int = 4096
    max_context_messages: int = 40
    max_tool_rounds: int = 25
    # Set to 0 (or a negative value) to disable timeout.
    backend_timeout_seconds: float = 0.0
    # None means the built-in prompt.
    system_prompt: str | None = None

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> GatewayConfig:
        """Load configuration from WEBBOT_* environment variables."""
        webbot_vars = {
            k: ("***" if k == "WEBBOT_AUTH_TOKEN" else v)
            for k, v in os.environ.items() if k.startswith("WEBBOT_")
        }
        if webbot_vars:
            logger.info(
                "GatewayConfig.from_env: WEBBOT_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(webbot_vars.items())),
            )
        else:
            logger.debug("GatewayConfig.from_env: no WEBBOT_* env vars set, using defaults")

        config = cls(
            host=os.getenv("WEBBOT_HOST", cls.host),
            port=_env_int("WEBBOT_PORT", cls.port),
            auth_token=os.getenv("WEBBOT_AUTH_TOKEN") or None,
            heartbeat_seconds=_env_float("WEBBOT_HEARTBEAT", cls.heartbeat_seconds),
            shutdown_grace_seconds=_env_float("WEBBOT_SHUTDOWN_GRACE", cls.shutdown_grace_seconds),
            workspace=os.getenv("WEBBOT_WORKSPACE", cls.workspace),
            data_dir=os.getenv("WEBBOT_DATA_DIR", cls.data_dir),
            snapshot_retention=_env_int("WEBBOT_SNAPSHOT_RETENTION", cls.snapshot_retention),
            changelog_retention=_env_int("WEBBOT_CHANGELOG_RETENTION", cls.changelog_retention),
            provider=os.getenv("WEBBOT_PROVIDER", cls.provider).lower(),
            model=os.getenv("WEBBOT_MODEL", cls.model),
            base_url=os.getenv("WEBBOT_BASE_URL") or None,
            api_key_env=os.getenv("WEBBOT_API_KEY_ENV", cls.api_key_env),
            max_tokens=_env_int("WEBBOT_MAX_TOKENS", cls.max_tokens),
            max_context_messages=_env_int("WEBBOT_MAX_CONTEXT", cls.max_context_messages),
            max_tool_rounds=_env_int("WEBBOT_MAX_TOOL_ROUNDS", cls.max_tool_rounds),
            backend_timeout_seconds=_env_float("WEBBOT_BACKEND_TIMEOUT", cls.backend_timeout_seconds),
            log_level=os.getenv("WEBBOT_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "GatewayConfig.from_env: provider=%s model=%s workspace=%s log_level=%s",
            config.provider, config.model, config.workspace, config.log_level,
        )
        return config

    @property
    def workspace_path(self) -> Path:
        return Path(self.workspace).expanduser().resolve()

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def sessions_dir(self) -> Path:
        return self.data_path / "sessions"

    @property
    def snapshots_dir(self) -> Path:
        return self.data_path / "snapshots"

    @property
    def changelog_path(self) -> Path:
        return self.data_path / "changelog.json"

    @property
    def log_dir(self) -> Path:
        return self.data_path / "logs"

    def resolve_api_key(self) -> str | None:
        return os.getenv(self.api_key_env) or os.getenv(FALLBACK_API_KEY_ENV) or None

    def resolved_base_url(self) -> str:
        if self.base_url:
            return self.base_url
        return DEFAULT_PROVIDER_URLS.get(self.provider, DEFAULT_PROVIDER_URLS["openai"])
