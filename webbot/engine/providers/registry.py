"""Provider registry — maps provider names to backend factories."""
from __future__ import annotations

import logging
from typing import Callable

from webbot.engine.config import DEFAULT_PROVIDER_URLS, GatewayConfig
from webbot.engine.errors import ConfigError
from .base import ChatBackend
from .openai_provider import OpenAIChatBackend

logger = logging.getLogger(__name__)


def _build_openai_compatible(config: GatewayConfig) -> ChatBackend:
    api_key = config.resolve_api_key()
    if not api_key:
        logger.warning(
            "No API key found in %s; backend requests will be unauthenticated",
            config.api_key_env,
        )
    return OpenAIChatBackend(
        api_key=api_key,
        model=config.model,
        base_url=config.resolved_base_url(),
        max_tokens=config.max_tokens,
        timeout_seconds=config.backend_timeout_seconds,
        provider_name=config.provider,
    )


_FACTORIES: dict[str, Callable[[GatewayConfig], ChatBackend]] = {
    name: _build_openai_compatible for name in DEFAULT_PROVIDER_URLS
}


def list_providers() -> list[str]:
    return sorted(_FACTORIES)


def build_backend(config: GatewayConfig) -> ChatBackend:
    """Instantiate the backend named by ``config.provider``."""
    factory = _FACTORIES.get(config.provider)
    if factory is None:
        raise ConfigError(
            f"Unknown provider '{config.provider}'. "
            f"Available: {', '.join(list_providers())}"
        )
    backend = factory(config)
    logger.info(
        "Backend ready: provider=%s model=%s base_url=%s",
        config.provider, config.model, config.resolved_base_url(),
    )
    return backend
