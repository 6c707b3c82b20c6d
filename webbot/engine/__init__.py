"""WebBot engine — configuration, errors, the agent runner and its tools."""
from .config import GatewayConfig
from .errors import (
    BackendError,
    ConfigError,
    InvalidInputError,
    InvalidRangeError,
    NotFoundError,
    PathEscapeError,
    ProtectedError,
    SessionBusyError,
    UnauthorizedError,
    WebBotError,
)

__all__ = [
    "GatewayConfig",
    "BackendError",
    "ConfigError",
    "InvalidInputError",
    "InvalidRangeError",
    "NotFoundError",
    "PathEscapeError",
    "ProtectedError",
    "SessionBusyError",
    "UnauthorizedError",
    "WebBotError",
]
