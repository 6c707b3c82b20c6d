"""Exception hierarchy for the WebBot core.

Each failure mode has its own class and a stable ``code`` string that
is carried into tool results and response frames. Tool handlers raise
these; the tool boundary and the gateway turn them into payloads.
"""
from __future__ import annotations


class WebBotError(Exception):
    """Base exception for all expected WebBot failures."""

    code = "error"


class PathEscapeError(WebBotError):
    """A caller-supplied path resolves outside the workspace root."""

    code = "path_escape"

    def __init__(self, path: str, label: str = "Path"):
        self.path = path
        super().__init__(f"{label} escapes the workspace: {path}")


class NotFoundError(WebBotError):
    """Missing file, directory, session or snapshot."""

    code = "not_found"

    def __init__(self, what: str, ref: str):
        self.what = what
        self.ref = ref
        super().__init__(f"{what} not found: {ref}")


class ProtectedError(WebBotError):
    """Operation denied by the sensitive-file policy."""

    code = "protected"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Refusing to touch protected {reason}: {path}")


class InvalidInputError(WebBotError):
    """Malformed tool arguments or request parameters."""

    code = "invalid_input"


class InvalidRangeError(InvalidInputError):
    """A requested line range is empty after clamping."""

    code = "invalid_range"

    def __init__(self, start: int, end: int, total: int):
        self.start = start
        self.end = end
        self.total = total
        super().__init__(
            f"Invalid line range {start}-{end} (file has {total} lines)"
        )


class SessionBusyError(WebBotError):
    """Another turn is already running for this session."""

    code = "busy"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"Session {session_id} is busy; wait for the current message to finish"
        )


class BackendError(WebBotError):
    """The inference backend failed at the network or protocol level."""

    code = "backend_failure"

    def __init__(self, reason: str, status: int | None = None):
        self.reason = reason
        self.status = status
        super().__init__(reason)


class UnauthorizedError(WebBotError):
    """Connection token did not match the configured shared secret."""

    code = "unauthorized"


class ConfigError(WebBotError):
    """Configuration file missing or malformed."""

    code = "config"
