"""Workspace sandbox: path resolution and the sensitive-file policy.

Every tool resolves caller-supplied paths here before touching the
filesystem. Nothing in the tool set joins paths by hand.
"""
from __future__ import annotations

import os
import re
from pathlib import Path, PurePosixPath

from webbot.engine.errors import InvalidInputError, PathEscapeError, ProtectedError

PROTECTED_FILE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\.env", re.IGNORECASE),
    re.compile(r"\.key$", re.IGNORECASE),
    re.compile(r"\.pem$", re.IGNORECASE),
    re.compile(r"credential", re.IGNORECASE),
    re.compile(r"secret", re.IGNORECASE),
    re.compile(r"password", re.IGNORECASE),
)

PROTECTED_DIRS: frozenset[str] = frozenset({"node_modules", ".git"})


def resolve_workspace_path(workspace: str | Path, rel_path: object, *, label: str = "Path") -> Path:
    """Resolve ``rel_path`` against ``workspace`` and refuse escapes.

    The workspace root itself is allowed (listing "."). Symlinks are
    followed on both sides, so a link pointing outside the root is an
    escape too.
    """
    if not isinstance(rel_path, str) or not rel_path.strip():
        raise InvalidInputError(f"{label} must be a non-empty string")
    if "\x00" in rel_path:
        raise InvalidInputError(f"{label} contains a NUL byte")
    root = os.path.realpath(workspace)
    resolved = os.path.realpath(os.path.join(root, rel_path))
    if not _within(root, resolved):
        raise PathEscapeError(rel_path, label)
    return Path(resolved)


def _within(root: str, resolved: str) -> bool:
    return resolved == root or resolved.startswith(root.rstrip(os.sep) + os.sep)


def is_inside_workspace(workspace: str | Path, path: str | Path) -> bool:
    """True when ``path`` still lands under the workspace once symlinks are followed."""
    return _within(os.path.realpath(workspace), os.path.realpath(path))


def workspace_relative(workspace: str | Path, abs_path: str | Path) -> str:
    """Posix-style path of ``abs_path`` relative to the workspace root."""
    rel = os.path.relpath(os.path.realpath(abs_path), os.path.realpath(workspace))
    return PurePosixPath(*Path(rel).parts).as_posix()


def is_protected_file(path: str | Path) -> bool:
    name = Path(path).name
    return any(p.search(name) for p in PROTECTED_FILE_PATTERNS)


def in_protected_dir(rel_path: str) -> bool:
    parts = re.split(r"[\\/]+", rel_path)
    return any(part in PROTECTED_DIRS for part in parts)


def check_writable(rel_path: str) -> None:
    if is_protected_file(rel_path):
        raise ProtectedError(rel_path, "file")


def check_deletable(rel_path: str) -> None:
    check_writable(rel_path)
    if in_protected_dir(rel_path):
        raise ProtectedError(rel_path, "directory")
