"""File tools the agent uses to edit the website workspace.

Handlers take the decoded argument object and a ``ToolContext``, do
their filesystem work through ``resolve_workspace_path`` and raise
``WebBotError`` subclasses for anything the caller should see.
``Tool.execute`` turns those into ``{"error": ...}`` results.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from webbot.engine.errors import InvalidInputError, InvalidRangeError, NotFoundError
from webbot.engine.tools.line_diff import compute_line_diff, split_lines
from webbot.engine.tools.registry import Tool, ToolContext, ToolKind, ToolRegistry, ToolResult
from webbot.engine.tools.sandbox import (
    check_deletable,
    check_writable,
    is_inside_workspace,
    resolve_workspace_path,
    workspace_relative,
)

LIST_IGNORED_DIRS = frozenset({"node_modules", ".git", "dist", "build", ".next", ".cache"})
SEARCH_IGNORED_DIRS = frozenset({"node_modules", ".git", "dist", "build"})
SEARCH_IGNORED_FILES = frozenset({"package-lock.json"})
BINARY_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".woff", ".woff2",
    ".ttf", ".eot", ".pdf", ".zip",
})
DEFAULT_MAX_RESULTS = 50
MAX_EXCERPT_CHARS = 200


def read_text(path: Path) -> str:
    # newline="" keeps \r\n intact so a write/read round trip is exact.
    with open(path, encoding="utf-8", newline="") as f:
        return f.read()


def write_text(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


def _int_param(params: dict[str, Any], key: str, default: int | None = None) -> int | None:
    value = params.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != int(value):
        raise InvalidInputError(f"{key} must be an integer")
    return int(value)


def _bool_param(params: dict[str, Any], key: str, default: bool) -> bool:
    value = params.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidInputError(f"{key} must be a boolean")
    return value


def _str_param(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str):
        raise InvalidInputError(f"{key} must be a string")
    return value


# ── Mutation planning ──


@dataclass
class MutationPlan:
    """What a destructive tool call is about to touch.

    Built with the same sandbox and policy checks the tool itself
    applies, so a call the tool will refuse never gets a snapshot.
    """

    kind: ToolKind
    path: str
    target: Path
    new_path: str | None = None
    new_target: Path | None = None
    lock_paths: list[Path] = field(default_factory=list)


def plan_mutation(kind: ToolKind, params: Any, workspace: Path) -> MutationPlan:
    if not isinstance(params, dict):
        raise InvalidInputError(f"{kind.value} expects an object of arguments")
    if kind is ToolKind.FILE_WRITE or kind is ToolKind.FILE_DELETE:
        target = resolve_workspace_path(workspace, params.get("path"))
        rel = workspace_relative(workspace, target)
        if kind is ToolKind.FILE_WRITE:
            check_writable(rel)
        else:
            check_deletable(rel)
        return MutationPlan(kind=kind, path=rel, target=target, lock_paths=[target])
    if kind is ToolKind.FILE_RENAME:
        source = resolve_workspace_path(workspace, params.get("oldPath"), label="Source path")
        dest = resolve_workspace_path(workspace, params.get("newPath"), label="Destination path")
        rel_source = workspace_relative(workspace, source)
        rel_dest = workspace_relative(workspace, dest)
        check_deletable(rel_source)
        check_writable(rel_dest)
        return MutationPlan(
            kind=kind,
            path=rel_source,
            target=source,
            new_path=rel_dest,
            new_target=dest,
            lock_paths=sorted({source, dest}),
        )
    raise InvalidInputError(f"{kind.value} does not modify files")


# ── Handlers ──


async def file_read(params: dict[str, Any], context: ToolContext) -> ToolResult:
    rel = params["path"]
    path = resolve_workspace_path(context.workspace, rel)
    if not path.exists():
        raise NotFoundError("File", rel)
    if not path.is_file():
        raise InvalidInputError(f"'{rel}' is not a file")

    content = read_text(path)
    lines = split_lines(content)
    total = len(lines)

    start_line = _int_param(params, "startLine")
    end_line = _int_param(params, "endLine")
    if start_line is None and end_line is None:
        return {"success": True, "path": rel, "content": content, "totalLines": total}

    start = max(1, start_line if start_line is not None else 1) - 1
    end = min(total, end_line if end_line is not None else total)
    if start >= end:
        raise InvalidRangeError(start + 1, end, total)
    return {
        "success": True,
        "path": rel,
        "content": "\n".join(lines[start:end]),
        "startLine": start + 1,
        "endLine": end,
        "totalLines": total,
    }


async def file_write(params: dict[str, Any], context: ToolContext) -> ToolResult:
    rel = params["path"]
    content = _str_param(params, "content")
    create_dirs = _bool_param(params, "createDirs", True)

    path = resolve_workspace_path(context.workspace, rel)
    check_writable(workspace_relative(context.workspace, path))
    if path.is_dir():
        raise InvalidInputError(f"'{rel}' is a directory")

    if create_dirs:
        path.parent.mkdir(parents=True, exist_ok=True)
    elif not path.parent.is_dir():
        raise NotFoundError("Directory", workspace_relative(context.workspace, path.parent))

    is_new = not path.exists()
    write_text(path, content)
    return {
        "success": True,
        "path": rel,
        "created": is_new,
        "modified": not is_new,
        "lines": len(split_lines(content)),
        "bytes": len(content.encode("utf-8")),
    }


async def file_delete(params: dict[str, Any], context: ToolContext) -> ToolResult:
    rel = params["path"]
    path = resolve_workspace_path(context.workspace, rel)
    rel_resolved = workspace_relative(context.workspace, path)
    check_deletable(rel_resolved)
    if rel_resolved == ".":
        raise InvalidInputError("Refusing to delete the workspace root")
    if not path.exists():
        raise NotFoundError("File", rel)
    if not path.is_file():
        raise InvalidInputError(f"'{rel}' is not a file; directories cannot be deleted")

    size = path.stat().st_size
    path.unlink()
    return {"success": True, "path": rel, "deletedBytes": size}


async def file_rename(params: dict[str, Any], context: ToolContext) -> ToolResult:
    old_rel = params["oldPath"]
    new_rel = params["newPath"]
    plan = plan_mutation(ToolKind.FILE_RENAME, params, context.workspace)
    source, dest = plan.target, plan.new_target
    if dest is None:
        raise InvalidInputError("newPath is required")

    if not source.exists():
        raise NotFoundError("File", old_rel)
    if not source.is_file():
        raise InvalidInputError(f"'{old_rel}' is not a file")
    if os.path.lexists(dest):
        raise InvalidInputError(f"Destination already exists: {new_rel}")

    size = source.stat().st_size
    dest.parent.mkdir(parents=True, exist_ok=True)
    source.rename(dest)
    return {"success": True, "oldPath": old_rel, "newPath": new_rel, "size": size}


async def file_list(params: dict[str, Any], context: ToolContext) -> ToolResult:
    rel = params.get("path") or "."
    recursive = _bool_param(params, "recursive", False)
    root = resolve_workspace_path(context.workspace, rel)
    if not root.exists():
        raise NotFoundError("Directory", rel)
    if not root.is_dir():
        raise InvalidInputError(f"'{rel}' is not a directory")

    entries: list[dict[str, Any]] = []

    def walk(directory: Path, prefix: str) -> None:
        with os.scandir(directory) as it:
            items = sorted(it, key=lambda e: e.name)
        for item in items:
            if item.name in LIST_IGNORED_DIRS:
                continue
            if not is_inside_workspace(context.workspace, item.path):
                continue
            name = f"{prefix}/{item.name}" if prefix else item.name
            if item.is_dir(follow_symlinks=False):
                entries.append({"name": name, "type": "directory"})
                if recursive:
                    walk(Path(item.path), name)
            elif item.is_file():
                st = item.stat()
                entries.append({
                    "name": name,
                    "type": "file",
                    "size": st.st_size,
                    "modified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
                })

    walk(root, "")
    entries.sort(key=lambda e: (e["type"] != "directory", e["name"]))
    return {"success": True, "path": rel, "entries": entries, "count": len(entries)}


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return re.compile(re.escape(pattern), re.IGNORECASE)


def _iter_search_files(workspace: Path, root: Path):
    if root.is_file():
        yield root
        return
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SEARCH_IGNORED_DIRS)
        for name in sorted(filenames):
            if name in SEARCH_IGNORED_FILES or name.endswith(".lock"):
                continue
            if os.path.splitext(name)[1].lower() in BINARY_EXTENSIONS:
                continue
            path = Path(dirpath) / name
            if is_inside_workspace(workspace, path):
                yield path


async def file_search(params: dict[str, Any], context: ToolContext) -> ToolResult:
    pattern = _str_param(params, "pattern")
    if not pattern:
        raise InvalidInputError("pattern must not be empty")
    max_results = _int_param(params, "maxResults", DEFAULT_MAX_RESULTS)
    if max_results is None or max_results < 1:
        raise InvalidInputError("maxResults must be at least 1")

    rel = params.get("path") or "."
    root = resolve_workspace_path(context.workspace, rel)
    if not root.exists():
        raise NotFoundError("Path", rel)

    regex = _compile_pattern(pattern)
    matches: list[dict[str, Any]] = []
    files_searched = 0
    for path in _iter_search_files(context.workspace, root):
        if len(matches) >= max_results:
            break
        try:
            lines = split_lines(read_text(path))
        except (OSError, UnicodeDecodeError):
            continue
        files_searched += 1
        for lineno, line in enumerate(lines, start=1):
            if regex.search(line):
                matches.append({
                    "file": workspace_relative(context.workspace, path),
                    "line": lineno,
                    "content": line.strip()[:MAX_EXCERPT_CHARS],
                })
                if len(matches) >= max_results:
                    break

    return {
        "success": True,
        "pattern": pattern,
        "matches": matches,
        "matchCount": len(matches),
        "filesSearched": files_searched,
        "truncated": len(matches) >= max_results,
    }


async def file_diff(params: dict[str, Any], context: ToolContext) -> ToolResult:
    rel = params["path"]
    new_content = _str_param(params, "newContent")
    path = resolve_workspace_path(context.workspace, rel)
    if path.is_dir():
        raise InvalidInputError(f"'{rel}' is a directory")

    is_new = not path.exists()
    old_lines = [] if is_new else split_lines(read_text(path))
    new_lines = split_lines(new_content)
    diff = compute_line_diff(old_lines, new_lines)
    rendered, truncated = diff.render()
    return {
        "success": True,
        "path": rel,
        "isNewFile": is_new,
        "stats": {
            "oldLines": len(old_lines),
            "newLines": len(new_lines),
            "added": diff.added,
            "removed": diff.removed,
            "unchanged": diff.unchanged,
        },
        "diff": rendered,
        "truncated": truncated,
    }


# ── Registry ──


def _path_prop(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


def build_file_tools() -> list[Tool]:
    return [
        Tool(
            kind=ToolKind.FILE_READ,
            description="Read a website file. Reads the whole file or an inclusive 1-based line range.",
            handler=file_read,
            properties={
                "path": _path_prop("File path relative to the project root, e.g. 'index.html' or 'styles/main.css'"),
                "startLine": {"type": "integer", "description": "First line to read (1-based, optional)"},
                "endLine": {"type": "integer", "description": "Last line to read (1-based, inclusive, optional)"},
            },
            required=["path"],
        ),
        Tool(
            kind=ToolKind.FILE_WRITE,
            description="Create or overwrite a website file with the given content.",
            handler=file_write,
            properties={
                "path": _path_prop("File path relative to the project root"),
                "content": {"type": "string", "description": "Full new content of the file"},
                "createDirs": {"type": "boolean", "description": "Create missing parent directories (default true)"},
            },
            required=["path", "content"],
        ),
        Tool(
            kind=ToolKind.FILE_DELETE,
            description="Delete a single website file. Directories cannot be deleted.",
            handler=file_delete,
            properties={"path": _path_prop("File path relative to the project root")},
            required=["path"],
        ),
        Tool(
            kind=ToolKind.FILE_RENAME,
            description="Rename or move a website file, creating destination directories as needed.",
            handler=file_rename,
            properties={
                "oldPath": _path_prop("Current file path relative to the project root"),
                "newPath": _path_prop("New file path relative to the project root"),
            },
            required=["oldPath", "newPath"],
        ),
        Tool(
            kind=ToolKind.FILE_LIST,
            description="List files and subdirectories of a directory.",
            handler=file_list,
            properties={
                "path": _path_prop("Directory to list (default: project root)"),
                "recursive": {"type": "boolean", "description": "Descend into subdirectories (default false)"},
            },
        ),
        Tool(
            kind=ToolKind.FILE_SEARCH,
            description="Search file contents with a regular expression (invalid patterns match literally).",
            handler=file_search,
            properties={
                "pattern": {"type": "string", "description": "Regular expression or plain text to search for"},
                "path": _path_prop("Directory or file to search (default: whole project)"),
                "maxResults": {"type": "integer", "description": "Maximum number of matches (default 50)"},
            },
            required=["pattern"],
        ),
        Tool(
            kind=ToolKind.FILE_DIFF,
            description="Preview the line differences between a file and proposed new content before writing it.",
            handler=file_diff,
            properties={
                "path": _path_prop("File path relative to the project root"),
                "newContent": {"type": "string", "description": "Proposed new file content"},
            },
            required=["path", "newContent"],
        ),
    ]


def build_default_registry() -> ToolRegistry:
    return ToolRegistry(build_file_tools())
