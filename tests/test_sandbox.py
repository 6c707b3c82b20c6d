from __future__ import annotations

import os
from pathlib import Path

import pytest

from webbot.engine.errors import InvalidInputError, PathEscapeError, ProtectedError
from webbot.engine.tools.sandbox import (
    check_deletable,
    check_writable,
    in_protected_dir,
    is_inside_workspace,
    is_protected_file,
    resolve_workspace_path,
    workspace_relative,
)


def test_resolves_relative_path_inside_workspace(tmp_path: Path) -> None:
    resolved = resolve_workspace_path(tmp_path, "css/site.css")
    assert resolved == Path(os.path.realpath(tmp_path)) / "css" / "site.css"


def test_workspace_root_itself_is_allowed(tmp_path: Path) -> None:
    assert resolve_workspace_path(tmp_path, ".") == Path(os.path.realpath(tmp_path))


@pytest.mark.parametrize("rel", ["../outside.txt", "a/../../outside.txt", "/etc/passwd"])
def test_escapes_are_rejected(tmp_path: Path, rel: str) -> None:
    with pytest.raises(PathEscapeError):
        resolve_workspace_path(tmp_path / "site", rel)


def test_sibling_with_common_prefix_is_an_escape(tmp_path: Path) -> None:
    (tmp_path / "site").mkdir()
    (tmp_path / "site-other").mkdir()
    with pytest.raises(PathEscapeError):
        resolve_workspace_path(tmp_path / "site", "../site-other/x.html")


def test_symlink_pointing_outside_is_an_escape(tmp_path: Path) -> None:
    site = tmp_path / "site"
    site.mkdir()
    outside = tmp_path / "outside"
    outside.mkdir()
    (site / "link").symlink_to(outside, target_is_directory=True)
    with pytest.raises(PathEscapeError):
        resolve_workspace_path(site, "link/secret.txt")


def test_is_inside_workspace_follows_symlinks(tmp_path: Path) -> None:
    site = tmp_path / "site"
    site.mkdir()
    (tmp_path / "private.txt").write_text("x", encoding="utf-8")
    (site / "notes.txt").symlink_to(tmp_path / "private.txt")
    (site / "page.html").write_text("x", encoding="utf-8")
    assert is_inside_workspace(site, site)
    assert is_inside_workspace(site, site / "page.html")
    assert not is_inside_workspace(site, site / "notes.txt")
    assert not is_inside_workspace(site, tmp_path / "site-other" / "a.txt")


@pytest.mark.parametrize("bad", ["", "   ", None, 42, "a\x00b"])
def test_non_string_or_empty_paths_are_invalid(tmp_path: Path, bad) -> None:
    with pytest.raises(InvalidInputError):
        resolve_workspace_path(tmp_path, bad)


def test_escape_error_carries_label(tmp_path: Path) -> None:
    with pytest.raises(PathEscapeError, match="Destination path"):
        resolve_workspace_path(tmp_path, "../x", label="Destination path")


def test_workspace_relative_uses_forward_slashes(tmp_path: Path) -> None:
    target = resolve_workspace_path(tmp_path, "a/b/c.html")
    assert workspace_relative(tmp_path, target) == "a/b/c.html"
    assert workspace_relative(tmp_path, tmp_path) == "."


@pytest.mark.parametrize(
    "name",
    [".env", ".env.local", "server.key", "cert.PEM", "aws_credentials.json", "my-secret.txt", "Passwords.md"],
)
def test_protected_file_names(name: str) -> None:
    assert is_protected_file(name)
    assert is_protected_file(f"config/{name}")
    with pytest.raises(ProtectedError):
        check_writable(name)


@pytest.mark.parametrize("name", ["index.html", "environment.js", "keys.html", "styles/main.css"])
def test_ordinary_file_names_are_not_protected(name: str) -> None:
    assert not is_protected_file(name)
    check_writable(name)
    check_deletable(name)


def test_protected_directories_block_delete_only() -> None:
    assert in_protected_dir("node_modules/lib/index.js")
    assert in_protected_dir(".git/config")
    assert not in_protected_dir("src/git/notes.md")
    check_writable("node_modules/lib/index.js")
    with pytest.raises(ProtectedError, match="directory"):
        check_deletable("node_modules/lib/index.js")
