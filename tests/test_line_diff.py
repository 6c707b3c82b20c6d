from __future__ import annotations

from webbot.engine.tools.line_diff import MAX_PATCH_LINES, compute_line_diff, split_lines


def test_same_position_change_is_a_modification() -> None:
    diff = compute_line_diff(["a", "b", "c"], ["a", "B", "c"])
    assert (diff.added, diff.removed, diff.unchanged) == (1, 1, 2)
    assert diff.patches == ["@@ line 2 @@", "- b", "+ B"]


def test_trailing_lines_are_pure_additions_or_deletions() -> None:
    grown = compute_line_diff(["a"], ["a", "b"])
    assert grown.patches == ["+ b"]
    shrunk = compute_line_diff(["a", "b"], ["a"])
    assert shrunk.patches == ["- b"]
    assert (shrunk.added, shrunk.removed) == (0, 1)


def test_insertion_at_top_shifts_everything() -> None:
    """Positional comparison: an inserted first line modifies every line below it."""
    diff = compute_line_diff(["x", "y"], ["new", "x", "y"])
    assert diff.unchanged == 0
    assert diff.added == 3
    assert diff.removed == 2


def test_render_caps_patch_listing() -> None:
    old = [str(i) for i in range(60)]
    new = [f"{i}!" for i in range(60)]
    diff = compute_line_diff(old, new)
    text, truncated = diff.render()
    assert truncated is True
    assert len(text.split("\n")) == MAX_PATCH_LINES

    full, truncated = diff.render(limit=None)
    assert truncated is False
    assert len(full.split("\n")) == 180


def test_split_lines_keeps_trailing_empty_line() -> None:
    assert split_lines("a\nb\n") == ["a", "b", ""]
    assert split_lines("") == [""]
