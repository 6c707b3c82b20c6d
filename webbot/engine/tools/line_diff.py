"""Positional line diff shared by ``file_diff`` and snapshot diffs.

Both sequences are walked in lock-step: equal lines are unchanged,
differing lines at the same position are reported as a modification
(old line removed, new line added), and whatever remains past the end
of the shorter sequence is a pure addition or deletion.

This is not an LCS alignment. An insertion near the top of a file
shifts every following line and shows up as a block of modifications.
Consumers rely on that shape, so keep it.
"""
from __future__ import annotations

from dataclasses import dataclass, field

MAX_PATCH_LINES = 100


@dataclass
class LineDiff:
    added: int = 0
    removed: int = 0
    unchanged: int = 0
    patches: list[str] = field(default_factory=list)

    def render(self, limit: int | None = MAX_PATCH_LINES) -> tuple[str, bool]:
        """Join the patch listing, capped at ``limit`` lines."""
        if limit is not None and len(self.patches) > limit:
            return "\n".join(self.patches[:limit]), True
        return "\n".join(self.patches), False


def split_lines(text: str) -> list[str]:
    return text.split("\n")


def compute_line_diff(old_lines: list[str], new_lines: list[str]) -> LineDiff:
    diff = LineDiff()
    for idx in range(max(len(old_lines), len(new_lines))):
        old = old_lines[idx] if idx < len(old_lines) else None
        new = new_lines[idx] if idx < len(new_lines) else None
        if old == new:
            diff.unchanged += 1
        elif old is not None and new is not None:
            diff.patches.append(f"@@ line {idx + 1} @@")
            diff.patches.append(f"- {old}")
            diff.patches.append(f"+ {new}")
            diff.removed += 1
            diff.added += 1
        elif old is None:
            diff.patches.append(f"+ {new}")
            diff.added += 1
        else:
            diff.patches.append(f"- {old}")
            diff.removed += 1
    return diff
