from __future__ import annotations

import uuid
from pathlib import Path
from unittest.mock import patch

import pytest

from webbot.shared.services.changelog import ChangeLog


def _fill(log: ChangeLog, count: int, session_id: str = "main") -> list[str]:
    return [
        log.append(
            session_id=session_id,
            action="write",
            file_path=f"page{i}.html",
            summary=f"Updated page{i}.html",
        ).id
        for i in range(count)
    ]


def test_list_is_newest_first_with_pagination(tmp_path: Path) -> None:
    log = ChangeLog(tmp_path / "changelog.json")
    ids = _fill(log, 5)

    page = log.list(limit=2)
    assert page["total"] == 5
    assert [e.id for e in page["entries"]] == [ids[4], ids[3]]

    second = log.list(limit=2, offset=2)
    assert [e.id for e in second["entries"]] == [ids[2], ids[1]]

    beyond = log.list(limit=10, offset=10)
    assert beyond == {"entries": [], "total": 5}


def test_filter_by_session(tmp_path: Path) -> None:
    log = ChangeLog(tmp_path / "changelog.json")
    _fill(log, 2, "a")
    _fill(log, 3, "b")
    assert log.list("a")["total"] == 2
    assert log.list("missing")["total"] == 0


def test_optional_fields_and_wire_shape(tmp_path: Path) -> None:
    log = ChangeLog(tmp_path / "changelog.json")
    entry = log.append(
        session_id="main",
        action="rename",
        file_path="old.html",
        new_file_path="new.html",
        summary="Renamed old.html -> new.html",
        snapshot_id="abc12345",
    )
    wire = entry.to_wire()
    assert wire["newFilePath"] == "new.html"
    assert wire["snapshotId"] == "abc12345"
    assert "linesChanged" not in wire
    assert "lines_changed" not in entry.to_dict()


def test_unknown_action_rejected(tmp_path: Path) -> None:
    log = ChangeLog(tmp_path / "changelog.json")
    with pytest.raises(ValueError):
        log.append(session_id="main", action="chmod", file_path="a", summary="")


def test_entries_persist_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "changelog.json"
    log = ChangeLog(path)
    entry = log.append(
        session_id="main", action="write", file_path="a.html", summary="Created a.html", lines_changed=3,
    )
    reopened = ChangeLog(path)
    assert reopened.list()["entries"] == [entry]


def test_corrupt_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "changelog.json"
    path.write_text("{not json", encoding="utf-8")
    assert len(ChangeLog(path)) == 0


def test_clear_scoped_and_global(tmp_path: Path) -> None:
    log = ChangeLog(tmp_path / "changelog.json")
    _fill(log, 2, "a")
    _fill(log, 1, "b")
    assert log.clear("a") == 2
    assert log.list()["total"] == 1
    assert log.clear() == 1
    assert len(ChangeLog(tmp_path / "changelog.json")) == 0


def test_retention_keeps_newest(tmp_path: Path) -> None:
    log = ChangeLog(tmp_path / "changelog.json", retention=3)
    ids = _fill(log, 5)
    assert [e.id for e in log.list()["entries"]] == [ids[4], ids[3], ids[2]]


def test_ids_are_regenerated_on_collision(tmp_path: Path) -> None:
    log = ChangeLog(tmp_path / "changelog.json")
    first, second = uuid.UUID(int=0x11111111 << 96), uuid.UUID(int=0x22222222 << 96)
    with patch("webbot.shared.services.changelog.uuid.uuid4", side_effect=[first, first, second]):
        ids = _fill(log, 2)
    assert ids == ["11111111", "22222222"]
