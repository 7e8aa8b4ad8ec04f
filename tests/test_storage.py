"""Tests for storage.py: atomic JSON writes and backups."""

import json
from datetime import datetime
from pathlib import Path

import pytest

from jadval_bot.errors import PersistenceError
from jadval_bot.storage import backup_file, backup_name, read_json, write_json


def test_write_and_read_roundtrip(tmp_path):
    path = tmp_path / "nested" / "data.json"

    write_json(path, {"kun": "Dushanba", "n": 1})

    assert read_json(path) == {"kun": "Dushanba", "n": 1}
    assert list(path.parent.glob("*.tmp")) == []


def test_write_keeps_non_ascii(tmp_path):
    path = tmp_path / "data.json"

    write_json(path, {"fan": "Математика"})

    assert "Математика" in path.read_text(encoding="utf-8")


def test_read_missing_returns_none(tmp_path):
    assert read_json(tmp_path / "nope.json") is None


def test_read_corrupt_returns_none(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json")

    assert read_json(path) is None


def test_write_failure_raises_persistence_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")

    with pytest.raises(PersistenceError):
        write_json(blocker / "data.json", {})


def test_backup_name_is_timestamped():
    name = backup_name(Path("data/schedule.json"), datetime(2026, 1, 5, 7, 30, 0, 5))

    assert name == "schedule.json.2026-01-05T07-30-00-000005.bak"
    assert ":" not in name


def test_backup_file_copies_current_content(tmp_path):
    path = tmp_path / "schedule.json"
    path.write_text(json.dumps({"v": 1}))

    dest = backup_file(path, tmp_path / "backups")

    assert dest is not None
    assert dest.parent == tmp_path / "backups"
    assert json.loads(dest.read_text()) == {"v": 1}


def test_backup_file_nothing_to_back_up(tmp_path):
    assert backup_file(tmp_path / "missing.json", tmp_path / "backups") is None
