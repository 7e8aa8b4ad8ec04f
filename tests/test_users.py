"""Tests for users.py: the persisted user registry."""

import json

import pytest

from jadval_bot.states import IDLE, AwaitingNotifyTime, ManualAdd
from jadval_bot.users import UserRegistry


def test_ensure_creates_once(registry):
    user, created = registry.ensure(5, "07:30")
    again, created_again = registry.ensure(5, "09:00")

    assert created
    assert not created_again
    assert user.notify_time == "07:30"
    assert again.notify_time == "07:30"
    assert user.state == IDLE
    assert len(registry) == 1


def test_mutations_persist(registry, data_dir):
    registry.ensure(5, "07:30")
    registry.set_notify_time(5, "20:15")
    registry.set_state(5, ManualAdd(day="Juma"))

    reopened = UserRegistry(data_dir / "users.json")

    user = reopened.get(5)
    assert user is not None
    assert user.notify_time == "20:15"
    assert user.state == ManualAdd(day="Juma")


def test_file_is_keyed_by_string_id(registry, data_dir):
    registry.ensure(42, "07:30")

    data = json.loads((data_dir / "users.json").read_text())

    assert data == {"42": {"notify_time": "07:30", "state": {"kind": "idle"}}}


def test_remove(registry):
    registry.ensure(5, "07:30")

    assert registry.remove(5)
    assert not registry.remove(5)
    assert 5 not in registry


def test_set_state_unknown_user(registry):
    with pytest.raises(KeyError):
        registry.set_state(9, AwaitingNotifyTime())


def test_bad_entries_are_skipped(data_dir):
    (data_dir / "users.json").write_text(
        json.dumps({"abc": {"notify_time": "07:30"}, "7": {"notify_time": None, "state": {"kind": "nope"}}})
    )

    registry = UserRegistry(data_dir / "users.json")

    assert registry.ids() == [7]
    assert registry.get(7).notify_time is None
    assert registry.get(7).state == IDLE


def test_iteration_snapshot(registry):
    registry.ensure(1, "07:30")
    registry.ensure(2, "07:30")

    for user in registry:
        registry.remove(user.id)

    assert len(registry) == 0
