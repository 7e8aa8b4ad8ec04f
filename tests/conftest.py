"""Shared fixtures for jadval-bot tests."""

import os

os.environ.setdefault("DISCORD_TOKEN", "test-token")

from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from jadval_bot.config import Config
from jadval_bot.messenger import Messenger
from jadval_bot.reminders import ReminderScheduler
from jadval_bot.schedule.store import JsonSchedulePersistence, ScheduleStore
from jadval_bot.users import UserRegistry

TZ = ZoneInfo("Asia/Tashkent")
ADMIN_ID = 1
USER_ID = 100


@pytest.fixture()
def data_dir(tmp_path, monkeypatch):
    """Redirect all data file paths to a temp directory."""
    monkeypatch.setenv("JADVAL_DATA_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture()
def config(data_dir):
    return Config(
        token="test-token",
        admin_ids=frozenset({ADMIN_ID}),
        default_notify_time="07:30",
        max_file_size=1024 * 1024,
        timezone=TZ,
        data_dir=data_dir,
    )


@pytest.fixture()
def store(data_dir):
    return ScheduleStore(
        JsonSchedulePersistence(data_dir / "schedule.json", data_dir / "backups")
    )


@pytest.fixture()
def registry(data_dir):
    return UserRegistry(data_dir / "users.json")


@pytest.fixture()
def transport():
    t = AsyncMock()
    t.sent = []

    async def send_text(user_id, text, buttons=()):
        t.sent.append((user_id, text, tuple(buttons)))

    t.send_text = AsyncMock(side_effect=send_text)
    t.send_media = AsyncMock()
    return t


@pytest.fixture()
def messenger(transport, registry, config):
    return Messenger(transport, registry, config.admin_ids)


@pytest.fixture()
def reminders(store, registry, messenger):
    scheduler = ReminderScheduler(AsyncIOScheduler(timezone=TZ), store, registry, messenger, TZ)
    messenger.on_forget(scheduler.cancel)
    return scheduler
