"""Per-user daily reminders via APScheduler.

Each registered user owns at most one CronTrigger job, ``reminder_<id>``,
firing at their notify time in the configured timezone. At fire time the job
reads tomorrow's entries from the store and sends them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from jadval_bot.config import NOTIFY_TIME_RE
from jadval_bot.days import is_weekend, tomorrow
from jadval_bot.errors import ValidationError
from jadval_bot.messenger import Messenger
from jadval_bot.schedule.render import render_day
from jadval_bot.schedule.store import ScheduleStore
from jadval_bot.users import UserRegistry

log = logging.getLogger(__name__)

_JOB_PREFIX = "reminder_"
MISFIRE_GRACE = 300  # seconds


def parse_notify_time(value: str) -> tuple[int, int]:
    """``"07:30"`` -> ``(7, 30)``. Raises ValidationError for anything but HH:MM."""
    match = NOTIFY_TIME_RE.match(value or "")
    if not match:
        raise ValidationError(f"expected HH:MM, got {value!r}")
    return int(match.group(1)), int(match.group(2))


class ReminderScheduler:
    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        store: ScheduleStore,
        registry: UserRegistry,
        messenger: Messenger,
        tz: ZoneInfo,
    ) -> None:
        self.scheduler = scheduler
        self.store = store
        self.registry = registry
        self.messenger = messenger
        self.tz = tz

    @staticmethod
    def job_id(user_id: int) -> str:
        return f"{_JOB_PREFIX}{user_id}"

    def schedule(self, user_id: int, notify_time: str) -> None:
        """Replace the user's reminder with one firing daily at ``notify_time``."""
        hour, minute = parse_notify_time(notify_time)
        self.cancel(user_id)
        self.scheduler.add_job(
            self.fire,
            CronTrigger(hour=hour, minute=minute, timezone=self.tz),
            id=self.job_id(user_id),
            args=[user_id],
            misfire_grace_time=MISFIRE_GRACE,
            coalesce=True,
            replace_existing=True,
        )

    def cancel(self, user_id: int) -> bool:
        """Idempotent. Returns whether a job existed."""
        job = self.scheduler.get_job(self.job_id(user_id))
        if job is None:
            return False
        self.scheduler.remove_job(job.id)
        return True

    def has_reminder(self, user_id: int) -> bool:
        return self.scheduler.get_job(self.job_id(user_id)) is not None

    def count(self) -> int:
        return sum(1 for job in self.scheduler.get_jobs() if job.id.startswith(_JOB_PREFIX))

    def restore(self) -> int:
        """Install a reminder for every stored notify time. Returns how many."""
        restored = 0
        for user in self.registry:
            if not user.notify_time:
                continue
            try:
                self.schedule(user.id, user.notify_time)
            except ValidationError:
                log.warning("User %s has an invalid notify time %r; no reminder", user.id, user.notify_time)
                continue
            restored += 1
        return restored

    async def fire(self, user_id: int, now: datetime | None = None) -> None:
        """Send tomorrow's schedule. Errors are logged; the job keeps its schedule."""
        if user_id not in self.registry:
            self.cancel(user_id)
            return
        day = tomorrow(now or datetime.now(self.tz))
        entries = self.store.get(day)
        if is_weekend(day) and not entries:
            return
        try:
            await self.messenger.send_chunks(user_id, render_day(day, entries))
        except Exception:
            log.exception("Reminder for %s failed", user_id)
