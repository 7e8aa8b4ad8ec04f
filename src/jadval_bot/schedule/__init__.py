"""Schedule: the weekly store, spreadsheet ingestion, and day rendering."""

from jadval_bot.schedule.ingest import (
    IngestResult,
    ingest_bytes,
    ingest_url,
    to_export_url,
)
from jadval_bot.schedule.render import render_day, render_week
from jadval_bot.schedule.store import (
    JsonSchedulePersistence,
    ScheduleEntry,
    ScheduleStore,
    WeeklySchedule,
)

__all__ = [
    "IngestResult",
    "JsonSchedulePersistence",
    "ScheduleEntry",
    "ScheduleStore",
    "WeeklySchedule",
    "ingest_bytes",
    "ingest_url",
    "render_day",
    "render_week",
    "to_export_url",
]
