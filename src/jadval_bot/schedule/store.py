"""Weekly schedule data model, validation and the process-wide store.

The store owns the only WeeklySchedule. Readers get copies; every mutation
builds a fresh mapping and swaps the reference, so a reminder firing in the
middle of an admin edit sees either the old or the new schedule, never half.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Protocol

from jsonschema import Draft7Validator

from jadval_bot.days import DAYS, WEEKDAYS, WEEKEND
from jadval_bot.errors import EntryIndexError, PersistenceError, ValidationError
from jadval_bot.storage import backup_file, read_json, write_json

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScheduleEntry:
    time: str
    subject: str
    room: str = ""
    building: str = ""
    teacher: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> ScheduleEntry:
        return ScheduleEntry(
            time=str(data.get("time", "")),
            subject=str(data.get("subject", "")),
            room=str(data.get("room", "")),
            building=str(data.get("building", "")),
            teacher=str(data.get("teacher") or ""),
        )


WeeklySchedule = dict[str, list[ScheduleEntry]]

_ENTRY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["time", "subject", "room", "building"],
    "properties": {
        "time": {"type": "string"},
        "subject": {"type": "string"},
        "room": {"type": "string"},
        "building": {"type": "string"},
        "teacher": {"type": "string"},
    },
    "additionalProperties": False,
}

SCHEDULE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "propertyNames": {"enum": list(DAYS)},
    "required": list(WEEKDAYS),
    "properties": {
        **{day: {"type": "array", "items": _ENTRY_SCHEMA} for day in WEEKDAYS},
        # A weekend key only exists when it has classes.
        **{day: {"type": "array", "items": _ENTRY_SCHEMA, "minItems": 1} for day in WEEKEND},
    },
}

_validator = Draft7Validator(SCHEDULE_SCHEMA)


def default_schedule() -> WeeklySchedule:
    return {day: [] for day in WEEKDAYS}


def schedule_to_data(schedule: Mapping[str, Sequence[ScheduleEntry]]) -> dict[str, list[dict[str, str]]]:
    """Serialize in canonical day order."""
    return {day: [e.to_dict() for e in schedule[day]] for day in DAYS if day in schedule}


def schedule_from_data(data: Mapping[str, Any]) -> WeeklySchedule:
    return {day: [ScheduleEntry.from_dict(e) for e in data[day]] for day in DAYS if day in data}


def validate_data(data: Any) -> list[str]:
    """Validate a serialized schedule. Returns a list of error messages."""
    return [err.message for err in _validator.iter_errors(data)]


def validate_schedule(schedule: Mapping[str, Sequence[ScheduleEntry]]) -> None:
    """Raise ValidationError unless ``schedule`` satisfies the weekly invariants."""
    unknown = [day for day in schedule if day not in DAYS]
    if unknown:
        raise ValidationError(f"unknown day(s): {', '.join(map(str, unknown))}")
    for day, entries in schedule.items():
        if not all(isinstance(e, ScheduleEntry) for e in entries):
            raise ValidationError(f"{day}: entries must be ScheduleEntry values")
    errors = validate_data(schedule_to_data(schedule))
    if errors:
        raise ValidationError("; ".join(errors))


def normalize_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Bring an older document in line: add weekday keys, drop empty weekends."""
    result = {day: data[day] for day in DAYS if day in data}
    for day in WEEKDAYS:
        result.setdefault(day, [])
    for day in WEEKEND:
        if day in result and not result[day]:
            del result[day]
    return result


class SchedulePersistence(Protocol):
    def load(self) -> dict[str, Any] | None: ...

    def backup(self) -> Path | None: ...

    def save(self, data: dict[str, Any]) -> None: ...


class JsonSchedulePersistence:
    """schedule.json plus timestamped copies in backups/."""

    def __init__(self, path: Path, backup_dir: Path) -> None:
        self.path = path
        self.backup_dir = backup_dir

    def load(self) -> dict[str, Any] | None:
        data = read_json(self.path)
        return data if isinstance(data, dict) else None

    def backup(self) -> Path | None:
        return backup_file(self.path, self.backup_dir)

    def save(self, data: dict[str, Any]) -> None:
        write_json(self.path, data)


class ScheduleStore:
    def __init__(self, persistence: SchedulePersistence) -> None:
        self._persistence = persistence
        self._days: WeeklySchedule = self._load()

    def _load(self) -> WeeklySchedule:
        data = self._persistence.load()
        if data is None:
            schedule = default_schedule()
            self._save(schedule)
            return schedule
        normalized = normalize_data(data)
        errors = validate_data(normalized)
        if errors:
            log.warning("Persisted schedule is invalid, starting empty: %s", "; ".join(errors))
            return default_schedule()
        return schedule_from_data(normalized)

    # --- reads ---

    def get(self, day: str) -> list[ScheduleEntry]:
        """Entries of ``day`` in stored order. Empty for a weekend without data."""
        return list(self._days.get(day, ()))

    def has_day(self, day: str) -> bool:
        return day in self._days

    def snapshot(self) -> WeeklySchedule:
        days = self._days
        return {day: list(days[day]) for day in DAYS if day in days}

    # --- writes ---

    def replace_all(self, schedule: Mapping[str, Sequence[ScheduleEntry]]) -> None:
        validate_schedule(schedule)
        self._commit({day: list(schedule[day]) for day in DAYS if day in schedule})

    def add_entry(self, day: str, entry: ScheduleEntry) -> None:
        if day not in DAYS:
            raise ValidationError(f"unknown day: {day!r}")
        new = self.snapshot()
        new.setdefault(day, []).append(entry)
        self._commit(new)

    def remove_entry(self, day: str, index: int) -> ScheduleEntry:
        entries = self._days.get(day, [])
        if not 0 <= index < len(entries):
            raise EntryIndexError(f"{day} has no entry #{index + 1}")
        new = self.snapshot()
        removed = new[day].pop(index)
        if day in WEEKEND and not new[day]:
            del new[day]
        self._commit(new)
        return removed

    def _commit(self, schedule: WeeklySchedule) -> None:
        """Back up the persisted copy, swap in the new schedule, persist it.

        Disk failures are logged; the in-memory change stays.
        """
        try:
            self._persistence.backup()
        except PersistenceError:
            log.exception("Schedule backup failed")
        self._days = schedule
        self._save(schedule)

    def _save(self, schedule: WeeklySchedule) -> None:
        try:
            self._persistence.save(schedule_to_data(schedule))
        except PersistenceError:
            log.exception("Schedule kept in memory but not saved to disk")
