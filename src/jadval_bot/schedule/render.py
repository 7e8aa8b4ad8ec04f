"""Render a day's entries into message chunks that fit one Discord message."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence

from jadval_bot.days import DAYS, is_weekend
from jadval_bot.schedule.store import ScheduleEntry

# Discord rejects messages over 2000 characters.
MAX_MSG_LEN = 2000
CHUNK_BUDGET = 1900

_TIME_RE = re.compile(r"([01]?\d|2[0-3])[:.]([0-5]\d)")
_SEPARATOR = "\n\n"


def parse_minutes(value: str) -> int:
    """Minutes after midnight of the first time in ``value``; 0 when none."""
    match = _TIME_RE.search(value or "")
    if not match:
        return 0
    return int(match.group(1)) * 60 + int(match.group(2))


def sort_entries(entries: Sequence[ScheduleEntry]) -> list[ScheduleEntry]:
    """Stable: entries with equal (or unparsable) times keep their input order."""
    return sorted(entries, key=lambda e: parse_minutes(e.time))


def format_entry(position: int, entry: ScheduleEntry) -> str:
    lines = [f"{position}. {entry.time} | {entry.subject}".rstrip()]
    location = " | ".join(
        part for part in (entry.building, f"Room: {entry.room}" if entry.room else "") if part
    )
    if location:
        lines.append(location)
    if entry.teacher:
        lines.append(f"Teacher: {entry.teacher}")
    return "\n".join(lines)


def header_for(day: str) -> str:
    return f"\N{CALENDAR} **{day}**\n\n"


def _pieces(block: str, size: int) -> list[str]:
    return [block[i : i + size] for i in range(0, len(block), size)] or [""]


def render_day(day: str, entries: Sequence[ScheduleEntry], *, budget: int = CHUNK_BUDGET) -> list[str]:
    """Ordered chunks for one day.

    An empty weekday gets a single "no classes" notice; an empty weekend gets
    nothing, whether the day was confirmed empty or never supplied.
    """
    if not entries:
        if is_weekend(day):
            return []
        return [f"\N{CALENDAR} **{day}**: no classes."]

    blocks = [format_entry(i, entry) for i, entry in enumerate(sort_entries(entries), start=1)]

    chunks: list[str] = []
    chunk = header_for(day)
    for block in blocks:
        # Blocks longer than a whole chunk continue in the next one.
        for piece in _pieces(block, budget - len(_SEPARATOR)):
            to_add = piece + _SEPARATOR
            if len(chunk) + len(to_add) > budget and chunk.strip():
                chunks.append(chunk.removesuffix(_SEPARATOR))
                chunk = ""
            chunk += to_add
    if chunk.strip():
        chunks.append(chunk.removesuffix(_SEPARATOR))
    return chunks


def render_week(schedule: Mapping[str, Sequence[ScheduleEntry]]) -> list[str]:
    """Every day in canonical order; weekend days without classes are left out."""
    chunks: list[str] = []
    for day in DAYS:
        entries = schedule.get(day, ())
        if is_weekend(day) and not entries:
            continue
        chunks.extend(render_day(day, entries))
    return chunks
