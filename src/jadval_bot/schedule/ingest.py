"""Spreadsheet ingestion: Google Sheets URL rewriting, download, and xlsx parsing.

Only the first sheet is read. Its first row is the header row; headers are
matched against a synonym table so that Uzbek, English and Russian column names
all work. Rows whose day cannot be recognized are skipped and counted so the
admin who uploaded the file can see how much was dropped.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

import aiohttp
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from jadval_bot.days import WEEKDAYS, resolve_day
from jadval_bot.errors import FetchError, MalformedSourceError, ParseError
from jadval_bot.schedule.store import ScheduleEntry, WeeklySchedule

log = logging.getLogger(__name__)

FETCH_TIMEOUT = 20  # seconds

_DOC_ID_RE = re.compile(r"/d/([a-zA-Z0-9_-]+)")
_GID_RE = re.compile(r"[?&#]gid=(\d+)")

# Field -> header synonyms (already case-folded). A header matches when it
# equals a synonym or contains it.
HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "day": ("kun", "day", "kuni", "weekday", "день"),
    "time": ("vaqt", "soat", "time", "hours", "время"),
    "subject": ("fan", "fan/tadbir", "tadbir", "subject", "title", "nomi", "name", "предмет"),
    "room": ("xona", "room", "auditoriya", "auditorium", "аудитория"),
    "building": ("bino", "building", "корпус"),
    "teacher": ("o'qituvchi", "oqituvchi", "teacher", "instr", "professor", "преподаватель"),
}

_ENTRY_FIELDS = ("time", "subject", "room", "building", "teacher")


@dataclass(frozen=True, slots=True)
class IngestResult:
    schedule: WeeklySchedule
    imported: int = 0
    skipped: int = 0
    columns: dict[str, str] = field(default_factory=dict)


def to_export_url(url: str) -> str:
    """Rewrite a shareable Sheets URL into a direct xlsx export URL."""
    match = _DOC_ID_RE.search(url or "")
    if not match:
        raise MalformedSourceError(f"no document id in {url!r}")
    export = f"https://docs.google.com/spreadsheets/d/{match.group(1)}/export?format=xlsx"
    gid = _GID_RE.search(url)
    if gid:
        export += f"&gid={gid.group(1)}"
    return export


async def fetch_spreadsheet(url: str, *, max_bytes: int | None = None) -> bytes:
    """Download ``url``; any network problem surfaces as FetchError."""
    timeout = aiohttp.ClientTimeout(total=FETCH_TIMEOUT)
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as resp:
                if resp.status != 200:
                    raise FetchError(f"download failed with HTTP {resp.status}")
                if "text/html" in resp.headers.get("Content-Type", ""):
                    # Private sheets answer with a sign-in page
                    raise FetchError("expected a spreadsheet, got HTML (check sheet sharing)")
                if max_bytes is not None and (resp.content_length or 0) > max_bytes:
                    raise FetchError(f"spreadsheet is larger than {max_bytes} bytes")
                data = await resp.read()
    except asyncio.TimeoutError as e:
        raise FetchError(f"download timed out after {FETCH_TIMEOUT}s") from e
    except aiohttp.ClientError as e:
        raise FetchError(f"download failed: {e}") from e
    if max_bytes is not None and len(data) > max_bytes:
        raise FetchError(f"spreadsheet is larger than {max_bytes} bytes")
    return data


def _normalize_header(value: Any) -> str:
    return str(value).strip().casefold()


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.time() == time(0):
            return value.date().isoformat()
        return value.strftime("%Y-%m-%d %H:%M")
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _match_field(normalized: str) -> str | None:
    """Exact synonym first; otherwise the field with the longest contained synonym."""
    best: tuple[int, str] | None = None
    for field_name, synonyms in HEADER_SYNONYMS.items():
        for syn in synonyms:
            if normalized == syn:
                return field_name
            if syn in normalized and (best is None or len(syn) > best[0]):
                best = (len(syn), field_name)
    return best[1] if best else None


def map_headers(headers: list[str]) -> dict[str, str]:
    """Field name -> header text. First matching header wins for each field."""
    mapping: dict[str, str] = {}
    for header in headers:
        normalized = _normalize_header(header)
        if not normalized:
            continue
        field_name = _match_field(normalized)
        if field_name and field_name not in mapping:
            mapping[field_name] = header
    if "day" not in mapping and headers:
        mapping["day"] = headers[0]
    return mapping


def _read_rows(data: bytes) -> tuple[list[str], list[dict[str, Any]]]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise ParseError(f"not a readable .xlsx file: {e}") from e
    try:
        if not workbook.worksheets:
            raise ParseError("workbook has no sheets")
        rows = list(workbook.worksheets[0].iter_rows(values_only=True))
    finally:
        workbook.close()

    if not rows or all(_cell_text(v) == "" for v in rows[0]):
        raise ParseError("the first sheet is empty")

    headers: list[str] = []
    seen: dict[str, int] = {}
    for idx, value in enumerate(rows[0]):
        # Unnamed columns keep a stable key so the first-column fallback still works
        text = _cell_text(value) or f"__column_{idx}"
        base = text
        while text in seen:
            seen[base] += 1
            text = f"{base}_{seen[base]}"
        seen[text] = 0
        headers.append(text)

    records: list[dict[str, Any]] = []
    for row in rows[1:]:
        if all(_cell_text(v) == "" for v in row):
            continue
        records.append({h: (row[i] if i < len(row) else None) for i, h in enumerate(headers)})
    return headers, records


def parse_workbook(data: bytes) -> IngestResult:
    """Parse xlsx bytes into a weekly schedule. Raises ParseError."""
    headers, records = _read_rows(data)
    columns = map_headers(headers)

    buckets: dict[str, list[ScheduleEntry]] = {}
    imported = skipped = 0
    for record in records:
        day = resolve_day(_cell_text(record.get(columns["day"])))
        if day is None:
            skipped += 1
            continue
        values = {
            name: _cell_text(record.get(columns[name])) if name in columns else ""
            for name in _ENTRY_FIELDS
        }
        buckets.setdefault(day, []).append(ScheduleEntry(**values))
        imported += 1

    schedule: WeeklySchedule = {day: [] for day in WEEKDAYS}
    schedule.update(buckets)
    if skipped:
        log.info("Ingestion skipped %d row(s) with no recognizable day", skipped)
    return IngestResult(
        schedule=schedule,
        imported=imported,
        skipped=skipped,
        columns=dict(columns),
    )


def ingest_bytes(data: bytes) -> IngestResult:
    return parse_workbook(data)


async def ingest_url(url: str, *, max_bytes: int | None = None) -> IngestResult:
    """Resolve a shareable URL, download it and parse it."""
    export_url = to_export_url(url)
    data = await fetch_spreadsheet(export_url, max_bytes=max_bytes)
    return parse_workbook(data)
