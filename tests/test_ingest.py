"""Tests for schedule/ingest.py: URL rewriting, download, and xlsx parsing."""

import asyncio
import io
from datetime import time

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from openpyxl import Workbook

import jadval_bot.schedule.ingest as ingest_mod
from jadval_bot.errors import FetchError, MalformedSourceError, ParseError, ValidationError
from jadval_bot.schedule.ingest import (
    fetch_spreadsheet,
    ingest_bytes,
    ingest_url,
    map_headers,
    to_export_url,
)
from jadval_bot.schedule.store import ScheduleEntry

XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _run(coro):
    return asyncio.run(coro)


def _xlsx(*rows, extra_sheet=None) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(list(row))
    if extra_sheet:
        other = wb.create_sheet("Other")
        for row in extra_sheet:
            other.append(list(row))
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


# --- URL rewriting ---


def test_export_url_from_edit_link():
    url = "https://docs.google.com/spreadsheets/d/1AbC-d_9/edit#gid=0"

    assert to_export_url(url) == (
        "https://docs.google.com/spreadsheets/d/1AbC-d_9/export?format=xlsx&gid=0"
    )


def test_export_url_query_gid():
    url = "https://docs.google.com/spreadsheets/d/XYZ/edit?usp=sharing&gid=42"

    assert to_export_url(url).endswith("/d/XYZ/export?format=xlsx&gid=42")


def test_export_url_without_gid():
    url = "https://docs.google.com/spreadsheets/d/XYZ/view"

    assert to_export_url(url) == "https://docs.google.com/spreadsheets/d/XYZ/export?format=xlsx"


def test_export_url_without_document_id():
    with pytest.raises(MalformedSourceError):
        to_export_url("https://example.com/sheet.xlsx")


def test_malformed_source_is_validation_error():
    with pytest.raises(ValidationError):
        to_export_url("not a url")


# --- Header mapping ---


def test_map_headers_synonyms():
    mapping = map_headers(["Kun", "Vaqt", "Fan", "Xona", "Bino", "O'qituvchi"])

    assert mapping == {
        "day": "Kun",
        "time": "Vaqt",
        "subject": "Fan",
        "room": "Xona",
        "building": "Bino",
        "teacher": "O'qituvchi",
    }


def test_map_headers_english_and_russian():
    mapping = map_headers(["Weekday", "Time", "Subject name", "Аудитория", "Teacher name"])

    assert mapping["day"] == "Weekday"
    assert mapping["subject"] == "Subject name"
    assert mapping["room"] == "Аудитория"
    assert mapping["teacher"] == "Teacher name"


def test_map_headers_first_match_wins():
    mapping = map_headers(["Kun", "Fan", "Subject"])

    assert mapping["subject"] == "Fan"


def test_map_headers_day_falls_back_to_first_column():
    mapping = map_headers(["Hafta", "Vaqt", "Fan"])

    assert mapping["day"] == "Hafta"


# --- Parsing ---


def test_minimal_sheet():
    result = ingest_bytes(_xlsx(["Kun", "Vaqt", "Fan"], ["Dushanba", "09:00", "Matematika"]))

    assert result.schedule["Dushanba"] == [ScheduleEntry("09:00", "Matematika", "", "", "")]
    assert "Shanba" not in result.schedule
    assert "Yakshanba" not in result.schedule
    assert all(day in result.schedule for day in ("Seshanba", "Chorshanba", "Payshanba", "Juma"))
    assert result.imported == 1
    assert result.skipped == 0


def test_rows_keep_input_order_and_fields():
    result = ingest_bytes(
        _xlsx(
            ["Kun", "Vaqt", "Fan", "Xona", "Bino", "O'qituvchi"],
            ["Juma", "11:00", "Fizika", 204, "A", "Aliyev"],
            ["Juma", "09:00", "Kimyo", None, None, None],
        )
    )

    assert result.schedule["Juma"] == [
        ScheduleEntry("11:00", "Fizika", "204", "A", "Aliyev"),
        ScheduleEntry("09:00", "Kimyo"),
    ]


def test_time_cells_render_as_hh_mm():
    result = ingest_bytes(_xlsx(["Kun", "Vaqt", "Fan"], ["Seshanba", time(8, 5), "Tarix"]))

    assert result.schedule["Seshanba"][0].time == "08:05"


def test_unrecognized_days_are_skipped_and_counted():
    result = ingest_bytes(
        _xlsx(
            ["Kun", "Vaqt", "Fan"],
            ["Dushanba", "09:00", "Algebra"],
            ["Bayram", "10:00", "Konsert"],
            [None, "11:00", "Bo'sh"],
        )
    )

    assert result.imported == 1
    assert result.skipped == 2


def test_blank_rows_are_ignored():
    result = ingest_bytes(_xlsx(["Kun", "Vaqt", "Fan"], [None, None, None], ["Juma", "09:00", "Ingliz tili"]))

    assert result.imported == 1
    assert result.skipped == 0


def test_weekend_rows_create_weekend_keys():
    result = ingest_bytes(
        _xlsx(["Kun", "Vaqt", "Fan"], ["Yakshanba", "10:00", "Sport"], ["saturday", "09:00", "Klub"])
    )

    assert result.schedule["Yakshanba"] == [ScheduleEntry("10:00", "Sport")]
    assert result.schedule["Shanba"] == [ScheduleEntry("09:00", "Klub")]


def test_only_first_sheet_is_read():
    result = ingest_bytes(
        _xlsx(
            ["Kun", "Vaqt", "Fan"],
            ["Dushanba", "09:00", "Birinchi"],
            extra_sheet=[["Kun", "Vaqt", "Fan"], ["Dushanba", "10:00", "Ikkinchi"]],
        )
    )

    assert [e.subject for e in result.schedule["Dushanba"]] == ["Birinchi"]


def test_duplicate_headers_keep_first_column():
    result = ingest_bytes(
        _xlsx(["Kun", "Vaqt", "Fan", "Fan"], ["Dushanba", "09:00", "Matematika", "Izoh"])
    )

    assert result.schedule["Dushanba"] == [ScheduleEntry("09:00", "Matematika")]
    assert result.columns["subject"] == "Fan"


def test_garbage_bytes_raise_parse_error():
    with pytest.raises(ParseError):
        ingest_bytes(b"definitely not a spreadsheet")


def test_empty_sheet_raises_parse_error():
    with pytest.raises(ParseError):
        ingest_bytes(_xlsx())


# --- Download ---


async def _serve(handler, scenario):
    app = web.Application()
    app.router.add_get("/sheet", handler)
    async with TestServer(app) as server:
        return await scenario(str(server.make_url("/sheet")))


def test_fetch_returns_body():
    payload = _xlsx(["Kun", "Vaqt", "Fan"], ["Juma", "09:00", "Musiqa"])

    async def handler(request):
        return web.Response(body=payload, content_type=XLSX_TYPE)

    assert _run(_serve(handler, fetch_spreadsheet)) == payload


def test_fetch_non_200_raises():
    async def handler(request):
        return web.Response(status=404)

    with pytest.raises(FetchError, match="404"):
        _run(_serve(handler, fetch_spreadsheet))


def test_fetch_html_page_raises():
    async def handler(request):
        return web.Response(text="<html>sign in</html>", content_type="text/html")

    with pytest.raises(FetchError, match="HTML"):
        _run(_serve(handler, fetch_spreadsheet))


def test_fetch_too_large_raises():
    async def handler(request):
        return web.Response(body=b"x" * 2048, content_type=XLSX_TYPE)

    async def scenario(url):
        return await fetch_spreadsheet(url, max_bytes=1024)

    with pytest.raises(FetchError, match="larger"):
        _run(_serve(handler, scenario))


def test_fetch_timeout_raises(monkeypatch):
    monkeypatch.setattr(ingest_mod, "FETCH_TIMEOUT", 0.2)

    async def handler(request):
        await asyncio.sleep(1)
        return web.Response(body=b"late")

    with pytest.raises(FetchError, match="timed out"):
        _run(_serve(handler, fetch_spreadsheet))


def test_ingest_url_rejects_malformed_link_before_fetching():
    with pytest.raises(MalformedSourceError):
        _run(ingest_url("https://example.com/nothing"))
