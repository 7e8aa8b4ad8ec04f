"""Tests for schedule/render.py: ordering, formatting and chunking."""

from jadval_bot.schedule.render import (
    CHUNK_BUDGET,
    format_entry,
    parse_minutes,
    render_day,
    render_week,
    sort_entries,
)
from jadval_bot.schedule.store import ScheduleEntry


def test_parse_minutes():
    assert parse_minutes("09:30") == 570
    assert parse_minutes("8.15-9.35") == 495
    assert parse_minutes("23:00") == 1380
    assert parse_minutes("tbd") == 0


def test_sort_is_stable_for_ties_and_unparsable():
    a = ScheduleEntry("10:00", "A")
    b = ScheduleEntry("??", "B")
    c = ScheduleEntry("10:00", "C")
    d = ScheduleEntry("", "D")

    assert sort_entries([a, b, c, d]) == [b, d, a, c]


def test_format_entry_full():
    entry = ScheduleEntry("09:00-10:20", "Matematika", "101", "A bino", "Karimov")

    assert format_entry(1, entry) == "1. 09:00-10:20 | Matematika\nA bino | Room: 101\nTeacher: Karimov"


def test_format_entry_minimal():
    assert format_entry(3, ScheduleEntry("12:00", "Tarix")) == "3. 12:00 | Tarix"


def test_format_entry_room_only():
    assert format_entry(1, ScheduleEntry("12:00", "Tarix", room="5")).endswith("\nRoom: 5")


def test_empty_weekday_gets_notice():
    chunks = render_day("Dushanba", [])

    assert len(chunks) == 1
    assert "Dushanba" in chunks[0]
    assert "no classes" in chunks[0]


def test_empty_weekend_renders_nothing():
    assert render_day("Shanba", []) == []
    assert render_day("Yakshanba", []) == []


def test_single_chunk_sorted():
    entries = [ScheduleEntry("11:00", "Fizika"), ScheduleEntry("09:00", "Kimyo")]

    chunks = render_day("Juma", entries)

    assert len(chunks) == 1
    assert "**Juma**" in chunks[0]
    assert chunks[0].index("Kimyo") < chunks[0].index("Fizika")
    assert "1. 09:00 | Kimyo" in chunks[0]


def test_long_day_splits_within_budget():
    entries = [
        ScheduleEntry(f"{8 + i // 6:02d}:{(i % 6) * 10:02d}", f"Subject {i:02d} " + "x" * 80, "R", "B", "T")
        for i in reversed(range(60))
    ]

    chunks = render_day("Seshanba", entries)

    assert len(chunks) > 1
    assert all(len(chunk) <= CHUNK_BUDGET for chunk in chunks)
    joined = "\n".join(chunks)
    positions = [joined.index(f"Subject {i:02d} ") for i in range(60)]
    assert positions == sorted(positions)
    assert all(joined.count(f"Subject {i:02d} ") == 1 for i in range(60))


def test_entry_that_fits_alone_is_not_cut():
    subject = "y" * 1880

    chunks = render_day("Payshanba", [ScheduleEntry("09:00", subject)])

    assert all(len(chunk) <= CHUNK_BUDGET for chunk in chunks)
    assert any(subject in chunk for chunk in chunks)
    assert "**Payshanba**" in chunks[0]


def test_oversized_entry_continues_in_next_chunks():
    subject = "".join(chr(ord("a") + i % 26) for i in range(5000))

    chunks = render_day("Payshanba", [ScheduleEntry("09:00", subject, teacher="Karimov")])

    assert len(chunks) > 2
    assert all(len(chunk) <= CHUNK_BUDGET for chunk in chunks)
    joined = "".join(chunks)
    assert subject in joined
    assert joined.endswith("Teacher: Karimov")


def test_custom_budget():
    entries = [ScheduleEntry(f"0{i}:00", f"Fan {i}") for i in range(1, 6)]

    chunks = render_day("Juma", entries, budget=60)

    assert len(chunks) > 1
    assert all(len(chunk) <= 60 for chunk in chunks)


def test_render_week_skips_weekend_without_data():
    schedule = {
        "Dushanba": [ScheduleEntry("09:00", "Algebra")],
        "Seshanba": [],
        "Chorshanba": [],
        "Payshanba": [],
        "Juma": [],
        "Yakshanba": [ScheduleEntry("10:00", "Sport")],
    }

    chunks = render_week(schedule)

    text = "\n".join(chunks)
    assert len(chunks) == 6
    assert "**Shanba**" not in text
    assert text.index("Dushanba") < text.index("Yakshanba")
