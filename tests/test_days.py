"""Tests for days.py: canonical order and free-text day resolution."""

from datetime import datetime

import pytest

from jadval_bot.days import DAYS, WEEKDAYS, WEEKEND, is_weekend, resolve_day, today, tomorrow


def test_canonical_order_monday_first():
    assert DAYS[0] == "Dushanba"
    assert DAYS[-1] == "Yakshanba"
    assert WEEKDAYS + WEEKEND == DAYS


def test_weekend_days():
    assert is_weekend("Shanba")
    assert is_weekend("Yakshanba")
    assert not is_weekend("Juma")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Dushanba", "Dushanba"),
        ("  dushanba  ", "Dushanba"),
        ("1-kun Seshanba", "Seshanba"),
        ("YAKSHANBA", "Yakshanba"),
        ("Shanba", "Shanba"),
        ("Monday", "Dushanba"),
        ("пятница", "Juma"),
    ],
)
def test_resolve_day(text, expected):
    assert resolve_day(text) == expected


def test_resolve_day_prefers_longest_name():
    # "Yakshanba" contains "Shanba"
    assert resolve_day("yakshanba kuni") == "Yakshanba"


def test_resolve_day_unknown():
    assert resolve_day("") is None
    assert resolve_day("holiday") is None


def test_today_and_tomorrow():
    monday = datetime(2026, 1, 5, 21, 0)
    sunday = datetime(2026, 1, 11, 21, 0)

    assert today(monday) == "Dushanba"
    assert tomorrow(monday) == "Seshanba"
    assert tomorrow(sunday) == "Dushanba"
