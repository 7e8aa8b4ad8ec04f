"""Canonical day names, calendar lookups and free-text day resolution."""

from datetime import datetime, timedelta

DAYS: tuple[str, ...] = (
    "Dushanba",
    "Seshanba",
    "Chorshanba",
    "Payshanba",
    "Juma",
    "Shanba",
    "Yakshanba",
)
WEEKDAYS: tuple[str, ...] = DAYS[:5]
WEEKEND: tuple[str, ...] = DAYS[5:]

# Foreign day names -> canonical. Checked after the canonical names themselves.
FOREIGN_DAYS: dict[str, str] = {
    "monday": "Dushanba",
    "tuesday": "Seshanba",
    "wednesday": "Chorshanba",
    "thursday": "Payshanba",
    "friday": "Juma",
    "saturday": "Shanba",
    "sunday": "Yakshanba",
    "понедельник": "Dushanba",
    "вторник": "Seshanba",
    "среда": "Chorshanba",
    "четверг": "Payshanba",
    "пятница": "Juma",
    "суббота": "Shanba",
    "воскресенье": "Yakshanba",
}

# "Shanba" is a substring of "Yakshanba", "Dushanba", "Seshanba"... so the
# longest names must be tried first.
_BY_LENGTH = sorted(DAYS, key=len, reverse=True)


def is_weekend(day: str) -> bool:
    return day in WEEKEND


def day_for(moment: datetime) -> str:
    """Canonical name of the weekday of ``moment`` (Monday first)."""
    return DAYS[moment.weekday()]


def today(now: datetime) -> str:
    return day_for(now)


def tomorrow(now: datetime) -> str:
    return day_for(now + timedelta(days=1))


def resolve_day(value: str) -> str | None:
    """Map free text to a canonical day name by case-insensitive containment.

    Returns None when neither a canonical nor a foreign name is found.
    """
    text = value.strip().casefold()
    if not text:
        return None
    for day in _BY_LENGTH:
        if day.casefold() in text:
            return day
    for name, day in FOREIGN_DAYS.items():
        if name in text:
            return day
    return None
