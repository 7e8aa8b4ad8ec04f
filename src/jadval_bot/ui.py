"""Button configs and the menus built from them.

Menus are plain data so the conversation machine stays independent of
discord.py; ``views.build_view`` turns them into Discord components.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from jadval_bot.days import DAYS
from jadval_bot.schedule.store import ScheduleEntry

ButtonStyle = Literal["primary", "secondary", "success", "danger"]

MAX_BUTTONS = 25  # Discord limit per message
MAX_LABEL_LEN = 80


@dataclass(frozen=True, slots=True)
class ButtonConfig:
    label: str
    action: str
    style: ButtonStyle = "secondary"


BACK = ButtonConfig("Back", "back", "danger")


def main_menu(is_admin: bool) -> tuple[ButtonConfig, ...]:
    buttons = [
        ButtonConfig("Today", "today", "primary"),
        ButtonConfig("Tomorrow", "tomorrow", "primary"),
        ButtonConfig("This week", "week", "primary"),
        ButtonConfig("Reminder time", "set_time"),
    ]
    if is_admin:
        buttons.append(ButtonConfig("Admin panel", "admin", "success"))
    return tuple(buttons)


def admin_menu() -> tuple[ButtonConfig, ...]:
    return (
        ButtonConfig("Add entry", "add", "success"),
        ButtonConfig("Upload spreadsheet", "upload", "primary"),
        ButtonConfig("Remove entry", "remove", "danger"),
        ButtonConfig("Statistics", "stats"),
        ButtonConfig("Broadcast", "broadcast"),
        BACK,
    )


def days_menu(action: str) -> tuple[ButtonConfig, ...]:
    """One button per canonical day, e.g. ``add_day:Dushanba``."""
    return (*(ButtonConfig(day, f"{action}:{day}") for day in DAYS), BACK)


def back_only() -> tuple[ButtonConfig, ...]:
    return (BACK,)


def skip_or_back() -> tuple[ButtonConfig, ...]:
    return (ButtonConfig("Skip", "skip"), BACK)


def _truncate(label: str) -> str:
    return label if len(label) <= MAX_LABEL_LEN else label[: MAX_LABEL_LEN - 3] + "..."


def removal_menu(day: str, entries: Sequence[ScheduleEntry]) -> tuple[ButtonConfig, ...]:
    """Entries in stored order; the index in the action is the stored position.

    Capped below the Discord limit; longer days are picked by typing a number.
    """
    buttons = [
        ButtonConfig(
            _truncate(f"{idx + 1}. {entry.subject or entry.time or 'entry'}"),
            f"remove_item:{day}:{idx}",
        )
        for idx, entry in enumerate(entries[: MAX_BUTTONS - 1])
    ]
    buttons.append(BACK)
    return tuple(buttons)
