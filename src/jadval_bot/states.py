"""Conversation state: one closed set of variants, one active flow per user.

Each variant is a frozen dataclass; transitions build a new value with
``dataclasses.replace`` instead of toggling flags. States round-trip through
plain dicts so the registry can persist them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class AddStep(Enum):
    CHOOSE_DAY = "choose_day"
    TIME = "time"
    SUBJECT = "subject"
    ROOM = "room"
    BUILDING = "building"
    TEACHER = "teacher"


class RemoveStep(Enum):
    CHOOSE_DAY = "choose_day"
    CHOOSE_ITEM = "choose_item"


@dataclass(frozen=True, slots=True)
class Idle:
    kind = "idle"


@dataclass(frozen=True, slots=True)
class AwaitingNotifyTime:
    kind = "awaiting_notify_time"


@dataclass(frozen=True, slots=True)
class AwaitingUploadSource:
    kind = "awaiting_upload_source"


@dataclass(frozen=True, slots=True)
class ManualAdd:
    """Partial entry accumulated one field per step."""

    kind = "manual_add"

    step: AddStep = AddStep.CHOOSE_DAY
    day: str | None = None
    time: str = ""
    subject: str = ""
    room: str = ""
    building: str = ""


@dataclass(frozen=True, slots=True)
class Remove:
    kind = "remove"

    step: RemoveStep = RemoveStep.CHOOSE_DAY
    day: str | None = None


@dataclass(frozen=True, slots=True)
class AwaitingBroadcastPayload:
    kind = "awaiting_broadcast_payload"


ConversationState = (
    Idle
    | AwaitingNotifyTime
    | AwaitingUploadSource
    | ManualAdd
    | Remove
    | AwaitingBroadcastPayload
)

ADMIN_STATES: tuple[type, ...] = (
    AwaitingUploadSource,
    ManualAdd,
    Remove,
    AwaitingBroadcastPayload,
)

_BY_KIND: dict[str, type] = {
    cls.kind: cls
    for cls in (
        Idle,
        AwaitingNotifyTime,
        AwaitingUploadSource,
        ManualAdd,
        Remove,
        AwaitingBroadcastPayload,
    )
}

IDLE = Idle()


def is_admin_state(state: ConversationState) -> bool:
    return isinstance(state, ADMIN_STATES)


def state_to_dict(state: ConversationState) -> dict[str, Any]:
    data: dict[str, Any] = {"kind": state.kind}
    for key, value in asdict(state).items():
        data[key] = value.value if isinstance(value, Enum) else value
    return data


def state_from_dict(data: Any) -> ConversationState:
    """Unknown or damaged states decode as Idle."""
    if not isinstance(data, dict):
        return IDLE
    cls = _BY_KIND.get(data.get("kind", ""))
    try:
        if cls is ManualAdd:
            return ManualAdd(
                step=AddStep(data.get("step", AddStep.CHOOSE_DAY.value)),
                day=data.get("day"),
                time=str(data.get("time", "")),
                subject=str(data.get("subject", "")),
                room=str(data.get("room", "")),
                building=str(data.get("building", "")),
            )
        if cls is Remove:
            return Remove(
                step=RemoveStep(data.get("step", RemoveStep.CHOOSE_DAY.value)),
                day=data.get("day"),
            )
    except ValueError:
        return IDLE
    if cls is None:
        return IDLE
    return cls()
