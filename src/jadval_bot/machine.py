"""Per-user conversation state machine.

Every inbound event (typed text, a button press, attachments) goes through
``ConversationMachine.handle``. Button actions are dispatched by name; other
content is dispatched on the user's current state. Handlers never raise:
validation problems re-prompt the same step, other failures return the user
to Idle with a notice.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import replace
from datetime import datetime

from jadval_bot.config import NOTIFY_TIME_RE, Config
from jadval_bot.days import DAYS, is_weekend, resolve_day, today, tomorrow
from jadval_bot.errors import (
    EntryIndexError,
    FetchError,
    MalformedSourceError,
    ParseError,
    ValidationError,
)
from jadval_bot.messenger import Messenger
from jadval_bot.reminders import ReminderScheduler
from jadval_bot.schedule.ingest import IngestResult, ingest_bytes, ingest_url
from jadval_bot.schedule.render import MAX_MSG_LEN, render_day, render_week
from jadval_bot.schedule.store import ScheduleEntry, ScheduleStore
from jadval_bot.states import (
    IDLE,
    AddStep,
    AwaitingBroadcastPayload,
    AwaitingNotifyTime,
    AwaitingUploadSource,
    ConversationState,
    Idle,
    ManualAdd,
    Remove,
    RemoveStep,
    is_admin_state,
)
from jadval_bot.transport import Inbound, MediaFile
from jadval_bot.ui import (
    ButtonConfig,
    admin_menu,
    back_only,
    days_menu,
    main_menu,
    removal_menu,
    skip_or_back,
)
from jadval_bot.users import UserRegistry

log = logging.getLogger(__name__)

BROADCAST_DELAY = 0.12  # seconds between broadcast sends
BROADCAST_HEADER = "\N{PUBLIC ADDRESS LOUDSPEAKER} **Announcement**"

# Manual entry: the time field must start with H:MM or HH:MM, the rest is kept
# verbatim so ranges like "09:00-10:20" survive.
_LEADING_TIME_RE = re.compile(r"^\s*([01]?\d|2[0-3])[:.]([0-5]\d)")
_SKIP_WORDS = frozenset({"-", "skip"})

_ADMIN_ACTIONS = frozenset(
    {
        "admin",
        "stats",
        "upload",
        "add",
        "add_day",
        "remove",
        "remove_day",
        "remove_item",
        "broadcast",
    }
)

WELCOME = (
    "\N{WAVING HAND SIGN} hi! i send the class schedule every evening for the next day.\n"
    "use the buttons below to look at the schedule or change your reminder time."
)

_ADD_PROMPTS: dict[AddStep, str] = {
    AddStep.TIME: "time for **{day}**? e.g. `09:00` or `09:00-10:20`.",
    AddStep.SUBJECT: "subject name?",
    AddStep.ROOM: "room? send `-` to leave it empty.",
    AddStep.BUILDING: "building? send `-` to leave it empty.",
    AddStep.TEACHER: "teacher? send `-` to leave it empty.",
}

_NEXT_STEP: dict[AddStep, AddStep] = {
    AddStep.TIME: AddStep.SUBJECT,
    AddStep.SUBJECT: AddStep.ROOM,
    AddStep.ROOM: AddStep.BUILDING,
    AddStep.BUILDING: AddStep.TEACHER,
}

ActionHandler = Callable[[int, ConversationState, str], Awaitable[None]]
ContentHandler = Callable[[Inbound, ConversationState], Awaitable[None]]


class ConversationMachine:
    def __init__(
        self,
        config: Config,
        store: ScheduleStore,
        registry: UserRegistry,
        reminders: ReminderScheduler,
        messenger: Messenger,
        *,
        clock: Callable[[], datetime] | None = None,
        broadcast_delay: float = BROADCAST_DELAY,
    ) -> None:
        self.config = config
        self.store = store
        self.registry = registry
        self.reminders = reminders
        self.messenger = messenger
        self.broadcast_delay = broadcast_delay
        self._clock = clock or (lambda: datetime.now(config.timezone))
        self._tasks: set[asyncio.Task[None]] = set()

        self._actions: dict[str, ActionHandler] = {
            "menu": self._on_menu,
            "back": self._on_back,
            "today": self._on_today,
            "tomorrow": self._on_tomorrow,
            "week": self._on_week,
            "set_time": self._on_set_time,
            "admin": self._on_admin,
            "stats": self._on_stats,
            "upload": self._on_upload,
            "add": self._on_add,
            "add_day": self._on_add_day,
            "skip": self._on_skip,
            "remove": self._on_remove,
            "remove_day": self._on_remove_day,
            "remove_item": self._on_remove_item,
            "broadcast": self._on_broadcast,
        }
        self._content: dict[type, ContentHandler] = {
            Idle: self._idle_content,
            AwaitingNotifyTime: self._notify_time_content,
            AwaitingUploadSource: self._upload_content,
            ManualAdd: self._manual_add_content,
            Remove: self._remove_content,
            AwaitingBroadcastPayload: self._broadcast_content,
        }

    def is_admin(self, user_id: int) -> bool:
        return self.config.is_admin(user_id)

    async def handle(self, event: Inbound) -> None:
        """Process one inbound event. Never raises."""
        user_id = event.user_id
        try:
            user, created = self.registry.ensure(user_id, self.config.default_notify_time)
            if created:
                log.info("New user %s", user_id)
                if user.notify_time:
                    self.reminders.schedule(user_id, user.notify_time)
            state = user.state
            if is_admin_state(state) and not self.is_admin(user_id):
                state = self._set(user_id, IDLE)

            if event.action:
                await self._dispatch_action(user_id, state, event.action, event.data)
            else:
                await self._content[type(state)](event, state)
        except Exception:
            log.exception("Unhandled error while handling an event from %s", user_id)
            self._set(user_id, IDLE)
            await self.messenger.send(
                user_id,
                "something went wrong. back to the main menu.",
                main_menu(self.is_admin(user_id)),
            )

    async def join_background(self) -> None:
        """Wait for running broadcasts."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- helpers --

    def _set(self, user_id: int, state: ConversationState) -> ConversationState:
        # A permanent delivery failure can drop the user mid-handler.
        if user_id in self.registry:
            self.registry.set_state(user_id, state)
        return state

    async def _say(
        self, user_id: int, text: str, buttons: Sequence[ButtonConfig] = ()
    ) -> None:
        await self.messenger.send(user_id, text, buttons)

    async def _to_idle(
        self, user_id: int, text: str, buttons: Sequence[ButtonConfig] | None = None
    ) -> None:
        self._set(user_id, IDLE)
        if buttons is None:
            buttons = main_menu(self.is_admin(user_id))
        await self._say(user_id, text, buttons)

    async def _dispatch_action(
        self, user_id: int, state: ConversationState, action: str, data: str
    ) -> None:
        handler = self._actions.get(action)
        if handler is None:
            log.warning("Unknown action %r from %s", action, user_id)
            await self._say(user_id, "that button is no longer valid.", main_menu(self.is_admin(user_id)))
            return
        if action in _ADMIN_ACTIONS and not self.is_admin(user_id):
            await self._say(user_id, "this is for administrators only.", main_menu(False))
            return
        await handler(user_id, state, data)

    # -- navigation and views --

    async def _on_menu(self, user_id: int, state: ConversationState, data: str) -> None:
        await self._to_idle(user_id, "main menu:")

    async def _on_back(self, user_id: int, state: ConversationState, data: str) -> None:
        if isinstance(state, Idle):
            await self._say(user_id, "main menu:", main_menu(self.is_admin(user_id)))
            return
        await self._to_idle(user_id, "cancelled.")

    async def _show_day(self, user_id: int, day: str) -> None:
        entries = self.store.get(day)
        if is_weekend(day) and not entries:
            await self._say(
                user_id, f"no schedule published for **{day}**.", main_menu(self.is_admin(user_id))
            )
            return
        await self.messenger.send_chunks(
            user_id, render_day(day, entries), main_menu(self.is_admin(user_id))
        )

    async def _on_today(self, user_id: int, state: ConversationState, data: str) -> None:
        await self._show_day(user_id, today(self._clock()))

    async def _on_tomorrow(self, user_id: int, state: ConversationState, data: str) -> None:
        await self._show_day(user_id, tomorrow(self._clock()))

    async def _on_week(self, user_id: int, state: ConversationState, data: str) -> None:
        chunks = render_week(self.store.snapshot())
        await self.messenger.send_chunks(user_id, chunks, main_menu(self.is_admin(user_id)))

    # -- reminder time --

    async def _on_set_time(self, user_id: int, state: ConversationState, data: str) -> None:
        self._set(user_id, AwaitingNotifyTime())
        user = self.registry.get(user_id)
        current = user.notify_time if user and user.notify_time else "not set"
        await self._say(
            user_id,
            f"your reminder time is **{current}**. send a new time as HH:MM, e.g. `07:30`.",
            back_only(),
        )

    async def _notify_time_content(self, event: Inbound, state: ConversationState) -> None:
        value = event.text.strip()
        if not NOTIFY_TIME_RE.match(value):
            await self._say(event.user_id, "send the time as HH:MM, e.g. `07:30`.", back_only())
            return
        self.registry.set_notify_time(event.user_id, value)
        self.reminders.schedule(event.user_id, value)
        await self._to_idle(event.user_id, f"done. i'll send tomorrow's classes every day at **{value}**.")

    # -- idle --

    async def _idle_content(self, event: Inbound, state: ConversationState) -> None:
        text = event.text.strip().casefold()
        is_admin = self.is_admin(event.user_id)
        if text == "/start":
            await self._say(event.user_id, WELCOME, main_menu(is_admin))
        elif text == "/menu":
            await self._say(event.user_id, "main menu:", main_menu(is_admin))
        else:
            await self._say(event.user_id, "pick an option below.", main_menu(is_admin))

    # -- admin panel --

    async def _on_admin(self, user_id: int, state: ConversationState, data: str) -> None:
        await self._to_idle(user_id, "admin panel:", admin_menu())

    async def _on_stats(self, user_id: int, state: ConversationState, data: str) -> None:
        snapshot = self.store.snapshot()
        entries = sum(len(items) for items in snapshot.values())
        await self._say(
            user_id,
            "\n".join(
                [
                    "\N{BAR CHART} **Statistics**",
                    f"users: {len(self.registry)}",
                    f"administrators: {len(self.config.admin_ids)}",
                    f"active reminders: {self.reminders.count()}",
                    f"schedule entries: {entries}",
                ]
            ),
            admin_menu(),
        )

    # -- upload --

    async def _on_upload(self, user_id: int, state: ConversationState, data: str) -> None:
        self._set(user_id, AwaitingUploadSource())
        await self._say(
            user_id,
            "send an .xlsx file or paste a Google Sheets link. "
            "the current schedule will be replaced.",
            back_only(),
        )

    async def _upload_content(self, event: Inbound, state: ConversationState) -> None:
        user_id = event.user_id
        text = event.text.strip()
        try:
            if event.attachments:
                attachment = event.attachments[0]
                if attachment.size > self.config.max_file_size:
                    limit = self.config.max_file_size // (1024 * 1024)
                    await self._to_idle(user_id, f"that file is too large (limit {limit} MB).", admin_menu())
                    return
                data = await attachment.read()
                result = await asyncio.to_thread(ingest_bytes, data)
            elif text.lower().startswith("http"):
                result = await ingest_url(text, max_bytes=self.config.max_file_size)
            else:
                await self._say(user_id, "send an .xlsx file or a Google Sheets link.", back_only())
                return
            self.store.replace_all(result.schedule)
        except MalformedSourceError:
            await self._say(
                user_id, "that link has no spreadsheet id. paste the full Google Sheets link.", back_only()
            )
            return
        except FetchError as e:
            log.warning("Spreadsheet download failed for %s: %s", user_id, e)
            await self._to_idle(user_id, f"could not download the spreadsheet: {e}", admin_menu())
            return
        except (ParseError, ValidationError) as e:
            log.warning("Spreadsheet rejected for %s: %s", user_id, e)
            await self._to_idle(user_id, f"could not read the spreadsheet: {e}", admin_menu())
            return
        await self._to_idle(user_id, _import_summary(result), admin_menu())

    # -- manual add --

    async def _on_add(self, user_id: int, state: ConversationState, data: str) -> None:
        self._set(user_id, ManualAdd())
        await self._say(user_id, "which day?", days_menu("add_day"))

    async def _on_add_day(self, user_id: int, state: ConversationState, data: str) -> None:
        if data not in DAYS:
            await self._say(user_id, "which day?", days_menu("add_day"))
            return
        await self._advance(user_id, ManualAdd(step=AddStep.TIME, day=data))

    async def _on_skip(self, user_id: int, state: ConversationState, data: str) -> None:
        if isinstance(state, ManualAdd) and state.step in (AddStep.ROOM, AddStep.BUILDING, AddStep.TEACHER):
            await self._manual_add_step(user_id, state, "-")
            return
        await self._say(user_id, "nothing to skip.", main_menu(self.is_admin(user_id)))

    async def _advance(self, user_id: int, state: ManualAdd) -> None:
        self._set(user_id, state)
        buttons = back_only() if state.step in (AddStep.TIME, AddStep.SUBJECT) else skip_or_back()
        await self._say(user_id, _ADD_PROMPTS[state.step].format(day=state.day), buttons)

    async def _manual_add_content(self, event: Inbound, state: ConversationState) -> None:
        assert isinstance(state, ManualAdd)
        await self._manual_add_step(event.user_id, state, event.text.strip())

    async def _manual_add_step(self, user_id: int, state: ManualAdd, text: str) -> None:
        step = state.step
        if step is AddStep.CHOOSE_DAY:
            day = resolve_day(text)
            if day is None:
                await self._say(user_id, "pick a day from the buttons or type its name.", days_menu("add_day"))
                return
            await self._advance(user_id, replace(state, step=AddStep.TIME, day=day))
            return

        if step is AddStep.TIME:
            if not _LEADING_TIME_RE.match(text):
                await self._say(user_id, "the time must start with HH:MM, e.g. `09:00-10:20`.", back_only())
                return
            await self._advance(user_id, replace(state, step=AddStep.SUBJECT, time=text))
            return

        if step is AddStep.SUBJECT:
            if not text:
                await self._say(user_id, "the subject can't be empty.", back_only())
                return
            await self._advance(user_id, replace(state, step=AddStep.ROOM, subject=text))
            return

        value = "" if text.casefold() in _SKIP_WORDS else text
        if step is AddStep.TEACHER:
            await self._finish_add(user_id, state, value)
            return
        field_name = step.value  # room or building
        await self._advance(user_id, replace(state, step=_NEXT_STEP[step], **{field_name: value}))

    async def _finish_add(self, user_id: int, state: ManualAdd, teacher: str) -> None:
        if state.day is None:
            await self._to_idle(user_id, "the day was lost, start again.", admin_menu())
            return
        entry = ScheduleEntry(
            time=state.time,
            subject=state.subject,
            room=state.room,
            building=state.building,
            teacher=teacher,
        )
        self.store.add_entry(state.day, entry)
        log.info("User %s added %s %s to %s", user_id, entry.time, entry.subject, state.day)
        await self._to_idle(
            user_id, f"added to **{state.day}**: {entry.time} | {entry.subject}", admin_menu()
        )

    # -- remove --

    async def _on_remove(self, user_id: int, state: ConversationState, data: str) -> None:
        self._set(user_id, Remove())
        await self._say(user_id, "remove from which day?", days_menu("remove_day"))

    async def _on_remove_day(self, user_id: int, state: ConversationState, data: str) -> None:
        await self._pick_remove_day(user_id, data if data in DAYS else None)

    async def _pick_remove_day(self, user_id: int, day: str | None) -> None:
        if day is None:
            self._set(user_id, Remove())
            await self._say(user_id, "pick a day from the buttons or type its name.", days_menu("remove_day"))
            return
        entries = self.store.get(day)
        if not entries:
            self._set(user_id, Remove())
            await self._say(user_id, f"**{day}** has no entries. pick another day.", days_menu("remove_day"))
            return
        self._set(user_id, Remove(step=RemoveStep.CHOOSE_ITEM, day=day))
        await self._say(user_id, _removal_prompt(day, entries), removal_menu(day, entries))

    async def _on_remove_item(self, user_id: int, state: ConversationState, data: str) -> None:
        day, _, raw_index = data.rpartition(":")
        if day not in DAYS or not raw_index.isdigit():
            log.warning("Malformed remove_item payload %r from %s", data, user_id)
            await self._pick_remove_day(user_id, None)
            return
        # Entries are addressed by position, so a button from an older picker
        # could point at a different entry now.
        if not (isinstance(state, Remove) and state.step is RemoveStep.CHOOSE_ITEM and state.day == day):
            await self._say(user_id, "that list is out of date. pick the day again.", days_menu("remove_day"))
            self._set(user_id, Remove())
            return
        await self._remove(user_id, day, int(raw_index))

    async def _remove_content(self, event: Inbound, state: ConversationState) -> None:
        assert isinstance(state, Remove)
        text = event.text.strip()
        if state.step is RemoveStep.CHOOSE_DAY or state.day is None:
            await self._pick_remove_day(event.user_id, resolve_day(text))
            return
        if not text.isdigit():
            entries = self.store.get(state.day)
            await self._say(
                event.user_id, "send the number of the entry to remove.", removal_menu(state.day, entries)
            )
            return
        await self._remove(event.user_id, state.day, int(text) - 1)

    async def _remove(self, user_id: int, day: str, index: int) -> None:
        try:
            entry = self.store.remove_entry(day, index)
        except EntryIndexError:
            entries = self.store.get(day)
            if not entries:
                await self._pick_remove_day(user_id, None)
                return
            self._set(user_id, Remove(step=RemoveStep.CHOOSE_ITEM, day=day))
            await self._say(
                user_id,
                "that entry no longer exists. pick again.\n\n" + _removal_prompt(day, entries),
                removal_menu(day, entries),
            )
            return
        log.info("User %s removed %s %s from %s", user_id, entry.time, entry.subject, day)
        await self._to_idle(
            user_id, f"removed from **{day}**: {entry.time} | {entry.subject}", admin_menu()
        )

    # -- broadcast --

    async def _on_broadcast(self, user_id: int, state: ConversationState, data: str) -> None:
        self._set(user_id, AwaitingBroadcastPayload())
        await self._say(
            user_id,
            "send the message to broadcast: text, photos, video, files or a voice message.",
            back_only(),
        )

    async def _broadcast_content(self, event: Inbound, state: ConversationState) -> None:
        user_id = event.user_id
        text = event.text.strip()
        if not text and not event.attachments:
            await self._say(user_id, "send something to broadcast.", back_only())
            return
        try:
            files = [
                MediaFile(filename=a.filename, data=await a.read(), kind=a.kind)
                for a in event.attachments
            ]
        except FetchError as e:
            log.warning("Broadcast attachment download failed for %s: %s", user_id, e)
            await self._to_idle(user_id, "could not read the attachments. nothing was sent.", admin_menu())
            return

        self._set(user_id, IDLE)
        await self._say(user_id, "broadcast started.", admin_menu())
        task = asyncio.create_task(self._broadcast(user_id, text, files))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def broadcast_recipients(self) -> list[int]:
        return [uid for uid in self.registry.ids() if not self.is_admin(uid)]

    async def _broadcast(self, sender_id: int, text: str, files: list[MediaFile]) -> None:
        body = f"{BROADCAST_HEADER}\n\n{text}" if text else BROADCAST_HEADER
        body = body[:MAX_MSG_LEN]
        recipients = self.broadcast_recipients()
        delivered = 0
        try:
            for i, recipient in enumerate(recipients):
                if i:
                    await asyncio.sleep(self.broadcast_delay)
                # dropped by an earlier permanent failure
                if recipient not in self.registry:
                    continue
                if files:
                    ok = await self.messenger.send_media(recipient, files, body)
                else:
                    ok = await self.messenger.send(recipient, body)
                delivered += ok
        except Exception:
            log.exception("Broadcast from %s stopped early", sender_id)
        log.info("Broadcast from %s delivered to %d/%d", sender_id, delivered, len(recipients))
        await self.messenger.send(
            sender_id, f"broadcast delivered to {delivered} of {len(recipients)} users."
        )


def _import_summary(result: IngestResult) -> str:
    lines = [f"schedule replaced: {result.imported} entries imported."]
    if result.skipped:
        lines.append(f"{result.skipped} row(s) skipped (no recognizable day).")
    return "\n".join(lines)


def _removal_prompt(day: str, entries: Sequence[ScheduleEntry]) -> str:
    lines = [f"entries on **{day}**:"]
    for i, entry in enumerate(entries, start=1):
        lines.append(f"{i}. {entry.time} | {entry.subject}")
    lines.append("\npick one, or send its number.")
    return "\n".join(lines)[:MAX_MSG_LEN]
