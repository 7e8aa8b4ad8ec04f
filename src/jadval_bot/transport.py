"""Inbound event types, the outbound transport port, and its Discord implementation."""

from __future__ import annotations

import io
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import discord

from jadval_bot.errors import DeliveryError
from jadval_bot.ui import ButtonConfig
from jadval_bot.views import build_view

# 400 (chat/user gone), 403 (blocked or DMs closed), 404 (unknown user)
PERMANENT_STATUSES = frozenset({400, 403, 404})


class MediaKind(Enum):
    PHOTO = "photo"
    VIDEO = "video"
    DOCUMENT = "document"
    AUDIO = "audio"
    VOICE = "voice"


def media_kind(content_type: str | None, *, is_voice: bool = False) -> MediaKind:
    if is_voice:
        return MediaKind.VOICE
    major = (content_type or "").split("/", 1)[0]
    return {
        "image": MediaKind.PHOTO,
        "video": MediaKind.VIDEO,
        "audio": MediaKind.AUDIO,
    }.get(major, MediaKind.DOCUMENT)


@dataclass(frozen=True, slots=True)
class InboundAttachment:
    filename: str
    size: int
    content_type: str | None
    read: Callable[[], Awaitable[bytes]]
    is_voice: bool = False

    @property
    def kind(self) -> MediaKind:
        return media_kind(self.content_type, is_voice=self.is_voice)


@dataclass(frozen=True, slots=True)
class Inbound:
    """One event from a user: typed text, a button press, or attachments."""

    user_id: int
    text: str = ""
    action: str | None = None
    data: str = ""
    attachments: tuple[InboundAttachment, ...] = ()


@dataclass(frozen=True, slots=True)
class MediaFile:
    filename: str
    data: bytes
    kind: MediaKind = MediaKind.DOCUMENT


class Transport(Protocol):
    """Raises DeliveryError on failure."""

    async def send_text(
        self, user_id: int, text: str, buttons: Sequence[ButtonConfig] = ()
    ) -> None: ...

    async def send_media(
        self, user_id: int, files: Sequence[MediaFile], caption: str = ""
    ) -> None: ...


class DiscordTransport:
    """Direct messages through a discord.py client."""

    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def _dm(self, user_id: int) -> discord.DMChannel:
        user = self.client.get_user(user_id) or await self.client.fetch_user(user_id)
        return user.dm_channel or await user.create_dm()

    async def send_text(
        self, user_id: int, text: str, buttons: Sequence[ButtonConfig] = ()
    ) -> None:
        try:
            dm = await self._dm(user_id)
            view = build_view(tuple(buttons))
            if view is None:
                await dm.send(text)
            else:
                await dm.send(text, view=view)
        except discord.HTTPException as e:
            raise _delivery_error(user_id, e) from e

    async def send_media(
        self, user_id: int, files: Sequence[MediaFile], caption: str = ""
    ) -> None:
        try:
            dm = await self._dm(user_id)
            # discord.File consumes its buffer, so each recipient gets fresh ones
            attachments = [discord.File(io.BytesIO(f.data), filename=f.filename) for f in files]
            await dm.send(caption or None, files=attachments)
        except discord.HTTPException as e:
            raise _delivery_error(user_id, e) from e


def _delivery_error(user_id: int, exc: discord.HTTPException) -> DeliveryError:
    permanent = isinstance(exc, (discord.Forbidden, discord.NotFound)) or exc.status in PERMANENT_STATUSES
    return DeliveryError(user_id, f"HTTP {exc.status}: {exc.text}", permanent=permanent)
