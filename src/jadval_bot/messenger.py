"""Outbound sends with unreachable-user cleanup.

A permanent delivery failure drops the recipient from the registry, runs the
forget hooks (the reminder scheduler cancels their job) and tells the admins.
Transient failures are logged and otherwise ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence

from jadval_bot.errors import DeliveryError
from jadval_bot.transport import MediaFile, Transport
from jadval_bot.ui import ButtonConfig
from jadval_bot.users import UserRegistry

log = logging.getLogger(__name__)


class Messenger:
    def __init__(
        self,
        transport: Transport,
        registry: UserRegistry,
        admin_ids: Iterable[int],
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.admin_ids = frozenset(admin_ids)
        self._forget_hooks: list[Callable[[int], object]] = []

    def on_forget(self, hook: Callable[[int], object]) -> None:
        self._forget_hooks.append(hook)

    async def send(
        self, user_id: int, text: str, buttons: Sequence[ButtonConfig] = ()
    ) -> bool:
        try:
            await self.transport.send_text(user_id, text, buttons)
        except DeliveryError as e:
            await self._failed(e)
            return False
        return True

    async def send_chunks(
        self, user_id: int, chunks: Sequence[str], buttons: Sequence[ButtonConfig] = ()
    ) -> bool:
        """Send in order; buttons ride on the last chunk. Stops at the first failure."""
        for i, chunk in enumerate(chunks):
            last = i == len(chunks) - 1
            if not await self.send(user_id, chunk, buttons if last else ()):
                return False
        return True

    async def send_media(
        self, user_id: int, files: Sequence[MediaFile], caption: str = ""
    ) -> bool:
        try:
            await self.transport.send_media(user_id, files, caption)
        except DeliveryError as e:
            await self._failed(e)
            return False
        return True

    async def notify_admins(self, text: str, *, exclude: int | None = None) -> None:
        """Best effort; failures here never trigger registry cleanup."""
        for admin_id in sorted(self.admin_ids):
            if admin_id == exclude:
                continue
            try:
                await self.transport.send_text(admin_id, text)
            except DeliveryError:
                log.warning("Could not notify admin %s", admin_id, exc_info=True)

    async def _failed(self, err: DeliveryError) -> None:
        if not err.permanent:
            log.warning("Delivery to %s failed: %s", err.user_id, err)
            return
        log.warning("Delivery to %s failed permanently: %s", err.user_id, err)
        if not self.registry.remove(err.user_id):
            return
        for hook in self._forget_hooks:
            try:
                hook(err.user_id)
            except Exception:
                log.exception("Forget hook failed for %s", err.user_id)
        await self.notify_admins(
            f"could not reach user {err.user_id} ({err}); removed from the user list.",
            exclude=err.user_id,
        )
