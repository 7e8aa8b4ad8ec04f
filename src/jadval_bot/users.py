"""Per-user preferences and conversation state, persisted as users.json."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from pathlib import Path

from jadval_bot.errors import PersistenceError
from jadval_bot.states import IDLE, ConversationState, state_from_dict, state_to_dict
from jadval_bot.storage import read_json, write_json

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserRecord:
    id: int
    notify_time: str | None = None
    state: ConversationState = field(default=IDLE)


class UserRegistry:
    """user id -> UserRecord. Every mutation rewrites the whole file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._users: dict[int, UserRecord] = self._load()

    def _load(self) -> dict[int, UserRecord]:
        data = read_json(self.path)
        if not isinstance(data, dict):
            return {}
        users: dict[int, UserRecord] = {}
        for key, raw in data.items():
            try:
                user_id = int(key)
            except ValueError:
                log.warning("Skipping user with non-numeric id: %r", key)
                continue
            if not isinstance(raw, dict):
                continue
            notify_time = raw.get("notify_time")
            users[user_id] = UserRecord(
                id=user_id,
                notify_time=str(notify_time) if notify_time else None,
                state=state_from_dict(raw.get("state")),
            )
        return users

    def _save(self) -> None:
        data = {
            str(user.id): {
                "notify_time": user.notify_time,
                "state": state_to_dict(user.state),
            }
            for user in self._users.values()
        }
        try:
            write_json(self.path, data)
        except PersistenceError:
            log.exception("User registry kept in memory but not saved to disk")

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._users

    def __iter__(self) -> Iterator[UserRecord]:
        return iter(list(self._users.values()))

    def __len__(self) -> int:
        return len(self._users)

    def get(self, user_id: int) -> UserRecord | None:
        return self._users.get(user_id)

    def ids(self) -> list[int]:
        return list(self._users)

    def ensure(self, user_id: int, default_notify_time: str) -> tuple[UserRecord, bool]:
        """Return the record, creating it first for an unseen id. Second item: created."""
        user = self._users.get(user_id)
        if user is not None:
            return user, False
        user = UserRecord(id=user_id, notify_time=default_notify_time)
        self._users[user_id] = user
        self._save()
        return user, True

    def set_state(self, user_id: int, state: ConversationState) -> UserRecord:
        user = replace(self._require(user_id), state=state)
        self._users[user_id] = user
        self._save()
        return user

    def set_notify_time(self, user_id: int, notify_time: str) -> UserRecord:
        user = replace(self._require(user_id), notify_time=notify_time)
        self._users[user_id] = user
        self._save()
        return user

    def remove(self, user_id: int) -> bool:
        if self._users.pop(user_id, None) is None:
            return False
        self._save()
        return True

    def _require(self, user_id: int) -> UserRecord:
        user = self._users.get(user_id)
        if user is None:
            raise KeyError(f"unknown user {user_id}")
        return user
