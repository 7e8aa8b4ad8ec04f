"""User-configurable values loaded from environment variables."""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from jadval_bot.errors import ConfigError

log = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Asia/Tashkent"
DEFAULT_NOTIFY_TIME = "07:30"
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
DEFAULT_DATA_DIR = Path.home() / ".jadval-bot"

NOTIFY_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True, slots=True)
class Config:
    token: str
    admin_ids: frozenset[int]
    default_notify_time: str = DEFAULT_NOTIFY_TIME
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    timezone: ZoneInfo = ZoneInfo(DEFAULT_TIMEZONE)
    data_dir: Path = DEFAULT_DATA_DIR

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids


def _parse_admin_ids(raw: str) -> frozenset[int]:
    ids: set[int] = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.add(int(part))
        except ValueError:
            raise ConfigError(f"ADMIN_IDS contains a non-numeric id: {part!r}") from None
    return frozenset(ids)


def resolve_data_dir() -> Path:
    return Path(os.environ.get("JADVAL_DATA_DIR") or DEFAULT_DATA_DIR).expanduser()


def load_config(dotenv_path: Path | None = None) -> Config:
    """Read the environment (and .env) into a Config. Raises ConfigError."""
    load_dotenv(dotenv_path)

    token = os.environ.get("DISCORD_TOKEN", "").strip()
    if not token:
        raise ConfigError("Set DISCORD_TOKEN in .env or your environment.")

    admin_ids = _parse_admin_ids(os.environ.get("ADMIN_IDS", ""))
    if not admin_ids:
        log.warning("ADMIN_IDS is empty; nobody can edit the schedule")

    notify_time = os.environ.get("DEFAULT_NOTIFY_TIME") or DEFAULT_NOTIFY_TIME
    if not NOTIFY_TIME_RE.match(notify_time):
        raise ConfigError(f"DEFAULT_NOTIFY_TIME must be HH:MM, got {notify_time!r}")

    raw_size = os.environ.get("MAX_FILE_SIZE_BYTES") or str(DEFAULT_MAX_FILE_SIZE)
    try:
        max_file_size = int(raw_size)
    except ValueError:
        raise ConfigError(f"MAX_FILE_SIZE_BYTES must be an integer, got {raw_size!r}") from None

    tz_name = os.environ.get("JADVAL_TIMEZONE") or DEFAULT_TIMEZONE
    try:
        timezone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"Unknown timezone: {tz_name!r}") from None

    data_dir = resolve_data_dir()

    return Config(
        token=token,
        admin_ids=admin_ids,
        default_notify_time=notify_time,
        max_file_size=max_file_size,
        timezone=timezone,
        data_dir=data_dir,
    )
