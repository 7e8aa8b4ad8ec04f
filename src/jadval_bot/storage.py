"""Shared JSON I/O and backup helpers for persistent data files."""

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from jadval_bot.errors import PersistenceError

log = logging.getLogger(__name__)


def read_json(filepath: Path) -> Any | None:
    """Returns None for a missing, unreadable or corrupt file."""
    if not filepath.exists():
        return None
    try:
        return json.loads(filepath.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log.warning("Ignoring unreadable file: %s", filepath, exc_info=True)
        return None


def write_json(filepath: Path, data: Any) -> None:
    """Atomic write (temp file + rename) so readers never see half a document."""
    content = json.dumps(data, ensure_ascii=False, indent=2)
    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=filepath.parent, suffix=".tmp")
        try:
            os.write(fd, content.encode("utf-8"))
        finally:
            os.close(fd)
        os.replace(tmp, filepath)
    except OSError as e:
        raise PersistenceError(f"could not write {filepath}: {e}") from e


def backup_name(filepath: Path, now: datetime | None = None) -> str:
    """``schedule.json`` -> ``schedule.json.2026-01-05T07-30-00-123456.bak``."""
    ts = (now or datetime.now()).isoformat().replace(":", "-").replace(".", "-")
    return f"{filepath.name}.{ts}.bak"


def backup_file(filepath: Path, backup_dir: Path) -> Path | None:
    """Copy filepath into backup_dir with a timestamped name.

    Returns None when there is nothing to back up yet.
    """
    if not filepath.exists():
        return None
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        dest = backup_dir / backup_name(filepath)
        shutil.copyfile(filepath, dest)
    except OSError as e:
        raise PersistenceError(f"could not back up {filepath}: {e}") from e
    return dest
