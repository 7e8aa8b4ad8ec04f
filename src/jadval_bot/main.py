"""Entry point for jadval-bot."""

from __future__ import annotations

import asyncio
import atexit
import logging
import os
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import discord

from jadval_bot.config import load_config
from jadval_bot.errors import ConfigError

if TYPE_CHECKING:
    from discord.ext.commands import Bot

HELP = """\
jadval-bot -- weekly class schedule bot for Discord DMs

commands:
  jadval-bot                         Run the Discord bot
  jadval-bot schedule show [DAY]     Print the stored schedule (one day or the week)
  jadval-bot schedule import SOURCE  Replace the schedule from an .xlsx path or Sheets URL
  jadval-bot help                    Show this help message

examples:
  jadval-bot schedule show Dushanba
  jadval-bot schedule import timetable.xlsx
"""

log = logging.getLogger(__name__)


def _check_already_running(pid_file: Path) -> None:
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    if pid_file.exists():
        try:
            pid = int(pid_file.read_text().strip())
        except ValueError:
            pid = 0
        proc_cmdline = Path(f"/proc/{pid}/cmdline")
        if pid and proc_cmdline.exists() and "jadval-bot" in proc_cmdline.read_bytes().decode(errors="replace"):
            print(f"jadval-bot is already running (pid {pid})")
            raise SystemExit(1)
    pid_file.write_text(str(os.getpid()))
    atexit.register(pid_file.unlink, missing_ok=True)


def _dispatch_subcommand() -> bool:
    """Route CLI subcommands. Returns True if handled."""
    if len(sys.argv) < 2:
        return False
    cmd = sys.argv[1]
    rest = sys.argv[2:]
    if cmd in ("help", "--help", "-h"):
        print(HELP)
        return True
    if cmd == "schedule":
        from jadval_bot.schedule_cmd import run_schedule_command

        run_schedule_command(rest)
        return True
    return False


async def _run(bot: Bot, token: str) -> None:
    """Run the bot until a signal or a fatal error."""
    loop = asyncio.get_running_loop()
    _background_tasks: set[asyncio.Task[None]] = set()

    def _on_signal(sig_name: str) -> None:
        async def _shutdown() -> None:
            log.info("Received %s, shutting down", sig_name)
            if not bot.is_closed():
                await bot.close()

        task = loop.create_task(_shutdown())
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)

    loop.add_signal_handler(signal.SIGTERM, _on_signal, "SIGTERM")
    loop.add_signal_handler(signal.SIGINT, _on_signal, "SIGINT")

    try:
        await bot.start(token)
    except asyncio.CancelledError:
        pass  # Signal handler already closed the bot
    finally:
        if not bot.is_closed():
            await bot.close()


def main() -> None:
    if _dispatch_subcommand():
        return

    try:
        config = load_config()
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        raise SystemExit(1) from None

    discord.utils.setup_logging()
    _check_already_running(config.data_dir / "bot.pid")

    from jadval_bot.bot import create_bot

    bot = create_bot(config)
    asyncio.run(_run(bot, config.token))


if __name__ == "__main__":
    main()
