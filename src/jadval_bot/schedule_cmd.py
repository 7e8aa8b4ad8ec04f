"""CLI handler for `jadval-bot schedule` subcommand."""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

from jadval_bot.config import DEFAULT_MAX_FILE_SIZE, resolve_data_dir
from jadval_bot.days import resolve_day
from jadval_bot.errors import FetchError, ParseError, ValidationError
from jadval_bot.schedule.ingest import IngestResult, ingest_bytes, ingest_url
from jadval_bot.schedule.render import render_day, render_week
from jadval_bot.schedule.store import JsonSchedulePersistence, ScheduleStore


def _open_store() -> ScheduleStore:
    data_dir = resolve_data_dir()
    return ScheduleStore(
        JsonSchedulePersistence(data_dir / "schedule.json", data_dir / "backups")
    )


def run_schedule_command(argv: list[str]) -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(prog="jadval-bot schedule")
    sub = parser.add_subparsers(dest="action")

    # -- show --
    show_p = sub.add_parser("show", help="Print the stored schedule")
    show_p.add_argument("day", nargs="?", help="Day name (any language); omit for the week")

    # -- import --
    import_p = sub.add_parser("import", help="Replace the schedule from a spreadsheet")
    import_p.add_argument("source", help="Path to an .xlsx file or a Google Sheets URL")

    args = parser.parse_args(argv)

    if args.action == "show":
        _handle_show(args.day)
    elif args.action == "import":
        _handle_import(args.source)
    else:
        parser.print_help()
        sys.exit(1)


def _handle_show(day_name: str | None) -> None:
    store = _open_store()
    if day_name is None:
        chunks = render_week(store.snapshot())
    else:
        day = resolve_day(day_name)
        if day is None:
            print(f"error: unknown day {day_name!r}")
            sys.exit(1)
        chunks = render_day(day, store.get(day))
    if not chunks:
        print("nothing scheduled")
        return
    print("\n\n".join(chunks))


def _load_source(source: str) -> IngestResult:
    if source.lower().startswith("http"):
        return asyncio.run(ingest_url(source, max_bytes=DEFAULT_MAX_FILE_SIZE))
    return ingest_bytes(Path(source).read_bytes())


def _handle_import(source: str) -> None:
    try:
        result = _load_source(source)
        _open_store().replace_all(result.schedule)
    except OSError as e:
        print(f"error: cannot read {source}: {e.strerror}")
        sys.exit(1)
    except (FetchError, ParseError, ValidationError) as e:
        print(f"error: {e}")
        sys.exit(1)
    print(f"imported {result.imported} entries ({result.skipped} rows skipped)")
