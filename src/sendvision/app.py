"""Application entry point for the sendvision dashboard CLI."""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import logging
import os
import sys
from datetime import date, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from art import tprint
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sendvision import settings
from sendvision.adapters.record_formatting import format_record_text
from sendvision.client import build_source
from sendvision.core.actions import WorkflowActionExecutor
from sendvision.core.aggregation import (
    OVERALL_BREAKDOWN,
    PERMISSION_BREAKDOWN,
    AggregateResult,
)
from sendvision.core.config import DashboardConfig, RealtimeConfig
from sendvision.core.errors import SendVisionError
from sendvision.core.filters import RecordFilter
from sendvision.core.models import Snapshot
from sendvision.core.queues import QUEUE_ORDER_BY, QUEUE_VIEWS, get_queue
from sendvision.core.session import DashboardSession

NAME = "SENDVISION"
FONT = "tarty-1"

console = Console()
LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    # Longest first so a secret containing another is masked whole.
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/sendvision.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _dashboard_config() -> DashboardConfig:
    return DashboardConfig(
        default_range_days=settings.DEFAULT_RANGE_DAYS,
        timezone=settings.TIMEZONE,
    )


def _realtime_config() -> RealtimeConfig:
    return RealtimeConfig(
        enabled=settings.REALTIME_ENABLED,
        poll_interval_seconds=settings.POLL_INTERVAL_SECONDS,
    )


def _window_filter(args: argparse.Namespace) -> RecordFilter:
    date_range = _dashboard_config().resolve_range(args.date_from, args.date_to)
    return RecordFilter(date_range=date_range)


def _stats_table(result: AggregateResult, snapshot: Snapshot) -> Table:
    table = Table(title="Live Statistics")
    table.add_column("Category")
    table.add_column("Count", justify="right")
    for category, count in result.as_dict().items():
        table.add_row(category, str(count))
    table.caption = f"{len(snapshot.records)} records"
    return table


def _print_breakdowns(session: DashboardSession) -> None:
    charts = session.breakdowns()
    for name, title in ((PERMISSION_BREAKDOWN, "Permission"), (OVERALL_BREAKDOWN, "Overall")):
        segments = charts[name]
        if not segments:
            console.print(f"{title} breakdown: no data")
            continue
        total = sum(count for _, count in segments)
        parts = [f"{category} {count} ({count * 100 / total:.0f}%)" for category, count in segments]
        console.print(f"{title} breakdown: " + ", ".join(parts))


async def _open_idle(record_filter: RecordFilter, **kwargs) -> DashboardSession:
    session = DashboardSession.open(
        build_source(_realtime_config()),
        settings.COLLECTION,
        record_filter,
        tz=settings.TIMEZONE,
        **kwargs,
    )
    await session.wait_until_idle()
    return session


async def _stats(args: argparse.Namespace) -> int:
    session = await _open_idle(_window_filter(args), realtime=False)
    try:
        snapshot = session.snapshot()
        if snapshot.last_error:
            console.print(f"[red]Failed to fetch data:[/red] {escape(str(snapshot.last_error))}")
            return 1
        console.print(_stats_table(session.aggregates(), snapshot))
        _print_breakdowns(session)
        return 0
    finally:
        session.close()


async def _watch(args: argparse.Namespace) -> int:
    realtime = _realtime_config()
    source = build_source(realtime)
    session = DashboardSession.open(
        source,
        settings.COLLECTION,
        _window_filter(args),
        realtime=realtime.enabled,
        tz=settings.TIMEZONE,
    )

    def _render(snapshot: Snapshot) -> None:
        if snapshot.is_loading:
            return
        if snapshot.last_error:
            # Keep showing the last good numbers; the error is transient.
            console.print(f"[red]Refresh failed:[/red] {escape(str(snapshot.last_error))}")
            return
        console.print(_stats_table(session.aggregates(), snapshot))

    session.add_listener(_render)
    watcher = asyncio.create_task(source.watch_changes()) if realtime.enabled else None
    LOGGER.info("Watching %s (realtime=%s)", settings.COLLECTION, realtime.enabled)
    try:
        await asyncio.Event().wait()
    finally:
        session.close()
        if watcher is not None:
            watcher.cancel()
    return 0


async def _queue(args: argparse.Namespace) -> int:
    view = get_queue(args.name)
    session = await _open_idle(view.record_filter, realtime=False, order_by=QUEUE_ORDER_BY)
    try:
        snapshot = session.snapshot()
        if snapshot.last_error:
            console.print(f"[red]Failed to fetch workflow items:[/red] {escape(str(snapshot.last_error))}")
            return 1
        console.print(f"[bold]{view.title}[/bold]")
        if not snapshot.records:
            console.print(Panel(Text(view.empty_message), title="Queue Clear!"))
            return 0
        for record in snapshot.records:
            console.print(Panel(Text(format_record_text(record, view.name, settings.TIMEZONE))))
        return 0
    finally:
        session.close()


async def _act(action_name: str, record_id: str, payload: dict) -> int:
    executor = WorkflowActionExecutor(build_source(_realtime_config()), settings.COLLECTION)
    try:
        await executor.dispatch(action_name, record_id, payload)
    except SendVisionError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        return 1
    console.print("[green]Success.[/green]")
    return 0


async def _resolve(args: argparse.Namespace) -> int:
    return await _act(get_queue("escalations").action, args.record_id, {"reply": args.reply})


async def _reply(args: argparse.Namespace) -> int:
    return await _act(
        get_queue("manual").action,
        args.record_id,
        {"reply": args.reply, "name": args.name},
    )


async def _export(args: argparse.Namespace) -> int:
    session = await _open_idle(_window_filter(args), realtime=False, order_by=QUEUE_ORDER_BY)
    try:
        snapshot = session.snapshot()
    finally:
        session.close()
    if snapshot.last_error:
        console.print(f"[red]Failed to fetch data:[/red] {escape(str(snapshot.last_error))}")
        return 1
    rows = [record.to_row() for record in snapshot.records]
    if not rows:
        console.print("No records to export.")
        return 0

    exports_dir = Path(settings.PROJECT_ROOT) / "exports"
    exports_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    path = exports_dir / f"records-{timestamp}.{args.format}"
    try:
        if args.format == "json":
            path.write_text(json.dumps(rows, indent=2, ensure_ascii=True, default=str), encoding="utf-8")
        else:
            fieldnames = sorted({key for row in rows for key in row})
            with path.open("w", encoding="utf-8", newline="") as handle:
                writer = csv.DictWriter(handle, fieldnames=fieldnames)
                writer.writeheader()
                writer.writerows(rows)
    except OSError as exc:
        console.print(f"[red]Export failed:[/red] {escape(str(exc.strerror or exc))}")
        return 1
    console.print(f"Exported {len(rows)} records to {path}")
    return 0


def _init_db(_args: argparse.Namespace) -> int:
    build_source(_realtime_config()).init_db(settings.COLLECTION)
    console.print(f"Initialized table {settings.COLLECTION} in {settings.DB_PATH}")
    return 0


def _add_window_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--from", dest="date_from", type=date.fromisoformat, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", type=date.fromisoformat, help="End date, inclusive (YYYY-MM-DD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sendvision")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the records table")

    stats = subparsers.add_parser("stats", help="Show live statistics once")
    _add_window_arguments(stats)

    watch = subparsers.add_parser("watch", help="Show live statistics as records change")
    _add_window_arguments(watch)

    queue = subparsers.add_parser("queue", help="List the entries of a work queue")
    queue.add_argument("name", choices=sorted(QUEUE_VIEWS))

    resolve = subparsers.add_parser("resolve", help="Respond to an escalation")
    resolve.add_argument("record_id")
    resolve.add_argument("reply")

    reply = subparsers.add_parser("reply", help="Submit a manual reply")
    reply.add_argument("record_id")
    reply.add_argument("reply")
    reply.add_argument("--name", help="Your name (optional)")

    export = subparsers.add_parser("export", help="Export records in the window")
    export.add_argument("format", choices=["json", "csv"])
    _add_window_arguments(export)

    return parser


COMMANDS = {
    "stats": _stats,
    "watch": _watch,
    "queue": _queue,
    "resolve": _resolve,
    "reply": _reply,
    "export": _export,
}


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    _print_banner()
    _configure_logging()

    if args.command == "init-db":
        sys.exit(_init_db(args))
    try:
        sys.exit(asyncio.run(COMMANDS[args.command](args)))
    except KeyboardInterrupt:
        LOGGER.info("Stopped")


if __name__ == "__main__":
    main()
