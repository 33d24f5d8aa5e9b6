"""Command-line entry point for pomotrack.

Builds the storage and application state, then either drives a timed session
from a Qt event loop or runs one of the bookkeeping commands.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

from PyQt6.QtCore import QCoreApplication, QTimer

from pomotrack import config
from pomotrack.core.app_state import AppState
from pomotrack.core.clock import TickSource
from pomotrack.core.events import SessionEvent
from pomotrack.core.session import SessionType
from pomotrack.data.storage import (
    BLOCK_STATUSES,
    BLOCK_TYPES,
    TASK_PRIORITIES,
    TASK_STATUSES,
    Storage,
    TimeBlockRow,
)
from pomotrack.errors import ScheduleConflictError, SettingsError, StorageError
from pomotrack.logging_config import configure_logging, get_logger

logger = get_logger(__name__)

SESSION_TYPES = [t.value for t in SessionType]


def format_seconds(seconds: int) -> str:
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def iso_datetime(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DDTHH:MM, got {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pomotrack", description="Pomodoro timer with task tracking")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    parser.add_argument("--verbose", action="store_true", help="Write debug messages to the log file")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run timed sessions")
    run.add_argument("--type", choices=SESSION_TYPES, default=SessionType.WORK.value)
    run.add_argument("--task", default=None, help="Task id to credit work sessions to")
    run.add_argument("--sessions", type=positive_int, default=1, help="Stop after this many finished sessions")
    run.add_argument("--tick-ms", type=positive_int, default=config.TICK_INTERVAL_MS, help="Milliseconds per timer second")

    settings = sub.add_parser("settings", help="Show or change timer settings")
    settings.add_argument("--work", type=int, dest="work_duration_minutes")
    settings.add_argument("--short-break", type=int, dest="short_break_duration_minutes")
    settings.add_argument("--long-break", type=int, dest="long_break_duration_minutes")
    settings.add_argument("--interval", type=int, dest="break_interval")
    settings.add_argument("--auto-start", action=argparse.BooleanOptionalAction, dest="auto_start")
    settings.add_argument("--sound", action=argparse.BooleanOptionalAction, dest="sound_enabled")

    history = sub.add_parser("history", help="List recently finished sessions")
    history.add_argument("--clear", action="store_true", help="Empty the history log")
    history.add_argument("--type", choices=SESSION_TYPES, default=None, help="Only recorded sessions of this type")
    history.add_argument("--task", default=None, help="Only recorded sessions credited to this task")
    history.add_argument("--limit", type=positive_int, default=20)

    tasks = sub.add_parser("tasks", help="Manage tasks")
    task_sub = tasks.add_subparsers(dest="task_command", required=True)
    add = task_sub.add_parser("add")
    add.add_argument("title")
    add.add_argument("--estimate", type=int, default=1)
    add.add_argument("--priority", choices=TASK_PRIORITIES, default="medium")
    task_list = task_sub.add_parser("list")
    task_list.add_argument("--status", choices=TASK_STATUSES, default=None)
    edit = task_sub.add_parser("edit")
    edit.add_argument("task_id", type=int)
    edit.add_argument("--title", default=None)
    edit.add_argument("--description", default=None)
    edit.add_argument("--estimate", type=int, default=None, dest="estimated_pomodoros")
    edit.add_argument("--priority", choices=TASK_PRIORITIES, default=None)
    status = task_sub.add_parser("status")
    status.add_argument("task_id", type=int)
    status.add_argument("status", choices=TASK_STATUSES)
    rm = task_sub.add_parser("rm")
    rm.add_argument("task_id", type=int)

    blocks = sub.add_parser("blocks", help="Plan the day in time blocks")
    block_sub = blocks.add_subparsers(dest="block_command", required=True)
    block_add = block_sub.add_parser("add")
    block_add.add_argument("title")
    block_add.add_argument("--start", type=iso_datetime, required=True)
    block_add.add_argument("--end", type=iso_datetime, required=True)
    block_add.add_argument("--type", choices=BLOCK_TYPES, default="work")
    block_add.add_argument("--task", type=int, default=None)
    block_add.add_argument("--color", default=None)
    block_add.add_argument("--location", default="")
    block_add.add_argument("--description", default="")
    block_list = block_sub.add_parser("list")
    block_list.add_argument("--from", type=iso_datetime, default=None, dest="start")
    block_list.add_argument("--to", type=iso_datetime, default=None, dest="end")
    block_list.add_argument("--type", choices=BLOCK_TYPES, default=None)
    block_list.add_argument("--hide-cancelled", action="store_true")
    block_sub.add_parser("today")
    block_edit = block_sub.add_parser("edit")
    block_edit.add_argument("block_id", type=int)
    block_edit.add_argument("--title", default=None)
    block_edit.add_argument("--start", type=iso_datetime, default=None, dest="start_time")
    block_edit.add_argument("--end", type=iso_datetime, default=None, dest="end_time")
    block_edit.add_argument("--type", choices=BLOCK_TYPES, default=None)
    block_edit.add_argument("--location", default=None)
    block_status = block_sub.add_parser("status")
    block_status.add_argument("block_id", type=int)
    block_status.add_argument("status", choices=BLOCK_STATUSES)
    block_rm = block_sub.add_parser("rm")
    block_rm.add_argument("block_id", type=int)
    block_stats = block_sub.add_parser("stats")
    block_stats.add_argument("--days", type=positive_int, default=7)

    stats = sub.add_parser("stats", help="Show focus statistics")
    stats.add_argument("--days", type=positive_int, default=7)
    return parser


def run_sessions(
    app_state: AppState,
    session_type: str,
    task_id: str | None,
    target: int,
    tick_interval_ms: int = config.TICK_INTERVAL_MS,
) -> int:
    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    source = TickSource(interval_ms=tick_interval_ms)
    app_state.attach_clock(source)
    # a faster clock shortens the pause before an auto-started session too
    app_state.auto_start_delay_ms = min(app_state.auto_start_delay_ms, tick_interval_ms)
    finished: list[SessionEvent] = []

    def on_state_changed() -> None:
        snapshot = app_state.snapshot()
        if snapshot is None:
            return
        print(f"\r{snapshot.type.value:<10} {format_seconds(snapshot.remaining_seconds)}", end="", flush=True)

    def on_finished(event: SessionEvent) -> None:
        finished.append(event)
        print(f"\n{event.type.value} {event.kind.value} ({format_seconds(event.actual_duration_seconds)})")
        if len(finished) >= target or not app_state.settings.auto_start:
            QTimer.singleShot(0, app.quit)

    app_state.state_changed.connect(on_state_changed)
    app_state.session_finished.connect(on_finished)
    app_state.sound_requested.connect(lambda: print("\a", end="", flush=True))
    app_state.notification_failed.connect(lambda message: print(f"\nwarning: {message}", file=sys.stderr))
    previous_handler = signal.signal(signal.SIGINT, lambda *_args: app.quit())

    try:
        app_state.start_session(session_type, task_id)
        source.start()
        app.exec()
    finally:
        source.stop()
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)
        app_state.state_changed.disconnect(on_state_changed)
        app_state.session_finished.disconnect(on_finished)

    if app_state.timer.is_active:
        print("\nInterrupted; session discarded.")
        app_state.reset_timer()
    logger.info(f"Run finished after {len(finished)} session(s)")
    return 0


def show_settings(app_state: AppState, args: argparse.Namespace) -> int:
    fields = (
        "work_duration_minutes",
        "short_break_duration_minutes",
        "long_break_duration_minutes",
        "break_interval",
        "auto_start",
        "sound_enabled",
    )
    changes = {name: getattr(args, name) for name in fields if getattr(args, name) is not None}
    if changes:
        try:
            app_state.update_settings(**changes)
        except SettingsError as e:
            print(f"error: {e}", file=sys.stderr)
            return 2
    for name, value in app_state.settings.to_dict().items():
        print(f"{name}: {value}")
    return 0


def show_history(app_state: AppState, storage: Storage, args: argparse.Namespace) -> int:
    if args.clear:
        try:
            app_state.clear_history()
        except StorageError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        print("History cleared.")
        return 0

    if args.type is not None or args.task is not None:
        rows = storage.list_sessions(limit=args.limit, type=args.type, task_id=args.task)
        if not rows:
            print("No matching sessions recorded.")
        for row in rows:
            mark = "skipped" if row.skipped else "done"
            task = f"  task {row.task_id}" if row.task_id else ""
            print(f"{row.ended_at[:16].replace('T', ' ')}  #{row.session_number:<3} {row.type:<10} "
                  f"{format_seconds(row.actual_duration_sec)}  {mark}{task}")
        return 0

    entries = app_state.timer.history.entries()[-args.limit:]
    if not entries:
        print("No finished sessions yet.")
        return 0
    for session in entries:
        ended = session.ended_at.isoformat(sep=" ", timespec="minutes") if session.ended_at else "-"
        mark = "skipped" if session.skipped else "done"
        print(f"{ended}  #{session.session_number:<3} {session.type.value:<10} {format_seconds(session.actual_duration_seconds)}  {mark}")
    return 0


def manage_tasks(app_state: AppState, storage: Storage, args: argparse.Namespace) -> int:
    if args.task_command == "add":
        if not app_state.add_task(args.title, estimated_pomodoros=args.estimate, priority=args.priority):
            print("error: task rejected", file=sys.stderr)
            return 2
        print(f"Added task {app_state.tasks[-1].id}")
    elif args.task_command == "edit":
        fields = ("title", "description", "estimated_pomodoros", "priority")
        changes = {name: getattr(args, name) for name in fields if getattr(args, name) is not None}
        if not app_state.edit_task(args.task_id, **changes):
            print(f"error: could not edit task {args.task_id}", file=sys.stderr)
            return 2
    elif args.task_command == "status":
        if not app_state.set_task_status(args.task_id, args.status):
            print(f"error: no task {args.task_id}", file=sys.stderr)
            return 2
    elif args.task_command == "rm":
        app_state.remove_task(args.task_id)

    status = args.status if args.task_command == "list" else None
    for task in storage.list_tasks(status=status):
        print(f"{task.id:>4}  [{task.status:<11}] {task.completed_pomodoros}/{task.estimated_pomodoros}  {task.title}")
    return 0


def _format_block(block: TimeBlockRow) -> str:
    start = block.start_time[:16].replace("T", " ")
    end = block.end_time[11:16]
    return f"{block.id:>4}  {start}-{end}  [{block.status:<9}] {block.type:<8} {block.title}"


def manage_blocks(storage: Storage, args: argparse.Namespace) -> int:
    command = args.block_command
    try:
        if command == "add":
            block_id = storage.create_time_block(
                args.title,
                args.start,
                args.end,
                type=args.type,
                task_id=args.task,
                description=args.description,
                color=args.color,
                location=args.location,
            )
            print(f"Added time block {block_id}")
            return 0
        if command == "edit":
            fields = ("title", "start_time", "end_time", "type", "location")
            changes = {name: getattr(args, name) for name in fields if getattr(args, name) is not None}
            if storage.update_time_block(args.block_id, **changes) is None:
                print(f"error: no time block {args.block_id}", file=sys.stderr)
                return 2
            print(_format_block(storage.get_time_block(args.block_id)))
            return 0
        if command == "status":
            block = storage.update_time_block_status(args.block_id, args.status)
            if block is None:
                print(f"error: no time block {args.block_id}", file=sys.stderr)
                return 2
            print(_format_block(block))
            return 0
    except ScheduleConflictError as e:
        print(f"error: {e}", file=sys.stderr)
        for block in e.conflicts:
            print(f"  {_format_block(block)}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if command == "rm":
        if not storage.delete_time_block(args.block_id):
            print(f"error: no time block {args.block_id}", file=sys.stderr)
            return 2
        print(f"Removed time block {args.block_id}")
        return 0
    if command == "today":
        schedule = storage.today_schedule()
        if not schedule.blocks:
            print("Nothing scheduled today.")
        for block in schedule.blocks:
            print(_format_block(block))
        if schedule.current is not None:
            print(f"Now:  {schedule.current.title} (until {schedule.current.end_time[11:16]})")
        if schedule.next is not None:
            print(f"Next: {schedule.next.title} at {schedule.next.start_time[11:16]}")
        return 0
    if command == "stats":
        overview = storage.time_block_overview(days=args.days)
        print(f"Last {args.days} days: {overview.total_blocks} blocks, {overview.completed_blocks} completed, "
              f"{overview.cancelled_blocks} cancelled, {overview.completion_rate}% completion")
        return 0

    blocks = storage.list_time_blocks(
        args.start, args.end, type=args.type, include_cancelled=not args.hide_cancelled
    )
    if not blocks:
        print("No time blocks.")
    for block in blocks:
        print(_format_block(block))
    return 0


def show_stats(storage: Storage, days: int) -> int:
    stats = storage.get_stats()
    summary = storage.productivity_summary(days=days)
    print(f"Total work sessions: {stats.total_sessions}")
    print(f"Total focus time:    {stats.total_focus_time // 60} min")
    print(f"Current streak:      {stats.streak_days} days (longest {stats.longest_streak})")
    print(f"Last {days} days:       {summary.work_sessions} work / {summary.break_sessions} breaks, "
          f"{summary.focus_minutes} min focus, {summary.completion_rate}% completed")
    for day in storage.daily_activity(days=days):
        print(f"  {day.date}  {day.work_sessions:>2} work  {day.focus_minutes:>4} min  {day.completed_tasks} tasks done")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Create the application dependencies and dispatch the command."""
    args = build_parser().parse_args(argv)

    if args.db is None:
        config.ensure_dirs()
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)
    storage = Storage(args.db or config.DB_PATH)
    storage.init_db()

    app_state = AppState()
    app_state.load_from_storage(storage)
    logger.debug(f"Running command {args.command} against {storage.db_path}")

    if args.command == "run":
        return run_sessions(app_state, args.type, args.task, args.sessions, tick_interval_ms=args.tick_ms)
    if args.command == "settings":
        return show_settings(app_state, args)
    if args.command == "history":
        return show_history(app_state, storage, args)
    if args.command == "tasks":
        return manage_tasks(app_state, storage, args)
    if args.command == "blocks":
        return manage_blocks(storage, args)
    return show_stats(storage, args.days)


if __name__ == "__main__":
    raise SystemExit(main())
