"""Storage-backed listeners for finished sessions: session log, stats, task progress."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

from pomotrack.core.events import EventKind, SessionEvent
from pomotrack.core.session import SessionType
from pomotrack.data.storage import StatsRow, Storage
from pomotrack.logging_config import get_logger

logger = get_logger(__name__)


def advance_streak(stats: StatsRow, day: date) -> StatsRow:
    """Count `day` as an active day: consecutive days extend the streak, gaps restart it."""
    last = date.fromisoformat(stats.last_session_date) if stats.last_session_date else None
    if last is None:
        streak = 1
    else:
        gap = (day - last).days
        if gap <= 0:
            streak = max(1, stats.streak_days)
        elif gap == 1:
            streak = stats.streak_days + 1
        else:
            streak = 1
    latest = max(day, last) if last else day
    return replace(
        stats,
        streak_days=streak,
        longest_streak=max(stats.longest_streak, streak),
        last_session_date=latest.isoformat(),
    )


class SessionRecorder:
    """Persists every finished session and keeps the aggregate statistics."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def __call__(self, event: SessionEvent) -> None:
        session = event.session
        ended_at = session.ended_at or datetime.now()
        self._storage.insert_session(
            identifier=session.identifier,
            type=event.type.value,
            cycle_id=session.cycle_id,
            session_number=session.session_number,
            task_id=event.task_id,
            started_at=session.started_at.isoformat(timespec="seconds") if session.started_at else None,
            ended_at=ended_at.isoformat(timespec="seconds"),
            planned_duration_sec=session.planned_duration_seconds,
            actual_duration_sec=event.actual_duration_seconds,
            skipped=event.kind is EventKind.SKIPPED,
        )
        if event.kind is EventKind.SKIPPED:
            return

        stats = self._storage.get_stats()
        if event.type is SessionType.WORK:
            stats = replace(
                stats,
                total_sessions=stats.total_sessions + 1,
                total_focus_time=stats.total_focus_time + event.actual_duration_seconds,
            )
            stats = advance_streak(stats, ended_at.date())
        else:
            stats = replace(stats, total_break_time=stats.total_break_time + event.actual_duration_seconds)
        self._storage.save_stats(stats)
        logger.debug(f"Recorded {session.identifier}; stats now {stats}")


class TaskProgressUpdater:
    """Counts completed work sessions against their task."""

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def __call__(self, event: SessionEvent) -> None:
        if event.kind is not EventKind.COMPLETED or event.type is not SessionType.WORK:
            return
        if event.task_id is None:
            return
        try:
            task_id = int(event.task_id)
        except ValueError:
            logger.warning(f"Ignoring progress for non-numeric task id {event.task_id!r}")
            return
        task = self._storage.record_task_pomodoro(task_id, event.actual_duration_seconds)
        if task is None:
            logger.warning(f"Ignoring progress for unknown task {task_id}")
            return
        logger.info(
            f"Task {task.id} at {task.completed_pomodoros}/{task.estimated_pomodoros} pomodoros ({task.status})"
        )
