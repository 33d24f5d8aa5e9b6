from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from pomotrack.core.events import EventKind, NotificationDispatcher, SessionEvent
from pomotrack.core.history import MemoryHistoryStore, SessionHistory
from pomotrack.core.session import SessionState, SessionType, TimerSession
from pomotrack.core.settings import TimerSettings
from pomotrack.errors import StorageError
from pomotrack.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TimerSnapshot:
    identifier: str
    type: SessionType
    remaining_seconds: int
    planned_duration_seconds: int
    state: SessionState
    session_number: int
    cycle_id: str
    task_id: str | None
    progress: float


def next_session_type(session_number: int, break_interval: int) -> SessionType:
    """Type due after the work session numbered `session_number`."""
    if session_number == 0:
        return SessionType.WORK
    if session_number % break_interval == 0:
        return SessionType.LONG_BREAK
    return SessionType.SHORT_BREAK


def generate_cycle_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"cycle-{int(time.time() * 1000)}-{suffix}"


def _run_now(fn: Callable[[], None]) -> None:
    fn()


class SessionTimer:
    """Pomodoro state machine driven by discrete ticks, detached from UI framework.

    Commands issued in a state that forbids them are ignored and return False.
    """

    def __init__(
        self,
        settings: TimerSettings | None = None,
        history: SessionHistory | None = None,
        dispatcher: NotificationDispatcher | None = None,
        schedule: Callable[[Callable[[], None]], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings or TimerSettings()
        self._history = history if history is not None else SessionHistory(MemoryHistoryStore())
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._schedule = schedule or _run_now
        self._clock = clock or datetime.now
        self._current: TimerSession | None = None
        self._cycle_id = ""
        self._session_number = 0
        # bumped by reset so stale auto-starts are dropped
        self._epoch = 0

    @property
    def settings(self) -> TimerSettings:
        return self._settings

    @property
    def history(self) -> SessionHistory:
        return self._history

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @property
    def current(self) -> TimerSession | None:
        return self._current

    @property
    def state(self) -> SessionState:
        return self._current.state if self._current else SessionState.IDLE

    @property
    def is_active(self) -> bool:
        return self._current is not None

    @property
    def cycle_id(self) -> str:
        return self._cycle_id

    @property
    def session_number(self) -> int:
        return self._session_number

    def snapshot(self) -> TimerSnapshot | None:
        session = self._current
        if session is None:
            return None
        return TimerSnapshot(
            identifier=session.identifier,
            type=session.type,
            remaining_seconds=session.remaining_seconds,
            planned_duration_seconds=session.planned_duration_seconds,
            state=session.state,
            session_number=session.session_number,
            cycle_id=session.cycle_id,
            task_id=session.task_id,
            progress=session.progress,
        )

    def update_settings(self, **changes: Any) -> TimerSettings:
        """Apply a partial update; the active session keeps its planned duration."""
        self._settings = self._settings.updated(**changes)
        logger.info(f"Settings updated: {self._settings.to_dict()}")
        return self._settings

    def get_next_session_type(self) -> SessionType:
        return next_session_type(self._session_number, self._settings.break_interval)

    def start_session(self, session_type: SessionType | str, task_id: str | None = None) -> bool:
        session_type = SessionType(session_type)
        if self._current is not None:
            logger.debug(f"Ignoring start of {session_type.value}: {self._current.identifier} is {self._current.state.value}")
            return False

        if session_type is SessionType.WORK:
            self._session_number += 1
        if not self._cycle_id:
            self._cycle_id = generate_cycle_id()

        duration = self._settings.duration_seconds(session_type)
        self._current = TimerSession(
            type=session_type,
            planned_duration_seconds=duration,
            remaining_seconds=duration,
            cycle_id=self._cycle_id,
            session_number=self._session_number,
            state=SessionState.RUNNING,
            task_id=task_id,
            started_at=self._clock(),
        )
        logger.info(f"Started {self._current.identifier} ({duration}s)")
        return True

    def pause_session(self) -> bool:
        if self._current is None or self._current.state != SessionState.RUNNING:
            logger.debug("Ignoring pause: no running session")
            return False
        self._current.state = SessionState.PAUSED
        return True

    def resume_session(self) -> bool:
        if self._current is None or self._current.state != SessionState.PAUSED:
            logger.debug("Ignoring resume: no paused session")
            return False
        self._current.state = SessionState.RUNNING
        return True

    def tick(self) -> bool:
        """Advance one second; returns True when this tick finished the session."""
        session = self._current
        if session is None or session.state != SessionState.RUNNING:
            return False
        session.remaining_seconds = max(0, session.remaining_seconds - 1)
        if session.remaining_seconds == 0:
            return self.complete_session()
        return False

    def complete_session(self) -> bool:
        session = self._finish(skipped=False)
        if session is None:
            return False

        save_error = self._record(session)
        event = SessionEvent.from_session(EventKind.COMPLETED, session)
        self._dispatcher.dispatch(event)

        if self._settings.auto_start:
            next_type = self._following_type(session)
            epoch = self._epoch
            task_id = session.task_id

            def auto_start() -> None:
                if epoch != self._epoch:
                    logger.debug("Dropping auto-start after reset")
                    return
                self.start_session(next_type, task_id)

            self._schedule(auto_start)

        if save_error is not None:
            self._dispatcher.report_failure(event, save_error)
        return True

    def skip_session(self) -> bool:
        """Finish the current session now. Never auto-starts the next one."""
        session = self._finish(skipped=True)
        if session is None:
            return False
        save_error = self._record(session)
        event = SessionEvent.from_session(EventKind.SKIPPED, session)
        self._dispatcher.dispatch(event)
        if save_error is not None:
            self._dispatcher.report_failure(event, save_error)
        return True

    def reset_timer(self) -> None:
        if self._current is not None:
            logger.info(f"Discarding {self._current.identifier} on reset")
        self._current = None
        self._cycle_id = ""
        self._session_number = 0
        self._epoch += 1

    def _finish(self, skipped: bool) -> TimerSession | None:
        session = self._current
        if session is None or session.state not in {SessionState.RUNNING, SessionState.PAUSED}:
            return None
        session.state = SessionState.COMPLETED
        session.ended_at = self._clock()
        session.skipped = skipped
        self._current = None
        logger.info(f"{'Skipped' if skipped else 'Completed'} {session.identifier} after {session.actual_duration_seconds}s")
        return session

    def _record(self, session: TimerSession) -> StorageError | None:
        """Append to history; a failed save is returned so the finish still goes through."""
        try:
            self._history.append(session)
        except StorageError as e:
            logger.warning(f"Could not save history after {session.identifier}: {e}")
            return e
        return None

    def _following_type(self, finished: TimerSession) -> SessionType:
        if finished.type.is_break:
            return SessionType.WORK
        return self.get_next_session_type()
