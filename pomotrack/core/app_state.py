from __future__ import annotations

from typing import Any, Callable

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from pomotrack.config import AUTO_START_DELAY_MS, SETTINGS_KEY
from pomotrack.core.clock import TickSource
from pomotrack.core.events import Listener, NotificationDispatcher, SessionEvent
from pomotrack.core.history import MemoryHistoryStore, SessionHistory
from pomotrack.core.session import SessionType
from pomotrack.core.settings import TimerSettings
from pomotrack.core.timer import SessionTimer, TimerSnapshot
from pomotrack.data.recorder import SessionRecorder, TaskProgressUpdater
from pomotrack.data.storage import SqliteHistoryStore, Storage, TaskRow
from pomotrack.errors import SettingsError
from pomotrack.logging_config import get_logger

logger = get_logger(__name__)

Scheduler = Callable[[int, Callable[[], None]], None]


class AppState(QObject):
    """Owns the timer instance and connects it to storage and the Qt event loop."""

    state_changed = pyqtSignal()
    session_finished = pyqtSignal(object)
    settings_changed = pyqtSignal(object)
    tasks_changed = pyqtSignal()
    sound_requested = pyqtSignal()
    notification_failed = pyqtSignal(str)

    def __init__(self, schedule: Scheduler | None = None, auto_start_delay_ms: int = AUTO_START_DELAY_MS) -> None:
        super().__init__()
        self._schedule_later: Scheduler = schedule or QTimer.singleShot
        self.auto_start_delay_ms = auto_start_delay_ms
        self._storage: Storage | None = None
        self._clock_source: TickSource | None = None
        self.tasks: list[TaskRow] = []
        self._collaborators: list[Listener] = []
        self.dispatcher = NotificationDispatcher(
            defer=lambda fn: self._schedule_later(0, fn),
            on_failure=self._on_notification_failed,
        )
        self.dispatcher.subscribe(self._announce)
        self.timer = self._build_timer(TimerSettings(), SessionHistory(MemoryHistoryStore()))

    def _build_timer(self, settings: TimerSettings, history: SessionHistory) -> SessionTimer:
        return SessionTimer(
            settings=settings,
            history=history,
            dispatcher=self.dispatcher,
            schedule=self._schedule_auto_start,
        )

    def load_from_storage(self, storage: Storage) -> None:
        if self.timer.is_active:
            raise RuntimeError("Cannot reload storage while a session is active")
        self._storage = storage

        raw_settings = storage.get_setting(SETTINGS_KEY, {})
        try:
            settings = TimerSettings.from_dict(raw_settings if isinstance(raw_settings, dict) else {})
        except SettingsError as e:
            logger.warning(f"Stored settings rejected, using defaults: {e}")
            settings = TimerSettings()

        history = SessionHistory(SqliteHistoryStore(storage))
        self.timer = self._build_timer(settings, history)

        # collaborators run before the announcement so listeners see fresh data
        self.dispatcher.unsubscribe(self._announce)
        for listener in self._collaborators:
            self.dispatcher.unsubscribe(listener)
        self._collaborators = [SessionRecorder(storage), TaskProgressUpdater(storage)]
        for listener in self._collaborators:
            self.dispatcher.subscribe(listener)
        self.dispatcher.subscribe(self._announce)

        self.tasks = storage.list_tasks()
        self.state_changed.emit()
        self.settings_changed.emit(settings)
        self.tasks_changed.emit()

    def attach_clock(self, source: TickSource) -> None:
        if self._clock_source is not None:
            self._clock_source.ticked.disconnect(self.tick)
        self._clock_source = source
        source.ticked.connect(self.tick)

    def subscribe(self, listener: Listener) -> None:
        """Add an outbound listener, e.g. a push-notification fan-out."""
        self.dispatcher.subscribe(listener)

    @property
    def settings(self) -> TimerSettings:
        return self.timer.settings

    def snapshot(self) -> TimerSnapshot | None:
        return self.timer.snapshot()

    def start_session(self, session_type: SessionType | str, task_id: str | None = None) -> bool:
        started = self.timer.start_session(session_type, task_id)
        if started:
            self.state_changed.emit()
        return started

    def pause_session(self) -> bool:
        return self._emit_if(self.timer.pause_session())

    def resume_session(self) -> bool:
        return self._emit_if(self.timer.resume_session())

    def skip_session(self) -> bool:
        return self._emit_if(self.timer.skip_session())

    def complete_session(self) -> bool:
        completed = self.timer.complete_session()
        if completed:
            self._chime()
            self.state_changed.emit()
        return completed

    def reset_timer(self) -> None:
        self.timer.reset_timer()
        self.state_changed.emit()

    def tick(self) -> None:
        if not self.timer.is_active:
            return
        finished = self.timer.tick()
        if finished:
            self._chime()
        self.state_changed.emit()

    def update_settings(self, **changes: Any) -> TimerSettings:
        settings = self.timer.update_settings(**changes)
        if self._storage:
            self._storage.set_setting(SETTINGS_KEY, settings.to_dict())
        self.settings_changed.emit(settings)
        self.state_changed.emit()
        return settings

    def clear_history(self) -> None:
        self.timer.history.clear()
        logger.info("Session history cleared")
        self.state_changed.emit()

    def add_task(self, title: str, estimated_pomodoros: int = 1, priority: str = "medium") -> bool:
        if not self._storage:
            return False
        try:
            self._storage.create_task(title, estimated_pomodoros=estimated_pomodoros, priority=priority)
        except ValueError as e:
            logger.info(f"Task rejected: {e}")
            return False
        self.refresh_tasks()
        return True

    def edit_task(self, task_id: int, **changes: Any) -> bool:
        if not self._storage:
            return False
        try:
            updated = self._storage.update_task(task_id, **changes)
        except ValueError as e:
            logger.info(f"Task edit rejected: {e}")
            return False
        self.refresh_tasks()
        return updated is not None

    def set_task_status(self, task_id: int, status: str) -> bool:
        if not self._storage:
            return False
        try:
            updated = self._storage.update_task_status(task_id, status)
        except ValueError as e:
            logger.info(f"Task status rejected: {e}")
            return False
        self.refresh_tasks()
        return updated is not None

    def remove_task(self, task_id: int) -> None:
        if not self._storage:
            return
        self._storage.delete_task(task_id)
        self.refresh_tasks()

    def refresh_tasks(self) -> None:
        if not self._storage:
            return
        self.tasks = self._storage.list_tasks()
        self.tasks_changed.emit()

    def _emit_if(self, changed: bool) -> bool:
        if changed:
            self.state_changed.emit()
        return changed

    def _chime(self) -> None:
        if self.timer.settings.sound_enabled:
            self.sound_requested.emit()

    def _schedule_auto_start(self, start: Callable[[], None]) -> None:
        def run() -> None:
            start()
            self.state_changed.emit()

        self._schedule_later(self.auto_start_delay_ms, run)

    def _announce(self, event: SessionEvent) -> None:
        self.session_finished.emit(event)
        if event.task_id is not None:
            self.refresh_tasks()

    def _on_notification_failed(self, event: SessionEvent, listener: Listener | None, error: Exception) -> None:
        if listener is None:
            self.notification_failed.emit(f"Could not save history for {event.type.value} session: {error}")
            return
        self.notification_failed.emit(f"Could not record {event.kind.value} {event.type.value} session: {error}")
