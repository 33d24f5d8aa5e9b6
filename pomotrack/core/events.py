"""Outbound session notifications and their fan-out to collaborators."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from pomotrack.core.session import SessionType, TimerSession
from pomotrack.logging_config import get_logger

logger = get_logger(__name__)


class EventKind(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SessionEvent:
    kind: EventKind
    type: SessionType
    actual_duration_seconds: int
    task_id: str | None
    session: TimerSession

    @classmethod
    def from_session(cls, kind: EventKind, session: TimerSession) -> SessionEvent:
        return cls(
            kind=kind,
            type=session.type,
            actual_duration_seconds=session.actual_duration_seconds,
            task_id=session.task_id,
            session=session,
        )

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "type": self.type.value,
            "actualDurationSeconds": self.actual_duration_seconds,
        }
        if self.task_id is not None:
            payload["taskId"] = self.task_id
        return payload


Listener = Callable[[SessionEvent], None]
# listener is None when the failure happened before fan-out
FailureHook = Callable[[SessionEvent, Optional[Listener], Exception], None]


def _call_now(fn: Callable[[], None]) -> None:
    fn()


class NotificationDispatcher:
    """Delivers session events to listeners without letting them fail the caller.

    `defer` receives a zero-argument callable and decides when it runs; the
    default runs it inline. A listener that raises is logged and reported to
    `on_failure`, and the remaining listeners still receive the event.
    """

    def __init__(
        self,
        defer: Callable[[Callable[[], None]], None] | None = None,
        on_failure: FailureHook | None = None,
    ) -> None:
        self._listeners: list[Listener] = []
        self._defer = defer or _call_now
        self.on_failure = on_failure

    @property
    def listeners(self) -> list[Listener]:
        return list(self._listeners)

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, event: SessionEvent) -> None:
        logger.debug(f"Dispatching {event.kind.value} event for {event.session.identifier}: {event.to_payload()}")
        for listener in list(self._listeners):
            self._defer(lambda listener=listener: self._deliver(listener, event))

    def _deliver(self, listener: Listener, event: SessionEvent) -> None:
        try:
            listener(event)
        except Exception as e:
            logger.warning(f"Notification for {event.session.identifier} failed: {e}")
            if self.on_failure is not None:
                self.on_failure(event, listener, e)

    def report_failure(self, event: SessionEvent, error: Exception) -> None:
        """Surface a failure that is not tied to any listener."""
        logger.warning(f"Session {event.session.identifier} finished with an error: {error}")
        if self.on_failure is not None:
            self.on_failure(event, None, error)
