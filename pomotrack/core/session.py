"""Session record shared by the timer, the history log and the collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SessionType(str, Enum):
    WORK = "work"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"

    @property
    def is_break(self) -> bool:
        return self is not SessionType.WORK


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


def make_identifier(cycle_id: str, session_number: int, session_type: SessionType) -> str:
    return f"{cycle_id}-{session_number}-{session_type.value}"


@dataclass
class TimerSession:
    """One countdown. Mutable only while it is the timer's current session."""

    type: SessionType
    planned_duration_seconds: int
    remaining_seconds: int
    cycle_id: str
    session_number: int
    state: SessionState = SessionState.IDLE
    task_id: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    skipped: bool = False
    identifier: str = field(default="")

    def __post_init__(self) -> None:
        if not self.identifier:
            self.identifier = make_identifier(self.cycle_id, self.session_number, self.type)

    @property
    def actual_duration_seconds(self) -> int:
        return self.planned_duration_seconds - self.remaining_seconds

    @property
    def progress(self) -> float:
        if self.planned_duration_seconds <= 0:
            return 0.0
        return max(0.0, min(1.0, self.actual_duration_seconds / self.planned_duration_seconds))

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "type": self.type.value,
            "plannedDurationSeconds": self.planned_duration_seconds,
            "remainingSeconds": self.remaining_seconds,
            "state": self.state.value,
            "startedAt": self.started_at.isoformat(timespec="seconds") if self.started_at else None,
            "endedAt": self.ended_at.isoformat(timespec="seconds") if self.ended_at else None,
            "taskId": self.task_id,
            "cycleId": self.cycle_id,
            "sessionNumber": self.session_number,
            "skipped": self.skipped,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TimerSession:
        """Rebuild a persisted record; raises KeyError/ValueError on malformed input."""
        started_at = raw.get("startedAt")
        ended_at = raw.get("endedAt")
        return cls(
            identifier=str(raw.get("identifier") or ""),
            type=SessionType(raw["type"]),
            planned_duration_seconds=int(raw["plannedDurationSeconds"]),
            remaining_seconds=int(raw["remainingSeconds"]),
            state=SessionState(raw.get("state", SessionState.COMPLETED.value)),
            started_at=datetime.fromisoformat(started_at) if started_at else None,
            ended_at=datetime.fromisoformat(ended_at) if ended_at else None,
            task_id=raw.get("taskId"),
            cycle_id=str(raw["cycleId"]),
            session_number=int(raw["sessionNumber"]),
            skipped=bool(raw.get("skipped", False)),
        )
