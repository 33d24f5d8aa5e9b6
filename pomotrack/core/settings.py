from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from pomotrack.core.session import SessionType
from pomotrack.errors import SettingsError


# camelCase names used by the settings payloads of the web client
_ALIASES = {
    "workDurationMinutes": "work_duration_minutes",
    "workDuration": "work_duration_minutes",
    "shortBreakDurationMinutes": "short_break_duration_minutes",
    "shortBreakDuration": "short_break_duration_minutes",
    "longBreakDurationMinutes": "long_break_duration_minutes",
    "longBreakDuration": "long_break_duration_minutes",
    "breakInterval": "break_interval",
    "longBreakInterval": "break_interval",
    "autoStart": "auto_start",
    "isAutoStartEnabled": "auto_start",
    "soundEnabled": "sound_enabled",
}

_DURATION_FIELDS = (
    "work_duration_minutes",
    "short_break_duration_minutes",
    "long_break_duration_minutes",
)
_FLAG_FIELDS = ("auto_start", "sound_enabled")


@dataclass(frozen=True)
class TimerSettings:
    work_duration_minutes: int = 25
    short_break_duration_minutes: int = 5
    long_break_duration_minutes: int = 15
    break_interval: int = 4
    auto_start: bool = False
    sound_enabled: bool = True

    def __post_init__(self) -> None:
        for name in _DURATION_FIELDS:
            value = getattr(self, name)
            if not _is_int(value) or value <= 0:
                raise SettingsError(f"{name} must be a positive integer, got {value!r}")
        if not _is_int(self.break_interval) or self.break_interval < 1:
            raise SettingsError(f"break_interval must be an integer >= 1, got {self.break_interval!r}")
        for name in _FLAG_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise SettingsError(f"{name} must be a boolean, got {value!r}")

    def duration_seconds(self, session_type: SessionType) -> int:
        minutes = {
            SessionType.WORK: self.work_duration_minutes,
            SessionType.SHORT_BREAK: self.short_break_duration_minutes,
            SessionType.LONG_BREAK: self.long_break_duration_minutes,
        }[session_type]
        return minutes * 60

    def updated(self, **changes: Any) -> TimerSettings:
        """Return a validated copy; the receiver is left untouched on error."""
        return replace(self, **_normalize_keys(changes))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> TimerSettings:
        return cls(**_normalize_keys(raw))


def _normalize_keys(raw: dict[str, Any]) -> dict[str, Any]:
    known = {f.name for f in fields(TimerSettings)}
    normalized: dict[str, Any] = {}
    for key, value in raw.items():
        name = _ALIASES.get(key, key)
        if name not in known:
            raise SettingsError(f"Unknown setting: {key}")
        normalized[name] = value
    return normalized


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
