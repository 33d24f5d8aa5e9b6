"""Exceptions raised by pomotrack."""


class PomotrackError(Exception):
    """Base exception for pomotrack errors."""


class SettingsError(PomotrackError, ValueError):
    """Timer configuration rejected before it was applied."""


class StorageError(PomotrackError):
    """Local storage could not be read or written."""


class ScheduleConflictError(PomotrackError, ValueError):
    """A time block overlaps blocks already on the schedule."""

    def __init__(self, message: str, conflicts: list | None = None) -> None:
        super().__init__(message)
        self.conflicts = list(conflicts or [])
