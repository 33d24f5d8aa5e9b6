"""Bounded log of finished sessions, restored from and saved to a pluggable store."""

from __future__ import annotations

from typing import Any, Protocol

from pomotrack.config import HISTORY_LIMIT
from pomotrack.core.session import TimerSession
from pomotrack.logging_config import get_logger

logger = get_logger(__name__)


class HistoryStore(Protocol):
    def load(self) -> list[dict[str, Any]]:
        """Return persisted records most-recent-last, or an empty list."""

    def save(self, records: list[dict[str, Any]]) -> None:
        """Replace the persisted records."""


class MemoryHistoryStore:
    """Keeps records in process memory only."""

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self.records: list[dict[str, Any]] = list(records or [])
        self.save_count = 0

    def load(self) -> list[dict[str, Any]]:
        return list(self.records)

    def save(self, records: list[dict[str, Any]]) -> None:
        self.records = list(records)
        self.save_count += 1


class SessionHistory:
    """Append-only record of completed sessions capped at `limit` entries."""

    def __init__(self, store: HistoryStore, limit: int = HISTORY_LIMIT) -> None:
        if limit < 1:
            raise ValueError("History limit must be positive")
        self._store = store
        self._limit = limit
        self._entries: list[TimerSession] = self._restore()

    @property
    def limit(self) -> int:
        return self._limit

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[TimerSession]:
        return list(self._entries)

    def last(self) -> TimerSession | None:
        return self._entries[-1] if self._entries else None

    def append(self, session: TimerSession) -> None:
        self._entries.append(session)
        overflow = len(self._entries) - self._limit
        if overflow > 0:
            del self._entries[:overflow]
        self._persist()

    def clear(self) -> None:
        self._entries = []
        self._persist()

    def _persist(self) -> None:
        self._store.save([entry.to_dict() for entry in self._entries])

    def _restore(self) -> list[TimerSession]:
        raw_records = self._store.load() or []
        entries: list[TimerSession] = []
        for raw in raw_records:
            try:
                entries.append(TimerSession.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed history record {raw!r}: {e}")
        if len(entries) > self._limit:
            entries = entries[-self._limit:]
        logger.debug(f"Restored {len(entries)} history entries")
        return entries
