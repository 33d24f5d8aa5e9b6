"""SQLite storage: settings, history log, recorded sessions, tasks, time blocks and stats."""

from __future__ import annotations

import json
import re
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Iterator

from pomotrack.config import HISTORY_SETTING_KEY
from pomotrack.errors import ScheduleConflictError, StorageError
from pomotrack.logging_config import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1
MAX_TITLE_LENGTH = 200
MAX_ESTIMATED_POMODOROS = 50
TASK_PRIORITIES = ("low", "medium", "high", "urgent")
TASK_STATUSES = ("todo", "in-progress", "completed", "cancelled")
MAX_DESCRIPTION_LENGTH = 1000
BLOCK_TYPES = ("work", "break", "meeting", "personal", "other")
BLOCK_STATUSES = ("scheduled", "active", "completed", "cancelled")
DEFAULT_BLOCK_COLOR = "#3B82F6"
HEX_COLOR = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")
TIME_BLOCK_EDITABLE = ("title", "description", "type", "start_time", "end_time", "task_id", "color", "location")


@dataclass(frozen=True)
class SessionRow:
    id: int
    identifier: str
    type: str
    cycle_id: str
    session_number: int
    task_id: str | None
    started_at: str | None
    ended_at: str
    planned_duration_sec: int
    actual_duration_sec: int
    skipped: bool


@dataclass(frozen=True)
class TaskRow:
    id: int
    title: str
    description: str
    priority: str
    status: str
    estimated_pomodoros: int
    completed_pomodoros: int
    time_spent_sec: int
    created_at: str
    completed_at: str | None


@dataclass(frozen=True)
class StatsRow:
    total_sessions: int = 0
    total_focus_time: int = 0
    total_break_time: int = 0
    streak_days: int = 0
    longest_streak: int = 0
    last_session_date: str | None = None


@dataclass(frozen=True)
class ProductivitySummary:
    days: int
    total_sessions: int
    completed_sessions: int
    work_sessions: int
    break_sessions: int
    completion_rate: int
    focus_minutes: int
    break_minutes: int
    average_session_minutes: int
    focus_break_ratio: float
    total_tasks: int
    completed_tasks: int
    task_completion_rate: int


@dataclass(frozen=True)
class DailyActivity:
    date: str
    work_sessions: int
    break_sessions: int
    focus_minutes: int
    break_minutes: int
    completed_tasks: int


@dataclass(frozen=True)
class TimeBlockRow:
    id: int
    title: str
    description: str
    type: str
    status: str
    start_time: str
    end_time: str
    task_id: int | None
    color: str
    location: str
    created_at: str

    @property
    def duration_minutes(self) -> int:
        delta = datetime.fromisoformat(self.end_time) - datetime.fromisoformat(self.start_time)
        return round(delta.total_seconds() / 60)


@dataclass(frozen=True)
class TodaySchedule:
    blocks: list[TimeBlockRow]
    current: TimeBlockRow | None
    next: TimeBlockRow | None


@dataclass(frozen=True)
class TimeBlockOverview:
    days: int
    total_blocks: int
    scheduled_blocks: int
    active_blocks: int
    completed_blocks: int
    cancelled_blocks: int
    completion_rate: int


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole > 0 else 0


def _clean_title(title: str, kind: str) -> str:
    clean = title.strip()
    if not clean:
        raise ValueError(f"{kind} title cannot be empty")
    if len(clean) > MAX_TITLE_LENGTH:
        raise ValueError(f"{kind} title cannot exceed {MAX_TITLE_LENGTH} characters")
    return clean


def _clean_description(description: str) -> str:
    clean = description.strip()
    if len(clean) > MAX_DESCRIPTION_LENGTH:
        raise ValueError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
    return clean


def _timestamp(value: datetime | str) -> str:
    """Normalize to a second-resolution ISO string so text ordering matches time ordering."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat()


class Storage:
    """Wraps the SQLite connection and its transactional operations."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        try:
            conn.execute("PRAGMA journal_mode = WAL;")
        except sqlite3.DatabaseError:
            pass
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create every table on first launch."""
        with self._transaction() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if not row:
                conn.execute("INSERT INTO schema_version(version) VALUES (?)", (SCHEMA_VERSION,))
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings(
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    identifier TEXT NOT NULL,
                    type TEXT NOT NULL,
                    cycle_id TEXT NOT NULL,
                    session_number INTEGER NOT NULL,
                    task_id TEXT,
                    started_at TEXT,
                    ended_at TEXT NOT NULL,
                    planned_duration_sec INTEGER NOT NULL,
                    actual_duration_sec INTEGER NOT NULL,
                    skipped INTEGER NOT NULL DEFAULT 0 CHECK(skipped IN (0, 1))
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    status TEXT NOT NULL DEFAULT 'todo',
                    estimated_pomodoros INTEGER NOT NULL,
                    completed_pomodoros INTEGER NOT NULL DEFAULT 0,
                    time_spent_sec INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    completed_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS user_stats(
                    id INTEGER PRIMARY KEY CHECK(id = 1),
                    total_sessions INTEGER NOT NULL DEFAULT 0,
                    total_focus_time INTEGER NOT NULL DEFAULT 0,
                    total_break_time INTEGER NOT NULL DEFAULT 0,
                    streak_days INTEGER NOT NULL DEFAULT 0,
                    longest_streak INTEGER NOT NULL DEFAULT 0,
                    last_session_date TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS time_blocks(
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    type TEXT NOT NULL DEFAULT 'work',
                    status TEXT NOT NULL DEFAULT 'scheduled',
                    start_time TEXT NOT NULL,
                    end_time TEXT NOT NULL,
                    task_id INTEGER REFERENCES tasks(id) ON DELETE SET NULL,
                    color TEXT NOT NULL,
                    location TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    CHECK(end_time > start_time)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_time_blocks_start ON time_blocks(start_time)")
            conn.execute("INSERT OR IGNORE INTO user_stats(id) VALUES (1)")

    def get_setting(self, key: str, default: Any = None) -> Any:
        with self._read() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if not row:
            return default
        raw = row["value"]
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return raw

    def set_setting(self, key: str, value: Any) -> None:
        payload = json.dumps(value)
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO settings(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, payload),
            )

    # Sessions

    def insert_session(
        self,
        identifier: str,
        type: str,
        cycle_id: str,
        session_number: int,
        ended_at: str,
        planned_duration_sec: int,
        actual_duration_sec: int,
        skipped: bool = False,
        task_id: str | None = None,
        started_at: str | None = None,
    ) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sessions(
                    identifier, type, cycle_id, session_number, task_id,
                    started_at, ended_at, planned_duration_sec, actual_duration_sec, skipped
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    identifier,
                    type,
                    cycle_id,
                    session_number,
                    task_id,
                    started_at,
                    ended_at,
                    planned_duration_sec,
                    actual_duration_sec,
                    int(skipped),
                ),
            )
            return int(cursor.lastrowid)

    def list_sessions(self, limit: int = 100, type: str | None = None, task_id: str | None = None) -> list[SessionRow]:
        """Most recent sessions first."""
        clauses: list[str] = []
        params: list[Any] = []
        if type is not None:
            clauses.append("type = ?")
            params.append(type)
        if task_id is not None:
            clauses.append("task_id = ?")
            params.append(task_id)
        query = "SELECT * FROM sessions"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._session_row(row) for row in rows]

    @staticmethod
    def _session_row(row: sqlite3.Row) -> SessionRow:
        return SessionRow(
            id=row["id"],
            identifier=row["identifier"],
            type=row["type"],
            cycle_id=row["cycle_id"],
            session_number=row["session_number"],
            task_id=row["task_id"],
            started_at=row["started_at"],
            ended_at=row["ended_at"],
            planned_duration_sec=row["planned_duration_sec"],
            actual_duration_sec=row["actual_duration_sec"],
            skipped=bool(row["skipped"]),
        )

    # Tasks

    def create_task(
        self,
        title: str,
        estimated_pomodoros: int = 1,
        priority: str = "medium",
        description: str = "",
    ) -> int:
        clean_title = _clean_title(title, "Task")
        if not 1 <= estimated_pomodoros <= MAX_ESTIMATED_POMODOROS:
            raise ValueError(f"Estimated pomodoros must be between 1 and {MAX_ESTIMATED_POMODOROS}")
        if priority not in TASK_PRIORITIES:
            raise ValueError(f"Unknown priority: {priority}")
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO tasks(title, description, priority, status, estimated_pomodoros, created_at)
                VALUES (?, ?, ?, 'todo', ?, ?)
                """,
                (clean_title, _clean_description(description), priority, estimated_pomodoros, _now_iso()),
            )
            return int(cursor.lastrowid)

    def get_task(self, task_id: int) -> TaskRow | None:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._task_row(row) if row else None

    def list_tasks(self, status: str | None = None) -> list[TaskRow]:
        with self._read() as conn:
            if status is None:
                rows = conn.execute("SELECT * FROM tasks ORDER BY id ASC").fetchall()
            else:
                rows = conn.execute("SELECT * FROM tasks WHERE status = ? ORDER BY id ASC", (status,)).fetchall()
        return [self._task_row(row) for row in rows]

    def update_task(
        self,
        task_id: int,
        title: str | None = None,
        description: str | None = None,
        priority: str | None = None,
        estimated_pomodoros: int | None = None,
    ) -> TaskRow | None:
        """Edit task details; fields left as None keep their value."""
        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = _clean_title(title, "Task")
        if description is not None:
            changes["description"] = _clean_description(description)
        if priority is not None:
            if priority not in TASK_PRIORITIES:
                raise ValueError(f"Unknown priority: {priority}")
            changes["priority"] = priority
        if estimated_pomodoros is not None:
            if not 1 <= estimated_pomodoros <= MAX_ESTIMATED_POMODOROS:
                raise ValueError(f"Estimated pomodoros must be between 1 and {MAX_ESTIMATED_POMODOROS}")
            changes["estimated_pomodoros"] = estimated_pomodoros

        with self._transaction() as conn:
            if changes:
                assignments = ", ".join(f"{column} = ?" for column in changes)
                conn.execute(f"UPDATE tasks SET {assignments} WHERE id = ?", (*changes.values(), task_id))
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._task_row(row) if row else None

    def update_task_status(self, task_id: int, status: str) -> TaskRow | None:
        if status not in TASK_STATUSES:
            raise ValueError(f"Unknown task status: {status}")
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if not row:
                return None
            if status != "completed":
                completed_at = None
            elif row["status"] == "completed":
                completed_at = row["completed_at"]
            else:
                completed_at = _now_iso()
            conn.execute(
                "UPDATE tasks SET status = ?, completed_at = ? WHERE id = ?",
                (status, completed_at, task_id),
            )
            updated = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._task_row(updated)

    def delete_task(self, task_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))

    def record_task_pomodoro(self, task_id: int, duration_sec: int) -> TaskRow | None:
        """Count one finished work session against a task and update its status."""
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
            if not row:
                return None
            completed = row["completed_pomodoros"] + 1
            status = row["status"]
            completed_at = row["completed_at"]
            if completed >= row["estimated_pomodoros"] and status != "completed":
                status = "completed"
                completed_at = _now_iso()
            elif status == "todo":
                status = "in-progress"
            conn.execute(
                """
                UPDATE tasks
                SET completed_pomodoros = ?, time_spent_sec = time_spent_sec + ?, status = ?, completed_at = ?
                WHERE id = ?
                """,
                (completed, duration_sec, status, completed_at, task_id),
            )
            updated = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return self._task_row(updated)

    @staticmethod
    def _task_row(row: sqlite3.Row) -> TaskRow:
        return TaskRow(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            priority=row["priority"],
            status=row["status"],
            estimated_pomodoros=row["estimated_pomodoros"],
            completed_pomodoros=row["completed_pomodoros"],
            time_spent_sec=row["time_spent_sec"],
            created_at=row["created_at"],
            completed_at=row["completed_at"],
        )

    # Time blocks

    def create_time_block(
        self,
        title: str,
        start_time: datetime | str,
        end_time: datetime | str,
        type: str = "work",
        task_id: int | None = None,
        description: str = "",
        color: str | None = None,
        location: str = "",
    ) -> int:
        """Schedule a block; raises ScheduleConflictError when it overlaps a live block."""
        fields = self._block_fields(
            {
                "title": title,
                "description": description,
                "type": type,
                "start_time": start_time,
                "end_time": end_time,
                "task_id": task_id,
                "color": color or DEFAULT_BLOCK_COLOR,
                "location": location,
            }
        )
        with self._transaction() as conn:
            self._check_block_task(conn, fields["task_id"])
            self._check_conflicts(conn, fields["start_time"], fields["end_time"])
            cursor = conn.execute(
                """
                INSERT INTO time_blocks(
                    title, description, type, status, start_time, end_time, task_id, color, location, created_at
                )
                VALUES (?, ?, ?, 'scheduled', ?, ?, ?, ?, ?, ?)
                """,
                (
                    fields["title"],
                    fields["description"],
                    fields["type"],
                    fields["start_time"],
                    fields["end_time"],
                    fields["task_id"],
                    fields["color"],
                    fields["location"],
                    _now_iso(),
                ),
            )
            block_id = int(cursor.lastrowid)
        logger.info(f"Scheduled time block {block_id} {fields['start_time']} - {fields['end_time']}")
        return block_id

    def get_time_block(self, block_id: int) -> TimeBlockRow | None:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM time_blocks WHERE id = ?", (block_id,)).fetchone()
        return self._block_row(row) if row else None

    def list_time_blocks(
        self,
        start: datetime | str | None = None,
        end: datetime | str | None = None,
        type: str | None = None,
        status: str | None = None,
        include_cancelled: bool = True,
    ) -> list[TimeBlockRow]:
        """Blocks starting inside [start, end], earliest first."""
        clauses: list[str] = []
        params: list[Any] = []
        if start is not None:
            clauses.append("start_time >= ?")
            params.append(_timestamp(start))
        if end is not None:
            clauses.append("start_time <= ?")
            params.append(_timestamp(end))
        if type is not None:
            clauses.append("type = ?")
            params.append(type)
        if status is not None:
            clauses.append("status = ?")
            params.append(status)
        if not include_cancelled:
            clauses.append("status != 'cancelled'")
        query = "SELECT * FROM time_blocks"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY start_time ASC, id ASC"
        with self._read() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._block_row(row) for row in rows]

    def update_time_block(self, block_id: int, **changes: Any) -> TimeBlockRow | None:
        unknown = set(changes) - set(TIME_BLOCK_EDITABLE)
        if unknown:
            raise ValueError(f"Unknown time block fields: {', '.join(sorted(unknown))}")
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM time_blocks WHERE id = ?", (block_id,)).fetchone()
            if not row:
                return None
            merged = {column: row[column] for column in TIME_BLOCK_EDITABLE}
            merged.update(changes)
            fields = self._block_fields(merged)
            if "task_id" in changes:
                self._check_block_task(conn, fields["task_id"])
            if row["status"] != "cancelled" and ("start_time" in changes or "end_time" in changes):
                self._check_conflicts(conn, fields["start_time"], fields["end_time"], exclude_id=block_id)
            assignments = ", ".join(f"{column} = ?" for column in TIME_BLOCK_EDITABLE)
            conn.execute(
                f"UPDATE time_blocks SET {assignments} WHERE id = ?",
                (*(fields[column] for column in TIME_BLOCK_EDITABLE), block_id),
            )
            updated = conn.execute("SELECT * FROM time_blocks WHERE id = ?", (block_id,)).fetchone()
        return self._block_row(updated)

    def update_time_block_status(self, block_id: int, status: str) -> TimeBlockRow | None:
        if status not in BLOCK_STATUSES:
            raise ValueError(f"Unknown time block status: {status}")
        with self._transaction() as conn:
            conn.execute("UPDATE time_blocks SET status = ? WHERE id = ?", (status, block_id))
            row = conn.execute("SELECT * FROM time_blocks WHERE id = ?", (block_id,)).fetchone()
        return self._block_row(row) if row else None

    def delete_time_block(self, block_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM time_blocks WHERE id = ?", (block_id,))
            return cursor.rowcount > 0

    def today_schedule(self, now: datetime | None = None) -> TodaySchedule:
        """Today's live blocks with the one under way and the next one due."""
        now = now or datetime.now()
        start_of_day = datetime.combine(now.date(), datetime.min.time())
        end_of_day = start_of_day + timedelta(days=1) - timedelta(seconds=1)
        blocks = self.list_time_blocks(start_of_day, end_of_day, include_cancelled=False)
        stamp = _timestamp(now)
        current = next(
            (b for b in blocks if b.start_time <= stamp < b.end_time and b.status in ("scheduled", "active")),
            None,
        )
        upcoming = next((b for b in blocks if b.start_time > stamp and b.status == "scheduled"), None)
        return TodaySchedule(blocks=blocks, current=current, next=upcoming)

    def time_block_overview(self, days: int = 7, today: date | None = None) -> TimeBlockOverview:
        today = today or date.today()
        since = (today - timedelta(days=days - 1)).isoformat()
        with self._read() as conn:
            rows = conn.execute(
                """
                SELECT status, COUNT(*) AS c FROM time_blocks
                WHERE date(start_time) >= ? AND date(start_time) <= ?
                GROUP BY status
                """,
                (since, today.isoformat()),
            ).fetchall()
        counts = {status: 0 for status in BLOCK_STATUSES}
        for row in rows:
            counts[row["status"]] = int(row["c"])
        total = sum(counts.values())
        return TimeBlockOverview(
            days=days,
            total_blocks=total,
            scheduled_blocks=counts["scheduled"],
            active_blocks=counts["active"],
            completed_blocks=counts["completed"],
            cancelled_blocks=counts["cancelled"],
            completion_rate=_percent(counts["completed"], total),
        )

    @staticmethod
    def _block_fields(fields: dict[str, Any]) -> dict[str, Any]:
        clean = dict(fields)
        clean["title"] = _clean_title(fields["title"], "Time block")
        clean["description"] = _clean_description(fields["description"] or "")
        clean["location"] = (fields["location"] or "").strip()
        if len(clean["location"]) > MAX_TITLE_LENGTH:
            raise ValueError(f"Location cannot exceed {MAX_TITLE_LENGTH} characters")
        if fields["type"] not in BLOCK_TYPES:
            raise ValueError(f"Unknown time block type: {fields['type']}")
        if not HEX_COLOR.match(fields["color"] or ""):
            raise ValueError(f"Color must be a hex color, got {fields['color']!r}")
        clean["start_time"] = _timestamp(fields["start_time"])
        clean["end_time"] = _timestamp(fields["end_time"])
        if clean["end_time"] <= clean["start_time"]:
            raise ValueError("End time must be after start time")
        return clean

    @staticmethod
    def _check_block_task(conn: sqlite3.Connection, task_id: int | None) -> None:
        if task_id is None:
            return
        if not conn.execute("SELECT 1 FROM tasks WHERE id = ?", (task_id,)).fetchone():
            raise ValueError(f"Unknown task: {task_id}")

    def _check_conflicts(
        self,
        conn: sqlite3.Connection,
        start_time: str,
        end_time: str,
        exclude_id: int | None = None,
    ) -> None:
        rows = conn.execute(
            """
            SELECT * FROM time_blocks
            WHERE status != 'cancelled' AND start_time < ? AND end_time > ? AND id != ?
            ORDER BY start_time ASC
            """,
            (end_time, start_time, exclude_id if exclude_id is not None else -1),
        ).fetchall()
        if rows:
            conflicts = [self._block_row(row) for row in rows]
            titles = ", ".join(block.title for block in conflicts)
            raise ScheduleConflictError(f"Time block overlaps: {titles}", conflicts)

    @staticmethod
    def _block_row(row: sqlite3.Row) -> TimeBlockRow:
        return TimeBlockRow(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            type=row["type"],
            status=row["status"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            task_id=row["task_id"],
            color=row["color"],
            location=row["location"],
            created_at=row["created_at"],
        )

    # Aggregate statistics

    def get_stats(self) -> StatsRow:
        with self._read() as conn:
            row = conn.execute("SELECT * FROM user_stats WHERE id = 1").fetchone()
        if not row:
            return StatsRow()
        return StatsRow(
            total_sessions=row["total_sessions"],
            total_focus_time=row["total_focus_time"],
            total_break_time=row["total_break_time"],
            streak_days=row["streak_days"],
            longest_streak=row["longest_streak"],
            last_session_date=row["last_session_date"],
        )

    def save_stats(self, stats: StatsRow) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO user_stats(
                    id, total_sessions, total_focus_time, total_break_time,
                    streak_days, longest_streak, last_session_date
                )
                VALUES (1, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    total_sessions = excluded.total_sessions,
                    total_focus_time = excluded.total_focus_time,
                    total_break_time = excluded.total_break_time,
                    streak_days = excluded.streak_days,
                    longest_streak = excluded.longest_streak,
                    last_session_date = excluded.last_session_date
                """,
                (
                    stats.total_sessions,
                    stats.total_focus_time,
                    stats.total_break_time,
                    stats.streak_days,
                    stats.longest_streak,
                    stats.last_session_date,
                ),
            )

    def productivity_summary(self, days: int = 7, today: date | None = None) -> ProductivitySummary:
        today = today or date.today()
        since = (today - timedelta(days=days - 1)).isoformat()
        with self._read() as conn:
            sessions = conn.execute(
                "SELECT type, actual_duration_sec, skipped FROM sessions WHERE date(ended_at) >= ?",
                (since,),
            ).fetchall()
            total_tasks = conn.execute(
                "SELECT COUNT(*) AS c FROM tasks WHERE date(created_at) >= ?", (since,)
            ).fetchone()["c"]
            completed_tasks = conn.execute(
                "SELECT COUNT(*) AS c FROM tasks WHERE status = 'completed' AND date(completed_at) >= ?",
                (since,),
            ).fetchone()["c"]

        finished = [row for row in sessions if not row["skipped"]]
        work = [row for row in finished if row["type"] == "work"]
        breaks = [row for row in finished if row["type"] != "work"]
        focus_sec = sum(row["actual_duration_sec"] for row in work)
        break_sec = sum(row["actual_duration_sec"] for row in breaks)
        return ProductivitySummary(
            days=days,
            total_sessions=len(sessions),
            completed_sessions=len(finished),
            work_sessions=len(work),
            break_sessions=len(breaks),
            completion_rate=_percent(len(finished), len(sessions)),
            focus_minutes=round(focus_sec / 60),
            break_minutes=round(break_sec / 60),
            average_session_minutes=round(focus_sec / len(work) / 60) if work else 0,
            focus_break_ratio=round(focus_sec / break_sec, 2) if break_sec > 0 else 0.0,
            total_tasks=int(total_tasks),
            completed_tasks=int(completed_tasks),
            task_completion_rate=_percent(int(completed_tasks), int(total_tasks)),
        )

    def daily_activity(self, days: int = 7, today: date | None = None) -> list[DailyActivity]:
        """One entry per day, oldest first, ending with `today`."""
        today = today or date.today()
        start = today - timedelta(days=days - 1)
        buckets: dict[str, dict[str, int]] = {}
        for offset in range(days):
            key = (start + timedelta(days=offset)).isoformat()
            buckets[key] = {"work": 0, "breaks": 0, "focus": 0, "break": 0, "tasks": 0}

        with self._read() as conn:
            sessions = conn.execute(
                """
                SELECT date(ended_at) AS d, type, actual_duration_sec
                FROM sessions
                WHERE skipped = 0 AND date(ended_at) >= ?
                """,
                (start.isoformat(),),
            ).fetchall()
            tasks = conn.execute(
                "SELECT date(completed_at) AS d FROM tasks WHERE status = 'completed' AND date(completed_at) >= ?",
                (start.isoformat(),),
            ).fetchall()

        for row in sessions:
            bucket = buckets.get(row["d"])
            if bucket is None:
                continue
            if row["type"] == "work":
                bucket["work"] += 1
                bucket["focus"] += row["actual_duration_sec"]
            else:
                bucket["breaks"] += 1
                bucket["break"] += row["actual_duration_sec"]
        for row in tasks:
            bucket = buckets.get(row["d"])
            if bucket is not None:
                bucket["tasks"] += 1

        return [
            DailyActivity(
                date=key,
                work_sessions=bucket["work"],
                break_sessions=bucket["breaks"],
                focus_minutes=round(bucket["focus"] / 60),
                break_minutes=round(bucket["break"] / 60),
                completed_tasks=bucket["tasks"],
            )
            for key, bucket in buckets.items()
        ]


class SqliteHistoryStore:
    """History log persisted as one JSON list in the settings table."""

    def __init__(self, storage: Storage, key: str = HISTORY_SETTING_KEY) -> None:
        self._storage = storage
        self._key = key

    def load(self) -> list[dict[str, Any]]:
        try:
            raw = self._storage.get_setting(self._key, [])
        except sqlite3.Error as e:
            raise StorageError(f"Failed to load session history: {e}") from e
        if not isinstance(raw, list):
            logger.warning(f"Ignoring non-list history payload under {self._key!r}")
            return []
        return [record for record in raw if isinstance(record, dict)]

    def save(self, records: list[dict[str, Any]]) -> None:
        try:
            self._storage.set_setting(self._key, records)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to save session history: {e}") from e
