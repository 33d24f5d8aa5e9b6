from datetime import date, datetime

import pytest

from pomotrack.data.storage import MAX_ESTIMATED_POMODOROS, SqliteHistoryStore, StatsRow, Storage
from pomotrack.errors import ScheduleConflictError


def test_init_db_creates_tables(tmp_path) -> None:
    db = tmp_path / "app.db"
    storage = Storage(db)
    storage.init_db()
    storage.init_db()
    assert db.exists()
    assert storage.get_stats() == StatsRow()


def test_set_get_setting(storage) -> None:
    storage.set_setting("timer_settings", {"break_interval": 3})
    assert storage.get_setting("timer_settings") == {"break_interval": 3}
    assert storage.get_setting("missing", "x") == "x"


def test_insert_and_filter_sessions(storage) -> None:
    storage.insert_session("c-1-work", "work", "c", 1, "2026-01-01T10:25:00", 1500, 1500, task_id="4")
    storage.insert_session("c-1-shortBreak", "shortBreak", "c", 1, "2026-01-01T10:30:00", 300, 120, skipped=True)

    rows = storage.list_sessions()
    assert [r.identifier for r in rows] == ["c-1-shortBreak", "c-1-work"]
    assert rows[0].skipped is True
    assert [r.identifier for r in storage.list_sessions(type="work")] == ["c-1-work"]
    assert [r.identifier for r in storage.list_sessions(task_id="4")] == ["c-1-work"]


def test_create_task_validation(storage) -> None:
    with pytest.raises(ValueError):
        storage.create_task("   ")
    with pytest.raises(ValueError):
        storage.create_task("x" * 201)
    with pytest.raises(ValueError):
        storage.create_task("Essay", estimated_pomodoros=0)
    with pytest.raises(ValueError):
        storage.create_task("Essay", estimated_pomodoros=MAX_ESTIMATED_POMODOROS + 1)
    with pytest.raises(ValueError):
        storage.create_task("Essay", priority="someday")
    assert storage.list_tasks() == []


def test_record_task_pomodoro_flips_status(storage) -> None:
    task_id = storage.create_task("Write report", estimated_pomodoros=2)

    first = storage.record_task_pomodoro(task_id, 1500)
    assert first.status == "in-progress"
    assert first.completed_pomodoros == 1
    assert first.completed_at is None

    second = storage.record_task_pomodoro(task_id, 1400)
    assert second.status == "completed"
    assert second.time_spent_sec == 2900
    assert second.completed_at is not None

    third = storage.record_task_pomodoro(task_id, 1500)
    assert third.status == "completed"
    assert third.completed_pomodoros == 3


def test_record_task_pomodoro_unknown_task(storage) -> None:
    assert storage.record_task_pomodoro(999, 1500) is None


def test_update_status_and_delete(storage) -> None:
    task_id = storage.create_task("Read chapter")

    storage.update_task_status(task_id, "cancelled")
    assert storage.list_tasks(status="cancelled")[0].id == task_id
    with pytest.raises(ValueError):
        storage.update_task_status(task_id, "archived")

    storage.delete_task(task_id)
    assert storage.get_task(task_id) is None


def test_save_and_get_stats(storage) -> None:
    stats = StatsRow(total_sessions=3, total_focus_time=4500, streak_days=2, longest_streak=5, last_session_date="2026-01-02")
    storage.save_stats(stats)
    assert storage.get_stats() == stats


def test_productivity_summary(storage) -> None:
    storage.insert_session("c-1-work", "work", "c", 1, "2026-02-10T10:25:00", 1500, 1500)
    storage.insert_session("c-1-shortBreak", "shortBreak", "c", 1, "2026-02-10T10:30:00", 300, 300)
    storage.insert_session("c-2-work", "work", "c", 2, "2026-02-10T11:00:00", 1500, 600, skipped=True)
    storage.insert_session("c-0-work", "work", "c", 0, "2025-12-01T11:00:00", 1500, 1500)

    summary = storage.productivity_summary(days=7, today=date(2026, 2, 12))

    assert summary.total_sessions == 3
    assert summary.completed_sessions == 2
    assert summary.work_sessions == 1
    assert summary.break_sessions == 1
    assert summary.completion_rate == 67
    assert summary.focus_minutes == 25
    assert summary.break_minutes == 5
    assert summary.average_session_minutes == 25
    assert summary.focus_break_ratio == 5.0


def test_daily_activity_buckets_by_day(storage) -> None:
    storage.insert_session("c-1-work", "work", "c", 1, "2026-02-10T10:25:00", 1500, 1500)
    storage.insert_session("c-2-work", "work", "c", 2, "2026-02-12T09:25:00", 1500, 1500)
    storage.insert_session("c-2-longBreak", "longBreak", "c", 2, "2026-02-12T09:40:00", 900, 900)

    activity = storage.daily_activity(days=3, today=date(2026, 2, 12))

    assert [a.date for a in activity] == ["2026-02-10", "2026-02-11", "2026-02-12"]
    assert [a.work_sessions for a in activity] == [1, 0, 1]
    assert activity[2].break_sessions == 1
    assert activity[2].break_minutes == 15
    assert activity[0].focus_minutes == 25


def test_sqlite_history_store_round_trip(storage) -> None:
    store = SqliteHistoryStore(storage)
    assert store.load() == []

    store.save([{"identifier": "a"}, {"identifier": "b"}])

    assert [r["identifier"] for r in SqliteHistoryStore(storage).load()] == ["a", "b"]


def test_sqlite_history_store_ignores_garbage(storage) -> None:
    storage.set_setting("timer_history", "not a list")
    assert SqliteHistoryStore(storage).load() == []


def test_update_task_edits_only_given_fields(storage) -> None:
    task_id = storage.create_task("Draft", estimated_pomodoros=2, priority="low", description="first pass")

    task = storage.update_task(task_id, title="  Final draft ", estimated_pomodoros=4)

    assert task.title == "Final draft"
    assert task.estimated_pomodoros == 4
    assert task.priority == "low"
    assert task.description == "first pass"
    assert storage.update_task(999, title="ghost") is None


def test_update_task_validation(storage) -> None:
    task_id = storage.create_task("Draft")

    with pytest.raises(ValueError):
        storage.update_task(task_id, title="")
    with pytest.raises(ValueError):
        storage.update_task(task_id, estimated_pomodoros=MAX_ESTIMATED_POMODOROS + 1)
    with pytest.raises(ValueError):
        storage.update_task(task_id, priority="someday")
    assert storage.get_task(task_id).title == "Draft"


def test_task_status_keeps_first_completion_time(storage) -> None:
    task_id = storage.create_task("Review")

    done = storage.update_task_status(task_id, "completed")
    again = storage.update_task_status(task_id, "completed")
    reopened = storage.update_task_status(task_id, "in-progress")

    assert done.completed_at is not None
    assert again.completed_at == done.completed_at
    assert reopened.completed_at is None
    assert storage.update_task_status(999, "todo") is None


def test_create_and_get_time_block(storage) -> None:
    task_id = storage.create_task("Slides")
    block_id = storage.create_time_block(
        "Deep work",
        datetime(2026, 3, 2, 9, 0, 0, 500),
        "2026-03-02T10:30:00",
        task_id=task_id,
        location=" Library ",
    )

    block = storage.get_time_block(block_id)

    assert block.title == "Deep work"
    assert block.start_time == "2026-03-02T09:00:00"
    assert block.end_time == "2026-03-02T10:30:00"
    assert block.type == "work"
    assert block.status == "scheduled"
    assert block.color == "#3B82F6"
    assert block.location == "Library"
    assert block.task_id == task_id
    assert block.duration_minutes == 90
    assert storage.get_time_block(999) is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"title": " "},
        {"title": "x" * 201},
        {"end_time": "2026-03-02T09:00:00"},
        {"end_time": "2026-03-02T08:00:00"},
        {"type": "nap"},
        {"color": "blue"},
        {"task_id": 999},
    ],
)
def test_time_block_validation(storage, kwargs) -> None:
    fields = {"title": "Block", "start_time": "2026-03-02T09:00:00", "end_time": "2026-03-02T10:00:00"}
    fields.update(kwargs)

    with pytest.raises(ValueError):
        storage.create_time_block(**fields)
    assert storage.list_time_blocks() == []


def test_overlapping_blocks_conflict_unless_cancelled(storage) -> None:
    first = storage.create_time_block("Morning", "2026-03-02T09:00", "2026-03-02T10:00")
    storage.create_time_block("Adjacent", "2026-03-02T10:00", "2026-03-02T10:30")

    with pytest.raises(ScheduleConflictError) as excinfo:
        storage.create_time_block("Clash", "2026-03-02T09:30", "2026-03-02T09:45")
    assert [b.id for b in excinfo.value.conflicts] == [first]

    storage.update_time_block_status(first, "cancelled")
    storage.create_time_block("Replacement", "2026-03-02T09:30", "2026-03-02T09:45")


def test_list_time_blocks_by_range_type_and_status(storage) -> None:
    storage.create_time_block("Standup", "2026-03-03T09:00", "2026-03-03T09:15", type="meeting")
    storage.create_time_block("Focus", "2026-03-02T14:00", "2026-03-02T15:00")
    gym = storage.create_time_block("Gym", "2026-03-04T18:00", "2026-03-04T19:00", type="personal")
    storage.update_time_block_status(gym, "cancelled")

    assert [b.title for b in storage.list_time_blocks()] == ["Focus", "Standup", "Gym"]
    in_range = storage.list_time_blocks(datetime(2026, 3, 3), datetime(2026, 3, 4, 23, 59))
    assert [b.title for b in in_range] == ["Standup", "Gym"]
    assert [b.title for b in storage.list_time_blocks(type="meeting")] == ["Standup"]
    assert [b.title for b in storage.list_time_blocks(status="cancelled")] == ["Gym"]
    assert [b.title for b in storage.list_time_blocks(include_cancelled=False)] == ["Focus", "Standup"]


def test_update_time_block_revalidates(storage) -> None:
    block_id = storage.create_time_block("Write", "2026-03-02T09:00", "2026-03-02T10:00")
    storage.create_time_block("Lunch", "2026-03-02T12:00", "2026-03-02T13:00", type="break")

    moved = storage.update_time_block(block_id, start_time="2026-03-02T10:00", end_time="2026-03-02T11:30", title="Write more")
    assert moved.start_time == "2026-03-02T10:00:00"
    assert moved.title == "Write more"

    with pytest.raises(ScheduleConflictError):
        storage.update_time_block(block_id, end_time="2026-03-02T12:30")
    with pytest.raises(ValueError):
        storage.update_time_block(block_id, end_time="2026-03-02T09:00")
    with pytest.raises(ValueError):
        storage.update_time_block(block_id, status="completed")
    assert storage.get_time_block(block_id).end_time == "2026-03-02T11:30:00"
    assert storage.update_time_block(999, title="ghost") is None


def test_time_block_status_and_delete(storage) -> None:
    block_id = storage.create_time_block("Call", "2026-03-02T16:00", "2026-03-02T16:30", type="meeting")

    assert storage.update_time_block_status(block_id, "active").status == "active"
    with pytest.raises(ValueError):
        storage.update_time_block_status(block_id, "in-progress")
    assert storage.update_time_block_status(999, "completed") is None

    assert storage.delete_time_block(block_id) is True
    assert storage.delete_time_block(block_id) is False


def test_deleting_task_detaches_its_blocks(storage) -> None:
    task_id = storage.create_task("Essay")
    block_id = storage.create_time_block("Essay time", "2026-03-02T09:00", "2026-03-02T10:00", task_id=task_id)

    storage.delete_task(task_id)

    assert storage.get_time_block(block_id).task_id is None


def test_today_schedule_current_and_next(storage) -> None:
    storage.create_time_block("Yesterday", "2026-03-01T09:00", "2026-03-01T10:00")
    storage.create_time_block("Early", "2026-03-02T08:00", "2026-03-02T09:00")
    storage.create_time_block("Focus", "2026-03-02T09:30", "2026-03-02T11:00")
    skipped = storage.create_time_block("Coffee", "2026-03-02T11:00", "2026-03-02T11:15", type="break")
    storage.create_time_block("Review", "2026-03-02T14:00", "2026-03-02T15:00")
    storage.update_time_block_status(skipped, "cancelled")

    schedule = storage.today_schedule(now=datetime(2026, 3, 2, 10, 0))

    assert [b.title for b in schedule.blocks] == ["Early", "Focus", "Review"]
    assert schedule.current.title == "Focus"
    assert schedule.next.title == "Review"

    evening = storage.today_schedule(now=datetime(2026, 3, 2, 20, 0))
    assert evening.current is None
    assert evening.next is None


def test_time_block_overview(storage) -> None:
    done = storage.create_time_block("A", "2026-03-02T09:00", "2026-03-02T10:00")
    storage.create_time_block("B", "2026-03-03T09:00", "2026-03-03T10:00")
    dropped = storage.create_time_block("C", "2026-03-04T09:00", "2026-03-04T10:00")
    storage.create_time_block("Old", "2026-01-01T09:00", "2026-01-01T10:00")
    storage.update_time_block_status(done, "completed")
    storage.update_time_block_status(dropped, "cancelled")

    overview = storage.time_block_overview(days=7, today=date(2026, 3, 4))

    assert overview.total_blocks == 3
    assert overview.completed_blocks == 1
    assert overview.cancelled_blocks == 1
    assert overview.scheduled_blocks == 1
    assert overview.active_blocks == 0
    assert overview.completion_rate == 33
