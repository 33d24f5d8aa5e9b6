from pomotrack.core.events import EventKind, NotificationDispatcher, SessionEvent
from pomotrack.core.session import SessionState, SessionType, TimerSession


def make_event(task_id=None) -> SessionEvent:
    session = TimerSession(
        type=SessionType.WORK,
        planned_duration_seconds=1500,
        remaining_seconds=300,
        cycle_id="cycle-9-xyz",
        session_number=2,
        state=SessionState.COMPLETED,
        task_id=task_id,
        skipped=True,
    )
    return SessionEvent.from_session(EventKind.SKIPPED, session)


def test_event_payload_shape() -> None:
    assert make_event().to_payload() == {"type": "work", "actualDurationSeconds": 1200}
    assert make_event("t1").to_payload() == {"type": "work", "actualDurationSeconds": 1200, "taskId": "t1"}


def test_listeners_called_in_order() -> None:
    calls = []
    dispatcher = NotificationDispatcher()
    dispatcher.subscribe(lambda e: calls.append(("a", e.kind)))
    dispatcher.subscribe(lambda e: calls.append(("b", e.kind)))

    dispatcher.dispatch(make_event())

    assert calls == [("a", EventKind.SKIPPED), ("b", EventKind.SKIPPED)]


def test_failure_reported_and_others_still_notified() -> None:
    received = []
    failures = []

    def broken(_event) -> None:
        raise RuntimeError("boom")

    dispatcher = NotificationDispatcher(on_failure=lambda event, listener, error: failures.append((listener, str(error))))
    dispatcher.subscribe(broken)
    dispatcher.subscribe(received.append)

    dispatcher.dispatch(make_event())

    assert len(received) == 1
    assert failures == [(broken, "boom")]


def test_deferred_delivery_waits_for_scheduler() -> None:
    pending = []
    received = []
    dispatcher = NotificationDispatcher(defer=pending.append)
    dispatcher.subscribe(received.append)

    dispatcher.dispatch(make_event())
    assert received == []

    for fn in pending:
        fn()
    assert len(received) == 1


def test_subscribe_is_idempotent() -> None:
    received = []
    dispatcher = NotificationDispatcher()
    dispatcher.subscribe(received.append)
    dispatcher.subscribe(received.append)

    dispatcher.dispatch(make_event())
    dispatcher.unsubscribe(received.append)
    dispatcher.dispatch(make_event())

    assert len(received) == 1


def test_report_failure_passes_no_listener() -> None:
    failures = []
    dispatcher = NotificationDispatcher(on_failure=lambda event, listener, error: failures.append((event, listener, error)))
    event = make_event()
    error = OSError("disk full")

    dispatcher.report_failure(event, error)

    assert failures == [(event, None, error)]


def test_report_failure_without_hook_is_logged_only(caplog) -> None:
    dispatcher = NotificationDispatcher()

    with caplog.at_level("WARNING", logger="pomotrack.core.events"):
        dispatcher.report_failure(make_event(), OSError("disk full"))

    assert "disk full" in caplog.text
