from pomotrack.config import TICK_INTERVAL_MS
from pomotrack.core.clock import TickSource


def test_default_interval_is_one_second(qapp) -> None:
    assert TickSource().interval_ms == TICK_INTERVAL_MS == 1000


def test_timeout_emits_ticked(qapp) -> None:
    source = TickSource(interval_ms=5)
    ticks = []
    source.ticked.connect(lambda: ticks.append(True))

    source._on_timeout()  # noqa: SLF001 - tests may drive the timer directly

    assert ticks == [True]


def test_start_and_stop(qapp) -> None:
    source = TickSource(interval_ms=5)

    source.start()
    source.start()
    assert source.is_active is True

    source.stop()
    assert source.is_active is False
