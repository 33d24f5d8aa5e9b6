"""Wall-clock tick source backed by a repeating QTimer."""

from __future__ import annotations

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from pomotrack.config import TICK_INTERVAL_MS


class TickSource(QObject):
    """Emits `ticked` once per interval while started.

    Missed intervals (suspended process, blocked loop) are not replayed.
    """

    ticked = pyqtSignal()

    def __init__(self, interval_ms: int = TICK_INTERVAL_MS, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._timer = QTimer(self)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self._on_timeout)

    @property
    def interval_ms(self) -> int:
        return self._timer.interval()

    @property
    def is_active(self) -> bool:
        return self._timer.isActive()

    def start(self) -> None:
        if not self._timer.isActive():
            self._timer.start()

    def stop(self) -> None:
        self._timer.stop()

    def _on_timeout(self) -> None:
        self.ticked.emit()
