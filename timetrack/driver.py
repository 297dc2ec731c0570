"""
Qt scheduling loop for a timer session.

Two independent QTimers: the accumulation tick, which feeds the session and
carries all correctness requirements, and the display refresh, which only
formats the current snapshot.
"""

from typing import Optional

from PySide6.QtCore import QCoreApplication, QObject, QTimer, Signal, Slot

from .clock import Clock, SystemClock
from .duration import format_duration
from .session import TimerSession
from .timers import TickResult


class TimerDriver(QObject):
    """
    Runs a ``TimerSession`` on the Qt event loop.

    Signals:
        displayChanged: Emitted with the formatted time on each display refresh
        flushed: Emitted with the amount of every flush
        eventOccurred: Emitted with the value of each timer event
        finished: Emitted when the timer stops on its own (expiry, last cycle)
    """

    displayChanged = Signal(str)
    flushed = Signal(int)
    eventOccurred = Signal(str)
    finished = Signal()

    TICK_INTERVAL_MS = 200
    DISPLAY_INTERVAL_MS = 1000

    def __init__(
        self,
        session: TimerSession,
        clock: Optional[Clock] = None,
        tick_interval_ms: int = TICK_INTERVAL_MS,
        display_interval_ms: int = DISPLAY_INTERVAL_MS,
        parent: Optional[QObject] = None
    ):
        super().__init__(parent)

        self.session = session
        self._clock = clock or SystemClock()
        session.add_flush_listener(lambda flush: self.flushed.emit(flush.amount_ms))

        self._tick_timer = QTimer(self)
        self._tick_timer.setInterval(tick_interval_ms)
        self._tick_timer.timeout.connect(self._on_tick)

        self._display_timer = QTimer(self)
        self._display_timer.setInterval(display_interval_ms)
        self._display_timer.timeout.connect(self.refresh_display)

        app = QCoreApplication.instance()
        if app is not None:
            # Teardown must flush like a pause
            app.aboutToQuit.connect(self.stop)

    @property
    def active(self) -> bool:
        return self._tick_timer.isActive()

    def start(self) -> bool:
        """Start or resume the session and the loops."""
        if not self.session.start(self._clock.now()):
            self.refresh_display()
            return False
        self._tick_timer.start()
        self._display_timer.start()
        self.refresh_display()
        return True

    def pause(self):
        result = self.session.pause(self._clock.now())
        self._stop_timers()
        self._emit_events(result)
        self.refresh_display()

    def reset(self):
        self._stop_timers()
        self.session.reset()
        self.refresh_display()

    @Slot()
    def stop(self):
        """Close the session, flushing everything. Safe to call more than once."""
        self._stop_timers()
        self.session.close(self._clock.now())

    def _stop_timers(self):
        self._tick_timer.stop()
        self._display_timer.stop()

    def _emit_events(self, result: TickResult):
        for event in result.events:
            self.eventOccurred.emit(event.value)

    @Slot()
    def _on_tick(self):
        if self.session.closed:
            self._stop_timers()
            return
        result = self.session.tick(self._clock.now())
        self._emit_events(result)
        if not self.session.timer.running:
            self._stop_timers()
            self.refresh_display()
            self.finished.emit()

    @Slot()
    def refresh_display(self):
        snapshot = self.session.snapshot(self._clock.now())
        self.displayChanged.emit(format_duration(snapshot.display_ms))
