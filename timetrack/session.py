"""
Timer sessions: one running timer wired to the flush accumulator, the local
aggregate store and the remote mirror.

A ``TimerSession`` is created when a timer is started for a project and
closed when it goes away. Closing always drains buffered time, so tearing a
session down is the same as pausing it. ``reset`` is the one path that drops
unflushed time on purpose.
"""

import logging
from typing import Any, Callable, List, Optional

from .accumulator import DEFAULT_THRESHOLD_MS, Flush, FlushAccumulator
from .clock import Clock, SystemClock, to_iso
from .models import ActivityType, SessionRecord
from .repository import MIN_SESSION_MS, ProjectRepository
from .timers import FLUSH_EVENTS, BaseTimer, StopwatchTimer, TickResult, TimerSnapshot

logger = logging.getLogger(__name__)

FlushListener = Callable[[Flush], None]


class TimerSession:
    """
    Drives one timer for one project.

    Every tracked delta goes through the accumulator. Threshold flushes
    increment the day bucket. Forced flushes (pause, expiry, focus end,
    close) drain the remainder and then mirror everything flushed since the
    previous forced flush in one remote call.
    """

    def __init__(
        self,
        timer: BaseTimer,
        project_id: str,
        repository: ProjectRepository,
        threshold_ms: int = DEFAULT_THRESHOLD_MS,
        clock: Optional[Clock] = None
    ):
        self.timer = timer
        self.project_id = project_id
        self.repository = repository
        self.accumulator = FlushAccumulator(threshold_ms)
        self._clock = clock or SystemClock()
        self._listeners: List[FlushListener] = []
        self._closed = False

    @property
    def activity_type(self) -> ActivityType:
        return self.timer.activity_type

    @property
    def closed(self) -> bool:
        return self._closed

    def add_flush_listener(self, listener: FlushListener):
        """Call ``listener`` with every flush, after the local write."""
        self._listeners.append(listener)

    def _now(self, now: Optional[int]) -> int:
        return self._clock.now() if now is None else now

    def _check_open(self):
        if self._closed:
            raise RuntimeError(f'Timer session for project {self.project_id} is closed')

    # ==================== Timer control ====================

    def start(self, now: Optional[int] = None) -> bool:
        """Start or resume the timer. Returns False if it refused to start."""
        self._check_open()
        return self.timer.start(self._now(now))

    def resume(self, now: Optional[int] = None) -> bool:
        return self.start(now)

    def tick(self, now: Optional[int] = None) -> TickResult:
        self._check_open()
        result = self.timer.tick(self._now(now))
        self._consume(result)
        return result

    def pause(self, now: Optional[int] = None) -> TickResult:
        self._check_open()
        result = self.timer.pause(self._now(now))
        self._consume(result)
        return result

    def reset(self) -> int:
        """
        Reset the timer and drop buffered time without flushing.

        Returns the number of milliseconds dropped. Already flushed time
        stays in the store.
        """
        self._check_open()
        self.timer.reset()
        dropped = self.accumulator.reset()
        if dropped:
            logger.debug('Reset dropped %d ms of unflushed %s time', dropped, self.activity_type.value)
        return dropped

    def configure(self, **options: Any) -> bool:
        """
        Reconfigure the timer.

        Timers reset when reconfigured, so buffered time is dropped as
        with ``reset``. Returns True if a running timer was interrupted.
        """
        self._check_open()
        interrupted = self.timer.configure(**options)
        self.accumulator.reset()
        return interrupted

    def snapshot(self, now: Optional[int] = None) -> TimerSnapshot:
        return self.timer.snapshot(self._now(now))

    def close(self, now: Optional[int] = None):
        """
        Stop the timer and flush everything. Safe to call more than once.
        """
        if self._closed:
            return
        now = self._now(now)
        if self.timer.running:
            self._consume(self.timer.pause(now))
        else:
            self._force_flush()
        self._closed = True

    def __enter__(self) -> 'TimerSession':
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ==================== Flushing ====================

    def _consume(self, result: TickResult):
        # Steps are ordered; a forced flush must see exactly the time before its event
        for step in result.steps:
            for flush in self.accumulator.add(step.delta_ms):
                self._apply(flush)
            if step.event in FLUSH_EVENTS:
                self._force_flush()

    def _force_flush(self):
        flush = self.accumulator.force_flush()
        if flush is not None:
            self._apply(flush)
        amount = self.accumulator.take_unmirrored()
        if amount:
            self.repository.mirror_aggregate_to_server(self.project_id, self.activity_type, amount)

    def _apply(self, flush: Flush):
        if not self.repository.bump_daily_session(self.project_id, self.activity_type, flush.amount_ms):
            logger.debug('Flush of %d ms not stored, project %s is gone', flush.amount_ms, self.project_id)
        for listener in self._listeners:
            listener(flush)


def log_stopwatch_run(
    repository: ProjectRepository,
    project_id: str,
    stopwatch: StopwatchTimer,
    now: int
) -> Optional[SessionRecord]:
    """
    Log a whole stopwatch run as one discrete session and reset the stopwatch.

    Meant for a stopwatch that is not attached to a ``TimerSession``;
    otherwise the same time would also be in the day bucket. Runs shorter
    than a second are ignored; the stopwatch is then paused but not reset.
    """
    if stopwatch.running:
        stopwatch.pause(now)
    elapsed = stopwatch.elapsed(now)
    if elapsed < MIN_SESSION_MS:
        return None
    record = repository.add_session_to_project(project_id, SessionRecord(
        type=ActivityType.STOPWATCH.value,
        start=to_iso(now - elapsed),
        end=to_iso(now),
        duration_ms=elapsed,
    ))
    stopwatch.reset()
    return record
