"""
Timer state machines for the three timing disciplines.

Pure logic, no I/O and no scheduling. Every method that moves time takes the
current instant ``now`` in milliseconds. Elapsed time is always derived by
subtracting an anchor timestamp from ``now`` instead of counting ticks, so a
late or skipped tick never loses or invents time.

Each call that advances a timer returns a ``TickResult``: an ordered list of
``TimerStep`` items, each carrying the tracked milliseconds since the previous
step and an optional event that happened right after that slice of time.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from .duration import MS_PER_MINUTE, MS_PER_SECOND, MS_PER_HOUR, parse_minutes, parse_non_negative
from .models import ActivityType, PomodoroPhase, TimerStatus

logger = logging.getLogger(__name__)


class TimerEvent(Enum):
    PAUSED = "paused"
    EXPIRED = "expired"
    FOCUS_COMPLETE = "focus_complete"
    BREAK_COMPLETE = "break_complete"
    CYCLE_COMPLETE = "cycle_complete"
    FINISHED = "finished"


# Events after which buffered time must be drained
FLUSH_EVENTS = frozenset({
    TimerEvent.PAUSED,
    TimerEvent.EXPIRED,
    TimerEvent.FOCUS_COMPLETE,
    TimerEvent.BREAK_COMPLETE,
    TimerEvent.FINISHED,
})


@dataclass
class TimerStep:
    delta_ms: int = 0
    event: Optional[TimerEvent] = None


@dataclass
class TickResult:
    steps: List[TimerStep] = field(default_factory=list)

    @property
    def delta_ms(self) -> int:
        return sum(step.delta_ms for step in self.steps)

    @property
    def events(self) -> List[TimerEvent]:
        return [step.event for step in self.steps if step.event is not None]


@dataclass(frozen=True)
class TimerSnapshot:
    """Read-only view of a timer for display purposes."""
    activity_type: ActivityType
    status: TimerStatus
    display_ms: int
    elapsed_ms: int
    phase: Optional[PomodoroPhase] = None
    completed_cycles: int = 0
    total_cycles: int = 0


class BaseTimer(ABC):
    """
    Common state shared by all timers.

    Invariant: ``anchor`` is set if and only if the timer is running.
    """

    activity_type: ActivityType

    def __init__(self):
        self._status = TimerStatus.IDLE
        self._anchor: Optional[int] = None

    @property
    def status(self) -> TimerStatus:
        return self._status

    @property
    def running(self) -> bool:
        return self._status is TimerStatus.RUNNING

    @property
    def anchor(self) -> Optional[int]:
        return self._anchor

    def _set_running(self, anchor: int):
        self._status = TimerStatus.RUNNING
        self._anchor = anchor

    def _set_stopped(self, status: TimerStatus):
        self._status = status
        self._anchor = None

    @abstractmethod
    def start(self, now: int) -> bool:
        """Start or resume. Returns False when the call was a no-op."""

    def resume(self, now: int) -> bool:
        return self.start(now)

    @abstractmethod
    def tick(self, now: int) -> TickResult:
        """Advance to ``now`` and report the tracked time since the last report."""

    @abstractmethod
    def pause(self, now: int) -> TickResult:
        """Fold time up to ``now`` and stop advancing."""

    @abstractmethod
    def reset(self):
        """Return to the initial state, discarding progress."""

    def configure(self, **options: Any) -> bool:
        """Apply new settings. Returns True if a run was interrupted."""
        return False

    @abstractmethod
    def snapshot(self, now: int) -> TimerSnapshot:
        ...


class StopwatchTimer(BaseTimer):
    """
    Counts up from zero.

    States:
        IDLE: Never started or reset
        RUNNING: Counting
        PAUSED: Stopped with elapsed time kept
    """

    activity_type = ActivityType.STOPWATCH

    def __init__(self):
        super().__init__()
        self._elapsed_ms = 0
        self._reported_ms = 0

    def elapsed(self, now: int) -> int:
        if self.running:
            # Never run backwards if the wall clock does
            return max(self._reported_ms, now - self._anchor)
        return self._elapsed_ms

    def start(self, now: int) -> bool:
        if self.running:
            return False
        # Resuming keeps prior elapsed time
        self._set_running(now - self._elapsed_ms)
        return True

    def tick(self, now: int) -> TickResult:
        if not self.running:
            return TickResult()
        elapsed = self.elapsed(now)
        delta = elapsed - self._reported_ms
        self._reported_ms = elapsed
        return TickResult([TimerStep(delta)])

    def pause(self, now: int) -> TickResult:
        if not self.running:
            return TickResult()
        result = self.tick(now)
        self._elapsed_ms = self._reported_ms
        self._set_stopped(TimerStatus.PAUSED)
        result.steps.append(TimerStep(0, TimerEvent.PAUSED))
        return result

    def reset(self):
        self._elapsed_ms = 0
        self._reported_ms = 0
        self._set_stopped(TimerStatus.IDLE)

    def snapshot(self, now: int) -> TimerSnapshot:
        elapsed = self.elapsed(now)
        return TimerSnapshot(self.activity_type, self._status, elapsed, elapsed)


class CountdownTimer(BaseTimer):
    """
    Counts down a configured duration.

    States:
        IDLE: Not running; remaining time is kept across a pause
        RUNNING: Counting down towards ``target``
        EXPIRED: Reached zero; the next start reloads the duration
    """

    activity_type = ActivityType.COUNTDOWN

    def __init__(self, duration_ms: int = 25 * MS_PER_MINUTE):
        super().__init__()
        self._duration_ms = max(0, int(duration_ms))
        self._remaining_ms = self._duration_ms
        self._target: Optional[int] = None

    @property
    def duration_ms(self) -> int:
        return self._duration_ms

    def remaining(self, now: int) -> int:
        if self.running:
            return min(self._remaining_ms, max(0, self._target - now))
        return self._remaining_ms

    def configure(self, hours: Any = 0, minutes: Any = 0, seconds: Any = 0) -> bool:
        """
        Set the duration from loosely typed input.

        Each field is clamped to zero or more. A zero total is accepted here
        and rejected by ``start``.
        """
        interrupted = self.running
        self._duration_ms = (
            parse_non_negative(hours) * MS_PER_HOUR
            + parse_non_negative(minutes) * MS_PER_MINUTE
            + parse_non_negative(seconds) * MS_PER_SECOND
        )
        self.reset()
        return interrupted

    def start(self, now: int) -> bool:
        if self.running:
            return False
        if self._status is TimerStatus.EXPIRED:
            self._remaining_ms = self._duration_ms
        if self._remaining_ms <= 0:
            logger.info('Countdown has no time remaining, start ignored')
            return False
        self._set_running(now)
        self._target = now + self._remaining_ms
        return True

    def tick(self, now: int) -> TickResult:
        if not self.running:
            return TickResult()
        left = self.remaining(now)
        delta = self._remaining_ms - left
        self._remaining_ms = left
        if left > 0:
            return TickResult([TimerStep(delta)])
        self._target = None
        self._set_stopped(TimerStatus.EXPIRED)
        return TickResult([TimerStep(delta, TimerEvent.EXPIRED)])

    def pause(self, now: int) -> TickResult:
        if not self.running:
            return TickResult()
        result = self.tick(now)
        if self.running:
            self._target = None
            self._set_stopped(TimerStatus.IDLE)
            result.steps.append(TimerStep(0, TimerEvent.PAUSED))
        return result

    def reset(self):
        self._remaining_ms = self._duration_ms
        self._target = None
        self._set_stopped(TimerStatus.IDLE)

    def snapshot(self, now: int) -> TimerSnapshot:
        left = self.remaining(now)
        return TimerSnapshot(self.activity_type, self._status, left, self._duration_ms - left)


class PomodoroTimer(BaseTimer):
    """
    Alternates focus and break phases for a number of cycles.

    A cycle completes at the end of its break (or at the end of focus when
    the break is zero). Phases chain automatically until ``cycles`` cycles
    are done, then the timer stops in IDLE. Only focus time is tracked
    unless ``count_breaks`` is set.
    """

    activity_type = ActivityType.POMODORO

    def __init__(
        self,
        focus_minutes: Any = 25,
        break_minutes: Any = 5,
        cycles: Any = 1,
        count_breaks: bool = False,
        unit_ms: int = MS_PER_MINUTE
    ):
        super().__init__()
        self.count_breaks = count_breaks
        self._unit_ms = unit_ms
        self._focus_ms = 0
        self._break_ms = 0
        self._cycles = 1
        self._phase = PomodoroPhase.FOCUS
        self._completed = 0
        self._remaining_ms = 0
        self._target: Optional[int] = None
        self.configure(focus_minutes, break_minutes, cycles)

    @property
    def phase(self) -> PomodoroPhase:
        return self._phase

    @property
    def completed_cycles(self) -> int:
        return self._completed

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def focus_ms(self) -> int:
        return self._focus_ms

    @property
    def break_ms(self) -> int:
        return self._break_ms

    @property
    def finished(self) -> bool:
        return self._completed >= self._cycles

    def remaining(self, now: int) -> int:
        if self.running:
            return min(self._remaining_ms, max(0, self._target - now))
        return self._remaining_ms

    def configure(self, focus_minutes: Any = 25, break_minutes: Any = 5, cycles: Any = 1) -> bool:
        """Apply new durations. Always resets to idle, focus phase, zero cycles."""
        interrupted = self.running
        self._focus_ms = parse_minutes(focus_minutes, minimum=1) * self._unit_ms
        self._break_ms = parse_minutes(break_minutes, minimum=0) * self._unit_ms
        self._cycles = parse_minutes(cycles, minimum=1)
        self.reset()
        return interrupted

    def start(self, now: int) -> bool:
        if self.running:
            return False
        if self.finished:
            # A finished run starts over
            self.reset()
        self._set_running(now)
        self._target = now + self._remaining_ms
        return True

    def _tracks(self, phase: PomodoroPhase) -> bool:
        return phase is PomodoroPhase.FOCUS or self.count_breaks

    def _begin_phase(self, phase: PomodoroPhase, at: int):
        self._phase = phase
        self._remaining_ms = self._focus_ms if phase is PomodoroPhase.FOCUS else self._break_ms
        self._anchor = at
        self._target = at + self._remaining_ms

    def _finish(self):
        self._phase = PomodoroPhase.FOCUS
        self._remaining_ms = self._focus_ms
        self._target = None
        self._set_stopped(TimerStatus.IDLE)

    def _complete_phase(self, at: int) -> List[TimerEvent]:
        """Handle a phase reaching zero at instant ``at``."""
        if self._phase is PomodoroPhase.FOCUS:
            events = [TimerEvent.FOCUS_COMPLETE]
            if self._break_ms > 0:
                self._begin_phase(PomodoroPhase.BREAK, at)
                return events
            # No break: the cycle ends with the focus phase
        else:
            events = [TimerEvent.BREAK_COMPLETE]

        self._completed += 1
        events.append(TimerEvent.CYCLE_COMPLETE)
        if self.finished:
            self._finish()
            events.append(TimerEvent.FINISHED)
        else:
            self._begin_phase(PomodoroPhase.FOCUS, at)
        return events

    def tick(self, now: int) -> TickResult:
        result = TickResult()
        # A late tick may cross several phase boundaries; replay them in order
        while self.running:
            segment_end = min(now, self._target)
            # Remaining time never grows, even if the wall clock steps backwards
            left = min(self._remaining_ms, self._target - segment_end)
            consumed = self._remaining_ms - left
            counted = consumed if self._tracks(self._phase) else 0
            self._remaining_ms = left
            if segment_end < self._target:
                result.steps.append(TimerStep(counted))
                break
            events = self._complete_phase(self._target)
            result.steps.append(TimerStep(counted, events[0]))
            result.steps.extend(TimerStep(0, event) for event in events[1:])
        return result

    def pause(self, now: int) -> TickResult:
        if not self.running:
            return TickResult()
        result = self.tick(now)
        if self.running:
            self._target = None
            self._set_stopped(TimerStatus.IDLE)
            result.steps.append(TimerStep(0, TimerEvent.PAUSED))
        return result

    def reset(self):
        self._phase = PomodoroPhase.FOCUS
        self._completed = 0
        self._remaining_ms = self._focus_ms
        self._target = None
        self._set_stopped(TimerStatus.IDLE)

    def snapshot(self, now: int) -> TimerSnapshot:
        left = self.remaining(now)
        phase_total = self._focus_ms if self._phase is PomodoroPhase.FOCUS else self._break_ms
        return TimerSnapshot(
            self.activity_type,
            self._status,
            left,
            phase_total - left,
            phase=self._phase,
            completed_cycles=self._completed,
            total_cycles=self._cycles,
        )


def create_timer(activity_type: ActivityType, **options: Any) -> BaseTimer:
    """Build a timer for ``activity_type`` with optional configuration."""
    if activity_type is ActivityType.STOPWATCH:
        return StopwatchTimer()
    if activity_type is ActivityType.COUNTDOWN:
        timer = CountdownTimer()
        if options:
            timer.configure(**options)
        return timer
    return PomodoroTimer(**options)
