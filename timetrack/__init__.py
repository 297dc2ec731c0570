# Local-first time tracking engine
from .accumulator import Flush, FlushAccumulator
from .models import ActivityType, AppSettings, PomodoroPhase, Project, SessionRecord, TimerStatus
from .repository import ProjectRepository
from .session import TimerSession, log_stopwatch_run
from .storage import Storage
from .timers import CountdownTimer, PomodoroTimer, StopwatchTimer, TimerEvent, create_timer

__version__ = '0.1.0'

__all__ = [
    'ActivityType', 'AppSettings', 'CountdownTimer', 'Flush', 'FlushAccumulator',
    'PomodoroPhase', 'PomodoroTimer', 'Project', 'ProjectRepository', 'SessionRecord',
    'Storage', 'StopwatchTimer', 'TimerEvent', 'TimerSession', 'TimerStatus',
    'create_timer', 'log_stopwatch_run',
]
