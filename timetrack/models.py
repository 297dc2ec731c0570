"""
Data models for the time tracking engine.
Uses dataclasses for clean, type-annotated data structures.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class ActivityType(Enum):
    """Which timer produced a duration."""
    STOPWATCH = "stopwatch"
    COUNTDOWN = "countdown"
    POMODORO = "pomodoro"


class TimerStatus(Enum):
    """Possible states for the timer state machines."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXPIRED = "expired"


class PomodoroPhase(Enum):
    """Phase of a pomodoro cycle."""
    FOCUS = "focus"
    BREAK = "break"


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class SessionRecord:
    """
    One entry of a project's session history.

    Chunked increments produce one record per (type, day) that keeps
    growing; the discrete log path produces a fresh record per run.
    ``start`` is the first start and ``end`` the last update, both ISO-8601.
    """
    id: str = field(default_factory=new_id)
    type: str = ActivityType.STOPWATCH.value
    date: Optional[str] = None  # YYYY-MM-DD in the reference timezone
    start: str = ""
    end: str = ""
    duration_ms: int = 0
    notes: str = ""
    aggregate: bool = False  # True for a day bucket fed by increments

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'date': self.date,
            'start': self.start,
            'end': self.end,
            'durationMs': self.duration_ms,
            'notes': self.notes,
            'aggregate': self.aggregate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionRecord':
        return cls(
            id=str(data.get('id') or new_id()),
            type=str(data.get('type') or ActivityType.STOPWATCH.value),
            date=data.get('date'),
            start=data.get('start') or '',
            end=data.get('end') or '',
            duration_ms=max(0, int(data.get('durationMs') or 0)),
            notes=data.get('notes') or '',
            # Older documents mark day buckets only by their date
            aggregate=bool(data.get('aggregate', bool(data.get('date')))),
        )


@dataclass
class Project:
    """
    A tracked project with its session history.

    ``total_ms`` always equals the sum of ``sessions`` durations.
    ``remote_total_ms`` is the last known aggregate on the remote store
    and is only ever raised.
    """
    id: str = field(default_factory=new_id)
    name: str = ""
    description: str = ""
    created_at: str = ""
    remote_id: Optional[str] = None
    total_ms: int = 0
    remote_total_ms: int = 0
    sessions: List[SessionRecord] = field(default_factory=list)

    @property
    def is_linked(self) -> bool:
        return bool(self.remote_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'createdAt': self.created_at,
            'remoteId': self.remote_id,
            'totalMs': self.total_ms,
            'remoteTotalMs': self.remote_total_ms,
            'sessions': [s.to_dict() for s in self.sessions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Project':
        sessions = [
            SessionRecord.from_dict(s)
            for s in data.get('sessions') or []
            if isinstance(s, dict)
        ]
        remote_id = data.get('remoteId')
        return cls(
            id=str(data.get('id') or new_id()),
            name=data.get('name') or '',
            description=data.get('description') or '',
            created_at=data.get('createdAt') or '',
            remote_id=str(remote_id) if remote_id else None,
            # Recomputed so a hand-edited or truncated file cannot break the sum
            total_ms=sum(s.duration_ms for s in sessions),
            remote_total_ms=max(0, int(data.get('remoteTotalMs') or 0)),
            sessions=sessions,
        )


@dataclass
class AppSettings:
    """Application settings stored in the database."""
    api_url: str = ""
    reference_timezone: str = "Asia/Dhaka"
    flush_threshold_ms: int = 10_000
    tick_interval_ms: int = 200
    display_interval_ms: int = 1000
    mirror_enabled: bool = True

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
