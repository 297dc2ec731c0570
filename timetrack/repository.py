"""
Project and session repository.

Owns the project list. Reads are served from memory; every mutation updates
the in-memory list and then persists the whole list in one write, so a
session's duration and its project's ``total_ms`` always change together.
If the write fails the in-memory list stays the source of truth until the
next start.
"""

import copy
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Union

from PySide6 import QtCore

from .clock import Clock, SystemClock, day_key, from_iso, to_iso
from .models import ActivityType, AppSettings, Project, SessionRecord, new_id
from .storage import Storage
from .sync import MirrorRequest, RemoteMirror, RequestKind

logger = logging.getLogger(__name__)

# Discrete runs shorter than this are not logged
MIN_SESSION_MS = 1000


def _type_value(activity_type: Union[ActivityType, str]) -> str:
    if isinstance(activity_type, ActivityType):
        return activity_type.value
    return str(activity_type)


class ProjectRepository(QtCore.QObject):
    """
    Local project store with best-effort remote mirroring.

    Signals:
        projectsChanged: Emitted after any change to the project list.
    """

    projectsChanged = QtCore.Signal()

    def __init__(
        self,
        storage: Storage,
        mirror: Optional[RemoteMirror] = None,
        clock: Optional[Clock] = None,
        settings: Optional[AppSettings] = None,
        parent: Optional[QtCore.QObject] = None
    ):
        super().__init__(parent)
        self._storage = storage
        self._mirror = mirror
        self._clock = clock or SystemClock()
        self._settings = settings or AppSettings()
        self._projects: List[Project] = self._load()

        if mirror is not None:
            mirror.snapshotReceived.connect(self.apply_remote_snapshot)
            mirror.projectCreated.connect(self._on_project_created)

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def mirror(self) -> Optional[RemoteMirror]:
        return self._mirror

    def _load(self) -> List[Project]:
        try:
            documents = self._storage.load_projects()
        except (sqlite3.Error, OSError) as e:
            logger.warning('Could not read stored projects, starting empty: %s', e)
            return []
        return [Project.from_dict(doc) for doc in documents if isinstance(doc, dict)]

    def _save(self) -> bool:
        try:
            self._storage.save_projects([p.to_dict() for p in self._projects])
            saved = True
        except (sqlite3.Error, OSError) as e:
            logger.warning('Could not persist projects, keeping changes in memory only: %s', e)
            saved = False
        self.projectsChanged.emit()
        return saved

    def _find(self, project_id: Optional[str]) -> Optional[Project]:
        if not project_id:
            return None
        for project in self._projects:
            if project.id == project_id or project.remote_id == project_id:
                return project
        return None

    def _today(self, now_ms: int) -> str:
        return day_key(now_ms, self._settings.reference_timezone)

    def _mirror_enabled(self) -> bool:
        return self._mirror is not None and self._settings.mirror_enabled

    def _notify(self, request: MirrorRequest) -> bool:
        if not self._mirror_enabled():
            return False
        return self._mirror.notify(request)

    # ==================== Queries ====================

    def list_projects(self) -> List[Project]:
        """Snapshot of all projects, newest first."""
        return copy.deepcopy(self._projects)

    def get_project_by_id(self, project_id: str) -> Optional[Project]:
        """Snapshot of one project, looked up by local or remote id."""
        project = self._find(project_id)
        return copy.deepcopy(project) if project else None

    def daily_totals(self, project_id: str) -> Dict[str, int]:
        """
        Total tracked milliseconds per calendar day, newest day first.

        Sessions without a day marker are bucketed by their start instant.
        """
        project = self._find(project_id)
        if project is None:
            return {}
        totals: Dict[str, int] = {}
        for session in project.sessions:
            key = session.date
            if not key:
                start = from_iso(session.start)
                key = self._today(start) if start is not None else 'unknown'
            totals[key] = totals.get(key, 0) + session.duration_ms
        return dict(sorted(totals.items(), key=lambda item: item[0], reverse=True))

    # ==================== Project CRUD ====================

    def add_project(self, name: str, description: str = '') -> Project:
        """
        Create a local project.

        When mirroring is possible a remote copy is requested too; its id
        is linked once the server answers.
        """
        project = Project(
            name=name.strip(),
            description=description,
            created_at=to_iso(self._clock.now()),
        )
        self._projects.insert(0, project)
        self._save()
        self._notify(MirrorRequest(
            RequestKind.CREATE_PROJECT,
            payload={'name': project.name, 'description': project.description},
            local_id=project.id,
        ))
        return copy.deepcopy(project)

    def update_project(self, project: Project) -> bool:
        """
        Merge editable fields (name, description, remote id) into the stored project.

        Durations and sessions are never written through this path.
        """
        target = self._find(project.id)
        if target is None:
            return False
        target.name = project.name
        target.description = project.description
        if project.remote_id:
            target.remote_id = project.remote_id
        self._save()
        if target.remote_id:
            self._notify(MirrorRequest(
                RequestKind.PATCH_PROJECT,
                target.remote_id,
                {'name': target.name, 'description': target.description},
            ))
        return True

    def link_remote(self, project_id: str, remote_id: str) -> bool:
        target = self._find(project_id)
        if target is None or not remote_id:
            return False
        target.remote_id = str(remote_id)
        self._save()
        return True

    def delete_project(self, project_id: str) -> bool:
        """Remove a project and all of its sessions."""
        target = self._find(project_id)
        if target is None:
            return False
        self._projects.remove(target)
        self._save()
        if target.remote_id:
            self._notify(MirrorRequest(RequestKind.DELETE_PROJECT, target.remote_id))
        return True

    def clear_all(self):
        self._projects = []
        self._save()

    # ==================== Sessions ====================

    def add_session_to_project(
        self,
        project_id: str,
        session: Union[SessionRecord, Dict[str, Any]]
    ) -> Optional[SessionRecord]:
        """
        Append one discrete session record.

        Always creates a new record, never merges into a day bucket. Runs
        shorter than a second are dropped.

        Returns:
            The stored record, or None if dropped or the project is unknown.
        """
        if isinstance(session, dict):
            session = SessionRecord.from_dict(session)
        if session.duration_ms < MIN_SESSION_MS:
            logger.debug('Dropping %d ms session, below %d ms', session.duration_ms, MIN_SESSION_MS)
            return None
        project = self._find(project_id)
        if project is None:
            logger.info('Session for unknown project %s ignored', project_id)
            return None

        now = self._clock.now()
        start = from_iso(session.start)
        if start is None:
            start = now - session.duration_ms
        record = SessionRecord(
            id=new_id(),
            type=session.type,
            date=session.date or self._today(start),
            start=to_iso(start),
            end=session.end or to_iso(start + session.duration_ms),
            duration_ms=session.duration_ms,
            notes=session.notes,
        )
        project.sessions.insert(0, record)
        project.total_ms += record.duration_ms
        self._save()

        if project.remote_id:
            self._notify(MirrorRequest(
                RequestKind.POST_SESSION,
                project.remote_id,
                {
                    'type': record.type,
                    'start': record.start,
                    'end': record.end,
                    'durationMs': record.duration_ms,
                },
            ))
        return copy.deepcopy(record)

    def bump_daily_session(
        self,
        project_id: str,
        activity_type: Union[ActivityType, str],
        amount_ms: int
    ) -> bool:
        """
        Add ``amount_ms`` to today's bucket for (project, activity type).

        The bucket is created on first use and incremented afterwards; the
        project total moves by the same amount in the same write.

        Returns:
            False when ``amount_ms`` is not positive or the project is unknown.
        """
        if amount_ms <= 0:
            return False
        project = self._find(project_id)
        if project is None:
            logger.info('Increment for unknown project %s ignored', project_id)
            return False

        now = self._clock.now()
        today = self._today(now)
        type_value = _type_value(activity_type)
        bucket = next(
            (s for s in project.sessions if s.aggregate and s.type == type_value and s.date == today),
            None,
        )
        if bucket is None:
            bucket = SessionRecord(
                type=type_value,
                date=today,
                start=to_iso(now - amount_ms),
                end=to_iso(now),
                duration_ms=0,
                aggregate=True,
            )
            project.sessions.insert(0, bucket)
        bucket.duration_ms += int(amount_ms)
        bucket.end = to_iso(now)
        project.total_ms += int(amount_ms)
        self._save()
        return True

    def mirror_aggregate_to_server(
        self,
        project_id: str,
        activity_type: Union[ActivityType, str],
        amount_ms: int
    ) -> bool:
        """
        Forward ``amount_ms`` to the remote session log, fire-and-forget.

        Returns True if a request was dispatched. Nothing here can fail the
        local path.
        """
        if amount_ms <= 0 or not self._mirror_enabled():
            return False
        project = self._find(project_id)
        if project is None or not project.remote_id:
            return False
        return self._mirror.mirror(project.remote_id, activity_type, amount_ms, self._clock.now())

    def refresh_from_remote(self) -> bool:
        """Request the remote project list; snapshots are merged as they arrive."""
        return self._notify(MirrorRequest(RequestKind.LIST_PROJECTS))

    # ==================== Remote results ====================

    @QtCore.Slot(dict)
    def apply_remote_snapshot(self, document: Dict[str, Any]):
        """
        Merge a remote project snapshot into the local shadow copy.

        Only metadata and the remote aggregate are taken. The remote total
        never lowers anything: a stale response cannot undo a later local
        flush. Unknown remote projects are imported.
        """
        if not isinstance(document, dict):
            return
        remote_id = document.get('id') or document.get('_id') or document.get('remoteId')
        if not remote_id:
            return
        remote_id = str(remote_id)
        remote_total = max(0, int(document.get('totalMs') or 0))

        project = self._find(remote_id)
        if project is None:
            imported = Project.from_dict({
                'id': remote_id,
                'remoteId': remote_id,
                'name': document.get('name') or '',
                'description': document.get('description') or '',
                'createdAt': document.get('createdAt') or to_iso(self._clock.now()),
                'sessions': document.get('sessions') or [],
            })
            imported.remote_total_ms = remote_total
            self._projects.insert(0, imported)
            self._save()
            return

        if document.get('name'):
            project.name = document['name']
        if 'description' in document and document['description'] is not None:
            project.description = document['description']
        project.remote_id = remote_id
        project.remote_total_ms = max(project.remote_total_ms, remote_total)
        self._save()

    @QtCore.Slot(str, dict)
    def _on_project_created(self, local_id: str, document: Dict[str, Any]):
        remote_id = document.get('id') or document.get('_id')
        if not remote_id:
            return
        if self.link_remote(local_id, str(remote_id)):
            logger.info('Project %s linked to remote %s', local_id, remote_id)
