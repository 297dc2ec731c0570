"""
Best-effort remote mirroring.

Local state is authoritative. The mirror only forwards copies of what was
already written locally: requests are handed to a worker pool and never
awaited, several may be in flight at once, and a failed request is logged
and dropped. There is no retry and no backoff.

Results travel back as Qt signals. Receivers that live on the main thread
get them through queued connections, so the local store is still only
touched from the main thread.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from PySide6 import QtCore

from .api import ApiClient, ApiError
from .clock import to_iso
from .models import ActivityType

logger = logging.getLogger(__name__)

Executor = Callable[[Callable[[], None]], None]


class RequestKind(Enum):
    POST_SESSION = "post_session"
    CREATE_PROJECT = "create_project"
    PATCH_PROJECT = "patch_project"
    DELETE_PROJECT = "delete_project"
    LIST_PROJECTS = "list_projects"


@dataclass(frozen=True)
class MirrorRequest:
    """One fire-and-forget remote call."""
    kind: RequestKind
    remote_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    local_id: Optional[str] = None


def build_session_payload(activity_type: Any, amount_ms: int, now_ms: int) -> Dict[str, Any]:
    """Synthetic session ending at ``now_ms`` and lasting ``amount_ms``."""
    type_value = activity_type.value if isinstance(activity_type, ActivityType) else str(activity_type)
    return {
        'type': type_value,
        'start': to_iso(now_ms - amount_ms),
        'end': to_iso(now_ms),
        'durationMs': int(amount_ms),
    }


class _Job(QtCore.QRunnable):
    def __init__(self, func: Callable[[], None]):
        super().__init__()
        self._func = func
        self.setAutoDelete(True)

    def run(self):
        self._func()


class RemoteMirror(QtCore.QObject):
    """
    One-way notification channel to the remote API.

    Signals:
        snapshotReceived: Emitted with a remote project snapshot after a
            successful call that returns one.
        projectCreated: Emitted with (local_id, remote document) after a
            remote project was created for a local one.
        requestFailed: Emitted with the error message of a dropped request.
    """

    snapshotReceived = QtCore.Signal(dict)
    projectCreated = QtCore.Signal(str, dict)
    requestFailed = QtCore.Signal(str)

    def __init__(
        self,
        client: Optional[ApiClient],
        executor: Optional[Executor] = None,
        parent: Optional[QtCore.QObject] = None
    ):
        """
        Args:
            client: API client, or None to disable mirroring.
            executor: Runs a job without blocking the caller. Defaults to the
                global QThreadPool.
            parent: Optional Qt parent object.
        """
        super().__init__(parent)
        self._client = client
        self._executor = executor or self._pool_executor

    @staticmethod
    def _pool_executor(func: Callable[[], None]):
        QtCore.QThreadPool.globalInstance().start(_Job(func))

    @property
    def client(self) -> Optional[ApiClient]:
        return self._client

    def can_send(self) -> bool:
        """True when a client and an authenticated principal are attached."""
        return self._client is not None and self._client.principal is not None

    def notify(self, request: MirrorRequest) -> bool:
        """
        Dispatch ``request`` and return immediately.

        Returns False when the request was not dispatched because there is
        no client or no principal.
        """
        if not self.can_send():
            logger.debug('Mirror disabled, dropping %s', request.kind.value)
            return False
        self._executor(lambda: self._execute(request))
        return True

    def mirror(self, remote_id: Optional[str], activity_type: Any, amount_ms: int, now_ms: int) -> bool:
        """
        Forward a flushed duration as one synthetic session.

        No-op when ``amount_ms`` is 0, when the project is not linked to a
        remote id, or when no principal is attached. Each call describes a
        distinct stretch of time; calling it twice counts twice remotely.
        """
        if amount_ms <= 0 or not remote_id:
            return False
        payload = build_session_payload(activity_type, amount_ms, now_ms)
        return self.notify(MirrorRequest(RequestKind.POST_SESSION, remote_id, payload))

    def _execute(self, request: MirrorRequest):
        """Run one request. Called on a worker thread."""
        client = self._client
        try:
            if request.kind is RequestKind.POST_SESSION:
                result = client.post_session(request.remote_id, request.payload)
            elif request.kind is RequestKind.CREATE_PROJECT:
                result = client.create_project(
                    request.payload.get('name', ''),
                    request.payload.get('description', ''),
                )
            elif request.kind is RequestKind.PATCH_PROJECT:
                result = client.patch_project(request.remote_id, request.payload)
            elif request.kind is RequestKind.DELETE_PROJECT:
                client.delete_project(request.remote_id)
                result = None
            else:
                result = client.list_projects()
        except ApiError as e:
            logger.warning('Remote %s dropped: %s', request.kind.value, e)
            self.requestFailed.emit(str(e))
            return
        except Exception as e:
            # Worker jobs must never raise into the pool or the caller
            logger.exception('Remote %s failed unexpectedly', request.kind.value)
            self.requestFailed.emit(str(e))
            return

        if request.kind is RequestKind.CREATE_PROJECT:
            if isinstance(result, dict) and request.local_id:
                self.projectCreated.emit(request.local_id, result)
        elif request.kind is RequestKind.LIST_PROJECTS:
            for doc in result:
                if isinstance(doc, dict):
                    self.snapshotReceived.emit(doc)
        elif isinstance(result, dict):
            self.snapshotReceived.emit(result)
