"""Shared fixtures: temporary storage, a manual clock and an inline remote mirror."""

import pytest
from PySide6.QtCore import QCoreApplication

from timetrack.api import ApiError, Principal
from timetrack.clock import ManualClock, from_iso
from timetrack.models import AppSettings
from timetrack.repository import ProjectRepository
from timetrack.storage import Storage
from timetrack.sync import RemoteMirror

# Noon in Dhaka
BASE_MS = from_iso('2025-03-10T06:00:00.000Z')


class FakeClient:
    """Stands in for ApiClient; records calls and optionally fails all of them."""

    def __init__(self, principal=Principal('user-1'), fail=False):
        self.principal = principal
        self.fail = fail
        self.calls = []

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        if self.fail:
            raise ApiError('API 503 Service Unavailable', status_code=503)

    def sessions_posted(self):
        return [call for call in self.calls if call[0] == 'post_session']

    def post_session(self, remote_id, session):
        self._call('post_session', remote_id, session)
        return {'id': remote_id, 'totalMs': session['durationMs']}

    def create_project(self, name, description=''):
        self._call('create_project', name, description)
        return {'id': f'remote-{name}', 'name': name, 'description': description}

    def patch_project(self, remote_id, changes):
        self._call('patch_project', remote_id, changes)
        return dict(changes, id=remote_id)

    def delete_project(self, remote_id):
        self._call('delete_project', remote_id)

    def list_projects(self):
        self._call('list_projects')
        return []


def inline_executor(func):
    func()


@pytest.fixture(scope='session')
def qapp():
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def clock():
    return ManualClock(BASE_MS)


@pytest.fixture
def storage(tmp_path):
    return Storage(str(tmp_path / 'timetrack-test.db'))


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def mirror(qapp, client):
    return RemoteMirror(client, executor=inline_executor)


@pytest.fixture
def repository(qapp, storage, clock):
    """Repository without a remote mirror."""
    return ProjectRepository(storage, clock=clock, settings=AppSettings())


@pytest.fixture
def mirrored_repository(qapp, storage, clock, mirror):
    return ProjectRepository(storage, mirror=mirror, clock=clock, settings=AppSettings())
