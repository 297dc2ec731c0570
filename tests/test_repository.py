"""Tests for the project repository and its day-bucket aggregation."""

import sqlite3

from timetrack.clock import from_iso
from timetrack.models import ActivityType, AppSettings, SessionRecord
from timetrack.repository import ProjectRepository
from timetrack.storage import PROJECTS_KEY

DAY_MS = 24 * 60 * 60 * 1000


def session_sum(project):
    return sum(s.duration_ms for s in project.sessions)


class BrokenStorage:
    """Reads work, writes always fail."""

    def __init__(self):
        self.attempts = 0

    def load_projects(self):
        return []

    def save_projects(self, projects):
        self.attempts += 1
        raise sqlite3.OperationalError('disk I/O error')


class TestProjects:
    def test_add_and_get(self, repository):
        project = repository.add_project('  Thesis ', 'Chapter 3')
        assert project.name == 'Thesis'
        assert project.created_at.startswith('2025-03-10T06:00:00')
        fetched = repository.get_project_by_id(project.id)
        assert fetched.description == 'Chapter 3'
        assert fetched.total_ms == 0
        assert fetched.sessions == []

    def test_newest_first(self, repository):
        repository.add_project('A')
        repository.add_project('B')
        assert [p.name for p in repository.list_projects()] == ['B', 'A']

    def test_list_returns_copies(self, repository):
        project = repository.add_project('A')
        repository.list_projects()[0].name = 'changed'
        assert repository.get_project_by_id(project.id).name == 'A'

    def test_missing_project(self, repository):
        assert repository.get_project_by_id('nope') is None
        assert repository.get_project_by_id('') is None

    def test_update_merges_metadata_only(self, repository):
        project = repository.add_project('A')
        repository.bump_daily_session(project.id, ActivityType.STOPWATCH, 5000)
        edited = repository.get_project_by_id(project.id)
        edited.name = 'Renamed'
        edited.total_ms = 0
        edited.sessions = []
        assert repository.update_project(edited)
        stored = repository.get_project_by_id(project.id)
        assert stored.name == 'Renamed'
        assert stored.total_ms == 5000
        assert len(stored.sessions) == 1

    def test_delete(self, repository):
        project = repository.add_project('A')
        assert repository.delete_project(project.id)
        assert repository.get_project_by_id(project.id) is None
        assert not repository.delete_project(project.id)

    def test_lookup_by_remote_id(self, repository):
        project = repository.add_project('A')
        repository.link_remote(project.id, 'remote-9')
        assert repository.get_project_by_id('remote-9').id == project.id

    def test_persists_across_instances(self, repository, storage, clock):
        project = repository.add_project('A')
        repository.bump_daily_session(project.id, 'countdown', 12_000)
        reloaded = ProjectRepository(storage, clock=clock)
        stored = reloaded.get_project_by_id(project.id)
        assert stored.total_ms == 12_000
        assert stored.sessions[0].aggregate

    def test_projects_changed_signal(self, repository):
        seen = []
        repository.projectsChanged.connect(lambda: seen.append(True))
        repository.add_project('A')
        assert seen

    def test_clear_all(self, repository):
        repository.add_project('A')
        repository.clear_all()
        assert repository.list_projects() == []


class TestBumpDailySession:
    def test_same_day_merges_into_one_bucket(self, repository):
        project = repository.add_project('A')
        assert repository.bump_daily_session(project.id, ActivityType.STOPWATCH, 10_000)
        assert repository.bump_daily_session(project.id, ActivityType.STOPWATCH, 450)
        stored = repository.get_project_by_id(project.id)
        assert len(stored.sessions) == 1
        assert stored.sessions[0].duration_ms == 10_450
        assert stored.sessions[0].date == '2025-03-10'
        assert stored.total_ms == 10_450

    def test_bucket_per_type(self, repository):
        project = repository.add_project('A')
        repository.bump_daily_session(project.id, ActivityType.STOPWATCH, 1000)
        repository.bump_daily_session(project.id, ActivityType.POMODORO, 2000)
        stored = repository.get_project_by_id(project.id)
        assert sorted(s.type for s in stored.sessions) == ['pomodoro', 'stopwatch']
        assert stored.total_ms == 3000

    def test_new_day_new_bucket(self, repository, clock):
        project = repository.add_project('A')
        repository.bump_daily_session(project.id, 'stopwatch', 1000)
        clock.advance(DAY_MS)
        repository.bump_daily_session(project.id, 'stopwatch', 1000)
        stored = repository.get_project_by_id(project.id)
        assert [s.date for s in stored.sessions] == ['2025-03-11', '2025-03-10']

    def test_day_follows_reference_timezone(self, repository, clock):
        project = repository.add_project('A')
        clock.set(from_iso('2025-03-10T20:00:00.000Z'))
        repository.bump_daily_session(project.id, 'stopwatch', 1000)
        assert repository.get_project_by_id(project.id).sessions[0].date == '2025-03-11'

    def test_does_not_merge_into_discrete_session(self, repository):
        project = repository.add_project('A')
        repository.add_session_to_project(project.id, SessionRecord(
            type='stopwatch', start='2025-03-10T05:00:00.000Z', duration_ms=60_000,
        ))
        repository.bump_daily_session(project.id, 'stopwatch', 1000)
        stored = repository.get_project_by_id(project.id)
        assert len(stored.sessions) == 2
        assert stored.total_ms == 61_000

    def test_rejects_non_positive_and_unknown(self, repository):
        project = repository.add_project('A')
        assert not repository.bump_daily_session(project.id, 'stopwatch', 0)
        assert not repository.bump_daily_session('missing', 'stopwatch', 1000)
        assert repository.get_project_by_id(project.id).sessions == []

    def test_legacy_bucket_without_flag_is_reused(self, qapp, storage, clock):
        storage.save_projects([{
            'id': 'p1',
            'name': 'Old',
            'sessions': [{'id': 's1', 'type': 'stopwatch', 'date': '2025-03-10', 'durationMs': 4000}],
        }])
        repository = ProjectRepository(storage, clock=clock)
        repository.bump_daily_session('p1', 'stopwatch', 1000)
        stored = repository.get_project_by_id('p1')
        assert len(stored.sessions) == 1
        assert stored.total_ms == 5000


class TestAddSession:
    def test_adds_discrete_record(self, repository):
        project = repository.add_project('A')
        record = repository.add_session_to_project(project.id, {
            'type': 'countdown',
            'start': '2025-03-10T05:00:00.000Z',
            'end': '2025-03-10T05:25:00.000Z',
            'durationMs': 25 * 60_000,
            'notes': 'deep work',
        })
        assert record.date == '2025-03-10'
        assert not record.aggregate
        stored = repository.get_project_by_id(project.id)
        assert stored.total_ms == 25 * 60_000
        assert stored.sessions[0].notes == 'deep work'

    def test_always_appends(self, repository):
        project = repository.add_project('A')
        for _ in range(2):
            repository.add_session_to_project(project.id, SessionRecord(type='stopwatch', duration_ms=2000))
        assert len(repository.get_project_by_id(project.id).sessions) == 2

    def test_short_session_dropped(self, repository):
        project = repository.add_project('A')
        assert repository.add_session_to_project(project.id, SessionRecord(duration_ms=999)) is None
        assert repository.get_project_by_id(project.id).total_ms == 0

    def test_unknown_project(self, repository):
        assert repository.add_session_to_project('missing', SessionRecord(duration_ms=5000)) is None

    def test_total_matches_sessions(self, repository, clock):
        project = repository.add_project('A')
        repository.bump_daily_session(project.id, 'stopwatch', 10_000)
        repository.add_session_to_project(project.id, SessionRecord(duration_ms=3000))
        clock.advance(DAY_MS)
        repository.bump_daily_session(project.id, 'pomodoro', 1500)
        stored = repository.get_project_by_id(project.id)
        assert stored.total_ms == session_sum(stored) == 14_500


class TestDailyTotals:
    def test_groups_by_day_newest_first(self, repository, clock):
        project = repository.add_project('A')
        repository.bump_daily_session(project.id, 'stopwatch', 1000)
        repository.bump_daily_session(project.id, 'pomodoro', 2000)
        clock.advance(2 * DAY_MS)
        repository.bump_daily_session(project.id, 'stopwatch', 500)
        totals = repository.daily_totals(project.id)
        assert list(totals.items()) == [('2025-03-12', 500), ('2025-03-10', 3000)]

    def test_unknown_project(self, repository):
        assert repository.daily_totals('missing') == {}


class TestRemoteSnapshot:
    def test_never_lowers_remote_total(self, repository):
        project = repository.add_project('A')
        repository.link_remote(project.id, 'r-1')
        repository.apply_remote_snapshot({'id': 'r-1', 'totalMs': 50_000})
        repository.apply_remote_snapshot({'id': 'r-1', 'totalMs': 20_000})
        assert repository.get_project_by_id(project.id).remote_total_ms == 50_000

    def test_does_not_touch_local_totals(self, repository):
        project = repository.add_project('A')
        repository.link_remote(project.id, 'r-1')
        repository.bump_daily_session(project.id, 'stopwatch', 8000)
        repository.apply_remote_snapshot({'id': 'r-1', 'name': 'Server name', 'totalMs': 100, 'sessions': []})
        stored = repository.get_project_by_id(project.id)
        assert stored.name == 'Server name'
        assert stored.total_ms == 8000
        assert len(stored.sessions) == 1

    def test_imports_unknown_project(self, repository):
        repository.apply_remote_snapshot({
            '_id': 'r-2',
            'name': 'From server',
            'totalMs': 3000,
            'sessions': [{'type': 'stopwatch', 'durationMs': 3000}],
        })
        imported = repository.get_project_by_id('r-2')
        assert imported.name == 'From server'
        assert imported.total_ms == 3000
        assert imported.remote_total_ms == 3000

    def test_ignores_document_without_id(self, repository):
        repository.apply_remote_snapshot({'name': 'no id'})
        assert repository.list_projects() == []


class TestStorageFailure:
    def test_in_memory_state_survives_failed_writes(self, qapp, clock):
        storage = BrokenStorage()
        repository = ProjectRepository(storage, clock=clock, settings=AppSettings())
        project = repository.add_project('A')
        assert repository.bump_daily_session(project.id, 'stopwatch', 10_000)
        assert repository.bump_daily_session(project.id, 'stopwatch', 2000)
        assert repository.get_project_by_id(project.id).total_ms == 12_000
        assert storage.attempts == 3

    def test_corrupt_document_starts_empty(self, qapp, storage, clock):
        storage.write_value(PROJECTS_KEY, '{not json')
        assert ProjectRepository(storage, clock=clock).list_projects() == []


class TestRemoteMirroring:
    def test_linked_session_is_posted(self, mirrored_repository, client):
        project = mirrored_repository.add_project('A')
        assert project.remote_id == 'remote-A'
        mirrored_repository.add_session_to_project(project.id, SessionRecord(type='countdown', duration_ms=5000))
        posted = client.sessions_posted()
        assert len(posted) == 1
        assert posted[0][1] == 'remote-A'
        assert set(posted[0][2]) == {'type', 'start', 'end', 'durationMs'}

    def test_delete_and_patch_forwarded(self, mirrored_repository, client):
        project = mirrored_repository.add_project('A')
        edited = mirrored_repository.get_project_by_id(project.id)
        edited.description = 'new'
        mirrored_repository.update_project(edited)
        mirrored_repository.delete_project(project.id)
        kinds = [call[0] for call in client.calls]
        assert kinds == ['create_project', 'patch_project', 'delete_project']

    def test_disabled_in_settings(self, storage, clock, mirror, client):
        repository = ProjectRepository(storage, mirror=mirror, clock=clock, settings=AppSettings(mirror_enabled=False))
        project = repository.add_project('A')
        repository.link_remote(project.id, 'r-1')
        assert not repository.mirror_aggregate_to_server(project.id, 'stopwatch', 5000)
        assert client.calls == []

    def test_mirror_aggregate_requires_link(self, mirrored_repository, client):
        project = mirrored_repository.add_project('A')
        mirrored_repository._find(project.id).remote_id = None
        assert not mirrored_repository.mirror_aggregate_to_server(project.id, 'stopwatch', 5000)
        assert not mirrored_repository.mirror_aggregate_to_server('missing', 'stopwatch', 5000)
        assert client.sessions_posted() == []
