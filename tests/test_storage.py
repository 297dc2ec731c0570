"""Tests for SQLite storage, settings and models serialization."""

from timetrack.config import load_settings
from timetrack.models import AppSettings, Project, SessionRecord
from timetrack.storage import PROJECTS_KEY, Storage, get_app_data_dir


class TestStorage:
    def test_projects_round_trip(self, storage):
        project = Project(id='p1', name='A', sessions=[SessionRecord(type='countdown', duration_ms=3000)])
        storage.save_projects([project.to_dict()])
        loaded = storage.load_projects()
        assert loaded[0]['name'] == 'A'
        assert loaded[0]['sessions'][0]['durationMs'] == 3000

    def test_empty_store(self, storage):
        assert storage.load_projects() == []

    def test_invalid_json_yields_empty(self, storage):
        storage.write_value(PROJECTS_KEY, '[{"id":')
        assert storage.load_projects() == []

    def test_non_list_document_yields_empty(self, storage):
        storage.write_value(PROJECTS_KEY, '{"id": "p1"}')
        assert storage.load_projects() == []

    def test_delete_value(self, storage):
        storage.write_value('k', 'v')
        assert storage.delete_value('k')
        assert storage.read_value('k') is None
        assert not storage.delete_value('k')

    def test_settings_round_trip(self, storage):
        storage.save_settings(AppSettings(api_url='http://x.test', flush_threshold_ms=5000, mirror_enabled=False))
        settings = storage.get_settings()
        assert settings.api_url == 'http://x.test'
        assert settings.flush_threshold_ms == 5000
        assert settings.mirror_enabled is False
        assert settings.reference_timezone == 'Asia/Dhaka'

    def test_data_dir_override(self, tmp_path, monkeypatch):
        target = tmp_path / 'data'
        monkeypatch.setenv('TIMETRACK_DATA_DIR', str(target))
        assert get_app_data_dir() == target
        assert target.is_dir()

    def test_default_path_uses_data_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv('TIMETRACK_DATA_DIR', str(tmp_path))
        assert Storage().db_path == str(tmp_path / 'timetrack.db')


class TestLoadSettings:
    def test_environment_overrides_stored(self, storage, monkeypatch):
        storage.save_settings(AppSettings(api_url='http://stored.test'))
        monkeypatch.setenv('TIMETRACK_API_URL', 'http://env.test')
        monkeypatch.setenv('TIMETRACK_TIMEZONE', 'UTC')
        settings = load_settings(storage)
        assert settings.api_url == 'http://env.test'
        assert settings.reference_timezone == 'UTC'

    def test_non_positive_intervals_fall_back(self, storage, monkeypatch):
        monkeypatch.delenv('TIMETRACK_API_URL', raising=False)
        monkeypatch.delenv('TIMETRACK_TIMEZONE', raising=False)
        storage.save_settings(AppSettings(flush_threshold_ms=0, tick_interval_ms=-5))
        settings = load_settings(storage)
        assert settings.flush_threshold_ms == 10_000
        assert settings.tick_interval_ms == 200

    def test_without_storage(self, monkeypatch):
        monkeypatch.delenv('TIMETRACK_API_URL', raising=False)
        monkeypatch.delenv('TIMETRACK_TIMEZONE', raising=False)
        assert load_settings() == AppSettings()


class TestModels:
    def test_project_total_recomputed_from_sessions(self):
        project = Project.from_dict({
            'id': 'p1',
            'totalMs': 999_999,
            'sessions': [{'durationMs': 1000}, {'durationMs': 2500}, 'junk'],
        })
        assert project.total_ms == 3500
        assert len(project.sessions) == 2

    def test_legacy_dated_session_is_aggregate(self):
        assert SessionRecord.from_dict({'date': '2025-03-10', 'durationMs': 1}).aggregate
        assert not SessionRecord.from_dict({'durationMs': 1}).aggregate
        assert not SessionRecord.from_dict({'date': '2025-03-10', 'aggregate': False}).aggregate

    def test_dict_uses_camel_case(self):
        data = Project(id='p1', name='A', remote_id='r-1').to_dict()
        assert data['remoteId'] == 'r-1'
        assert 'totalMs' in data and 'remoteTotalMs' in data

    def test_is_linked(self):
        assert Project(remote_id='r-1').is_linked
        assert not Project().is_linked
