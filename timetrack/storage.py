"""
SQLite storage module for the time tracking engine.
Handles database initialization and the key-value records the engine keeps:
the serialized project list and the application settings.
"""

import json
import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import AppSettings

logger = logging.getLogger(__name__)

PROJECTS_KEY = 'tt_projects_v1'


def get_app_data_dir() -> Path:
    """
    Get the appropriate application data directory based on OS.
    Creates the directory if it doesn't exist.

    ``TIMETRACK_DATA_DIR`` overrides the platform default.
    """
    override = os.environ.get('TIMETRACK_DATA_DIR')
    if override:
        app_dir = Path(override)
    else:
        if os.name == 'nt':  # Windows
            base = Path(os.environ.get('APPDATA', Path.home()))
        elif os.name == 'posix':
            # macOS uses ~/Library/Application Support, Linux uses ~/.local/share
            if os.uname().sysname == 'Darwin':
                base = Path.home() / 'Library' / 'Application Support'
            else:
                base = Path(os.environ.get('XDG_DATA_HOME', Path.home() / '.local' / 'share'))
        else:
            base = Path.home()
        app_dir = base / 'TimeTrack'

    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir


class Storage:
    """
    Database storage manager.

    The project list is stored as one JSON document under a single key so
    every write replaces it in one transaction.
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize storage with database path.

        Args:
            db_path: Optional custom path for database file.
                    If None, uses default app data directory.
        """
        if db_path is None:
            db_path = str(get_app_data_dir() / 'timetrack.db')

        self.db_path = db_path
        self._init_database()

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self):
        """Initialize database schema if tables don't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at INTEGER NOT NULL
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            ''')

    # ==================== Key-value records ====================

    def read_value(self, key: str) -> Optional[str]:
        """Return the raw value stored under ``key`` or None."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT value FROM kv WHERE key = ?', (key,))
            row = cursor.fetchone()
            return row['value'] if row else None

    def write_value(self, key: str, value: str):
        """Insert or replace the value stored under ``key``."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT OR REPLACE INTO kv (key, value, updated_at)
                VALUES (?, ?, ?)
            ''', (key, value, int(time.time())))

    def delete_value(self, key: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM kv WHERE key = ?', (key,))
            return cursor.rowcount > 0

    # ==================== Projects ====================

    def load_projects(self) -> List[Dict[str, Any]]:
        """
        Load the serialized project list.

        A missing or unreadable document yields an empty list.
        """
        raw = self.read_value(PROJECTS_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning('Stored project list is not valid JSON, ignoring it: %s', e)
            return []
        return data if isinstance(data, list) else []

    def save_projects(self, projects: List[Dict[str, Any]]):
        """Replace the serialized project list."""
        self.write_value(PROJECTS_KEY, json.dumps(projects, separators=(',', ':')))

    # ==================== Settings ====================

    def get_settings(self) -> AppSettings:
        """Get application settings."""
        settings = AppSettings()
        types = {f.name: type(getattr(settings, f.name)) for f in fields(AppSettings)}
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT key, value FROM settings')
            for row in cursor.fetchall():
                key, value = row['key'], row['value']
                if key not in types:
                    continue
                # Convert string to appropriate type
                if types[key] is bool:
                    setattr(settings, key, value.lower() == 'true')
                elif types[key] is int:
                    try:
                        setattr(settings, key, int(value))
                    except ValueError:
                        logger.warning('Ignoring invalid integer setting %s=%r', key, value)
                else:
                    setattr(settings, key, value)
        return settings

    def save_settings(self, settings: AppSettings):
        """Save application settings."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            for key, value in settings.as_dict().items():
                cursor.execute('''
                    INSERT OR REPLACE INTO settings (key, value)
                    VALUES (?, ?)
                ''', (key, str(value)))
