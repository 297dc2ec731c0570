#!/usr/bin/env python3
"""
TimeTrack - run one activity timer for a project from the command line.

Time is folded into the project's per-day totals every 10 seconds and on
pause/stop, and mirrored to the remote API when one is configured.

Usage:
    pip install -e .
    python main.py --project "Thesis" --mode stopwatch
    python main.py --project "Thesis" --mode countdown --minutes 25
    python main.py --project "Thesis" --mode pomodoro --focus 25 --break 5 --cycles 4

Environment:
    TIMETRACK_API_URL, TIMETRACK_USER_ID, TIMETRACK_TOKEN, TIMETRACK_DATA_DIR,
    TIMETRACK_TIMEZONE
"""

import argparse
import logging
import os
import signal
import sys
from typing import List, Optional

from PySide6.QtCore import QCoreApplication, QThreadPool, QTimer

from timetrack.api import ApiClient, Principal, resolve_base_url
from timetrack.clock import SystemClock
from timetrack.config import ENV_TOKEN, ENV_USER_ID, load_settings
from timetrack.driver import TimerDriver
from timetrack.duration import format_duration
from timetrack.log import setup_logging
from timetrack.models import ActivityType
from timetrack.repository import ProjectRepository
from timetrack.session import TimerSession
from timetrack.storage import Storage, get_app_data_dir
from timetrack.sync import RemoteMirror
from timetrack.timers import create_timer

logger = logging.getLogger('timetrack')


def setup_exception_handling():
    """Route unhandled exceptions through logging."""
    def exception_hook(exctype, value, traceback):
        logger.critical('Unhandled exception', exc_info=(exctype, value, traceback))

    sys.excepthook = exception_hook


def setup_signal_handlers(app: QCoreApplication, driver: TimerDriver):
    """Set up signal handlers for graceful shutdown."""
    def signal_handler(signum, frame):
        logger.info('Received signal %d, flushing and shutting down', signum)
        driver.stop()
        app.quit()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Track time on a project.')
    parser.add_argument('--project', required=True, help='Project id, remote id or name')
    parser.add_argument('--mode', choices=[t.value for t in ActivityType], default='stopwatch')
    parser.add_argument('--hours', default=0)
    parser.add_argument('--minutes', default=25)
    parser.add_argument('--seconds', default=0)
    parser.add_argument('--focus', default=25)
    parser.add_argument('--break', dest='break_minutes', default=5)
    parser.add_argument('--cycles', default=1)
    parser.add_argument('--api', help='Remote API base URL')
    parser.add_argument('--verbose', action='store_true')
    return parser.parse_args(argv)


def build_mirror(settings, api_url: Optional[str]) -> Optional[RemoteMirror]:
    """Remote mirror if a user is configured, otherwise None."""
    user_id = os.environ.get(ENV_USER_ID)
    if not user_id or not settings.mirror_enabled:
        return None
    client = ApiClient(
        base_url=resolve_base_url(api_url, settings.api_url),
        principal=Principal(user_id, os.environ.get(ENV_TOKEN)),
    )
    return RemoteMirror(client)


def find_or_create_project(repository: ProjectRepository, key: str) -> str:
    project = repository.get_project_by_id(key)
    if project is None:
        project = next((p for p in repository.list_projects() if p.name == key), None)
    if project is None:
        project = repository.add_project(key)
        logger.info('Created project %r (%s)', project.name, project.id)
    return project.id


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    data_dir = get_app_data_dir()
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, data_dir)
    setup_exception_handling()

    app = QCoreApplication(sys.argv[:1])
    app.setApplicationName('TimeTrack')
    app.setOrganizationName('TimeTrack')

    clock = SystemClock()
    storage = Storage()
    settings = load_settings(storage)
    mirror = build_mirror(settings, args.api)
    repository = ProjectRepository(storage, mirror=mirror, clock=clock, settings=settings)
    project_id = find_or_create_project(repository, args.project)

    activity_type = ActivityType(args.mode)
    if activity_type is ActivityType.COUNTDOWN:
        timer = create_timer(activity_type, hours=args.hours, minutes=args.minutes, seconds=args.seconds)
    elif activity_type is ActivityType.POMODORO:
        timer = create_timer(
            activity_type,
            focus_minutes=args.focus,
            break_minutes=args.break_minutes,
            cycles=args.cycles,
        )
    else:
        timer = create_timer(activity_type)

    session = TimerSession(timer, project_id, repository, settings.flush_threshold_ms, clock)
    driver = TimerDriver(
        session,
        clock,
        tick_interval_ms=settings.tick_interval_ms,
        display_interval_ms=settings.display_interval_ms,
    )
    driver.displayChanged.connect(lambda text: print(f'\r{text}', end='', flush=True))
    driver.eventOccurred.connect(lambda name: logger.info('Timer event: %s', name))
    driver.finished.connect(app.quit)

    setup_signal_handlers(app, driver)
    # Let the interpreter run periodically so SIGINT is delivered
    heartbeat = QTimer()
    heartbeat.timeout.connect(lambda: None)
    heartbeat.start(250)

    if not driver.start():
        logger.error('Timer did not start, nothing to track')
        return 1

    code = app.exec()
    driver.stop()
    project = repository.get_project_by_id(project_id)
    if project is not None:
        print()
        print(f'{project.name}: total {format_duration(project.total_ms)}')
    if mirror is not None:
        # Give in-flight mirror calls a moment before exiting
        QThreadPool.globalInstance().waitForDone(5000)
        mirror.client.close()
    return code


if __name__ == '__main__':
    sys.exit(main())
