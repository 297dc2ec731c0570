"""
Settings resolution: stored settings overlaid with environment variables.
"""

import logging
import os
from typing import Optional

from .models import AppSettings
from .storage import Storage

logger = logging.getLogger(__name__)

ENV_API_URL = 'TIMETRACK_API_URL'
ENV_TIMEZONE = 'TIMETRACK_TIMEZONE'
ENV_USER_ID = 'TIMETRACK_USER_ID'
ENV_TOKEN = 'TIMETRACK_TOKEN'


def load_settings(storage: Optional[Storage] = None) -> AppSettings:
    """
    Return the effective settings.

    Stored values win over defaults; environment variables win over both.
    Out-of-range intervals fall back to their defaults.
    """
    settings = storage.get_settings() if storage is not None else AppSettings()

    api_url = os.environ.get(ENV_API_URL)
    if api_url:
        settings.api_url = api_url
    tz_name = os.environ.get(ENV_TIMEZONE)
    if tz_name:
        settings.reference_timezone = tz_name

    defaults = AppSettings()
    for name in ('flush_threshold_ms', 'tick_interval_ms', 'display_interval_ms'):
        if getattr(settings, name) <= 0:
            logger.warning('Setting %s must be positive, using %d', name, getattr(defaults, name))
            setattr(settings, name, getattr(defaults, name))
    return settings
