"""
Logging setup: stream output plus a rotating log file, with Qt messages
routed through the same handlers.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

from PySide6.QtCore import QtMsgType, qInstallMessageHandler

LOG_LEVEL = logging.INFO
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'
LOG_FILE_NAME = 'timetrack.log'


def qt_message_handler(mode, context, message):
    """
    Converts Qt messages to standard Python logging.
    """
    logger = logging.getLogger('Qt')
    message = message.strip()

    if mode == QtMsgType.QtDebugMsg:
        logger.debug(message)
    elif mode == QtMsgType.QtInfoMsg:
        logger.info(message)
    elif mode == QtMsgType.QtWarningMsg:
        logger.warning(message)
    else:
        logger.error(message)


def setup_logging(level: int = LOG_LEVEL, log_dir: Optional[Path] = None):
    """
    Configures the root logger and installs the Qt message handler.

    Args:
        level: Minimum level for every handler.
        log_dir: Directory for the rotating log file. No file is written when None.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear all handlers to avoid duplicate output when called twice
    root_logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(level)
    root_logger.addHandler(stream_handler)

    if log_dir is not None:
        file_handler = logging.handlers.RotatingFileHandler(
            Path(log_dir) / LOG_FILE_NAME,
            maxBytes=1_000_000,
            backupCount=3,
            encoding='utf-8',
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger('httpx').setLevel(max(level, logging.WARNING))

    qInstallMessageHandler(qt_message_handler)
