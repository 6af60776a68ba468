"""
Logging setup for applications embedding the planner.

The library modules only create module-level loggers; handlers are attached
here, once, by whoever hosts the planner.
"""

import sys
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

from backend.config import get_settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB per file
LOG_BACKUP_COUNT = 5

_HANDLER_TAG = "_planner_handler"


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach console (and optionally rotating file) handlers to the root logger.

    Calling it again replaces the handlers installed by a previous call
    instead of stacking duplicates.

    Args:
        level: Log level name; defaults to PLANNER_LOG_LEVEL
        log_file: Path of the rotating log file; defaults to PLANNER_LOG_FILE

    Returns:
        The configured root logger
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_TAG, True)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT)
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_TAG, True)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    return root_logger
