"""
Logging setup for the record sync service.

Handlers are installed on the root logger so Flask/werkzeug request lines and
the service's own module loggers share one format. The CLI configures logging
once at startup and every gunicorn worker configures it again after fork;
repeated calls replace the handlers installed here instead of stacking them.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# httpx logs every request at INFO
QUIET_LOGGERS = ('httpx', 'httpcore')

_HANDLER_MARK = '_record_sync_handler'


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure root logging for the service.

    Args:
        level: Level name, defaults to RECORD_SYNC_LOG_LEVEL
        log_file: Rotating log file path, defaults to RECORD_SYNC_LOG_FILE

    Returns:
        The record sync package logger
    """
    level = level or config.LOG_LEVEL
    log_file = log_file or config.LOG_FILE or None

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in [h for h in root.handlers if getattr(h, _HANDLER_MARK, False)]:
        root.removeHandler(handler)
        handler.close()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger('modules.record_sync')
