# camfleet/utils/logger.py
"""
Centralised logging configuration for the coordinator and the agent.
Logs to console and to a rotating file in LOG_DIR.

Modules configure from the coordinator's Settings on first use; the agent
entry point calls configure_logging() with its own AGENT_LOG_* values so the
two processes never share a log file.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import List, Optional

from camfleet.config import settings

_handlers: List[logging.Handler] = []


def configure_logging(level: Optional[str] = None, log_dir: Optional[str] = None,
                      log_file: Optional[str] = None) -> str:
    """(Re)install the console and file handlers. Returns the log file path."""
    level = (level or settings.LOG_LEVEL).upper()
    log_dir = log_dir or settings.LOG_DIR
    path = os.path.join(log_dir, log_file or settings.LOG_FILE)
    os.makedirs(log_dir, exist_ok=True)

    fmt = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler
    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)

    # Rotating file handler — keeps last 10 × 5MB log files, opened on first record
    file_handler = RotatingFileHandler(
        filename=path,
        maxBytes=5 * 1024 * 1024,
        backupCount=10,
        encoding="utf-8",
        delay=True,
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(fmt)

    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers[:] = [console, file_handler]
    root.setLevel(level)
    root.addHandler(console)
    root.addHandler(file_handler)
    return path


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Call this at the top of every module."""
    if not _handlers:
        configure_logging()
    return logging.getLogger(name)
