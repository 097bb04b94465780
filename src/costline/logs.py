"""Logging setup for costline.

Console output goes to stderr so it never mixes with the rendered status
line. Warnings and errors are also appended to ``error.log`` in the cache
directory, which is rolled over once it passes ``MAX_LOG_BYTES``.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import ERROR_LOG, MAX_LOG_BYTES

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
LOG_FILE_PERMS = 0o600

logger = logging.getLogger("costline")


class ErrorLogHandler(RotatingFileHandler):
    """Size-capped log file kept private to the user across rollovers."""

    def __init__(self, path: Path):
        super().__init__(path, maxBytes=MAX_LOG_BYTES, backupCount=1, encoding="utf-8")
        os.chmod(self.baseFilename, LOG_FILE_PERMS)

    def doRollover(self):
        super().doRollover()
        os.chmod(self.baseFilename, LOG_FILE_PERMS)


def error_log_handler(path: Path | None = None) -> ErrorLogHandler | None:
    """Build the file handler for the error log, or None if it can't be opened."""
    path = path or ERROR_LOG
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        handler = ErrorLogHandler(path)
    except OSError:
        return None
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def setup_logging(level: str = "warning", log_file: Path | None = None):
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)
    if any(isinstance(h, ErrorLogHandler) for h in logger.handlers):
        return
    handler = error_log_handler(log_file)
    if handler is not None:
        logger.addHandler(handler)
