"""Logging for the API server and the index worker.

Both processes log to the console and append to ``<LOG_DIR>/vector_sync.log``.
Each process gets its own child of the ``vector_sync`` logger ("api", "worker")
so their lines can be told apart in the shared file.
"""

import logging
import logging.config
import os
from datetime import datetime

from pytz import timezone

ROOT_LOGGER = "vector_sync"
LOG_FILE = "vector_sync.log"

_RESET = "\033[0m"
# console color per level; the file stays plain
_LEVEL_COLORS = {
    logging.DEBUG: "\033[37m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_LEVEL_MARKERS = {
    logging.WARNING: "⚠️ ",
    logging.ERROR: "⛔ ",
    logging.CRITICAL: "⛔ ",
}


def _log_level() -> int:
    name = os.getenv("LOG_LEVEL", "info").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


class ZonedFormatter(logging.Formatter):
    """Renders timestamps in ``TIMEZONE`` and marks warnings and errors."""

    def __init__(self, tz_name: str, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def formatMessage(self, record):
        record.message = _LEVEL_MARKERS.get(record.levelno, "") + record.message
        return super().formatMessage(record)

    def format(self, record):
        try:
            return super().format(record)
        except (TypeError, ValueError):
            # mismatched %-args in a log call; log the raw parts instead of raising
            record.msg, record.args = f"{record.msg} {record.args}", ()
            return super().format(record)


class ConsoleFormatter(ZonedFormatter):
    def format(self, record):
        line = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{_RESET}" if color else line


def setup_logging(component: str = "api") -> logging.Logger:
    """Configure the root logger once per process.

    Args:
        component (str): Name of the process, becomes ``vector_sync.<component>``.

    Returns:
        logging.Logger: The logger handed to HelperConfig.
    """
    log_dir = os.getenv("LOG_DIR") or os.path.join(os.getenv("ROOT_DIR", os.getcwd()), "logs")
    os.makedirs(log_dir, exist_ok=True)
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    level = _log_level()

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "file": {
                "()": ZonedFormatter,
                "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
                "tz_name": tz_name,
            },
            "console": {
                "()": ConsoleFormatter,
                "format": "%(asctime)s - %(name)s - %(message)s",
                "datefmt": "%H:%M:%S",
                "tz_name": tz_name,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "level": level,
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.FileHandler",
                "formatter": "file",
                "level": level,
                "filename": os.path.join(log_dir, LOG_FILE),
                "encoding": "utf-8",
            },
        },
        "root": {"handlers": ["console", "file"], "level": level},
    })

    # one line per embedding or vector store request is too much below debug
    quiet = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(quiet)

    return logging.getLogger(f"{ROOT_LOGGER}.{component}")
