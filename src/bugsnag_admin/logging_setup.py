"""Logging setup: human-readable console output, optional JSON log file.

The file handler writes one JSON object per line and rotates at 10 MB.
All paths are constructed from conventions.py constants.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from bugsnag_admin.conventions import ADMIN_HOME, LOG_DIR, LOG_FILENAME

# Set on handlers installed here so a second setup_logging() replaces them.
_HANDLER_MARK = "_bugsnag_admin_handler"


def log_file_path() -> Path:
    """Return the default log file path, constructed from conventions."""
    return Path(ADMIN_HOME).expanduser() / LOG_DIR / LOG_FILENAME


class JSONFormatter(logging.Formatter):
    """One JSON object per record: UTC time, level, logger, source, message."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        entry: dict[str, object] = {
            "timestamp": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "source": f"{record.module}:{record.lineno}",
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        return json.dumps(entry)


def setup_logging(log_file: Path | None = None, level: int = logging.INFO) -> None:
    """Configure the root logger.

    Args:
        log_file: Path for the JSON log file. Console only if None.
        level: Logging level for every handler.
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    setattr(console_handler, _HANDLER_MARK, True)
    root.addHandler(console_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    if log_file is None:
        return

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        str(log_file), maxBytes=10 * 1024 * 1024, backupCount=3
    )
    file_handler.setFormatter(JSONFormatter())
    setattr(file_handler, _HANDLER_MARK, True)
    root.addHandler(file_handler)
