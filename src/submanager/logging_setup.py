"""Logging setup for submanager.

The unattended entry points (``submanager-notify`` and ``submanager daemon``)
log with timestamps; interactive CLI commands log bare messages. Bark push
URLs carry the user's device key as their first path segment, so every
handler masks it before a line is written.
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import Config, LoggingConfig

LOGGER_NAME = "submanager"
TIMESTAMPED_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
PLAIN_FORMAT = "%(levelname)-5s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_URL_FIRST_SEGMENT = re.compile(r"(https?://[^/\s]+/)[^/\s?#]+")

_initialized = False


def redact_urls(text: str) -> str:
    """Mask the first path segment of every URL in text."""
    return _URL_FIRST_SEGMENT.sub(r"\1***", text)


class DeviceKeyFilter(logging.Filter):
    """Rewrite records whose message contains a URL so the device key is hidden."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_urls(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _file_handler(log_config: LoggingConfig) -> logging.Handler:
    path = Path(log_config.file)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not log_config.rotate:
        return logging.FileHandler(path)
    return RotatingFileHandler(
        path,
        maxBytes=log_config.max_size_mb * 1024 * 1024,
        backupCount=log_config.backup_count,
    )


def setup_logging(config: Config, verbose: bool = False, daemon_mode: bool = False) -> None:
    """Attach handlers to the submanager logger. Later calls are no-ops.

    verbose forces DEBUG. daemon_mode timestamps console lines, which the
    scheduled job and the daemon both want since their output goes to a
    journal or cron mail rather than a terminal.
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    log_config = config.logging
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, log_config.level.upper(), logging.INFO)

    handlers: list[logging.Handler] = []
    if log_config.output in ("console", "both"):
        console = logging.StreamHandler(sys.stderr)
        console_format = TIMESTAMPED_FORMAT if daemon_mode else PLAIN_FORMAT
        console.setFormatter(logging.Formatter(console_format, datefmt=DATE_FORMAT))
        handlers.append(console)
    if log_config.output in ("file", "both") and log_config.file:
        file_handler = _file_handler(log_config)
        file_handler.setFormatter(logging.Formatter(TIMESTAMPED_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(file_handler)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    key_filter = DeviceKeyFilter()
    for handler in handlers:
        handler.setLevel(level)
        handler.addFilter(key_filter)
        logger.addHandler(handler)

    # httpx logs every request URL at INFO
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def reset_logging() -> None:
    """Close and drop submanager handlers so setup_logging can run again."""
    global _initialized
    _initialized = False
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
