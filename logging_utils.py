"""Logging setup for applications embedding the sync layer."""

from __future__ import annotations

import logging
import sys

import config

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Loggers of this project; their level follows the configured one
PACKAGE_LOGGERS = ("api", "sync", "session", "geometry")

# Third-party HTTP stack, one request line per call at INFO/DEBUG
HTTP_LOGGERS = ("httpx", "httpcore")


def resolve_log_level(
    log_level: str | None = None,
    verbose: int = 0,
    quiet: int = 0,
) -> int:
    """Pick a numeric level.

    An explicit name wins. Otherwise ``verbose``/``quiet`` step away from the
    configured default (``config.LOG_LEVEL``): one step up is DEBUG, one step
    down WARNING, two or more ERROR.
    """
    if log_level:
        return LOG_LEVELS[log_level.lower()]

    offset = verbose - quiet
    if offset >= 1:
        return logging.DEBUG
    if offset == -1:
        return logging.WARNING
    if offset <= -2:
        return logging.ERROR
    return LOG_LEVELS.get(config.LOG_LEVEL, logging.INFO)


def configure_logging(
    log_level: str | None = None,
    verbose: int = 0,
    quiet: int = 0,
    *,
    http_debug: bool = False,
) -> int:
    """Configure root logging for the sync layer and return the active level.

    Existing root handlers (installed by the host application or pytest) are
    kept and only re-levelled. The HTTP client libraries stay at WARNING
    unless ``http_debug`` is set.
    """
    level = resolve_log_level(log_level=log_level, verbose=verbose, quiet=quiet)
    root_logger = logging.getLogger()

    if root_logger.handlers:
        root_logger.setLevel(level)
        for handler in root_logger.handlers:
            handler.setLevel(level)
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
            stream=sys.stdout,
        )

    for name in PACKAGE_LOGGERS:
        logging.getLogger(name).setLevel(level)
    http_level = level if http_debug else max(level, logging.WARNING)
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
    return level
