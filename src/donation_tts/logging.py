"""Logging bootstrap utilities."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from .config import LogLevel, get_settings

_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
_CHATTY_LOGGERS = ("httpx", "httpcore", "websockets")


def _resolve_level(level: LogLevel | str | None) -> str:
    if level is None:
        level = get_settings().log_level
    if isinstance(level, LogLevel):
        return level.value
    return str(level).upper()


def configure_logging(level: LogLevel | str | None = None) -> None:
    """Configure root logging with a structured, leveled formatter.

    Uvicorn loggers share the root handler; HTTP client and websocket
    libraries are held at WARNING unless DEBUG is requested.
    """

    resolved_level = _resolve_level(level)
    quiet_level = resolved_level if resolved_level == LogLevel.DEBUG.value else LogLevel.WARNING.value

    loggers: dict[str, dict] = {
        "": {"handlers": ["stderr"], "level": resolved_level, "propagate": False},
    }
    for name in _SERVER_LOGGERS:
        loggers[name] = {"handlers": ["stderr"], "level": resolved_level, "propagate": False}
    for name in _CHATTY_LOGGERS:
        loggers[name] = {"handlers": ["stderr"], "level": quiet_level, "propagate": False}

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                }
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": resolved_level,
                }
            },
            "loggers": loggers,
        }
    )

    logging.getLogger(__name__).debug("logging.configured", extra={"level": resolved_level})
