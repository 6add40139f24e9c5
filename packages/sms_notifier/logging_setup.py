"""Logging for the ``sms_notifier`` package.

Entrypoints call :func:`configure_logging` once; library modules only call
``get_logger("sms_notifier.<module>")`` and never attach handlers themselves.

The level comes from the ``level`` argument, else ``SMS_NOTIFIER_LOG_LEVEL``,
else ``INFO``. The HTTP and websocket client libraries log every request at
INFO and every frame at DEBUG; they are held at WARNING unless the notifier
itself runs at DEBUG.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "sms_notifier"
_LEVEL_ENV = "SMS_NOTIFIER_LOG_LEVEL"
_CLIENT_LOGGERS = ("httpx", "httpcore", "websockets")
_DEFAULT_FMT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def resolve_level(level: int | str | None = None) -> int:
    """Map an int, a numeric string or a level name to a logging level.

    ``None`` falls back to the environment, then ``INFO``. Unknown names also
    resolve to ``INFO``.
    """

    if level is None:
        level = os.getenv(_LEVEL_ENV)
    if isinstance(level, int):
        return level
    if level:
        name = level.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = logging.getLevelName(name)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> int:
    """Attach one ``StreamHandler`` to the package logger; returns the level.

    Later calls are no-ops and return the level already in effect.
    """

    global _CONFIGURED
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    if _CONFIGURED:
        return logger.level

    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FMT))
    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    # The stream URL embeds the access token; keep client frame logs off by default.
    client_level = logging.DEBUG if resolved <= logging.DEBUG else logging.WARNING
    for name in _CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(client_level)

    _CONFIGURED = True
    return resolved


def get_logger(name: str) -> logging.Logger:
    """Return ``name``'s logger; silent until :func:`configure_logging` runs."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "resolve_level"]
