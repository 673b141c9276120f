"""Logging for autorestart.

Everything logs under the "autorestart" logger. Two extra levels sit between
the standard ones:

- VERBOSE (15): per-restart detail, e.g. baseline captures and each
  listener hand-off.
- TRACE (5): per-poll detail, one record for every tick.

The demo CLI maps ``-v`` to VERBOSE, ``-vv`` to DEBUG and ``-vvv`` to TRACE.
Records go to the configured file (or ``AUTORESTART_LOG``), otherwise to
stderr when it is a terminal.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autorestart.config.schema import LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("autorestart")

_initialized = False

_LEVEL_MAP = {
    "TRACE": TRACE,
    "DEBUG": logging.DEBUG,
    "VERBOSE": VERBOSE,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

_VERBOSITY_LEVELS = (VERBOSE, logging.DEBUG, TRACE)

# The pid tells pre- and post-restart lines apart when spawning
_FORMAT = "%(asctime)s %(levelname)s [pid %(process)d] %(name)s: %(message)s"


class _LowercaseLevelFormatter(logging.Formatter):
    """Formatter that emits lowercase level names."""

    def format(self, record: logging.LogRecord) -> str:
        record.levelname = record.levelname.lower()
        return super().format(record)


def parse_level(name: str | None, default: int = logging.INFO) -> int:
    """Map a level name such as "debug" or "trace" to its numeric value."""
    if not name:
        return default
    return _LEVEL_MAP.get(name.strip().upper(), default)


def level_for_verbosity(count: int) -> int | None:
    """Level for ``count`` repetitions of ``-v``; None when not given."""
    if count <= 0:
        return None
    return _VERBOSITY_LEVELS[min(count, len(_VERBOSITY_LEVELS)) - 1]


def _open_handler(log_path: str | None) -> logging.Handler | None:
    if log_path:
        try:
            return logging.FileHandler(os.path.expanduser(log_path), mode="a", encoding="utf-8")
        except OSError as e:
            if not sys.stderr.isatty():
                return None
            print(f"[autorestart] Failed to open log file: {e}", file=sys.stderr)
    if sys.stderr.isatty():
        return logging.StreamHandler(sys.stderr)
    return None


def setup_logging(config: LoggingConfig | None = None, level: int | None = None) -> None:
    """Initialize logging once; later calls are no-ops.

    Args:
        config: Level and file settings. The file falls back to
            ``AUTORESTART_LOG``.
        level: Overrides the configured level (used for ``-v``).
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    if level is None:
        level = parse_level(config.level if config else None)
    logger.setLevel(level)

    handler = _open_handler(
        config.file if config and config.file else os.environ.get("AUTORESTART_LOG")
    )
    if handler is None:
        return
    handler.setLevel(level)
    handler.setFormatter(_LowercaseLevelFormatter(_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(handler)


def flush_logging() -> None:
    """Flush every handler on the package logger and the root logger.

    exec() and os._exit() skip interpreter shutdown, so buffered records
    would otherwise be lost.
    """
    for log in (logger, logging.getLogger()):
        for handler in log.handlers:
            try:
                handler.flush()
            except (OSError, ValueError):
                pass
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (OSError, ValueError, AttributeError):
            pass


def get_logger(name: str | None = None) -> logging.Logger:
    """Return the package logger, or its child ``name`` (e.g. "poller")."""
    if name:
        return logger.getChild(name)
    return logger
