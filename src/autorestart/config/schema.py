"""Configuration schema dataclasses for autorestart.

Defines the structure of configuration at all levels (system, user, file).
All fields carry defaults so that partial configs merge together.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_RESTART_DELAY = 1.0
DEFAULT_STALL_WARNING_INTERVAL = 5.0
DEFAULT_RETRY_BACKOFF = 2.0
DEFAULT_MAX_RETRY_INTERVAL = 60.0

STRATEGY_NAMES = ("auto", "exec", "spawn", "signal")


@dataclass
class WatchConfig:
    """Self-restart watcher configuration.

    Example config.yaml:
        watch:
          file: /usr/local/bin/myservice
          poll_interval: 1.0
          strategy: auto
          restart_delay: 1.0
          notify_timeout: 30
          retry_backoff: 2.0
          max_retry_interval: 60
    """

    file: str | None = None  # Default: the running program
    poll_interval: float = DEFAULT_POLL_INTERVAL  # Seconds between polls
    strategy: str = "auto"  # "auto", "exec", "spawn", or "signal"
    restart_delay: float = DEFAULT_RESTART_DELAY  # Pause before relaunch
    notify_timeout: float | None = None  # None blocks until every listener consumes
    stall_warning_interval: float = DEFAULT_STALL_WARNING_INTERVAL
    retry_backoff: float = DEFAULT_RETRY_BACKOFF  # 1.0 retries on every tick
    max_retry_interval: float = DEFAULT_MAX_RETRY_INTERVAL
    signal: str = "SIGUSR2"  # Used by the "signal" strategy


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # TRACE, DEBUG, VERBOSE, INFO, WARNING, ERROR
    file: str | None = None  # Log file path


@dataclass
class Config:
    """Root configuration object.

    Unknown top-level sections are ignored, so a host can share one YAML
    file between its own settings and the watcher's.
    """

    watch: WatchConfig = field(default_factory=WatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
