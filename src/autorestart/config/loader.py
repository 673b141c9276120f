"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Deep merging of system, user and explicit config files
- Environment variable overrides
- Conversion from dict to typed Config dataclass, with value checking
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

from autorestart.config.paths import get_config_paths
from autorestart.config.schema import (
    STRATEGY_NAMES,
    Config,
    LoggingConfig,
    WatchConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("autorestart.config")

_cached_config: Config | None = None

# Environment variable -> (section, key)
_ENV_OVERRIDES = {
    "AUTORESTART_WATCH_FILE": ("watch", "file"),
    "AUTORESTART_POLL_INTERVAL": ("watch", "poll_interval"),
    "AUTORESTART_STRATEGY": ("watch", "strategy"),
    "AUTORESTART_LOG": ("logging", "file"),
    "AUTORESTART_LOG_LEVEL": ("logging", "level"),
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning empty dict if not found or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` updated by ``override``, recursing into nested dicts.

    None in ``override`` leaves the base value alone; lists and scalars are
    replaced wholesale.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def env_overrides() -> dict[str, Any]:
    """Build a config dict from AUTORESTART_* environment variables."""
    overrides: dict[str, Any] = {}
    for var, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def _positive_float(data: dict[str, Any], key: str, default: float) -> float:
    raw = data.get(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        _log.warning("Invalid watch.%s %r, using %s", key, raw, default)
        return default
    if value <= 0:
        _log.warning("watch.%s must be positive, got %s; using %s", key, value, default)
        return default
    return value


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert merged dict to typed Config dataclass.

    Values that cannot be used are logged and replaced by their defaults.
    """
    defaults = WatchConfig()
    watch_data = data.get("watch") or {}
    if not isinstance(watch_data, dict):
        _log.warning("Ignoring non-mapping 'watch' section")
        watch_data = {}

    strategy = str(watch_data.get("strategy") or defaults.strategy).lower()
    if strategy not in STRATEGY_NAMES:
        _log.warning("Unknown restart strategy %r, using %r", strategy, defaults.strategy)
        strategy = defaults.strategy

    retry_backoff = _positive_float(watch_data, "retry_backoff", defaults.retry_backoff)
    if retry_backoff < 1.0:
        _log.warning("watch.retry_backoff below 1.0 would shrink delays; using 1.0")
        retry_backoff = 1.0

    # Absent, zero or unusable means "wait forever"
    notify_timeout: float | None = None
    try:
        if watch_data.get("notify_timeout") is not None:
            notify_timeout = float(watch_data["notify_timeout"]) or None
    except (TypeError, ValueError):
        _log.warning("Invalid watch.notify_timeout %r, waiting without limit",
                     watch_data["notify_timeout"])
    if notify_timeout is not None and notify_timeout < 0:
        notify_timeout = None

    watch_file = watch_data.get("file")
    watch = WatchConfig(
        file=str(watch_file) if watch_file else None,
        poll_interval=_positive_float(watch_data, "poll_interval", defaults.poll_interval),
        strategy=strategy,
        restart_delay=_non_negative(watch_data, "restart_delay", defaults.restart_delay),
        notify_timeout=notify_timeout,
        stall_warning_interval=_positive_float(
            watch_data, "stall_warning_interval", defaults.stall_warning_interval
        ),
        retry_backoff=retry_backoff,
        max_retry_interval=_positive_float(
            watch_data, "max_retry_interval", defaults.max_retry_interval
        ),
        signal=str(watch_data.get("signal") or defaults.signal),
    )

    log_data = data.get("logging") or {}
    if not isinstance(log_data, dict):
        _log.warning("Ignoring non-mapping 'logging' section")
        log_data = {}
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        file=log_data.get("file"),
    )

    return Config(watch=watch, logging=logging_config)


def _non_negative(data: dict[str, Any], key: str, default: float) -> float:
    raw = data.get(key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        _log.warning("Invalid watch.%s %r, using %s", key, raw, default)
        return default
    return max(0.0, value)


def load_config(config_file: str | Path | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables (AUTORESTART_*)
    2. Explicit config file (argument or AUTORESTART_CONFIG)
    3. User config
    4. System config

    Args:
        config_file: Explicit config file to layer on top of the defaults.
        reload: Force reload even if cached.

    Returns:
        Merged Config object. Only loads without an explicit file are cached.
    """
    global _cached_config

    if _cached_config is not None and not reload and config_file is None:
        return _cached_config

    merged: dict[str, Any] = {}
    for path in get_config_paths(config_file):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            merged = deep_merge(merged, config_data)

    merged = deep_merge(merged, env_overrides())
    config = dict_to_config(merged)

    if config_file is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Reset cached config. Useful for testing or forcing a reload."""
    global _cached_config
    _cached_config = None
