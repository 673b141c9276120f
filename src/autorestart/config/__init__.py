"""Configuration management for autorestart.

Provides hierarchical YAML-based configuration with:
- System-level config (/etc/autorestart/ or %PROGRAMDATA%)
- User-level config (~/.config/autorestart/ or %APPDATA%)
- An explicit file (argument or AUTORESTART_CONFIG)
- Environment variable overrides (highest priority)

Example usage:
    from autorestart.config import load_config

    config = load_config("deploy/autorestart.yaml")
    print(config.watch.poll_interval)
"""

from autorestart.config.loader import (
    get_config,
    load_config,
    reset_config,
)
from autorestart.config.paths import (
    get_config_paths,
    get_system_config_path,
    get_user_config_path,
)
from autorestart.config.schema import (
    Config,
    LoggingConfig,
    WatchConfig,
)

__all__ = [
    "Config",
    "load_config",
    "get_config",
    "reset_config",
    "LoggingConfig",
    "WatchConfig",
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
]
