"""Platform-aware configuration path resolution.

Handles config file locations for:
- Windows: %PROGRAMDATA% (system), %APPDATA% (user)
- Unix: /etc/ (system), $XDG_CONFIG_HOME or ~/.config/autorestart/ (user)
- An explicit file from the host or AUTORESTART_CONFIG
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "autorestart"
CONFIG_ENV_VAR = "AUTORESTART_CONFIG"


def get_system_config_path() -> Path | None:
    """Get system-level config path. The file may not exist."""
    if sys.platform == "win32":
        program_data = os.environ.get("PROGRAMDATA")
        if program_data:
            return Path(program_data) / APP_NAME / CONFIG_FILENAME
        return None
    return Path("/etc") / APP_NAME / CONFIG_FILENAME


def get_user_config_path() -> Path | None:
    """Get user-level config path. The file may not exist."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / CONFIG_FILENAME
        return None

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / CONFIG_FILENAME
    return Path.home() / ".config" / APP_NAME / CONFIG_FILENAME


def get_config_paths(config_file: str | Path | None = None) -> list[Path]:
    """Get all config paths in priority order (lowest to highest).

    Args:
        config_file: Optional explicit config file. When omitted, the
            AUTORESTART_CONFIG environment variable is consulted.

    Returns:
        List of config paths in order: system, user, explicit.
    """
    paths: list[Path] = []

    system_path = get_system_config_path()
    if system_path:
        paths.append(system_path)

    user_path = get_user_config_path()
    if user_path:
        paths.append(user_path)

    explicit = config_file or os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        paths.append(Path(explicit).expanduser())

    return paths
