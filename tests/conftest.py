"""Root pytest configuration for all tests."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

import autorestart.logging as logging_module
from autorestart.config import reset_config
from autorestart.supervisor import reset_supervisor


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user config files and AUTORESTART_* variables out of tests."""
    for var in list(os.environ):
        if var.startswith("AUTORESTART_"):
            monkeypatch.delenv(var)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    reset_config()
    reset_supervisor()
    yield
    reset_config()
    reset_supervisor()


@pytest.fixture(autouse=True)
def restore_logger() -> None:
    """Undo whatever setup_logging() did to the package logger."""
    logger = logging_module.logger
    handlers = list(logger.handlers)
    level = logger.level
    initialized = logging_module._initialized
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logging_module._initialized = initialized


@pytest.fixture
def watched_file(tmp_path: Path) -> Path:
    """A fake program binary with a fixed mtime."""
    path = tmp_path / "service.bin"
    path.write_bytes(b"\x7fELF version 1")
    os.utime(path, ns=(1_700_000_000_000_000_000, 1_700_000_000_000_000_000))
    return path


@pytest.fixture
def debug_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG, logger="autorestart")
    return caplog
