"""Shared test utilities for autorestart tests."""

from __future__ import annotations

import os
import threading
import time
from pathlib import Path

from autorestart.restart import LaunchDescriptor, RestartResult


def set_mtime(path: Path, mtime_ns: int) -> None:
    """Set both atime and mtime of ``path`` to ``mtime_ns``."""
    os.utime(path, ns=(mtime_ns, mtime_ns))


def make_descriptor(executable: str = "/usr/bin/service") -> LaunchDescriptor:
    return LaunchDescriptor(
        executable=executable,
        args=(executable, "--port", "8080"),
        env={"HOME": "/home/svc", "MODE": "prod"},
    )


class RecordingStrategy:
    """Restart strategy that records its calls instead of restarting."""

    name = "recording"

    def __init__(self, ok: bool = True, events: list[str] | None = None) -> None:
        self.ok = ok
        self.calls: list[LaunchDescriptor] = []
        self.called = threading.Event()
        self.events = events

    def attempt_restart(self, descriptor: LaunchDescriptor) -> RestartResult:
        self.calls.append(descriptor)
        if self.events is not None:
            self.events.append("restart")
        self.called.set()
        if self.ok:
            return RestartResult(self.name, ok=True)
        return RestartResult(self.name, ok=False, error="boom")


class ParkingStrategy(RecordingStrategy):
    """Behaves like a successful exec: the calling thread never comes back."""

    def attempt_restart(self, descriptor: LaunchDescriptor) -> RestartResult:
        super().attempt_restart(descriptor)
        threading.Event().wait()
        raise AssertionError("unreachable")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SlowStrategy(RecordingStrategy):
    """Failing strategy that takes ``duration`` seconds and tracks overlap."""

    def __init__(self, duration: float) -> None:
        super().__init__(ok=False)
        self.duration = duration
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def attempt_restart(self, descriptor: LaunchDescriptor) -> RestartResult:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            result = super().attempt_restart(descriptor)
            time.sleep(self.duration)
            return result
        finally:
            with self._lock:
                self.active -= 1
