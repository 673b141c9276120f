"""Restart strategies: how the process relaunches itself.

Built-in strategies:
- ExecRestart: replace the process image in place (POSIX; pid preserved)
- SpawnRestart: start a detached copy and exit (Windows, or by choice)
- SignalRestart: signal the current process and let the host restart itself

Any object with an ``attempt_restart(descriptor) -> RestartResult`` method
can be used instead.
"""

from __future__ import annotations

import os
import shutil
import signal
import subprocess
import sys
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import NoReturn, Protocol

from autorestart.logging import flush_logging, get_logger

log = get_logger("restart")

# Windows process creation flags
DETACHED_PROCESS = 0x00000008
CREATE_NEW_PROCESS_GROUP = 0x00000200


class RestartError(Exception):
    """Raised when the binary to relaunch cannot be located."""


@dataclass(frozen=True)
class LaunchDescriptor:
    """Everything needed to start the program again exactly as it was started.

    Attributes:
        executable: Path of the program image to load.
        args: Full argument vector, ``args[0]`` included.
        env: Read-only copy of the environment passed to the new image.
    """

    executable: str
    args: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


def capture_launch_descriptor() -> LaunchDescriptor:
    """Capture how the current process was launched.

    Frozen executables relaunch themselves directly. Interpreted programs
    relaunch the interpreter with its original command line, so options such
    as ``-m`` or ``-X`` survive the restart.
    """
    if getattr(sys, "frozen", False):
        args = list(sys.argv)
    else:
        args = list(getattr(sys, "orig_argv", None) or [sys.executable, *sys.argv])
    return LaunchDescriptor(
        executable=os.path.abspath(sys.executable),
        args=tuple(args),
        env=dict(os.environ),
    )


def default_watch_file() -> Path:
    """Absolute path of the file that makes up the running program."""
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve()
    if sys.argv and sys.argv[0] and sys.argv[0] != "-c":
        script = Path(sys.argv[0])
        if script.exists():
            return script.resolve()
    return Path(sys.executable).resolve()


def resolve_binary(descriptor: LaunchDescriptor) -> str:
    """Locate the executable named by the descriptor.

    Raises:
        RestartError: If the path does not name an executable file.
    """
    binary = shutil.which(descriptor.executable)
    if binary is None:
        raise RestartError(f"executable not found: {descriptor.executable}")
    return binary


@dataclass
class RestartResult:
    """Outcome of a restart attempt that returned control to the caller.

    A successful exec never produces a result; a successful spawn produces
    one only when the exit function returns (as it does in tests).
    """

    strategy: str
    ok: bool
    binary: str | None = None
    error: str | None = None

    def __repr__(self) -> str:
        if self.ok:
            return f"<RestartResult {self.strategy} ok>"
        return f"<RestartResult {self.strategy} failed: {self.error}>"


class RestartStrategy(Protocol):
    """Protocol for relaunching the current program."""

    name: str

    def attempt_restart(self, descriptor: LaunchDescriptor) -> RestartResult:
        """Try to replace the running program with a fresh copy.

        Implementations must not raise; failures are reported through the
        returned result.
        """
        ...


class ExecRestart:
    """Replace the current process image with the binary, keeping the pid."""

    name = "exec"

    def __init__(
        self,
        delay: float = 1.0,
        execve: Callable[[str, tuple[str, ...], dict[str, str]], NoReturn] = os.execve,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the strategy.

        Args:
            delay: Seconds to wait before exec, giving a deploy time to finish
                writing the binary.
            execve: Process replacement primitive.
            sleep: Sleep function.
        """
        self.delay = delay
        self._execve = execve
        self._sleep = sleep

    def attempt_restart(self, descriptor: LaunchDescriptor) -> RestartResult:
        try:
            binary = resolve_binary(descriptor)
        except RestartError as e:
            log.error("Error: %s", e)
            return RestartResult(self.name, ok=False, error=str(e))

        if self.delay > 0:
            self._sleep(self.delay)

        log.info("Replacing process image with %s", binary)
        flush_logging()
        try:
            self._execve(binary, descriptor.args, dict(descriptor.env))
        except OSError as e:
            log.error("exec %s failed: %s", binary, e)
            return RestartResult(self.name, ok=False, binary=binary, error=str(e))
        # Only reachable when execve has been replaced by a stub
        return RestartResult(self.name, ok=True, binary=binary)


class SpawnRestart:
    """Start a detached copy of the binary, then exit the current process."""

    name = "spawn"

    def __init__(
        self,
        delay: float = 1.0,
        exit_func: Callable[[int], None] = os._exit,
        popen: Callable[..., object] = subprocess.Popen,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the strategy.

        Args:
            delay: Seconds to wait before spawning.
            exit_func: Called with status 1 after a successful spawn. The
                default skips interpreter shutdown because the poller runs on
                a background thread, where sys.exit() would only end that
                thread.
            popen: Process spawning primitive.
            sleep: Sleep function.
        """
        self.delay = delay
        self._exit = exit_func
        self._popen = popen
        self._sleep = sleep

    def attempt_restart(self, descriptor: LaunchDescriptor) -> RestartResult:
        try:
            binary = resolve_binary(descriptor)
        except RestartError as e:
            log.error("Error: %s", e)
            return RestartResult(self.name, ok=False, error=str(e))

        if self.delay > 0:
            self._sleep(self.delay)

        cmd = [binary, *descriptor.args[1:]]
        if sys.platform == "win32":
            kwargs: dict[str, object] = {
                "creationflags": DETACHED_PROCESS | CREATE_NEW_PROCESS_GROUP,
            }
        else:
            kwargs = {"start_new_session": True}

        try:
            # Environment is inherited from this process
            self._popen(cmd, close_fds=True, **kwargs)
        except OSError as e:
            log.error("spawn %s failed: %s", binary, e)
            return RestartResult(self.name, ok=False, binary=binary, error=str(e))

        log.info("Spawned %s, exiting ...", binary)
        flush_logging()
        self._exit(1)
        return RestartResult(self.name, ok=True, binary=binary)


class SignalRestart:
    """Send a signal to the current process and let its handler restart it.

    Meant for hosts built on a graceful-restart framework that already
    reacts to a signal such as SIGUSR2 or SIGHUP.
    """

    name = "signal"

    def __init__(
        self,
        signum: int | str = "SIGUSR2",
        kill: Callable[[int, int], None] = os.kill,
    ) -> None:
        self.signum = signum
        self._kill = kill

    def _resolve_signal(self) -> int:
        if isinstance(self.signum, int):
            return self.signum
        value = getattr(signal, self.signum.upper(), None)
        if value is None:
            raise RestartError(f"signal {self.signum} is not available on {sys.platform}")
        return int(value)

    def attempt_restart(self, descriptor: LaunchDescriptor) -> RestartResult:
        try:
            signum = self._resolve_signal()
        except RestartError as e:
            log.error("Error: %s", e)
            return RestartResult(self.name, ok=False, error=str(e))

        pid = os.getpid()
        log.info("Sending signal %d to pid %d", signum, pid)
        try:
            self._kill(pid, signum)
        except OSError as e:
            log.error("kill(%d, %d) failed: %s", pid, signum, e)
            return RestartResult(self.name, ok=False, error=str(e))
        return RestartResult(self.name, ok=True)


def default_strategy(delay: float = 1.0) -> RestartStrategy:
    """Replace-in-place where the platform has exec, spawn-and-exit otherwise."""
    if sys.platform == "win32":
        return SpawnRestart(delay=delay)
    return ExecRestart(delay=delay)


def strategy_from_name(name: str, delay: float = 1.0, signum: str = "SIGUSR2") -> RestartStrategy:
    """Build a built-in strategy from its config name.

    Raises:
        ValueError: If the name is unknown.
    """
    key = name.strip().lower()
    if key == "auto":
        return default_strategy(delay=delay)
    if key == "exec":
        return ExecRestart(delay=delay)
    if key == "spawn":
        return SpawnRestart(delay=delay)
    if key == "signal":
        return SignalRestart(signum=signum)
    raise ValueError(f"unknown restart strategy: {name!r}")
