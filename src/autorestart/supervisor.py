"""Supervisor: the object a host builds to make itself self-restarting.

Wires the snapshot comparator, listener registry, restart strategy and poller
together from a Config, with keyword arguments taking precedence.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path

from autorestart.config import Config, get_config
from autorestart.logging import get_logger
from autorestart.notify import Listener, ListenerRegistry, RestartNotice
from autorestart.poller import Poller
from autorestart.restart import (
    LaunchDescriptor,
    RestartResult,
    RestartStrategy,
    capture_launch_descriptor,
    default_watch_file,
    strategy_from_name,
)
from autorestart.snapshot import SnapshotComparator

log = get_logger("supervisor")


class Supervisor:
    """Watches the program's own binary and relaunches it when it changes.

    Example:
        supervisor = Supervisor(poll_interval=2.0)
        notice = supervisor.register("server")
        supervisor.start()

        notice.wait()        # blocks until a new binary is deployed
        server.shutdown()    # last chance before the image is replaced
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        watch_file: str | Path | None = None,
        poll_interval: float | None = None,
        strategy: RestartStrategy | str | None = None,
        descriptor: LaunchDescriptor | None = None,
        on_stall: Callable[[Listener], None] | None = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            config: Configuration; defaults to the cached global config.
            watch_file: File to watch; defaults to config, then the program.
            poll_interval: Seconds between polls; defaults to config.
            strategy: Strategy object or built-in name; defaults to config.
            descriptor: Launch descriptor; captured from this process if None.
            on_stall: Called with a listener whose notice timed out.
        """
        self.config = config or get_config()
        watch = self.config.watch

        self.descriptor = descriptor or capture_launch_descriptor()
        self._watch_file = Path(watch_file or watch.file or default_watch_file()).absolute()
        self.poll_interval = poll_interval or watch.poll_interval

        if strategy is None:
            strategy = watch.strategy
        if isinstance(strategy, str):
            strategy = strategy_from_name(strategy, delay=watch.restart_delay, signum=watch.signal)
        self.strategy: RestartStrategy = strategy

        self.registry = ListenerRegistry(
            timeout=watch.notify_timeout,
            stall_warning_interval=watch.stall_warning_interval,
            on_stall=on_stall,
        )
        self._poller: Poller | None = None
        self._lock = threading.Lock()

    @property
    def watch_file(self) -> Path:
        return self._watch_file

    @watch_file.setter
    def watch_file(self, value: str | Path) -> None:
        with self._lock:
            if self._poller is not None:
                raise RuntimeError("watch_file cannot change after start()")
            self._watch_file = Path(value).absolute()

    @property
    def running(self) -> bool:
        return self._poller is not None and self._poller.running

    @property
    def poller(self) -> Poller:
        """The poller, built on first use. Fixes the watch target."""
        with self._lock:
            if self._poller is None:
                watch = self.config.watch
                self._poller = Poller(
                    comparator=SnapshotComparator(self._watch_file),
                    registry=self.registry,
                    strategy=self.strategy,
                    descriptor=self.descriptor,
                    poll_interval=self.poll_interval,
                    retry_backoff=watch.retry_backoff,
                    max_retry_interval=watch.max_retry_interval,
                )
            return self._poller

    def register(self, name: str | None = None) -> RestartNotice:
        """Register for a restart notice. The returned handle must be consumed."""
        return self.registry.register(name)

    def on_restart(self, callback: Callable[[], None], name: str | None = None) -> None:
        """Run ``callback`` before each restart attempt, bounded by the notify timeout."""
        self.registry.add_callback(callback, name)

    def start(self) -> bool:
        """Start watching. Calling it again is a logged no-op.

        Returns:
            True if this call started the watcher.
        """
        return self.poller.start()

    def tick(self) -> RestartResult | None:
        """Run one poll synchronously (for hosts that drive their own loop)."""
        return self.poller.tick()


_default_supervisor: Supervisor | None = None
_default_lock = threading.Lock()


def get_supervisor() -> Supervisor:
    """Get the process-wide supervisor, creating it from the global config."""
    global _default_supervisor
    with _default_lock:
        if _default_supervisor is None:
            _default_supervisor = Supervisor()
        return _default_supervisor


def start_watching() -> Supervisor:
    """Start the process-wide supervisor. Safe to call more than once."""
    supervisor = get_supervisor()
    supervisor.start()
    return supervisor


def register_for_restart_notice(name: str | None = None) -> RestartNotice:
    """Register a listener on the process-wide supervisor."""
    return get_supervisor().register(name)


def reset_supervisor() -> None:
    """Forget the process-wide supervisor. A started poll thread keeps running."""
    global _default_supervisor
    with _default_lock:
        _default_supervisor = None
