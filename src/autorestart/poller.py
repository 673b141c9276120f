"""Background poll loop: compare, notify, restart.

The loop runs on a daemon thread for the rest of the process's life. Each
tick runs to completion before the next one is scheduled, so a restart
sequence is never interleaved with another tick.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from autorestart.logging import TRACE, get_logger
from autorestart.notify import ListenerRegistry
from autorestart.restart import LaunchDescriptor, RestartResult, RestartStrategy
from autorestart.snapshot import SnapshotComparator

log = get_logger("poller")


class Poller:
    """Polls the watched binary and drives the restart sequence.

    A failed restart leaves the baseline alone, so the change keeps being
    detected and the restart is retried. Retries are throttled: the first
    retry waits one poll interval, and each further failure multiplies the
    wait by ``retry_backoff`` up to ``max_retry_interval``. No notification is
    sent while a retry is being held back. A backoff of 1.0 retries on every
    tick.
    """

    def __init__(
        self,
        comparator: SnapshotComparator,
        registry: ListenerRegistry,
        strategy: RestartStrategy,
        descriptor: LaunchDescriptor,
        poll_interval: float = 1.0,
        retry_backoff: float = 2.0,
        max_retry_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.comparator = comparator
        self.registry = registry
        self.strategy = strategy
        self.descriptor = descriptor
        self.poll_interval = poll_interval
        self.retry_backoff = retry_backoff
        self.max_retry_interval = max_retry_interval
        self._clock = clock

        self._thread: threading.Thread | None = None
        self._start_lock = threading.Lock()
        self._tick_lock = threading.Lock()
        self._failures = 0
        self._retry_at: float | None = None
        self.attempts = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def failures(self) -> int:
        """Consecutive failed restart attempts."""
        return self._failures

    def start(self) -> bool:
        """Start the poll thread.

        Returns:
            True if this call started it, False if it was already started.
        """
        with self._start_lock:
            if self._thread is not None:
                log.warning("Watcher for %s already started", self.comparator.path)
                return False
            self._thread = threading.Thread(
                target=self._run,
                name="autorestart-poller",
                daemon=True,
            )
            self._thread.start()
        log.info(
            "Watching %s for changes (interval: %.1fs, strategy: %s)",
            self.comparator.path,
            self.poll_interval,
            getattr(self.strategy, "name", type(self.strategy).__name__),
        )
        return True

    def _run(self) -> None:
        while True:
            time.sleep(self.poll_interval)
            try:
                self.tick()
            except Exception:
                # Keep polling; the watcher must outlive any single bad tick
                log.exception("Unexpected error in watcher tick")

    def tick(self) -> RestartResult | None:
        """Run one check-notify-restart sequence.

        Ticks are serialized: a call made while another tick (from the poll
        thread or a host thread) is in progress waits for it to finish.

        Returns:
            The restart result when a restart was attempted and returned,
            otherwise None.
        """
        with self._tick_lock:
            return self._tick()

    def _tick(self) -> RestartResult | None:
        if not self.comparator.check_changed():
            log.log(TRACE, "%s unchanged", self.comparator.path)
            if self._failures:
                log.info("%s is back to its baseline, clearing retry state", self.comparator.path)
                self._failures = 0
                self._retry_at = None
            return None

        if self._retry_at is not None and self._clock() < self._retry_at:
            log.debug("Restart retry held back for %.1fs", self._retry_at - self._clock())
            return None

        log.info("%s changed, restarting", self.comparator.path)
        self.registry.notify_all()

        self.attempts += 1
        try:
            result = self.strategy.attempt_restart(self.descriptor)
        except Exception as e:
            log.error("Restart strategy %r raised: %s", self.strategy, e)
            result = RestartResult(
                getattr(self.strategy, "name", type(self.strategy).__name__),
                ok=False,
                error=str(e),
            )

        if result.ok:
            self._failures = 0
            self._retry_at = None
        else:
            self._schedule_retry(result)
        return result

    def _schedule_retry(self, result: RestartResult) -> None:
        self._failures += 1
        if self.retry_backoff <= 1.0:
            log.warning("Restart attempt %d failed (%s)", self._failures, result.error)
            return
        delay = min(
            self.poll_interval * self.retry_backoff ** (self._failures - 1),
            self.max_retry_interval,
        )
        self._retry_at = self._clock() + delay
        log.warning(
            "Restart attempt %d failed (%s); next attempt in %.1fs",
            self._failures,
            result.error,
            delay,
        )
