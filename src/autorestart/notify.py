"""Restart notices delivered to the host before the process is replaced.

Each registered listener owns one rendezvous channel. Fan-out is strictly
sequential: the notifier hands a signal to the first listener and blocks
until that listener has taken it before moving on to the next one. There is
no buffering, so a listener that never calls ``wait()`` stalls the restart
unless a notify timeout is configured. Callbacks run on a helper thread and
are held to the same timeout.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Protocol

from autorestart.logging import VERBOSE, get_logger

log = get_logger("notify")


class Listener(Protocol):
    """Anything the registry can hand a restart signal to."""

    name: str

    def deliver(self, timeout: float | None, warn_every: float) -> bool:
        """Hand over one signal, blocking until it is consumed.

        Returns:
            True if consumed, False if ``timeout`` expired first.
        """
        ...


def _await_delivery(
    wait: Callable[[float], bool],
    timeout: float | None,
    warn_every: float,
    stall_message: str,
    name: str,
) -> bool:
    """Call ``wait`` in slices until it returns True or ``timeout`` expires.

    ``stall_message`` is logged with the listener name and elapsed seconds
    every ``warn_every`` seconds while waiting.
    """
    started = time.monotonic()
    deadline = None if timeout is None else started + timeout
    next_warning = started + warn_every

    while True:
        now = time.monotonic()
        if deadline is not None and now >= deadline:
            return wait(0.0)
        if now >= next_warning:
            log.warning(stall_message, name, now - started)
            next_warning = now + warn_every
        wake_at = next_warning if deadline is None else min(next_warning, deadline)
        if wait(max(0.0, wake_at - now)):
            return True


class RestartNotice:
    """Consuming end of a synchronous, unbuffered restart channel.

    The host calls ``wait()`` (typically from a dedicated thread) and does its
    last-chance cleanup when it returns True. The supervisor is blocked until
    ``wait()`` has taken the signal, so cleanup that must finish before the
    process image goes away should run before calling ``wait()`` again or be
    done inside an ``on_restart`` callback instead.

    Example:
        notice = supervisor.register("db")

        def drain() -> None:
            while notice.wait():
                pool.flush()

        threading.Thread(target=drain, daemon=True).start()
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._cond = threading.Condition()
        self._pending = False
        self._received = 0

    @property
    def received(self) -> int:
        """Number of signals consumed so far."""
        return self._received

    def wait(self, timeout: float | None = None) -> bool:
        """Block until a restart signal arrives and consume it.

        Args:
            timeout: Seconds to wait; None waits indefinitely.

        Returns:
            True if a signal was consumed, False on timeout.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._pending, timeout):
                return False
            self._pending = False
            self._received += 1
            self._cond.notify_all()
            return True

    def deliver(self, timeout: float | None, warn_every: float) -> bool:
        with self._cond:
            self._pending = True
            self._cond.notify_all()

            consumed = _await_delivery(
                lambda seconds: self._cond.wait_for(lambda: not self._pending, seconds),
                timeout,
                warn_every,
                "Listener %s has not consumed its restart notice after %.1fs",
                self.name,
            )
            if not consumed:
                # Withdraw so a late wait() does not see a stale signal
                self._pending = False
            return consumed

    def __repr__(self) -> str:
        return f"<RestartNotice {self.name} received={self._received}>"


class CallbackListener:
    """Listener that runs a callable on a helper thread.

    The notifier waits for the callable to return, warning while it runs and
    giving up once the delivery timeout expires. A callable that is given up
    on keeps running on its daemon thread; its result is ignored.
    """

    def __init__(self, callback: Callable[[], None], name: str) -> None:
        self.name = name
        self._callback = callback

    def _run(self, done: threading.Event) -> None:
        try:
            self._callback()
        except Exception as e:
            log.error("Restart callback %s failed: %s", self.name, e)
        finally:
            done.set()

    def deliver(self, timeout: float | None, warn_every: float) -> bool:
        done = threading.Event()
        threading.Thread(
            target=self._run,
            args=(done,),
            name=f"autorestart-callback-{self.name}",
            daemon=True,
        ).start()
        return _await_delivery(
            done.wait,
            timeout,
            warn_every,
            "Restart callback %s still running after %.1fs",
            self.name,
        )

    def __repr__(self) -> str:
        return f"<CallbackListener {self.name}>"


class ListenerRegistry:
    """Append-only, ordered set of restart listeners.

    Registration is safe from any thread, including while a fan-out is in
    progress; a listener added mid fan-out is first notified on the next
    restart attempt.
    """

    def __init__(
        self,
        timeout: float | None = None,
        stall_warning_interval: float = 5.0,
        on_stall: Callable[[Listener], None] | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            timeout: Per-listener delivery timeout in seconds. None blocks
                until the listener consumes its signal.
            stall_warning_interval: Seconds between warnings about a
                listener that has not consumed its signal yet.
            on_stall: Called with the listener whose delivery timed out.
        """
        self.timeout = timeout
        self.stall_warning_interval = stall_warning_interval
        self.on_stall = on_stall
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)

    @property
    def listeners(self) -> list[Listener]:
        with self._lock:
            return list(self._listeners)

    def register(self, name: str | None = None) -> RestartNotice:
        """Create a restart channel and return its consuming end."""
        with self._lock:
            notice = RestartNotice(name or f"listener-{len(self._listeners) + 1}")
            self._listeners.append(notice)
        log.debug("Registered %r", notice)
        return notice

    def add_callback(self, callback: Callable[[], None], name: str | None = None) -> None:
        """Register a callable to run, in registration order, before restart.

        The callable runs on a helper thread; the notifier waits for it like
        it waits for a notice, bounded by the registry timeout.
        """
        with self._lock:
            listener = CallbackListener(
                callback,
                name or getattr(callback, "__qualname__", None) or repr(callback),
            )
            self._listeners.append(listener)
        log.debug("Registered %r", listener)

    def notify_all(self) -> int:
        """Deliver one signal to every listener, in order, blocking on each.

        Returns:
            Number of listeners that consumed their signal.
        """
        listeners = self.listeners
        if not listeners:
            return 0

        log.info("Notifying %d listener(s) of restart", len(listeners))
        consumed = 0
        for listener in listeners:
            if listener.deliver(self.timeout, self.stall_warning_interval):
                log.log(VERBOSE, "Delivered restart notice to %s", listener.name)
                consumed += 1
                continue

            log.error(
                "Listener %s did not consume its restart notice within %.1fs, skipping",
                listener.name,
                self.timeout,
            )
            if self.on_stall is not None:
                try:
                    self.on_stall(listener)
                except Exception as e:
                    log.error("on_stall hook failed: %s", e)
        return consumed
