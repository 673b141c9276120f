"""Metadata snapshots of the watched binary.

A snapshot is the (mtime, size) pair of a file at one point in time. The
comparator keeps the first snapshot it manages to take as the baseline and
reports a change whenever a later snapshot differs from it.
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from pathlib import Path

from autorestart.logging import VERBOSE, get_logger

log = get_logger("snapshot")


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time view of a file's metadata."""

    mtime_ns: int
    size: int

    @classmethod
    def from_stat(cls, st: os.stat_result) -> Snapshot:
        return cls(mtime_ns=st.st_mtime_ns, size=st.st_size)

    @classmethod
    def take(cls, path: Path) -> Snapshot:
        """Stat ``path``. Raises OSError if it cannot be stat'ed."""
        return cls.from_stat(path.stat())


class SnapshotComparator:
    """Detects changes to a single file against a fixed baseline.

    The baseline is captured lazily on the first successful stat and is never
    advanced afterwards, so every poll is compared with the state the file had
    when watching began, never with the previous poll.

    Example:
        comparator = SnapshotComparator(Path("/usr/local/bin/service"))
        comparator.check_changed()  # False, baseline captured
        ...
        comparator.check_changed()  # True once the binary was replaced
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._baseline: Snapshot | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def baseline(self) -> Snapshot | None:
        """The reference snapshot, or None until the first successful stat."""
        return self._baseline

    def check_changed(self) -> bool:
        """Stat the watched file and compare it with the baseline.

        A file that cannot be stat'ed (missing mid-deploy, permission
        denied, ...) is never reported as changed and leaves the baseline
        untouched.

        Returns:
            True if mtime or size differ from the baseline.
        """
        try:
            current = Snapshot.take(self._path)
        except OSError as e:
            log.warning("cannot stat %s: %s", self._path, e)
            return False

        with self._lock:
            if self._baseline is None:
                self._baseline = current
                log.log(VERBOSE, "Baseline for %s: mtime_ns=%d size=%d",
                        self._path, current.mtime_ns, current.size)
                return False
            baseline = self._baseline

        if current.mtime_ns != baseline.mtime_ns or current.size != baseline.size:
            log.debug(
                "%s changed (mtime_ns %d -> %d, size %d -> %d)",
                self._path,
                baseline.mtime_ns,
                current.mtime_ns,
                baseline.size,
                current.size,
            )
            return True
        return False
