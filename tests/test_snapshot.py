"""Tests for snapshot capture and baseline comparison."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from autorestart.snapshot import Snapshot, SnapshotComparator
from tests.utils import set_mtime

T0 = 1_700_000_000_000_000_000
T1 = T0 + 5_000_000_000


class TestSnapshot:
    def test_take_reads_mtime_and_size(self, watched_file: Path) -> None:
        snap = Snapshot.take(watched_file)
        assert snap == Snapshot(mtime_ns=T0, size=len(b"\x7fELF version 1"))

    def test_take_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            Snapshot.take(tmp_path / "missing")


class TestSnapshotComparator:
    """Change detection against the first observed state."""

    def test_first_stat_is_never_a_change(self, watched_file: Path) -> None:
        comparator = SnapshotComparator(watched_file)

        assert comparator.baseline is None
        assert comparator.check_changed() is False
        assert comparator.baseline == Snapshot(T0, watched_file.stat().st_size)

    def test_unchanged_file_reports_no_change(self, watched_file: Path) -> None:
        comparator = SnapshotComparator(watched_file)
        comparator.check_changed()

        for _ in range(3):
            assert comparator.check_changed() is False

    def test_mtime_change_alone_is_a_change(self, watched_file: Path) -> None:
        """touch(1) style deploy: same size, newer mtime."""
        comparator = SnapshotComparator(watched_file)
        comparator.check_changed()

        set_mtime(watched_file, T1)
        assert watched_file.stat().st_size == comparator.baseline.size
        assert comparator.check_changed() is True

    def test_size_change_alone_is_a_change(self, watched_file: Path) -> None:
        comparator = SnapshotComparator(watched_file)
        comparator.check_changed()

        watched_file.write_bytes(b"\x7fELF version 2, larger")
        set_mtime(watched_file, T0)
        assert comparator.check_changed() is True

    def test_compares_with_baseline_not_previous_poll(self, watched_file: Path) -> None:
        comparator = SnapshotComparator(watched_file)
        comparator.check_changed()

        set_mtime(watched_file, T1)
        assert comparator.check_changed() is True
        # Same state as the previous poll, still different from the baseline
        assert comparator.check_changed() is True

        set_mtime(watched_file, T0)
        assert comparator.check_changed() is False

    def test_baseline_is_never_advanced(self, watched_file: Path) -> None:
        comparator = SnapshotComparator(watched_file)
        comparator.check_changed()
        baseline = comparator.baseline

        set_mtime(watched_file, T1)
        comparator.check_changed()

        assert comparator.baseline == baseline

    def test_deleted_file_is_not_a_change(self, watched_file: Path, debug_logs) -> None:
        comparator = SnapshotComparator(watched_file)
        comparator.check_changed()
        baseline = comparator.baseline

        watched_file.unlink()

        assert comparator.check_changed() is False
        assert comparator.baseline == baseline
        assert any("cannot stat" in r.getMessage() for r in debug_logs.records)

    def test_missing_file_defers_baseline(self, tmp_path: Path) -> None:
        """A file that appears later gets its baseline when first seen."""
        path = tmp_path / "late.bin"
        comparator = SnapshotComparator(path)

        assert comparator.check_changed() is False
        assert comparator.baseline is None

        path.write_bytes(b"v1")
        set_mtime(path, T1)
        assert comparator.check_changed() is False
        assert comparator.baseline == Snapshot(T1, 2)

    def test_reappearing_file_is_compared_with_original_baseline(
        self, watched_file: Path
    ) -> None:
        comparator = SnapshotComparator(watched_file)
        comparator.check_changed()
        content = watched_file.read_bytes()

        watched_file.unlink()
        assert comparator.check_changed() is False

        watched_file.write_bytes(content)
        set_mtime(watched_file, T1)
        assert comparator.check_changed() is True

    @pytest.mark.skipif(os.name == "nt" or os.geteuid() == 0, reason="needs POSIX non-root")
    def test_permission_error_is_not_a_change(self, tmp_path: Path) -> None:
        locked = tmp_path / "locked"
        locked.mkdir()
        path = locked / "service.bin"
        path.write_bytes(b"v1")
        comparator = SnapshotComparator(path)
        comparator.check_changed()

        locked.chmod(0)
        try:
            assert comparator.check_changed() is False
        finally:
            locked.chmod(0o755)
