"""
Unit tests for FileScanner.

Tests:
- Regular files found recursively, symlinks never followed
- Prefix exclusions pruned (component-aware)
- Minimum size filter
- Unreadable directories / vanished files skipped and counted
- Nested or repeated roots never yield a file twice
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from sweeper.src.dedup.models import RunStats
from sweeper.src.dedup.scanner import FileScanner, is_under
from tests.helpers.file_tree_factory import write_file


def _paths(scanner: FileScanner) -> list[Path]:
    return [record.path for record in scanner.scan()]


class TestIsUnder:
    def test_exact_match(self):
        assert is_under(Path("/var/lib"), Path("/var/lib")) is True

    def test_child(self):
        assert is_under(Path("/var/lib/docker/x"), Path("/var/lib")) is True

    def test_sibling_with_same_prefix_is_not_under(self):
        """/var/library is not below /var/lib."""
        assert is_under(Path("/var/library/x"), Path("/var/lib")) is False

    def test_trailing_separator_on_prefix(self):
        assert is_under(Path("/var/lib/x"), Path("/var/lib/")) is True

    def test_filesystem_root_covers_everything(self):
        assert is_under(Path("/anything"), Path("/")) is True


class TestEnumeration:
    def test_recursive_scan(self, scan_root):
        write_file(scan_root / "a.txt", b"aaaa")
        write_file(scan_root / "sub" / "b.txt", b"bbbb")
        write_file(scan_root / "sub" / "deeper" / "c.txt", b"cccc")

        paths = _paths(FileScanner([scan_root]))

        assert sorted(p.name for p in paths) == ["a.txt", "b.txt", "c.txt"]
        assert all(p.is_absolute() for p in paths)

    def test_records_have_size_mtime_and_no_digest(self, scan_root):
        write_file(scan_root / "a.txt", b"12345", mtime=1_600_000_000)

        (record,) = list(FileScanner([scan_root]).scan())

        assert record.size == 5
        assert record.mtime == pytest.approx(1_600_000_000)
        assert record.digest is None

    def test_discovery_order_is_stable(self, scan_root):
        for name in ["c.txt", "a.txt", "b.txt"]:
            write_file(scan_root / name, name.encode())

        records = list(FileScanner([scan_root]).scan())

        assert [r.path.name for r in records] == ["a.txt", "b.txt", "c.txt"]
        assert [r.seq for r in records] == [0, 1, 2]

    def test_symlinks_not_followed(self, scan_root, tmp_path):
        outside = tmp_path / "outside"
        write_file(outside / "target.txt", b"target content")
        write_file(scan_root / "real.txt", b"real content")
        try:
            (scan_root / "file_link.txt").symlink_to(outside / "target.txt")
            (scan_root / "dir_link").symlink_to(outside, target_is_directory=True)
        except OSError:
            pytest.skip("Symlinks not supported on this platform")

        paths = _paths(FileScanner([scan_root]))

        assert [p.name for p in paths] == ["real.txt"]

    def test_missing_root_is_skipped(self, scan_root, tmp_path):
        write_file(scan_root / "a.txt", b"aaaa")

        scanner = FileScanner([tmp_path / "does-not-exist", scan_root])

        assert [p.name for p in _paths(scanner)] == ["a.txt"]
        assert scanner.stats.scan_errors == 0

    def test_nested_roots_yield_each_file_once(self, scan_root):
        write_file(scan_root / "sub" / "a.txt", b"aaaa")

        scanner = FileScanner([scan_root, scan_root / "sub", scan_root])

        assert len(_paths(scanner)) == 1

    def test_file_as_root(self, scan_root):
        target = write_file(scan_root / "single.bin", b"payload")

        assert _paths(FileScanner([target])) == [target]


class TestExclusions:
    def test_excluded_prefix_is_pruned(self, scan_root):
        write_file(scan_root / "keep" / "a.txt", b"aaaa")
        write_file(scan_root / "skip" / "b.txt", b"bbbb")
        write_file(scan_root / "skip" / "deep" / "c.txt", b"cccc")

        paths = _paths(FileScanner([scan_root], excludes=[scan_root / "skip"]))

        assert [p.name for p in paths] == ["a.txt"]

    def test_excluded_directory_never_listed(self, scan_root):
        """Pruning happens before descending: scandir is never called on it."""
        write_file(scan_root / "skip" / "b.txt", b"bbbb")
        real_scandir = os.scandir
        visited = []

        def tracking_scandir(path):
            visited.append(Path(path))
            return real_scandir(path)

        with patch("sweeper.src.dedup.scanner.os.scandir", side_effect=tracking_scandir):
            list(FileScanner([scan_root], excludes=[scan_root / "skip"]).scan())

        assert scan_root / "skip" not in visited

    def test_similar_prefix_not_excluded(self, scan_root):
        write_file(scan_root / "cache" / "a.txt", b"aaaa")
        write_file(scan_root / "cache2" / "b.txt", b"bbbb")

        paths = _paths(FileScanner([scan_root], excludes=[scan_root / "cache"]))

        assert [p.name for p in paths] == ["b.txt"]

    def test_excluded_root(self, scan_root):
        write_file(scan_root / "a.txt", b"aaaa")

        assert _paths(FileScanner([scan_root], excludes=[scan_root])) == []


class TestMinSize:
    def test_small_files_skipped_and_counted(self, scan_root):
        write_file(scan_root / "tiny.txt", b"x" * 10)
        write_file(scan_root / "big.txt", b"x" * 100)

        scanner = FileScanner([scan_root], min_size=50)
        paths = _paths(scanner)

        assert [p.name for p in paths] == ["big.txt"]
        assert scanner.stats.files_scanned == 2
        assert scanner.stats.files_skipped == 1

    def test_min_size_is_inclusive(self, scan_root):
        write_file(scan_root / "exact.txt", b"x" * 50)

        assert len(_paths(FileScanner([scan_root], min_size=50))) == 1


class TestScanErrors:
    def test_unreadable_directory_skipped(self, scan_root):
        write_file(scan_root / "ok" / "a.txt", b"aaaa")
        write_file(scan_root / "locked" / "b.txt", b"bbbb")
        real_scandir = os.scandir
        errors = []

        def flaky_scandir(path):
            if Path(path).name == "locked":
                raise PermissionError(13, "Permission denied", str(path))
            return real_scandir(path)

        stats = RunStats()
        scanner = FileScanner(
            [scan_root],
            stats=stats,
            on_error=lambda path, error: errors.append(path),
        )
        with patch("sweeper.src.dedup.scanner.os.scandir", side_effect=flaky_scandir):
            paths = _paths(scanner)

        assert [p.name for p in paths] == ["a.txt"]
        assert stats.scan_errors == 1
        assert errors == [scan_root / "locked"]

    def test_file_vanishing_before_stat_is_skipped(self, scan_root):
        write_file(scan_root / "a.txt", b"aaaa")
        write_file(scan_root / "gone.txt", b"gone")
        real_scandir = os.scandir

        class VanishingEntry:
            def __init__(self, entry):
                self._entry = entry
                self.name = entry.name
                self.path = entry.path

            def is_symlink(self):
                return self._entry.is_symlink()

            def is_dir(self, follow_symlinks=True):
                return self._entry.is_dir(follow_symlinks=follow_symlinks)

            def is_file(self, follow_symlinks=True):
                return self._entry.is_file(follow_symlinks=follow_symlinks)

            def stat(self, follow_symlinks=True):
                if self.name == "gone.txt":
                    raise FileNotFoundError(2, "No such file", self.path)
                return self._entry.stat(follow_symlinks=follow_symlinks)

        class Listing:
            def __init__(self, path):
                self._it = real_scandir(path)

            def __enter__(self):
                return [VanishingEntry(e) for e in self._it]

            def __exit__(self, *exc):
                self._it.close()

        scanner = FileScanner([scan_root])
        with patch("sweeper.src.dedup.scanner.os.scandir", side_effect=Listing):
            paths = _paths(scanner)

        assert [p.name for p in paths] == ["a.txt"]
        assert scanner.stats.scan_errors == 1
