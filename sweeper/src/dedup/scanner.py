"""
Candidate file scanner for the dedup engine.

Features:
- Lazy recursive walk with os.scandir (no symlink is ever followed)
- Prefix exclusions pruned before descending (/proc, /sys, docker storage...)
- Minimum size filter (small files are never hashed)
- Sorted directory entries so discovery order is reproducible
- Unreadable directories / vanished files are logged and skipped
"""

from __future__ import annotations

import os
import stat
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

import structlog

from sweeper.src.dedup.models import FileRecord, RunStats

logger = structlog.get_logger(__name__)


def is_under(path: Path, prefix: Path) -> bool:
    """True if path equals prefix or lies below it (component-aware)."""
    path_str = str(path)
    prefix_str = str(prefix).rstrip(os.sep) + os.sep
    return path_str == str(prefix) or path_str.startswith(prefix_str)


class FileScanner:
    """
    Enumerate regular files under a set of roots.

    Yields FileRecord objects without digest. Ordering is a stable DFS
    (entries sorted by name) but callers must not rely on it.
    """

    def __init__(
        self,
        roots: Iterable[Path],
        excludes: Iterable[Path] = (),
        min_size: int = 0,
        stats: Optional[RunStats] = None,
        on_error: Optional[Callable[[Path, str], None]] = None,
    ):
        """
        Initialize scanner.

        Args:
            roots: Absolute directories (or files) to scan
            excludes: Absolute path prefixes never descended into
            min_size: Files strictly smaller than this are skipped
            stats: Shared run counters (a private one is created if omitted)
            on_error: Called with (path, error) for every skipped unreadable entry
        """
        self.roots = [Path(r) for r in roots]
        self.excludes = [Path(e) for e in excludes]
        self.min_size = min_size
        self.stats = stats if stats is not None else RunStats()
        self.on_error = on_error
        self._seq = 0

    def is_excluded(self, path: Path) -> bool:
        return any(is_under(path, excl) for excl in self.excludes)

    def scan(self) -> Iterator[FileRecord]:
        """Yield a FileRecord for every eligible regular file under the roots."""
        for root in self._distinct_roots():
            if self.is_excluded(root):
                logger.info("scan_root_excluded", root=str(root))
                continue

            try:
                st = os.lstat(root)
            except FileNotFoundError:
                logger.warning("scan_root_missing", root=str(root))
                continue
            except OSError as e:
                self._error(root, e)
                continue

            if stat.S_ISLNK(st.st_mode):
                logger.warning("scan_root_symlink_skipped", root=str(root))
                continue

            if stat.S_ISREG(st.st_mode):
                record = self._make_record(root, st)
                if record is not None:
                    yield record
            elif stat.S_ISDIR(st.st_mode):
                yield from self._walk(root)

        logger.info(
            "scan_completed",
            files_scanned=self.stats.files_scanned,
            files_skipped=self.stats.files_skipped,
            scan_errors=self.stats.scan_errors,
        )

    def _distinct_roots(self) -> list[Path]:
        """Drop duplicate roots and roots nested inside another root."""
        distinct: list[Path] = []
        for root in sorted(set(self.roots), key=str):
            if any(is_under(root, kept) for kept in distinct):
                continue
            distinct.append(root)
        return distinct

    def _walk(self, top: Path) -> Iterator[FileRecord]:
        stack = [top]

        while stack:
            directory = stack.pop()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                self._error(directory, e)
                continue

            subdirs = []
            for entry in entries:
                path = Path(entry.path)
                if self.is_excluded(path):
                    logger.debug("scan_excluded", path=str(path))
                    continue

                try:
                    if entry.is_symlink():
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        subdirs.append(path)
                        continue
                    if not entry.is_file(follow_symlinks=False):
                        # sockets, fifos, devices
                        continue
                    st = entry.stat(follow_symlinks=False)
                except OSError as e:
                    # Permission denied or vanished between listing and stat
                    self._error(path, e)
                    continue

                record = self._make_record(path, st)
                if record is not None:
                    yield record

            # Reversed so the stack pops subdirectories in name order
            stack.extend(reversed(subdirs))

    def _error(self, path: Path, error: OSError) -> None:
        self.stats.scan_errors += 1
        logger.warning("scan_error", path=str(path), error=str(error))
        if self.on_error:
            self.on_error(path, str(error))

    def _make_record(self, path: Path, st: os.stat_result) -> Optional[FileRecord]:
        self.stats.files_scanned += 1

        if st.st_size < self.min_size:
            self.stats.files_skipped += 1
            return None

        record = FileRecord(
            path=path,
            size=st.st_size,
            mtime=st.st_mtime,
            seq=self._seq,
        )
        self._seq += 1
        return record
