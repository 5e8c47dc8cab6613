"""
Age-based purge of temp/cache directories.

Independent of the dedup pipeline: shares only the dry-run contract and
the logging sinks. Only regular files are removed; directories and
symlinks are left in place and never followed.
"""

from __future__ import annotations

import glob
import os
import stat
import tempfile
import time
from pathlib import Path
from typing import Iterable, Optional

import structlog

from sweeper.src.dedup.run_log import RunLog
from sweeper.src.dedup.scanner import is_under

logger = structlog.get_logger(__name__)

DEFAULT_MAX_AGE_DAYS = 7.0
DRY_RUN_PREVIEW = 20
CANDIDATE_PREVIEW = 100

# Per-user locations, relative to each home directory
USER_TEMP_SUBDIRS = (
    ".cache",
    ".thumbnails",
    ".local/share/Trash",
    ".mozilla",
)


def default_temp_dirs(home_glob: str = "/home/*") -> list[Path]:
    """User-level caches under every home directory, plus the system temp dir."""
    dirs: list[Path] = []
    for home in sorted(glob.glob(home_glob)):
        for sub in USER_TEMP_SUBDIRS:
            candidate = Path(home) / sub
            if candidate.is_dir():
                dirs.append(candidate)
    dirs.append(Path(tempfile.gettempdir()))
    return dirs


class AgingResult:
    """Result of an aging pass."""

    def __init__(self):
        self.scanned: int = 0
        self.deleted: int = 0
        self.would_delete: int = 0
        self.errors: int = 0
        self.bytes_freed: int = 0
        self.candidates: list[str] = []  # first CANDIDATE_PREVIEW only


class AgingCleaner:
    """Delete (or report) regular files older than a threshold."""

    def __init__(
        self,
        directories: Iterable[Path],
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
        dry_run: bool = True,
        run_log: Optional[RunLog] = None,
        now: Optional[float] = None,
        excludes: Iterable[Path] = (),
        protected: Iterable[Path] = (),
    ):
        """
        Args:
            directories: Directories to purge recursively
            max_age_days: Files with mtime older than this are candidates
            dry_run: Report only
            run_log: Audit log sink
            now: Reference timestamp (defaults to time.time())
            excludes: Path prefixes never touched (e.g. a quarantine root in /tmp)
            protected: Exact files never touched (the keepers of a dedup run)
        """
        if max_age_days < 0:
            raise ValueError("max_age_days must be >= 0")
        self.directories = [Path(d) for d in directories]
        self.max_age_days = max_age_days
        self.dry_run = dry_run
        self.run_log = run_log if run_log is not None else RunLog()
        self.now = now
        self.excludes = [Path(e) for e in excludes]
        self.protected = {os.path.abspath(p) for p in protected}

    @property
    def cutoff(self) -> float:
        reference = self.now if self.now is not None else time.time()
        return reference - self.max_age_days * 86400

    def clean(self) -> AgingResult:
        result = AgingResult()
        cutoff = self.cutoff

        for directory in self.directories:
            if not directory.is_dir() or directory.is_symlink() or self._is_excluded(directory):
                logger.debug("aging_dir_skipped", directory=str(directory))
                continue
            self._clean_directory(directory, cutoff, result)

        logger.info(
            "aging_clean_completed",
            dry_run=self.dry_run,
            scanned=result.scanned,
            deleted=result.deleted,
            would_delete=result.would_delete,
            errors=result.errors,
        )
        return result

    def _is_excluded(self, path: Path) -> bool:
        return any(is_under(path, excl) for excl in self.excludes)

    def _clean_directory(self, directory: Path, cutoff: float, result: AgingResult) -> None:
        if self.dry_run:
            self.run_log.info(
                f"(dry-run) Would clear files older than {self.max_age_days:g} days in {directory} "
                f"(remove only regular files)"
            )
        else:
            self.run_log.info(
                f"Removing files older than {self.max_age_days:g} days in {directory} (regular files only)"
            )

        reported = 0

        def on_walk_error(error: OSError) -> None:
            result.errors += 1
            logger.warning("aging_walk_error", path=error.filename, error=str(error))

        for dirpath, dirnames, filenames in os.walk(directory, onerror=on_walk_error):
            # Prune in place so os.walk never descends into excluded trees
            dirnames[:] = [d for d in dirnames if not self._is_excluded(Path(dirpath) / d)]
            for name in filenames:
                path = os.path.join(dirpath, name)
                if os.path.abspath(path) in self.protected or self._is_excluded(Path(path)):
                    continue
                try:
                    st = os.lstat(path)
                except OSError as e:
                    result.errors += 1
                    logger.warning("aging_stat_failed", path=path, error=str(e))
                    continue

                if not stat.S_ISREG(st.st_mode):
                    continue
                result.scanned += 1
                if st.st_mtime >= cutoff:
                    continue

                if len(result.candidates) < CANDIDATE_PREVIEW:
                    result.candidates.append(path)
                if self.dry_run:
                    result.would_delete += 1
                    if reported < DRY_RUN_PREVIEW:
                        self.run_log.info(f"  {path}")
                        reported += 1
                    continue

                try:
                    os.unlink(path)
                except OSError as e:
                    result.errors += 1
                    self.run_log.error(f"cannot remove {path}: {e}")
                    logger.warning("aging_delete_failed", path=path, error=str(e))
                    continue

                result.deleted += 1
                result.bytes_freed += st.st_size
                self.run_log.deleted(Path(path))
