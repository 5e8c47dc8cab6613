"""
Unit tests for AgingCleaner.

Tests:
- Files older than the threshold removed, newer kept
- Dry-run reports without touching anything
- Directories and symlinks never removed or followed
- Excluded prefixes (quarantine inside /tmp) never purged
- Missing directories skipped, unlink failures counted
- Files protected by the dedup pass (keepers) never purged
- Candidate list bounded on huge trees
"""

import os
from unittest.mock import patch

import pytest

from sweeper.src.dedup.run_log import RunLog
from sweeper.src.janitor.aging_cleaner import CANDIDATE_PREVIEW, AgingCleaner, default_temp_dirs
from tests.helpers.file_tree_factory import write_file

NOW = 1_700_000_000.0
DAY = 86400


@pytest.fixture
def temp_dir(tmp_path):
    directory = tmp_path / "tmp"
    directory.mkdir()
    return directory


class TestAging:
    def test_old_removed_new_kept(self, temp_dir):
        old = write_file(temp_dir / "old.bin", b"x" * 100, mtime=NOW - 8 * DAY)
        new = write_file(temp_dir / "new.bin", b"y", mtime=NOW - 1 * DAY)
        run_log = RunLog()

        result = AgingCleaner([temp_dir], dry_run=False, run_log=run_log, now=NOW).clean()

        assert not old.exists()
        assert new.exists()
        assert result.deleted == 1
        assert result.bytes_freed == 100
        assert f"DEL|{old}" in run_log.lines

    def test_nested_files_considered(self, temp_dir):
        old = write_file(temp_dir / "a" / "b" / "old", b"x", mtime=NOW - 30 * DAY)

        AgingCleaner([temp_dir], dry_run=False, now=NOW).clean()

        assert not old.exists()
        assert (temp_dir / "a" / "b").is_dir()

    def test_custom_threshold(self, temp_dir):
        f = write_file(temp_dir / "f", b"x", mtime=NOW - 2 * DAY)

        AgingCleaner([temp_dir], max_age_days=1, dry_run=False, now=NOW).clean()

        assert not f.exists()

    def test_negative_threshold_rejected(self, temp_dir):
        with pytest.raises(ValueError):
            AgingCleaner([temp_dir], max_age_days=-1)


class TestDryRun:
    def test_nothing_removed(self, temp_dir):
        old = write_file(temp_dir / "old", b"x", mtime=NOW - 10 * DAY)
        run_log = RunLog()

        result = AgingCleaner([temp_dir], dry_run=True, run_log=run_log, now=NOW).clean()

        assert old.exists()
        assert result.would_delete == 1
        assert result.deleted == 0
        assert result.candidates == [str(old)]
        assert any("(dry-run) Would clear" in line for line in run_log.lines)

    def test_default_is_dry_run(self, temp_dir):
        old = write_file(temp_dir / "old", b"x", mtime=NOW - 10 * DAY)

        AgingCleaner([temp_dir], now=NOW).clean()

        assert old.exists()


class TestSafety:
    def test_symlink_not_removed_or_followed(self, temp_dir, tmp_path):
        outside = write_file(tmp_path / "outside" / "precious", b"x", mtime=NOW - 90 * DAY)
        link = temp_dir / "link"
        link.symlink_to(outside)
        (temp_dir / "dirlink").symlink_to(outside.parent, target_is_directory=True)

        result = AgingCleaner([temp_dir], dry_run=False, now=NOW).clean()

        assert outside.exists()
        assert link.is_symlink()
        assert result.deleted == 0

    def test_symlinked_root_skipped(self, tmp_path):
        real = tmp_path / "real"
        old = write_file(real / "old", b"x", mtime=NOW - 90 * DAY)
        link = tmp_path / "tmp-link"
        link.symlink_to(real, target_is_directory=True)

        AgingCleaner([link], dry_run=False, now=NOW).clean()

        assert old.exists()

    def test_excluded_prefix_untouched(self, temp_dir):
        quarantined = write_file(temp_dir / "quarantine" / "home" / "dup", b"x", mtime=NOW - 90 * DAY)
        restore_script = write_file(temp_dir / "restore.sh", b"#!/bin/sh", mtime=NOW - 90 * DAY)
        other = write_file(temp_dir / "junk", b"x", mtime=NOW - 90 * DAY)

        AgingCleaner(
            [temp_dir],
            dry_run=False,
            now=NOW,
            excludes=[temp_dir / "quarantine", restore_script],
        ).clean()

        assert quarantined.exists()
        assert restore_script.exists()
        assert not other.exists()

    def test_missing_directory_skipped(self, tmp_path):
        result = AgingCleaner([tmp_path / "nope"], dry_run=False, now=NOW).clean()

        assert result.scanned == 0
        assert result.errors == 0

    def test_unlink_failure_counted(self, temp_dir):
        write_file(temp_dir / "a", b"x", mtime=NOW - 90 * DAY)
        write_file(temp_dir / "b", b"x", mtime=NOW - 90 * DAY)
        run_log = RunLog()

        with patch("sweeper.src.janitor.aging_cleaner.os.unlink", side_effect=PermissionError("denied")):
            result = AgingCleaner([temp_dir], dry_run=False, run_log=run_log, now=NOW).clean()

        assert result.errors == 2
        assert result.deleted == 0
        assert sum(line.startswith("ERROR|") for line in run_log.lines) == 2

    def test_protected_file_untouched(self, temp_dir):
        keeper = write_file(temp_dir / "keeper.bin", b"x", mtime=NOW - 90 * DAY)
        other = write_file(temp_dir / "other.bin", b"x", mtime=NOW - 90 * DAY)

        result = AgingCleaner([temp_dir], dry_run=False, now=NOW, protected=[keeper]).clean()

        assert keeper.exists()
        assert not other.exists()
        assert result.deleted == 1

    def test_candidates_bounded(self, temp_dir):
        for i in range(CANDIDATE_PREVIEW + 5):
            write_file(temp_dir / f"f{i:04d}", b"x", mtime=NOW - 90 * DAY)

        result = AgingCleaner([temp_dir], dry_run=True, now=NOW).clean()

        assert result.would_delete == CANDIDATE_PREVIEW + 5
        assert len(result.candidates) == CANDIDATE_PREVIEW


class TestDefaultTempDirs:
    def test_user_caches_and_system_tmp(self, tmp_path):
        (tmp_path / "alice" / ".cache").mkdir(parents=True)
        (tmp_path / "bob").mkdir()

        dirs = default_temp_dirs(home_glob=str(tmp_path / "*"))

        assert tmp_path / "alice" / ".cache" in dirs
        assert not any(str(d).startswith(str(tmp_path / "bob")) for d in dirs)
        assert os.path.isdir(dirs[-1])
