#!/usr/bin/env python3
"""
sweeper - duplicate file quarantine and temp cleaner

Usage:
    sweeper --paths "$HOME /tmp" --min-size 1M --quarantine /var/quarantine --dry-run
    sweeper --paths /home/user --min-size 5K --keep largest --delete --no-dry-run
    sweeper --restore /usr/local/bin/restore_quarantine_20251111_100000.sh

Default is dry-run: nothing is moved or deleted without --no-dry-run.

Exit codes:
    0  run completed (including "no duplicates found" and per-file errors)
    1  setup failure (no sha256, quarantine/log/restore location unusable,
       restore replay with failures)
    2  invalid arguments
"""

from __future__ import annotations

import argparse
import asyncio
import math
import shlex
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import structlog

from sweeper.src.config.exceptions import ArtifactSetupError, LedgerError, SetupError
from sweeper.src.config.logging import configure_logging
from sweeper.src.config.settings import SweeperSettings, get_settings
from sweeper.src.dedup.models import RunConfig, RunSummary
from sweeper.src.dedup.pipeline import DedupPipeline
from sweeper.src.dedup.restore_ledger import read_entries, restore
from sweeper.src.dedup.run_log import RunLog
from sweeper.src.janitor.aging_cleaner import (
    DEFAULT_MAX_AGE_DAYS,
    AgingCleaner,
    default_temp_dirs,
)

logger = structlog.get_logger(__name__)

DEFAULT_EXCLUDES = (
    "/proc",
    "/sys",
    "/dev",
    "/run",
    "/var/lib/docker",
    "/var/snap",
    "/snap",
    "/mnt",
    "/media",
)

# Order matters: longer suffixes first so "B" does not shadow "KB"
_SIZE_SUFFIXES = (
    ("KB", 1024),
    ("MB", 1024**2),
    ("GB", 1024**3),
    ("TB", 1024**4),
    ("C", 1),
    ("B", 1),
    ("K", 1024),
    ("M", 1024**2),
    ("G", 1024**3),
    ("T", 1024**4),
)


def parse_size(value: str) -> int:
    """Parse '1K', '5M', '2G', '512c' or a plain byte count."""
    text = value.strip().upper()
    multiplier = 1
    for suffix, mult in _SIZE_SUFFIXES:
        if text.endswith(suffix):
            text = text[: -len(suffix)].strip()
            multiplier = mult
            break
    try:
        number = float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid size: {value!r}") from None
    if not math.isfinite(number) or number < 0:
        raise argparse.ArgumentTypeError(f"size must be a finite number >= 0: {value!r}")
    return int(number * multiplier)


def _non_negative_days(value: str) -> float:
    try:
        days = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from None
    if not math.isfinite(days) or days < 0:
        raise argparse.ArgumentTypeError(f"must be a finite number >= 0: {value!r}")
    return days


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1: {value!r}")
    return number


def build_parser(settings: SweeperSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sweeper",
        description="Find byte-identical files, keep one per group, quarantine or delete the rest.",
    )
    parser.add_argument(
        "--paths",
        help="Space-separated roots to scan (default: $HOME and the temp dir)",
    )
    parser.add_argument(
        "--min-size",
        type=parse_size,
        default=parse_size("1K"),
        help="Minimum file size to consider, e.g. 1K, 5M (default 1K)",
    )
    parser.add_argument(
        "--parallel",
        type=_positive_int,
        default=settings.workers,
        help=f"Hashing workers (default {settings.workers})",
    )
    parser.add_argument(
        "--keep",
        default="oldest",
        help="Which file to keep: oldest | newest | largest (default oldest)",
    )
    parser.add_argument(
        "--quarantine",
        help=f"Quarantine root (default {settings.quarantine_base}/duplicates_<timestamp>)",
    )
    parser.add_argument(
        "--delete",
        action="store_true",
        help="Delete duplicates permanently instead of quarantining (no restore script)",
    )
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", default=True)
    parser.add_argument(
        "--no-dry-run",
        dest="dry_run",
        action="store_false",
        help="Actually move/delete files (default is dry-run)",
    )
    parser.add_argument("--no-temp-clean", dest="temp_clean", action="store_false", default=True)
    parser.add_argument(
        "--temp-dir",
        action="append",
        default=None,
        help="Temp/cache directory for the aging pass (repeatable, replaces defaults)",
    )
    parser.add_argument(
        "--temp-max-age",
        type=_non_negative_days,
        default=DEFAULT_MAX_AGE_DAYS,
        help=f"Age in days before a temp file is purged (default {DEFAULT_MAX_AGE_DAYS:g})",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Additional path prefix to prune (repeatable)",
    )
    parser.add_argument(
        "--no-verify",
        dest="verify",
        action="store_false",
        default=True,
        help="Do not re-hash files right before acting on them",
    )
    parser.add_argument("--log-file", type=Path, help="Run log path")
    parser.add_argument("--restore-script", type=Path, help="Restore script path")
    parser.add_argument(
        "--log-format",
        choices=["console", "json"],
        default=settings.log_format,
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("--verbose", dest="log_level", action="store_const", const="DEBUG")
    verbosity.add_argument("--quiet", dest="log_level", action="store_const", const="WARNING")
    parser.add_argument(
        "--restore",
        type=Path,
        metavar="SCRIPT",
        help="Replay a restore script written by a previous run, then exit",
    )
    parser.set_defaults(log_level=settings.log_level)
    return parser


def build_config(args: argparse.Namespace, settings: SweeperSettings, timestamp: str) -> RunConfig:
    roots = shlex.split(args.paths) if args.paths else [str(Path.home()), tempfile.gettempdir()]
    quarantine = args.quarantine or settings.quarantine_base / f"duplicates_{timestamp}"

    temp_dirs: list[Path] = []
    if args.temp_clean:
        temp_dirs = [Path(d) for d in args.temp_dir] if args.temp_dir else default_temp_dirs()

    return RunConfig(
        roots=roots,
        excludes=list(DEFAULT_EXCLUDES) + list(args.exclude),
        min_size=args.min_size,
        workers=args.parallel,
        keep_policy=args.keep,
        quarantine_root=quarantine,
        delete=args.delete,
        dry_run=args.dry_run,
        temp_clean=args.temp_clean,
        temp_dirs=temp_dirs,
        temp_max_age_days=args.temp_max_age,
        chunk_size=settings.chunk_size,
        verify_before_action=args.verify,
    )


def run_restore(script: Path) -> int:
    try:
        quarantine_root, entries = read_entries(script)
    except LedgerError as e:
        logger.error("restore_unreadable", script=str(script), error=str(e))
        print(f"Cannot read restore script: {e}", file=sys.stderr)
        return 1

    report = restore(entries, quarantine_root)
    print(f"Restored {report.restored} file(s), {report.failed} failure(s).")
    for original, reason in report.failures:
        print(f"  {original}: {reason}", file=sys.stderr)
    return 0 if report.failed == 0 else 1


def _print_summary(summary: RunSummary, log_path: Path) -> None:
    stats = summary.stats
    mode = "DRY-RUN" if summary.dry_run else "EXECUTION"
    print(f"Mode: {mode}")
    print(
        f"Scanned {stats.files_scanned} file(s), hashed {stats.files_hashed}, "
        f"{stats.duplicate_groups} duplicate group(s), {stats.redundant_files} redundant file(s)"
    )
    if summary.dry_run:
        print(f"Would act on {stats.would_act} file(s). Use --no-dry-run to enact changes.")
    else:
        print(f"Moved {stats.moved}, deleted {stats.deleted}, errors {stats.errors}")
    if summary.ledger_path is not None:
        print(f"Restore script: {summary.ledger_path}")
    print(f"Log file: {log_path}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)

    configure_logging(
        level=args.log_level,
        json_format=args.log_format == "json",
        enable_colors=sys.stderr.isatty(),
    )

    if args.restore is not None:
        return run_restore(args.restore)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    config = build_config(args, settings, timestamp)
    log_path = args.log_file or settings.log_dir / f"sweeper_{timestamp}.log"
    ledger_path = args.restore_script or settings.restore_dir / f"restore_quarantine_{timestamp}.sh"

    if config.delete:
        print(
            "WARNING: --delete was specified: duplicates will be permanently removed (no restore).",
            file=sys.stderr,
        )

    run_log = RunLog(log_path)
    try:
        run_log.open()
    except OSError as e:
        error = ArtifactSetupError(f"cannot open log file {log_path}: {e}")
        logger.error("setup_failed", error=str(error))
        print(f"Setup failed: {error}", file=sys.stderr)
        return 1

    with run_log:
        run_log.info(f"Run started: {datetime.now().isoformat(timespec='seconds')}")
        if config.delete:
            run_log.warning("delete mode: duplicates are removed permanently")

        try:
            summary = asyncio.run(DedupPipeline(config, run_log, ledger_path).run())
        except SetupError as e:
            run_log.error(f"setup failed: {e}")
            logger.error("setup_failed", error=str(e), error_type=type(e).__name__)
            print(f"Setup failed: {e}", file=sys.stderr)
            return 1

        if config.temp_clean:
            AgingCleaner(
                directories=config.temp_dirs,
                max_age_days=config.temp_max_age_days,
                dry_run=config.dry_run,
                run_log=run_log,
                excludes=[p for p in (config.quarantine_root, log_path, ledger_path) if p is not None],
                protected=[g.keeper.path for g in summary.groups if g.keeper is not None],
            ).clean()

        run_log.info(f"Log file: {log_path}")

    _print_summary(summary, log_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
