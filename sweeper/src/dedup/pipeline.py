"""
Dedup pipeline: scan -> hash -> group -> select keeper -> act -> ledger.

Setup problems (no SHA256, quarantine root or artifact directory not
creatable) raise SetupError before anything is touched. Everything after
setup is per-file and non-fatal.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import structlog

from sweeper.src.config.exceptions import ArtifactSetupError, QuarantineSetupError
from sweeper.src.dedup.executor import ActionExecutor
from sweeper.src.dedup.group_index import GroupIndex
from sweeper.src.dedup.hasher import ContentHasher, ensure_hash_available
from sweeper.src.dedup.keeper_policy import KeeperSelector
from sweeper.src.dedup.models import DuplicateGroup, RunConfig, RunStats, RunSummary
from sweeper.src.dedup.restore_ledger import RestoreLedger
from sweeper.src.dedup.run_log import RunLog
from sweeper.src.dedup.scanner import FileScanner

logger = structlog.get_logger(__name__)

PREVIEW_GROUPS = 20


def _ensure_writable_dir(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    if not directory.is_dir() or not os.access(directory, os.W_OK | os.X_OK):
        raise PermissionError(f"not a writable directory: {directory}")


class DedupPipeline:
    """Run the whole dedup flow for one RunConfig."""

    def __init__(
        self,
        config: RunConfig,
        run_log: Optional[RunLog] = None,
        ledger_path: Optional[Path] = None,
    ):
        """
        Args:
            config: Run configuration
            run_log: Audit log (in-memory if omitted)
            ledger_path: Restore script location; required for real quarantine runs
        """
        self.config = config
        self.run_log = run_log if run_log is not None else RunLog()
        self.ledger_path = Path(ledger_path) if ledger_path is not None else None
        self.stats = RunStats()

    @property
    def mutating_quarantine(self) -> bool:
        return self.config.quarantine_enabled and not self.config.dry_run

    def prepare(self) -> None:
        """
        Validate everything that could fail before the first mutation.

        Raises:
            HashingUnavailableError: no SHA256 primitive
            QuarantineSetupError: quarantine root cannot be created
            ArtifactSetupError: restore script directory unusable, or script already exists
        """
        ensure_hash_available()

        if not self.mutating_quarantine:
            return

        if self.ledger_path is None:
            raise ArtifactSetupError("a restore script path is required for quarantine runs")
        if os.path.lexists(self.ledger_path):
            raise ArtifactSetupError(f"restore script already exists, refusing to overwrite: {self.ledger_path}")

        try:
            _ensure_writable_dir(self.config.quarantine_root)
        except OSError as e:
            raise QuarantineSetupError(
                f"cannot create quarantine root {self.config.quarantine_root}: {e}"
            ) from e

        try:
            _ensure_writable_dir(self.ledger_path.parent)
        except OSError as e:
            raise ArtifactSetupError(
                f"cannot write restore script in {self.ledger_path.parent}: {e}"
            ) from e

    async def run(self) -> RunSummary:
        config = self.config
        self.prepare()

        self.run_log.info(
            f"Configuration: TARGET_PATHS={' '.join(str(r) for r in config.roots)}, "
            f"MIN_SIZE={config.min_size}, PARALLEL={config.workers}, "
            f"KEEP_POLICY={config.keep_policy.value}, QUARANTINE={config.quarantine_root}, "
            f"DELETE={config.delete}, DRY_RUN={config.dry_run}"
        )
        logger.info(
            "dedup_run_started",
            roots=[str(r) for r in config.roots],
            workers=config.workers,
            keep_policy=config.keep_policy.value,
            delete=config.delete,
            dry_run=config.dry_run,
        )

        # Phase 1+2: scan and hash (scanner feeds the bounded pool lazily)
        scanner = FileScanner(
            roots=config.roots,
            excludes=config.effective_excludes,
            min_size=config.min_size,
            stats=self.stats,
            on_error=lambda path, error: self.run_log.warning(f"cannot scan {path}: {error}"),
        )
        index = GroupIndex()
        hasher = ContentHasher(workers=config.workers, chunk_size=config.chunk_size, stats=self.stats)

        self.run_log.info(f"Hashing files with sha256 using {config.workers} parallel workers...")
        report = await hasher.hash_all(scanner.scan(), index.add)
        for path, error in report.failures:
            self.run_log.warning(f"cannot hash {path}: {error}")
        self.run_log.info(f"Total hashed files: {self.stats.files_hashed}")

        # Phase 3+4: group and pick keepers
        groups = KeeperSelector(config.keep_policy).select_all(index.groups())
        self.stats.duplicate_groups = len(groups)
        self.stats.redundant_files = sum(len(g.redundant) for g in groups)
        self.stats.bytes_reclaimable = sum(g.reclaimable_bytes for g in groups)

        if not groups:
            self.run_log.info("No duplicates found.")
        else:
            self._log_preview(groups)

        # Phase 5: act
        ledger = None
        if self.mutating_quarantine:
            ledger = RestoreLedger(self.ledger_path, config.quarantine_root)

        execution = ActionExecutor(
            config=config,
            ledger=ledger,
            run_log=self.run_log,
            stats=self.stats,
        ).execute(groups)

        summary = RunSummary(
            dry_run=config.dry_run,
            delete=config.delete,
            stats=self.stats,
            groups=groups,
            actions=execution.actions,
            quarantine_root=config.quarantine_root if config.quarantine_enabled else None,
            ledger_path=ledger.path if ledger is not None and ledger.created else None,
            log_path=self.run_log.path,
        )
        self._log_summary(summary)
        return summary

    def _log_preview(self, groups: list[DuplicateGroup]) -> None:
        self.run_log.info(f"Duplicate groups found: {len(groups)}")
        for group in groups[:PREVIEW_GROUPS]:
            self.run_log.info(f"Group {group.digest} -> keeping: {group.keeper.path}")
            for record in group.redundant:
                self.run_log.info(f"  redundant: {record.path}")
        if len(groups) > PREVIEW_GROUPS:
            self.run_log.info(f"... {len(groups) - PREVIEW_GROUPS} more group(s)")

    def _log_summary(self, summary: RunSummary) -> None:
        stats = summary.stats
        self.run_log.info("SUMMARY:")
        if summary.dry_run:
            self.run_log.info("Mode: DRY-RUN (no files moved/deleted). Use --no-dry-run to enact changes.")
        else:
            self.run_log.info("Mode: EXECUTION (changes applied).")
        self.run_log.info(
            f"Files scanned: {stats.files_scanned}, skipped (size): {stats.files_skipped}, "
            f"hashed: {stats.files_hashed}, duplicate groups: {stats.duplicate_groups}, "
            f"redundant files: {stats.redundant_files}"
        )
        self.run_log.info(
            f"Moved: {stats.moved}, deleted: {stats.deleted}, would act: {stats.would_act}, "
            f"errors: {stats.errors} (scan {stats.scan_errors}, hash {stats.hash_errors}, "
            f"action {stats.action_errors})"
        )
        if summary.delete:
            self.run_log.info("Duplicates are deleted permanently (no restore).")
        else:
            self.run_log.info(f"Duplicates quarantined under: {summary.quarantine_root}")
            if summary.ledger_path is not None:
                self.run_log.info(f"Restore script created at {summary.ledger_path}")

        logger.info(
            "dedup_run_completed",
            files_scanned=stats.files_scanned,
            files_hashed=stats.files_hashed,
            duplicate_groups=stats.duplicate_groups,
            moved=stats.moved,
            deleted=stats.deleted,
            would_act=stats.would_act,
            errors=stats.errors,
            bytes_reclaimable=stats.bytes_reclaimable,
            restore_script=str(summary.ledger_path) if summary.ledger_path else None,
        )
