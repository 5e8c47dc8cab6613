"""
Quarantine-move / delete executor for redundant duplicates.

Features:
- Quarantine mirrors original absolute paths under the quarantine root
- Permanent delete mode (no restore entry)
- Dry-run runs the exact same checks and decisions, without touching anything
- Pre-action safety checks (source/keeper still exist, content unchanged,
  destination free)
- Per-file failures are logged and counted, the batch always continues
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Callable, Optional

import structlog

from sweeper.src.dedup.hasher import hash_file
from sweeper.src.dedup.models import (
    Action,
    ActionKind,
    ActionOutcome,
    DuplicateGroup,
    FileRecord,
    RestoreEntry,
    RunConfig,
    RunStats,
)
from sweeper.src.dedup.restore_ledger import RestoreLedger
from sweeper.src.dedup.run_log import RunLog

logger = structlog.get_logger(__name__)

DRY_RUN_PREFIX = "(dry-run) "


def quarantine_destination(quarantine_root: Path, source: Path) -> Path:
    """
    Map a source path to its place in the quarantine tree.

    /home/u/a b.txt -> <root>/home/u/a b.txt. The source is normalised
    (trailing separators, ".." components) but symlinks are not resolved.
    """
    source = Path(os.path.abspath(source))
    return Path(quarantine_root) / source.relative_to(source.anchor)


class ExecutionResult:
    """Result of executing actions over all groups."""

    def __init__(self):
        self.actions: list[Action] = []
        self.moved: int = 0
        self.deleted: int = 0
        self.would_apply: int = 0
        self.failed: int = 0
        self.bytes_reclaimed: int = 0

    def add(self, action: Action) -> None:
        self.actions.append(action)
        if action.outcome is ActionOutcome.failed:
            self.failed += 1
        elif action.outcome is ActionOutcome.would_apply:
            self.would_apply += 1
        elif action.kind is ActionKind.move:
            self.moved += 1
            self.bytes_reclaimed += action.size
        else:
            self.deleted += 1
            self.bytes_reclaimed += action.size


class ActionExecutor:
    """
    Apply one Action per redundant file.

    The keeper of a group is never modified, moved, or deleted.
    """

    def __init__(
        self,
        config: RunConfig,
        ledger: Optional[RestoreLedger] = None,
        run_log: Optional[RunLog] = None,
        stats: Optional[RunStats] = None,
        completion_callback: Optional[Callable[[Action], None]] = None,
    ):
        """
        Initialize executor.

        Args:
            config: Run configuration (mode, quarantine root, dry-run)
            ledger: Restore ledger; required for real quarantine runs
            run_log: Audit log sink
            stats: Shared run counters
            completion_callback: Called after every action, whatever its outcome
        """
        if config.quarantine_enabled and not config.dry_run and ledger is None:
            raise ValueError("a restore ledger is required for quarantine runs")
        self.config = config
        self.ledger = ledger
        self.run_log = run_log if run_log is not None else RunLog()
        self.stats = stats if stats is not None else RunStats()
        self.completion_callback = completion_callback

    @property
    def kind(self) -> ActionKind:
        return ActionKind.delete if self.config.delete else ActionKind.move

    def execute(self, groups: list[DuplicateGroup]) -> ExecutionResult:
        result = ExecutionResult()

        for group in groups:
            if group.keeper is None:
                logger.warning("group_without_keeper", group_id=group.group_id)
                continue

            for record in group.redundant:
                action = self._act(record, group)
                result.add(action)
                self._count(action)
                if self.completion_callback:
                    self.completion_callback(action)

        logger.info(
            "actions_completed",
            kind=self.kind.value,
            dry_run=self.config.dry_run,
            moved=result.moved,
            deleted=result.deleted,
            would_apply=result.would_apply,
            failed=result.failed,
        )
        return result

    def _act(self, record: FileRecord, group: DuplicateGroup) -> Action:
        source = record.path
        destination = None
        if self.kind is ActionKind.move:
            destination = quarantine_destination(self.config.quarantine_root, source)

        def make(outcome: ActionOutcome, error: Optional[str] = None) -> Action:
            return Action(
                kind=self.kind,
                source=source,
                destination=destination,
                outcome=outcome,
                size=record.size,
                error=error,
            )

        reason = self._safety_check(record, group, destination)
        if reason is not None:
            return self._failed(make(ActionOutcome.failed, reason))

        if self.config.dry_run:
            if destination is not None:
                self.run_log.info(f"{DRY_RUN_PREFIX}Would move: {source} -> {destination}")
            else:
                self.run_log.info(f"{DRY_RUN_PREFIX}Would delete: {source}")
            return make(ActionOutcome.would_apply)

        try:
            if destination is not None:
                self._move(source, destination)
            else:
                os.unlink(source)
        except OSError as e:
            return self._failed(make(ActionOutcome.failed, str(e)))

        if destination is not None:
            self.run_log.moved(source, destination)
            logger.info("file_quarantined", source=str(source), destination=str(destination))
        else:
            self.run_log.info(f"Deleting: {source}")
            self.run_log.deleted(source)
            logger.info("file_deleted", source=str(source), size_bytes=record.size)

        return make(ActionOutcome.applied)

    def _move(self, source: Path, destination: Path) -> None:
        """Move into quarantine and record the inverse; undo the move if recording fails."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.move(str(source), str(destination))
        except OSError:
            # Cross-device move is copy + unlink: drop a half-done copy
            if os.path.lexists(source) and os.path.lexists(destination):
                self._discard_partial_copy(destination)
            raise

        try:
            self.ledger.append(RestoreEntry(destination=destination, original=source))
        except (OSError, ValueError) as e:
            shutil.move(str(destination), str(source))
            raise OSError(f"restore ledger write failed, move undone: {e}") from e

    def _discard_partial_copy(self, destination: Path) -> None:
        try:
            os.unlink(destination)
        except OSError as e:
            self.run_log.error(f"cannot remove partial quarantine copy {destination}: {e}")
            logger.error("partial_copy_left", destination=str(destination), error=str(e))
            return
        logger.warning("partial_copy_removed", destination=str(destination))

    def _safety_check(
        self,
        record: FileRecord,
        group: DuplicateGroup,
        destination: Optional[Path],
    ) -> Optional[str]:
        """
        Checks run before each action, in dry-run too.

        Returns:
            None if safe, else the reason
        """
        source = record.path

        if source == group.keeper.path:
            return "File is the keeper"

        if not os.path.lexists(source):
            return "File no longer exists"

        if os.path.islink(source):
            return "File was replaced by a symlink"

        if not os.path.exists(group.keeper.path):
            return "Keeper file no longer exists"

        if self.config.verify_before_action and record.digest is not None:
            try:
                if hash_file(source, self.config.chunk_size) != record.digest:
                    return "Hash mismatch (file modified since scan)"
            except OSError as e:
                return f"Cannot read file for hash check: {e}"

        if destination is not None and os.path.lexists(destination):
            return f"Quarantine destination already exists: {destination}"

        return None

    def _failed(self, action: Action) -> Action:
        self.run_log.error(f"{action.kind.value} failed: {action.source}: {action.error}")
        logger.warning(
            "action_failed",
            kind=action.kind.value,
            source=str(action.source),
            error=action.error,
        )
        return action

    def _count(self, action: Action) -> None:
        if action.outcome is ActionOutcome.failed:
            self.stats.action_errors += 1
        elif action.outcome is ActionOutcome.would_apply:
            self.stats.would_act += 1
        else:
            if action.kind is ActionKind.move:
                self.stats.moved += 1
            else:
                self.stats.deleted += 1
            self.stats.bytes_reclaimed += action.size
