"""
Pydantic models for the dedup engine.

Models:
- KeepPolicy: Which member of a duplicate group survives
- RunConfig: Immutable per-run configuration snapshot
- FileRecord: Single regular file found by the scanner
- DuplicateGroup: Files sharing one SHA-256 digest (2+ members)
- Action: One move/delete decision for a redundant file
- RestoreEntry: Inverse of one applied quarantine move
- RunStats / RunSummary: Counters and final outcome of a run
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = structlog.get_logger(__name__)


class KeepPolicy(str, Enum):
    """Keeper selection policy."""

    oldest = "oldest"
    newest = "newest"
    largest = "largest"

    @classmethod
    def parse(cls, value: Any) -> "KeepPolicy":
        """Parse a policy name; unknown values fall back to oldest."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            logger.warning("keep_policy_unknown", value=str(value), fallback=cls.oldest.value)
            return cls.oldest


class ActionKind(str, Enum):
    """What happens to a redundant file."""

    move = "move"
    delete = "delete"


class ActionOutcome(str, Enum):
    """Result of an action."""

    applied = "applied"
    would_apply = "would_apply"
    failed = "failed"


def _absolute(path: Any) -> Path:
    # abspath normalises without resolving symlinks
    return Path(os.path.abspath(os.path.expanduser(str(path))))


class RunConfig(BaseModel):
    """Configuration snapshot for one run. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    roots: tuple[Path, ...] = Field(description="Scan roots")
    excludes: tuple[Path, ...] = Field(
        default=(),
        description="Absolute path prefixes pruned from the scan",
    )
    min_size: int = Field(default=1024, ge=0, description="Minimum file size in bytes")
    workers: int = Field(default=4, ge=1, description="Hasher worker count")
    keep_policy: KeepPolicy = KeepPolicy.oldest
    quarantine_root: Optional[Path] = Field(
        default=None,
        description="Where redundant files are moved (ignored in delete mode)",
    )
    delete: bool = Field(default=False, description="Delete permanently instead of quarantine")
    dry_run: bool = Field(default=True, description="Compute and report only")
    temp_clean: bool = Field(default=True, description="Run the aging cleaner pass")
    temp_dirs: tuple[Path, ...] = ()
    temp_max_age_days: float = Field(default=7.0, ge=0)
    chunk_size: int = Field(default=65536, gt=0, description="SHA256 read chunk size")
    verify_before_action: bool = Field(
        default=True,
        description="Re-hash a redundant file right before acting on it",
    )

    @field_validator("roots", "excludes", "temp_dirs", mode="before")
    @classmethod
    def _absolute_paths(cls, value: Any) -> tuple[Path, ...]:
        if isinstance(value, (str, os.PathLike)):
            value = [value]
        return tuple(_absolute(p) for p in value)

    @field_validator("quarantine_root", mode="before")
    @classmethod
    def _absolute_quarantine(cls, value: Any) -> Optional[Path]:
        if value is None or value == "":
            return None
        return _absolute(value)

    @field_validator("keep_policy", mode="before")
    @classmethod
    def _parse_policy(cls, value: Any) -> KeepPolicy:
        return KeepPolicy.parse(value)

    @model_validator(mode="after")
    def _quarantine_required(self) -> "RunConfig":
        if not self.delete and self.quarantine_root is None:
            raise ValueError("quarantine_root is required unless delete is set")
        return self

    @property
    def quarantine_enabled(self) -> bool:
        return not self.delete

    @property
    def effective_excludes(self) -> tuple[Path, ...]:
        """Excludes plus the quarantine root, so quarantined copies are never rescanned."""
        if self.quarantine_enabled and self.quarantine_root not in self.excludes:
            return self.excludes + (self.quarantine_root,)
        return self.excludes


class FileRecord(BaseModel):
    """Regular file found by the scanner. Digest is filled by the hasher."""

    model_config = ConfigDict(frozen=True)

    path: Path
    size: int
    mtime: float
    digest: Optional[str] = None
    seq: int = 0  # discovery index


class DuplicateGroup(BaseModel):
    """Files sharing the same SHA256 digest."""

    group_id: int
    digest: str
    files: list[FileRecord] = Field(default_factory=list)
    keeper: Optional[FileRecord] = None
    redundant: list[FileRecord] = Field(default_factory=list)

    @property
    def size(self) -> int:
        return self.files[0].size if self.files else 0

    @property
    def reclaimable_bytes(self) -> int:
        return self.size * max(len(self.files) - 1, 0)


class Action(BaseModel):
    """Decision taken (or that would be taken) for one redundant file."""

    kind: ActionKind
    source: Path
    destination: Optional[Path] = None
    outcome: ActionOutcome
    size: int = 0
    error: Optional[str] = None


class RestoreEntry(BaseModel):
    """Inverse of one applied quarantine move."""

    model_config = ConfigDict(frozen=True)

    destination: Path
    original: Path


class RunStats(BaseModel):
    """Counters for a run."""

    files_scanned: int = 0
    files_skipped: int = 0
    scan_errors: int = 0
    files_hashed: int = 0
    hash_errors: int = 0
    duplicate_groups: int = 0
    redundant_files: int = 0
    moved: int = 0
    deleted: int = 0
    would_act: int = 0
    action_errors: int = 0
    bytes_reclaimable: int = 0
    bytes_reclaimed: int = 0

    @property
    def errors(self) -> int:
        return self.scan_errors + self.hash_errors + self.action_errors


class RunSummary(BaseModel):
    """Final outcome of a dedup run."""

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    dry_run: bool = True
    delete: bool = False
    stats: RunStats = Field(default_factory=RunStats)
    groups: list[DuplicateGroup] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    quarantine_root: Optional[Path] = None
    ledger_path: Optional[Path] = None
    log_path: Optional[Path] = None
