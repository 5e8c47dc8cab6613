"""
Dedup engine.

Modules:
- scanner: Candidate file enumeration (exclusions, min size, no symlinks)
- hasher: Bounded SHA256 worker pool
- group_index: Digest -> duplicate groups
- keeper_policy: oldest / newest / largest keeper selection
- executor: Quarantine-move or delete of redundant files (dry-run aware)
- restore_ledger: Append-only inverse script for quarantine moves
- run_log: Plain-text audit log
- pipeline: End-to-end orchestration
- models: Pydantic data models
"""

from sweeper.src.dedup.models import (
    Action,
    ActionKind,
    ActionOutcome,
    DuplicateGroup,
    FileRecord,
    KeepPolicy,
    RestoreEntry,
    RunConfig,
    RunStats,
    RunSummary,
)

__all__ = [
    "Action",
    "ActionKind",
    "ActionOutcome",
    "DuplicateGroup",
    "FileRecord",
    "KeepPolicy",
    "RestoreEntry",
    "RunConfig",
    "RunStats",
    "RunSummary",
]
