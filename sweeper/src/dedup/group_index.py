"""
Digest -> records index. Owned by one run, discarded afterwards.
"""

from __future__ import annotations

import structlog

from sweeper.src.dedup.models import DuplicateGroup, FileRecord

logger = structlog.get_logger(__name__)


class GroupIndex:
    """
    Accumulate hashed FileRecords and emit duplicate groups.

    Output does not depend on arrival order: members are ordered by
    discovery index (then path) and groups by their first member.
    """

    def __init__(self):
        self._by_digest: dict[str, list[FileRecord]] = {}

    def add(self, record: FileRecord) -> None:
        if record.digest is None:
            raise ValueError(f"record has no digest: {record.path}")
        self._by_digest.setdefault(record.digest, []).append(record)

    __call__ = add  # usable directly as the hasher sink

    def __len__(self) -> int:
        return sum(len(records) for records in self._by_digest.values())

    def groups(self) -> list[DuplicateGroup]:
        """Only digests shared by 2+ records form a group."""
        candidates = []
        for digest, records in self._by_digest.items():
            if len(records) < 2:
                continue
            members = sorted(records, key=lambda r: (r.seq, str(r.path)))
            candidates.append((digest, members))

        candidates.sort(key=lambda item: (item[1][0].seq, str(item[1][0].path)))

        groups = [
            DuplicateGroup(group_id=group_id, digest=digest, files=members)
            for group_id, (digest, members) in enumerate(candidates, start=1)
        ]

        logger.debug("groups_built", digests=len(self._by_digest), groups=len(groups))
        return groups
