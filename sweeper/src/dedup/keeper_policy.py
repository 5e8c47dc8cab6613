"""
Keeper selection for duplicate groups.

Policies:
- oldest: earliest modification time
- newest: latest modification time
- largest: biggest size (only differs from the others if a file grew
  between scan and hash; members normally share one size)

Ties always go to the lexically smallest path, so re-runs on an unchanged
tree pick the same keeper.
"""

from __future__ import annotations

from typing import Any, Callable

import structlog

from sweeper.src.dedup.models import DuplicateGroup, FileRecord, KeepPolicy

logger = structlog.get_logger(__name__)


def _sort_key(policy: KeepPolicy) -> Callable[[FileRecord], tuple[Any, ...]]:
    if policy is KeepPolicy.newest:
        return lambda r: (-r.mtime, str(r.path))
    if policy is KeepPolicy.largest:
        return lambda r: (-r.size, str(r.path))
    return lambda r: (r.mtime, str(r.path))


class KeeperSelector:
    """Select 1 file to keep per group; the rest become redundant."""

    def __init__(self, policy: Any = KeepPolicy.oldest):
        self.policy = KeepPolicy.parse(policy)
        self._key = _sort_key(self.policy)

    def select_keeper(self, group: DuplicateGroup) -> DuplicateGroup:
        """
        Set keeper and redundant on the group.

        Redundant members keep the group's member order.

        Returns:
            The same (updated) DuplicateGroup
        """
        if not group.files:
            return group

        keeper = min(group.files, key=self._key)
        group.keeper = keeper
        group.redundant = [f for f in group.files if f.path != keeper.path]

        logger.debug(
            "keeper_selected",
            group_id=group.group_id,
            policy=self.policy.value,
            keeper=str(keeper.path),
            redundant=len(group.redundant),
        )
        return group

    def select_all(self, groups: list[DuplicateGroup]) -> list[DuplicateGroup]:
        return [self.select_keeper(group) for group in groups]
