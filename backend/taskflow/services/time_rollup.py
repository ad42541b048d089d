"""Time rollup calculation.

A task's rollup is the minutes logged on it directly plus the rollups of its
non-deleted children. Rollups are derived on every read and never stored.
"""

from dataclasses import dataclass
from typing import Mapping, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import HierarchyIntegrityError
from taskflow.models.task import Task
from taskflow.services.task_hierarchy import TaskHierarchyService
from taskflow.services.time_entry import TimeEntryService

logger = structlog.get_logger()


@dataclass(frozen=True)
class TaskTimeRollup:
    """Aggregated minutes for a task and its subtree."""

    task_id: UUID
    direct_minutes: int
    children_minutes: int

    @property
    def total_minutes(self) -> int:
        return self.direct_minutes + self.children_minutes


def fold_rollups(
    root_id: UUID,
    children_by_parent: Mapping[UUID, Sequence[UUID]],
    direct_minutes: Mapping[UUID, int],
    memo: dict[UUID, TaskTimeRollup] | None = None,
) -> dict[UUID, TaskTimeRollup]:
    """Post-order fold over the subtree at ``root_id`` using an explicit stack.

    Every node reached gets a rollup in the returned dict. Pass ``memo`` to
    share work across several roots whose subtrees overlap.
    """
    rollups = {} if memo is None else memo
    in_progress: set[UUID] = set()
    stack: list[tuple[UUID, bool]] = [(root_id, False)]

    while stack:
        node_id, expanded = stack.pop()
        children = children_by_parent.get(node_id, ())

        if expanded:
            rollups[node_id] = TaskTimeRollup(
                task_id=node_id,
                direct_minutes=direct_minutes.get(node_id, 0),
                children_minutes=sum(rollups[c].total_minutes for c in children),
            )
            in_progress.discard(node_id)
            continue

        if node_id in rollups:
            continue
        if node_id in in_progress:
            # a node can only be re-entered through a cycle
            raise HierarchyIntegrityError(root_id, len(in_progress))

        in_progress.add(node_id)
        stack.append((node_id, True))
        stack.extend((child_id, False) for child_id in children)

    return rollups


class TimeRollupService:
    """Service computing TaskTimeRollup values on read."""

    def __init__(
        self,
        db: AsyncSession,
        hierarchy: TaskHierarchyService | None = None,
        time_entries: TimeEntryService | None = None,
    ):
        self.db = db
        self.hierarchy = hierarchy or TaskHierarchyService(db)
        self.time_entries = time_entries or TimeEntryService(db)

    async def compute_rollup(self, task_id: UUID) -> TaskTimeRollup:
        """Rollup for one task. Raises NotFoundError for missing or deleted tasks."""
        descendants = await self.hierarchy.get_descendants(task_id)

        children_by_parent: dict[UUID, list[UUID]] = {}
        for node in descendants:
            children_by_parent.setdefault(node.parent_task_id, []).append(node.task_id)

        task_ids = [task_id, *(node.task_id for node in descendants)]
        direct = await self.time_entries.sum_minutes_by_task(task_ids)

        rollup = fold_rollups(task_id, children_by_parent, direct)[task_id]
        logger.debug(
            "task_rollup_computed",
            task_id=str(task_id),
            subtree_size=len(task_ids),
            total_minutes=rollup.total_minutes,
        )
        return rollup

    async def compute_rollups(self, task_ids: Sequence[UUID]) -> dict[UUID, TaskTimeRollup]:
        """Rollups for many tasks at once. Missing or deleted ids are omitted."""
        if not task_ids:
            return {}

        result = await self.db.execute(
            select(Task.id).where(Task.id.in_(task_ids), Task.deleted_at.is_(None))
        )
        roots = [row.id for row in result.all()]
        if not roots:
            return {}

        children_by_parent = await self.hierarchy.load_subtrees(roots)
        all_ids = set(roots)
        for child_ids in children_by_parent.values():
            all_ids.update(child_ids)
        direct = await self.time_entries.sum_minutes_by_task(list(all_ids))

        memo: dict[UUID, TaskTimeRollup] = {}
        for root_id in roots:
            fold_rollups(root_id, children_by_parent, direct, memo)
        return {root_id: memo[root_id] for root_id in roots}
