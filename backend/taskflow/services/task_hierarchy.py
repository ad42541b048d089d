"""Task hierarchy service: parent/child maintenance and tree queries.

Parent pointers are single-valued, so the tree can only be corrupted by a
cycle. ``set_parent`` refuses any re-parenting that would close one, and
every upward walk is bounded so a cycle introduced elsewhere surfaces as
``HierarchyIntegrityError`` instead of a hang.

Known limitation: the cycle check and the write run in the caller's session
without row locks, so two concurrent ``set_parent`` calls can still race into
a cycle.
"""

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import Settings, get_settings
from taskflow.exceptions import (
    CycleError,
    HierarchyIntegrityError,
    NotFoundError,
    ValidationError,
)
from taskflow.models.task import Task

logger = structlog.get_logger()

PATH_SEPARATOR = " / "


@dataclass
class HierarchyNode:
    """A task positioned relative to the task a tree query started from."""

    task_id: UUID
    name: str
    parent_task_id: UUID | None
    depth: int
    has_children: bool
    path: str


class TaskHierarchyService:
    """Service for maintaining and querying the task tree."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    # =========================================================================
    # Mutations
    # =========================================================================

    async def set_parent(self, task_id: UUID, new_parent_id: UUID) -> Task:
        """Move a task under a new parent."""
        if new_parent_id == task_id:
            raise ValidationError("A task cannot be its own parent")

        task = await self._require(task_id)
        parent = await self._require(new_parent_id)

        chain = await self._walk_up(parent, stop_at=task_id)
        if chain and chain[-1].id == task_id:
            logger.warning(
                "task_parent_cycle_rejected",
                task_id=str(task_id),
                parent_id=str(new_parent_id),
            )
            raise CycleError(task_id, new_parent_id)

        self._ensure_depth_allows_child(parent, chain)

        task.parent_task_id = parent.id
        task.touch()
        await self.db.flush()

        logger.info(
            "task_parent_set",
            task_id=str(task_id),
            parent_id=str(new_parent_id),
            parent_depth=len(chain),
        )
        return task

    async def remove_parent(self, task_id: UUID) -> Task:
        """Detach a task from its parent, making it a root."""
        task = await self._require(task_id)
        old_parent_id = task.parent_task_id

        task.parent_task_id = None
        task.touch()
        await self.db.flush()

        logger.info(
            "task_parent_removed",
            task_id=str(task_id),
            old_parent_id=str(old_parent_id) if old_parent_id else None,
        )
        return task

    async def validate_new_child_parent(self, parent_id: UUID) -> Task:
        """Check that a brand-new task may be created under ``parent_id``."""
        parent = await self._require(parent_id)
        chain = await self._walk_up(parent)
        self._ensure_depth_allows_child(parent, chain)
        return parent

    # =========================================================================
    # Queries
    # =========================================================================

    async def get_children(self, task_id: UUID) -> Sequence[Task]:
        """Direct, non-deleted children ordered by creation."""
        await self._require(task_id)
        result = await self.db.execute(
            select(Task)
            .where(Task.parent_task_id == task_id, Task.deleted_at.is_(None))
            .order_by(Task.created_at.asc(), Task.id.asc())
        )
        return result.scalars().all()

    async def get_ancestors(self, task_id: UUID) -> list[HierarchyNode]:
        """Ancestors from the immediate parent (depth 1) up to the root."""
        task = await self._require(task_id)
        chain = await self._walk_up(task)

        nodes = []
        for index, ancestor in enumerate(chain):
            # chain is nearest-first, paths read root-first
            path = PATH_SEPARATOR.join(a.name for a in reversed(chain[index:]))
            nodes.append(
                HierarchyNode(
                    task_id=ancestor.id,
                    name=ancestor.name,
                    parent_task_id=ancestor.parent_task_id,
                    depth=index + 1,
                    has_children=True,
                    path=path,
                )
            )
        return nodes

    async def get_descendants(self, task_id: UUID) -> list[HierarchyNode]:
        """Full non-deleted subtree, breadth-first, one query per level.

        Ordered by depth, then name, then id.
        """
        task = await self._require(task_id)

        nodes: list[HierarchyNode] = []
        paths = {task.id: task.name}
        parents: set[UUID] = set()
        frontier = [task.id]
        depth = 0

        while frontier:
            depth += 1
            result = await self.db.execute(
                select(Task.id, Task.name, Task.parent_task_id)
                .where(Task.parent_task_id.in_(frontier), Task.deleted_at.is_(None))
                .order_by(Task.name.asc(), Task.id.asc())
            )
            next_frontier = []
            for row in result.all():
                if row.id in paths:
                    raise HierarchyIntegrityError(task_id, len(paths))
                parents.add(row.parent_task_id)
                paths[row.id] = f"{paths[row.parent_task_id]}{PATH_SEPARATOR}{row.name}"
                nodes.append(
                    HierarchyNode(
                        task_id=row.id,
                        name=row.name,
                        parent_task_id=row.parent_task_id,
                        depth=depth,
                        has_children=False,
                        path=paths[row.id],
                    )
                )
                next_frontier.append(row.id)
            frontier = next_frontier

        for node in nodes:
            node.has_children = node.task_id in parents
        return nodes

    async def ids_with_children(self, task_ids: Sequence[UUID]) -> set[UUID]:
        """Subset of ``task_ids`` that have at least one non-deleted child."""
        if not task_ids:
            return set()
        result = await self.db.execute(
            select(Task.parent_task_id)
            .where(Task.parent_task_id.in_(task_ids), Task.deleted_at.is_(None))
            .distinct()
        )
        return set(result.scalars().all())

    async def load_subtrees(self, root_ids: Sequence[UUID]) -> dict[UUID, list[UUID]]:
        """Map each parent id to its non-deleted child ids for every node under ``root_ids``.

        Roots may overlap (one root inside another's subtree); the edge into
        an already-visited root is kept but the root is not expanded twice.
        """
        children: dict[UUID, list[UUID]] = {}
        seen = set(root_ids)
        frontier = list(root_ids)

        while frontier:
            result = await self.db.execute(
                select(Task.id, Task.parent_task_id)
                .where(Task.parent_task_id.in_(frontier), Task.deleted_at.is_(None))
                .order_by(Task.created_at.asc(), Task.id.asc())
            )
            next_frontier = []
            for row in result.all():
                children.setdefault(row.parent_task_id, []).append(row.id)
                if row.id not in seen:
                    seen.add(row.id)
                    next_frontier.append(row.id)
            frontier = next_frontier

        return children

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_active(self, task_id: UUID) -> Task | None:
        result = await self.db.execute(
            select(Task).where(Task.id == task_id, Task.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def _require(self, task_id: UUID) -> Task:
        task = await self._get_active(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)
        return task

    async def _walk_up(self, start: Task, stop_at: UUID | None = None) -> list[Task]:
        """Ancestors of ``start``, nearest first.

        Stops at a root, at a soft-deleted parent, or after appending
        ``stop_at``. Raises HierarchyIntegrityError on a repeated id or when
        the walk exceeds ``hierarchy_traversal_limit`` steps.
        """
        chain: list[Task] = []
        seen = {start.id}
        parent_id = start.parent_task_id
        limit = self.settings.hierarchy_traversal_limit

        while parent_id is not None:
            if parent_id in seen or len(chain) >= limit:
                logger.error(
                    "task_hierarchy_corrupt",
                    task_id=str(start.id),
                    steps=len(chain),
                    repeated_id=str(parent_id),
                )
                raise HierarchyIntegrityError(start.id, len(chain))

            parent = await self._get_active(parent_id)
            if parent is None:
                break

            chain.append(parent)
            seen.add(parent.id)
            if parent.id == stop_at:
                break
            parent_id = parent.parent_task_id

        return chain

    def _ensure_depth_allows_child(self, parent: Task, parent_chain: list[Task]) -> None:
        max_depth = self.settings.hierarchy_max_depth
        if len(parent_chain) >= max_depth:
            raise ValidationError(
                f"Cannot nest under task {parent.id}: "
                f"maximum hierarchy depth of {max_depth} reached",
                code="HIERARCHY_TOO_DEEP",
            )
