"""Task service: creation, lookup, filtered listing, update and soft delete."""

from dataclasses import dataclass
from datetime import date
from typing import Any, Sequence
from uuid import UUID

import structlog
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import ValidationError
from taskflow.models.task import (
    Task,
    TaskAssignment,
    TaskPriority,
    TaskStatus,
    TaskType,
    TimeEntry,
)
from taskflow.services.access_control import (
    check_task_access,
    check_task_owner,
    user_can_access_clause,
)
from taskflow.services.task_hierarchy import TaskHierarchyService

logger = structlog.get_logger()

SORT_FIELDS = ("name", "created_date", "due_date", "priority", "status", "logged_minutes")

UPDATABLE_FIELDS = {
    "name",
    "description",
    "status",
    "priority",
    "task_type",
    "progress",
    "due_date",
}

# Columns that can be changed but never cleared
REQUIRED_FIELDS = ("name", "status", "priority", "task_type", "progress")

MAX_TIMELINE_DAYS = 730

_PRIORITY_RANK = case(
    {p.value: rank for rank, p in enumerate(TaskPriority)},
    value=Task.priority,
    else_=len(TaskPriority),
)
_STATUS_RANK = case(
    {s.value: rank for rank, s in enumerate(TaskStatus)},
    value=Task.status,
    else_=len(TaskStatus),
)


@dataclass
class TimelineTask:
    """A task placed on the timeline between ``start_date`` and ``end_date``."""

    task: Task
    start_date: date
    end_date: date

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days


class TaskService:
    """Service for task CRUD scoped to the requesting user."""

    def __init__(self, db: AsyncSession, hierarchy: TaskHierarchyService | None = None):
        self.db = db
        self.hierarchy = hierarchy or TaskHierarchyService(db)

    async def create_task(
        self,
        user_id: UUID,
        name: str,
        description: str | None = None,
        parent_task_id: UUID | None = None,
        status: TaskStatus = TaskStatus.TODO,
        priority: TaskPriority = TaskPriority.MEDIUM,
        task_type: TaskType = TaskType.TASK,
        due_date: date | None = None,
    ) -> Task:
        """Create a task owned by ``user_id``, optionally under a parent."""
        if not name or not name.strip():
            raise ValidationError("Task name is required")

        if parent_task_id is not None:
            await check_task_access(self.db, parent_task_id, user_id)
            await self.hierarchy.validate_new_child_parent(parent_task_id)

        task = Task(
            name=name,
            description=description,
            parent_task_id=parent_task_id,
            status=TaskStatus(status).value,
            priority=TaskPriority(priority).value,
            task_type=TaskType(task_type).value,
            progress=0,
            due_date=due_date,
            created_by_id=user_id,
        )
        self.db.add(task)
        await self.db.flush()
        await self.db.refresh(task)

        logger.info(
            "task_created",
            task_id=str(task.id),
            user_id=str(user_id),
            parent_id=str(parent_task_id) if parent_task_id else None,
        )
        return task

    async def get_task(self, task_id: UUID, user_id: UUID) -> Task:
        """Load a task the user may access."""
        return await check_task_access(self.db, task_id, user_id)

    async def list_tasks(
        self,
        user_id: UUID,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        task_type: TaskType | None = None,
        assignee_id: UUID | None = None,
        due_date_from: date | None = None,
        due_date_to: date | None = None,
        search: str | None = None,
        sort_by: str | None = None,
        sort_order: str = "asc",
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[Sequence[Task], int]:
        """
        List non-deleted tasks the user created or is assigned to.

        Returns:
            (tasks on the requested page, total matching count)
        """
        if due_date_from and due_date_to and due_date_from > due_date_to:
            raise ValidationError("due_date_from must not be after due_date_to")

        conditions: list[Any] = [Task.deleted_at.is_(None), user_can_access_clause(user_id)]
        if assignee_id:
            conditions.append(
                Task.id.in_(
                    select(TaskAssignment.task_id).where(TaskAssignment.user_id == assignee_id)
                )
            )
        if status:
            conditions.append(Task.status == TaskStatus(status).value)
        if priority:
            conditions.append(Task.priority == TaskPriority(priority).value)
        if task_type:
            conditions.append(Task.task_type == TaskType(task_type).value)
        if due_date_from:
            conditions.append(Task.due_date >= due_date_from)
        if due_date_to:
            conditions.append(Task.due_date <= due_date_to)
        if search and search.strip():
            term = f"%{search.strip()}%"
            conditions.append(or_(Task.name.ilike(term), Task.description.ilike(term)))

        count_query = select(func.count()).select_from(Task).where(*conditions)
        total = (await self.db.execute(count_query)).scalar() or 0

        query = (
            select(Task)
            .where(*conditions)
            .order_by(*self._ordering(sort_by, sort_order), Task.id.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(query)
        return result.scalars().all(), total

    async def get_timeline(
        self,
        user_id: UUID,
        start_date: date,
        end_date: date,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        assignee_id: UUID | None = None,
    ) -> list[TimelineTask]:
        """
        Tasks due within ``[start_date, end_date]`` plus the parents of those tasks.

        Parents are included even when their own due date falls outside the
        range, so each bar can be drawn under its parent. A parent's span is
        stretched to cover the children returned with it. Ordered by due date,
        undated parents last.
        """
        if end_date <= start_date:
            raise ValidationError("end_date must be after start_date")
        if (end_date - start_date).days > MAX_TIMELINE_DAYS:
            raise ValidationError(f"Timeline range cannot exceed {MAX_TIMELINE_DAYS} days")

        conditions: list[Any] = [
            Task.deleted_at.is_(None),
            user_can_access_clause(user_id),
            Task.due_date.is_not(None),
            Task.due_date >= start_date,
            Task.due_date <= end_date,
        ]
        if assignee_id:
            conditions.append(
                Task.id.in_(
                    select(TaskAssignment.task_id).where(TaskAssignment.user_id == assignee_id)
                )
            )
        if status:
            conditions.append(Task.status == TaskStatus(status).value)
        if priority:
            conditions.append(Task.priority == TaskPriority(priority).value)

        result = await self.db.scalars(
            select(Task).where(*conditions).order_by(Task.due_date, Task.id)
        )
        matching = list(result.all())

        matched_ids = {t.id for t in matching}
        parent_ids = {
            t.parent_task_id
            for t in matching
            if t.parent_task_id is not None and t.parent_task_id not in matched_ids
        }
        parents: list[Task] = []
        if parent_ids:
            result = await self.db.scalars(
                select(Task)
                .where(Task.id.in_(parent_ids), Task.deleted_at.is_(None))
                .order_by(Task.id)
            )
            parents = list(result.all())

        spans = {t.id: _own_span(t) for t in matching + parents}
        for task in matching:
            if task.parent_task_id not in spans:
                continue
            child_start, child_end = _own_span(task)
            start, end = spans[task.parent_task_id]
            spans[task.parent_task_id] = (
                min(start, child_start),
                child_end if end is None else max(end, child_end),
            )

        timeline = []
        for task in matching + parents:
            start, end = spans[task.id]
            timeline.append(TimelineTask(task=task, start_date=start, end_date=end or start))
        timeline.sort(key=lambda item: item.task.due_date or date.max)

        logger.debug(
            "timeline_loaded",
            user_id=str(user_id),
            matching=len(matching),
            parents=len(parents),
        )
        return timeline

    async def update_task(self, task_id: UUID, user_id: UUID, changes: dict[str, Any]) -> Task:
        """Apply a partial update. Only keys in UPDATABLE_FIELDS are accepted."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        cleared = [f for f in REQUIRED_FIELDS if f in changes and changes[f] is None]
        if cleared:
            raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")
        if "name" in changes and not changes["name"].strip():
            raise ValidationError("Task name is required")
        progress = changes.get("progress")
        if progress is not None and not 0 <= progress <= 100:
            raise ValidationError("Progress must be between 0 and 100")

        task = await check_task_access(self.db, task_id, user_id)

        for field, value in changes.items():
            if field == "status":
                value = TaskStatus(value).value
            elif field == "priority":
                value = TaskPriority(value).value
            elif field == "task_type":
                value = TaskType(value).value
            setattr(task, field, value)
        task.touch()

        await self.db.flush()
        await self.db.refresh(task)

        logger.info("task_updated", task_id=str(task_id), fields=sorted(changes))
        return task

    async def delete_task(self, task_id: UUID, user_id: UUID) -> None:
        """Soft delete. Children keep their parent pointer and drop out of traversals."""
        task = await check_task_owner(self.db, task_id, user_id)
        task.soft_delete(task.touch())
        await self.db.flush()

        logger.info("task_deleted", task_id=str(task_id), user_id=str(user_id))

    @staticmethod
    def _ordering(sort_by: str | None, sort_order: str) -> list[Any]:
        descending = sort_order.lower() == "desc"

        if sort_by is None:
            return [Task.created_at.desc()]
        if sort_by not in SORT_FIELDS:
            raise ValidationError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")

        if sort_by == "due_date":
            # undated tasks sort first ascending, last descending
            has_due = Task.due_date.is_not(None)
            if descending:
                return [has_due.desc(), Task.due_date.desc()]
            return [has_due.asc(), Task.due_date.asc()]

        column: Any
        if sort_by == "name":
            column = Task.name
        elif sort_by == "created_date":
            column = Task.created_at
        elif sort_by == "priority":
            column = _PRIORITY_RANK
        elif sort_by == "status":
            column = _STATUS_RANK
        else:
            column = (
                select(func.coalesce(func.sum(TimeEntry.minutes), 0))
                .where(TimeEntry.task_id == Task.id)
                .scalar_subquery()
            )
        return [column.desc() if descending else column.asc()]


def _own_span(task: Task) -> tuple[date, date | None]:
    """Creation date to due date, with the start clamped so it never follows the end."""
    start = task.created_at.date()
    if task.due_date is not None and start > task.due_date:
        start = task.due_date
    return start, task.due_date
