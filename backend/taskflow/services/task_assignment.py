"""Task assignees. A task has one creator and any number of assignees."""

from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import ConflictError, NotFoundError
from taskflow.models.task import Task, TaskAssignment
from taskflow.models.user import User

logger = structlog.get_logger()


class TaskAssignmentService:
    """Adds, lists and removes assignees on a task.

    Callers check that the acting user may modify the task; this service
    only checks that the task and the assignee exist.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def assign_user(
        self,
        task_id: UUID,
        user_id: UUID,
        assigned_by_id: UUID | None = None,
    ) -> TaskAssignment:
        """Assign ``user_id`` to the task.

        Assigning someone who is already assigned returns the existing row
        unchanged. Two concurrent first-time assignments race on the unique
        constraint and the loser gets ConflictError.
        """
        task_alive = await self.db.scalar(
            select(exists().where(Task.id == task_id, Task.deleted_at.is_(None)))
        )
        if not task_alive:
            raise NotFoundError("Task", task_id)

        assignee = await self.db.get(User, user_id)
        if assignee is None or not assignee.is_active:
            raise NotFoundError("User", user_id)

        current = await self.get_assignment(task_id, user_id)
        if current is not None:
            logger.info("assignment_unchanged", task_id=str(task_id), user_id=str(user_id))
            return current

        assignment = TaskAssignment(
            task_id=task_id,
            user_id=user_id,
            assigned_by_id=assigned_by_id,
        )
        self.db.add(assignment)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            raise ConflictError(f"User {user_id} is already assigned to task {task_id}") from exc
        # assigned_at is a server default
        await self.db.refresh(assignment)

        logger.info(
            "task_assigned",
            task_id=str(task_id),
            user_id=str(user_id),
            assigned_by=str(assigned_by_id) if assigned_by_id else None,
        )
        return assignment

    async def get_assignment(self, task_id: UUID, user_id: UUID) -> TaskAssignment | None:
        return await self.db.scalar(
            select(TaskAssignment).where(
                TaskAssignment.task_id == task_id,
                TaskAssignment.user_id == user_id,
            )
        )

    async def get_task_assignments(self, task_id: UUID) -> Sequence[TaskAssignment]:
        """Assignees of a task in the order they were added."""
        result = await self.db.scalars(
            select(TaskAssignment)
            .where(TaskAssignment.task_id == task_id)
            .order_by(TaskAssignment.assigned_at, TaskAssignment.id)
        )
        return result.all()

    async def remove_assignment(self, task_id: UUID, user_id: UUID) -> None:
        result = await self.db.execute(
            delete(TaskAssignment).where(
                TaskAssignment.task_id == task_id,
                TaskAssignment.user_id == user_id,
            )
        )
        if result.rowcount == 0:
            raise NotFoundError("Assignment", user_id)

        logger.info("task_unassigned", task_id=str(task_id), user_id=str(user_id))

    async def is_user_assigned(self, task_id: UUID, user_id: UUID) -> bool:
        return bool(
            await self.db.scalar(
                select(
                    exists().where(
                        TaskAssignment.task_id == task_id,
                        TaskAssignment.user_id == user_id,
                    )
                )
            )
        )
