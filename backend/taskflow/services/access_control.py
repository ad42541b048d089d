"""Task access control.

A user may read or modify a task when they created it or are assigned to it.
Deletion is restricted to the creator.
"""

from uuid import UUID

import structlog
from sqlalchemy import ColumnElement, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import ForbiddenError, NotFoundError
from taskflow.models.task import Task, TaskAssignment
from taskflow.services.task_assignment import TaskAssignmentService

logger = structlog.get_logger()


def user_can_access_clause(user_id: UUID) -> ColumnElement[bool]:
    """SQL condition selecting tasks the user created or is assigned to."""
    return or_(
        Task.created_by_id == user_id,
        exists().where(
            TaskAssignment.task_id == Task.id,
            TaskAssignment.user_id == user_id,
        ),
    )


async def get_active_task(db: AsyncSession, task_id: UUID) -> Task:
    """Load a non-deleted task or raise NotFoundError."""
    result = await db.execute(
        select(Task).where(Task.id == task_id, Task.deleted_at.is_(None))
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


async def check_task_access(db: AsyncSession, task_id: UUID, user_id: UUID) -> Task:
    """
    Ensure a task exists and the user may access it.

    Returns:
        The loaded Task

    Raises:
        NotFoundError if the task is missing or soft-deleted
        ForbiddenError if the user is neither creator nor assignee
    """
    task = await get_active_task(db, task_id)
    if task.created_by_id == user_id:
        return task

    if not await TaskAssignmentService(db).is_user_assigned(task_id, user_id):
        logger.warning("task_access_denied", task_id=str(task_id), user_id=str(user_id))
        raise ForbiddenError()
    return task


async def check_task_owner(db: AsyncSession, task_id: UUID, user_id: UUID) -> Task:
    """Ensure the user created the task (required for deletion)."""
    task = await get_active_task(db, task_id)
    if task.created_by_id != user_id:
        logger.warning("task_owner_check_failed", task_id=str(task_id), user_id=str(user_id))
        raise ForbiddenError("Only the task creator can perform this action")
    return task
