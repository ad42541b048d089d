"""Tasks API endpoints: CRUD, timeline, hierarchy, rollups, assignments and time entries."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.api.v1.auth import CurrentUser
from taskflow.api.v1.time_entries import TimeEntryCreate, TimeEntryResponse, entry_to_response
from taskflow.db.session import DBSession
from taskflow.models.task import (
    Task,
    TaskAssignment,
    TaskPriority,
    TaskStatus,
    TaskType,
)
from taskflow.services.access_control import check_task_access
from taskflow.services.task import TaskService, TimelineTask
from taskflow.services.task_assignment import TaskAssignmentService
from taskflow.services.task_hierarchy import HierarchyNode, TaskHierarchyService
from taskflow.services.time_entry import TimeEntryService
from taskflow.services.time_rollup import TaskTimeRollup, TimeRollupService
from taskflow.utils.time import format_duration_short

router = APIRouter()
logger = structlog.get_logger()


# Request/Response Models
class TaskCreate(BaseModel):
    """Create a new task."""

    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    parent_task_id: UUID | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    task_type: TaskType = TaskType.TASK
    due_date: date | None = None


class TaskUpdate(BaseModel):
    """Partial task update. Parent changes go through PUT /tasks/{id}/parent."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    task_type: TaskType | None = None
    progress: int | None = Field(None, ge=0, le=100)
    due_date: date | None = None


class ParentUpdate(BaseModel):
    """Move a task under a new parent."""

    parent_task_id: UUID


class AssignUserRequest(BaseModel):
    """Assign a user to a task."""

    user_id: UUID


class TaskAssignmentResponse(BaseModel):
    """Task assignment response."""

    id: UUID
    task_id: UUID
    user_id: UUID
    assigned_by_id: UUID | None
    assigned_at: datetime
    user_name: str | None = None
    user_email: str | None = None


class TaskResponse(BaseModel):
    """Task response model with time rollup."""

    id: UUID
    name: str
    description: str | None
    parent_task_id: UUID | None
    has_children: bool
    status: str
    priority: str
    task_type: str
    progress: int
    due_date: date | None
    is_deleted: bool
    created_by_id: UUID
    created_by_name: str | None = None
    created_at: datetime
    updated_at: datetime
    assignees: list[TaskAssignmentResponse] = Field(default_factory=list)
    # Time tracking with rollup
    direct_logged_minutes: int = 0
    children_logged_minutes: int = 0
    total_logged_minutes: int = 0
    direct_logged_time: str = "0m"
    children_logged_time: str = "0m"
    total_logged_time: str = "0m"


class TaskListResponse(BaseModel):
    """Paginated task list response."""

    items: list[TaskResponse]
    total: int
    page: int
    page_size: int
    pages: int


class TimelineAssignee(BaseModel):
    """Assignee shown on a timeline bar."""

    user_id: UUID
    user_name: str


class TimelineTaskResponse(BaseModel):
    """Task positioned on the timeline."""

    id: UUID
    name: str
    start_date: date
    end_date: date
    duration_days: int
    status: str
    priority: str
    task_type: str
    progress: int
    parent_task_id: UUID | None
    assignees: list[TimelineAssignee] = Field(default_factory=list)


class HierarchyNodeResponse(BaseModel):
    """Ancestor or descendant entry."""

    task_id: UUID
    name: str
    parent_task_id: UUID | None
    depth: int
    has_children: bool
    path: str


class TaskTimeRollupResponse(BaseModel):
    """Minutes logged on a task and its subtree."""

    task_id: UUID
    direct_minutes: int
    children_minutes: int
    total_minutes: int
    total_time: str


def _assignment_to_response(assignment: TaskAssignment) -> dict:
    """Convert assignment model to response dict with user info."""
    data = {
        "id": assignment.id,
        "task_id": assignment.task_id,
        "user_id": assignment.user_id,
        "assigned_by_id": assignment.assigned_by_id,
        "assigned_at": assignment.assigned_at,
        "user_name": None,
        "user_email": None,
    }
    if assignment.user:
        data["user_name"] = assignment.user.display_name or assignment.user.email
        data["user_email"] = assignment.user.email
    return data


def _task_to_response(
    task: Task,
    rollup: TaskTimeRollup | None,
    has_children: bool,
) -> dict:
    """Convert task model to response dict with assignees and rollup."""
    direct = rollup.direct_minutes if rollup else 0
    children = rollup.children_minutes if rollup else 0
    return {
        "id": task.id,
        "name": task.name,
        "description": task.description,
        "parent_task_id": task.parent_task_id,
        "has_children": has_children,
        "status": task.status,
        "priority": task.priority,
        "task_type": task.task_type,
        "progress": task.progress,
        "due_date": task.due_date,
        "is_deleted": task.is_deleted,
        "created_by_id": task.created_by_id,
        "created_by_name": task.created_by.display_name if task.created_by else None,
        "created_at": task.created_at,
        "updated_at": task.updated_at,
        "assignees": [_assignment_to_response(a) for a in task.assignments],
        "direct_logged_minutes": direct,
        "children_logged_minutes": children,
        "total_logged_minutes": direct + children,
        "direct_logged_time": format_duration_short(direct),
        "children_logged_time": format_duration_short(children),
        "total_logged_time": format_duration_short(direct + children),
    }


async def _tasks_to_response(db: AsyncSession, tasks: list[Task]) -> list[dict]:
    """Batch rollups and child flags for a page of tasks."""
    task_ids = [t.id for t in tasks]
    rollups = await TimeRollupService(db).compute_rollups(task_ids)
    parents = await TaskHierarchyService(db).ids_with_children(task_ids)
    return [_task_to_response(t, rollups.get(t.id), t.id in parents) for t in tasks]


def _timeline_to_response(item: TimelineTask) -> dict:
    task = item.task
    return {
        "id": task.id,
        "name": task.name,
        "start_date": item.start_date,
        "end_date": item.end_date,
        "duration_days": item.duration_days,
        "status": task.status,
        "priority": task.priority,
        "task_type": task.task_type,
        "progress": task.progress,
        "parent_task_id": task.parent_task_id,
        "assignees": [
            {
                "user_id": a.user_id,
                "user_name": a.user.display_name or a.user.email,
            }
            for a in task.assignments
            if a.user
        ],
    }


def _node_to_response(node: HierarchyNode) -> dict:
    return {
        "task_id": node.task_id,
        "name": node.name,
        "parent_task_id": node.parent_task_id,
        "depth": node.depth,
        "has_children": node.has_children,
        "path": node.path,
    }


# =========================================================================
# Task CRUD
# =========================================================================


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> dict:
    """Create a new task, optionally under a parent."""
    task = await TaskService(db).create_task(
        user_id=current_user.id,
        name=task_data.name,
        description=task_data.description,
        parent_task_id=task_data.parent_task_id,
        status=task_data.status,
        priority=task_data.priority,
        task_type=task_data.task_type,
        due_date=task_data.due_date,
    )
    return _task_to_response(task, None, False)


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    current_user: CurrentUser,
    db: DBSession,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    status_filter: TaskStatus | None = Query(None, alias="status"),
    priority: TaskPriority | None = None,
    task_type: TaskType | None = Query(None, alias="type"),
    assignee_id: UUID | None = None,
    due_date_from: date | None = None,
    due_date_to: date | None = None,
    search: str | None = Query(None, max_length=200),
    sort_by: str | None = Query(
        None,
        pattern="^(name|created_date|due_date|priority|status|logged_minutes)$",
    ),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
) -> dict:
    """List the caller's tasks with filtering, sorting and pagination."""
    tasks, total = await TaskService(db).list_tasks(
        user_id=current_user.id,
        status=status_filter,
        priority=priority,
        task_type=task_type,
        assignee_id=assignee_id,
        due_date_from=due_date_from,
        due_date_to=due_date_to,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )

    return {
        "items": await _tasks_to_response(db, list(tasks)),
        "total": total,
        "page": page,
        "page_size": page_size,
        "pages": (total + page_size - 1) // page_size,
    }


@router.get("/timeline", response_model=list[TimelineTaskResponse])
async def get_timeline(
    current_user: CurrentUser,
    db: DBSession,
    start_date: date = Query(...),
    end_date: date = Query(...),
    status_filter: TaskStatus | None = Query(None, alias="status"),
    priority: TaskPriority | None = None,
    assignee_id: UUID | None = None,
) -> list[dict]:
    """Tasks due in a date range, with their parents, for a Gantt view."""
    items = await TaskService(db).get_timeline(
        user_id=current_user.id,
        start_date=start_date,
        end_date=end_date,
        status=status_filter,
        priority=priority,
        assignee_id=assignee_id,
    )
    return [_timeline_to_response(i) for i in items]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> dict:
    """Get a task with its time rollup."""
    task = await TaskService(db).get_task(task_id, current_user.id)
    return (await _tasks_to_response(db, [task]))[0]


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: UUID,
    updates: TaskUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> dict:
    """Update a task."""
    changes: dict[str, Any] = updates.model_dump(exclude_unset=True)
    task = await TaskService(db).update_task(task_id, current_user.id, changes)
    return (await _tasks_to_response(db, [task]))[0]


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    """Soft delete a task. Creator only."""
    await TaskService(db).delete_task(task_id, current_user.id)


# =========================================================================
# Hierarchy
# =========================================================================


@router.get("/{task_id}/children", response_model=list[TaskResponse])
async def get_children(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> list[dict]:
    """Direct children of a task."""
    await check_task_access(db, task_id, current_user.id)
    children = await TaskHierarchyService(db).get_children(task_id)
    return await _tasks_to_response(db, list(children))


@router.get("/{task_id}/ancestors", response_model=list[HierarchyNodeResponse])
async def get_ancestors(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> list[dict]:
    """Ancestors from the immediate parent up to the root."""
    await check_task_access(db, task_id, current_user.id)
    nodes = await TaskHierarchyService(db).get_ancestors(task_id)
    return [_node_to_response(n) for n in nodes]


@router.get("/{task_id}/descendants", response_model=list[HierarchyNodeResponse])
async def get_descendants(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> list[dict]:
    """Full subtree below a task, breadth-first."""
    await check_task_access(db, task_id, current_user.id)
    nodes = await TaskHierarchyService(db).get_descendants(task_id)
    return [_node_to_response(n) for n in nodes]


@router.put("/{task_id}/parent", response_model=TaskResponse)
async def set_parent(
    task_id: UUID,
    body: ParentUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> dict:
    """Move a task under a new parent."""
    await check_task_access(db, task_id, current_user.id)
    await check_task_access(db, body.parent_task_id, current_user.id)
    task = await TaskHierarchyService(db).set_parent(task_id, body.parent_task_id)
    return (await _tasks_to_response(db, [task]))[0]


@router.delete("/{task_id}/parent", response_model=TaskResponse)
async def remove_parent(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> dict:
    """Detach a task from its parent."""
    await check_task_access(db, task_id, current_user.id)
    task = await TaskHierarchyService(db).remove_parent(task_id)
    return (await _tasks_to_response(db, [task]))[0]


@router.get("/{task_id}/rollup", response_model=TaskTimeRollupResponse)
async def get_rollup(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> dict:
    """Minutes logged on a task plus everything below it."""
    await check_task_access(db, task_id, current_user.id)
    rollup = await TimeRollupService(db).compute_rollup(task_id)
    return {
        "task_id": rollup.task_id,
        "direct_minutes": rollup.direct_minutes,
        "children_minutes": rollup.children_minutes,
        "total_minutes": rollup.total_minutes,
        "total_time": format_duration_short(rollup.total_minutes),
    }


# =========================================================================
# Assignments
# =========================================================================


@router.post(
    "/{task_id}/assignments",
    response_model=TaskAssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_user_to_task(
    task_id: UUID,
    body: AssignUserRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> dict:
    """Assign a user to a task."""
    await check_task_access(db, task_id, current_user.id)
    assignment = await TaskAssignmentService(db).assign_user(
        task_id=task_id,
        user_id=body.user_id,
        assigned_by_id=current_user.id,
    )
    return _assignment_to_response(assignment)


@router.get("/{task_id}/assignments", response_model=list[TaskAssignmentResponse])
async def list_task_assignments(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> list[dict]:
    """List all assignments for a task."""
    await check_task_access(db, task_id, current_user.id)
    assignments = await TaskAssignmentService(db).get_task_assignments(task_id)
    return [_assignment_to_response(a) for a in assignments]


@router.delete(
    "/{task_id}/assignments/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_task_assignment(
    task_id: UUID,
    user_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    """Remove a user's assignment from a task."""
    await check_task_access(db, task_id, current_user.id)
    await TaskAssignmentService(db).remove_assignment(task_id, user_id)


# =========================================================================
# Time entries
# =========================================================================


@router.post(
    "/{task_id}/time-entries",
    response_model=TimeEntryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def log_time(
    task_id: UUID,
    body: TimeEntryCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> dict:
    """Log minutes against a task."""
    await check_task_access(db, task_id, current_user.id)
    entry = await TimeEntryService(db).log_time(
        task_id=task_id,
        user_id=current_user.id,
        minutes=body.minutes,
        entry_type=body.entry_type,
        note=body.note,
        entry_date=body.entry_date,
    )
    return entry_to_response(entry)


@router.get("/{task_id}/time-entries", response_model=list[TimeEntryResponse])
async def list_time_entries(
    task_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> list[dict]:
    """Time entries logged against a task, newest first."""
    await check_task_access(db, task_id, current_user.id)
    entries = await TimeEntryService(db).get_task_entries(task_id)
    return [entry_to_response(e) for e in entries]
