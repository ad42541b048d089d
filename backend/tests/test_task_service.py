"""Tests for TaskService, TaskAssignmentService and access control."""

from datetime import date, datetime, timedelta, timezone

import pytest

from taskflow.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskflow.models.task import TaskPriority, TaskStatus, TaskType, TimeEntry
from taskflow.services.access_control import check_task_access, check_task_owner
from taskflow.services.task import TaskService
from taskflow.services.task_assignment import TaskAssignmentService


@pytest.fixture
def tasks(db):
    return TaskService(db)


@pytest.fixture
def assignments(db):
    return TaskAssignmentService(db)


# =========================================================================
# Access control
# =========================================================================


async def test_creator_and_assignee_can_access(db, make_task, owner, other_user, assignments):
    task = await make_task("Shared")

    assert (await check_task_access(db, task.id, owner.id)).id == task.id
    with pytest.raises(ForbiddenError):
        await check_task_access(db, task.id, other_user.id)

    await assignments.assign_user(task.id, other_user.id, assigned_by_id=owner.id)
    assert (await check_task_access(db, task.id, other_user.id)).id == task.id


async def test_only_creator_passes_owner_check(db, make_task, owner, other_user, assignments):
    task = await make_task("Owned")
    await assignments.assign_user(task.id, other_user.id)

    await check_task_owner(db, task.id, owner.id)
    with pytest.raises(ForbiddenError):
        await check_task_owner(db, task.id, other_user.id)


# =========================================================================
# TaskService
# =========================================================================


async def test_create_task_with_parent(tasks, make_task, owner):
    parent = await make_task("Parent")

    task = await tasks.create_task(
        owner.id,
        "Child",
        parent_task_id=parent.id,
        priority=TaskPriority.HIGH,
        task_type=TaskType.MILESTONE,
    )

    assert task.parent_task_id == parent.id
    assert task.priority == "High"
    assert task.task_type == "Milestone"
    assert task.status == "ToDo"
    assert task.progress == 0
    assert task.created_by.id == owner.id


async def test_create_task_requires_access_to_parent(tasks, make_task, other_user):
    parent = await make_task("Private")

    with pytest.raises(ForbiddenError):
        await tasks.create_task(other_user.id, "Sneaky", parent_task_id=parent.id)


async def test_create_task_rejects_blank_name(tasks, owner):
    with pytest.raises(ValidationError):
        await tasks.create_task(owner.id, "   ")


async def test_update_task_applies_partial_changes(tasks, make_task, owner):
    task = await make_task("Old")

    updated = await tasks.update_task(
        task.id, owner.id, {"name": "New", "status": TaskStatus.DONE, "progress": 100}
    )

    assert updated.name == "New"
    assert updated.status == "Done"
    assert updated.progress == 100


@pytest.mark.parametrize(
    "changes",
    [
        {"progress": 101},
        {"progress": -1},
        {"name": ""},
        {"name": None},
        {"status": None},
        {"priority": None},
        {"task_type": None},
        {"progress": None},
        {"parent_task_id": None},
    ],
)
async def test_update_task_rejects_invalid_changes(tasks, make_task, owner, changes):
    task = await make_task("Task")

    with pytest.raises(ValidationError):
        await tasks.update_task(task.id, owner.id, changes)


async def test_delete_task_is_soft_and_creator_only(db, tasks, make_task, owner, other_user, assignments):
    task = await make_task("Doomed")
    await assignments.assign_user(task.id, other_user.id)

    with pytest.raises(ForbiddenError):
        await tasks.delete_task(task.id, other_user.id)

    await tasks.delete_task(task.id, owner.id)

    assert task.is_deleted
    with pytest.raises(NotFoundError):
        await tasks.get_task(task.id, owner.id)


async def test_list_tasks_scopes_to_accessible(tasks, make_task, owner, other_user, assignments):
    mine = await make_task("Mine")
    theirs = await make_task("Theirs", created_by=other_user)
    shared = await make_task("Shared with me", created_by=other_user)
    await assignments.assign_user(shared.id, owner.id)
    await make_task("Deleted", deleted_at=datetime.now(timezone.utc))

    result, total = await tasks.list_tasks(owner.id, sort_by="name")

    assert total == 2
    assert [t.id for t in result] == [mine.id, shared.id]
    assert theirs.id not in {t.id for t in result}


async def test_list_tasks_filters(tasks, make_task, owner, other_user, assignments):
    await make_task("Alpha report", status="Done", priority="High", due_date=date(2026, 3, 1))
    beta = await make_task(
        "Beta", description="quarterly REPORT", status="ToDo", due_date=date(2026, 2, 1)
    )
    gamma = await make_task("Gamma", task_type="Milestone")
    await assignments.assign_user(gamma.id, other_user.id)

    by_status, _ = await tasks.list_tasks(owner.id, status=TaskStatus.DONE)
    by_search, _ = await tasks.list_tasks(owner.id, search="report", sort_by="name")
    by_due, _ = await tasks.list_tasks(
        owner.id, due_date_from=date(2026, 1, 15), due_date_to=date(2026, 2, 15)
    )
    by_type, _ = await tasks.list_tasks(owner.id, task_type=TaskType.MILESTONE)
    by_assignee, _ = await tasks.list_tasks(owner.id, assignee_id=other_user.id)

    assert [t.name for t in by_status] == ["Alpha report"]
    assert [t.name for t in by_search] == ["Alpha report", "Beta"]
    assert [t.id for t in by_due] == [beta.id]
    assert [t.id for t in by_type] == [gamma.id]
    assert [t.id for t in by_assignee] == [gamma.id]


async def test_list_tasks_sorting_and_pagination(db, tasks, make_task, owner):
    low = await make_task("Low", priority="Low")
    critical = await make_task("Critical", priority="Critical")
    medium = await make_task("Medium", priority="Medium")
    db.add(
        TimeEntry(
            task_id=medium.id,
            user_id=owner.id,
            minutes=50,
            entry_date=datetime(2026, 1, 5, tzinfo=timezone.utc),
            created_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
        )
    )
    await db.flush()

    by_priority, _ = await tasks.list_tasks(owner.id, sort_by="priority", sort_order="desc")
    by_minutes, _ = await tasks.list_tasks(owner.id, sort_by="logged_minutes", sort_order="desc")
    newest_first, _ = await tasks.list_tasks(owner.id)
    page_two, total = await tasks.list_tasks(owner.id, sort_by="name", page=2, page_size=2)

    assert [t.id for t in by_priority] == [critical.id, medium.id, low.id]
    assert by_minutes[0].id == medium.id
    assert [t.id for t in newest_first] == [medium.id, critical.id, low.id]
    assert total == 3
    assert [t.id for t in page_two] == [medium.id]


async def test_list_tasks_rejects_unknown_sort(tasks, owner):
    with pytest.raises(ValidationError):
        await tasks.list_tasks(owner.id, sort_by="favourite")


# =========================================================================
# Timeline
# =========================================================================

Q1 = (date(2026, 1, 1), date(2026, 3, 31))


async def test_timeline_returns_tasks_due_in_range(tasks, make_task, owner):
    await make_task("Late", due_date=date(2026, 3, 20))
    await make_task("Early", due_date=date(2026, 2, 1))
    await make_task("Outside", due_date=date(2026, 6, 1))
    await make_task("Undated")

    timeline = await tasks.get_timeline(owner.id, *Q1)

    assert [item.task.name for item in timeline] == ["Early", "Late"]
    assert timeline[0].start_date == date(2026, 1, 5)
    assert timeline[0].end_date == date(2026, 2, 1)
    assert timeline[0].duration_days == 27


async def test_timeline_includes_parent_and_stretches_its_span(tasks, make_task, owner):
    # Due before the range, so it only appears as a parent
    parent = await make_task("Parent", due_date=date(2025, 12, 20))
    await make_task("Child A", parent=parent, due_date=date(2026, 1, 15))
    await make_task("Child B", parent=parent, due_date=date(2026, 3, 15))

    timeline = await tasks.get_timeline(owner.id, *Q1)

    assert [item.task.name for item in timeline] == ["Parent", "Child A", "Child B"]
    assert timeline[0].start_date == date(2025, 12, 20)
    assert timeline[0].end_date == date(2026, 3, 15)
    assert timeline[0].duration_days == 85


async def test_timeline_undated_parent_sorts_last(tasks, make_task, owner):
    parent = await make_task("Roadmap")
    await make_task("Beta", parent=parent, due_date=date(2026, 2, 10))
    gone = await make_task("Archived", deleted_at=datetime.now(timezone.utc))
    await make_task("Orphan", parent=gone, due_date=date(2026, 2, 1))

    timeline = await tasks.get_timeline(owner.id, *Q1)

    assert [item.task.name for item in timeline] == ["Orphan", "Beta", "Roadmap"]
    assert timeline[2].start_date == date(2026, 1, 5)
    assert timeline[2].end_date == date(2026, 2, 10)


async def test_timeline_scopes_and_filters(tasks, make_task, owner, other_user, assignments):
    due = date(2026, 2, 1)
    await make_task("Mine high", priority="High", due_date=due)
    await make_task("Mine done", priority="Low", status="Done", due_date=due)
    shared = await make_task("Shared", created_by=other_user, due_date=due)
    await make_task("Hidden", created_by=other_user, due_date=due)
    await assignments.assign_user(shared.id, owner.id)

    everything = await tasks.get_timeline(owner.id, *Q1)
    high = await tasks.get_timeline(owner.id, *Q1, priority=TaskPriority.HIGH)
    done = await tasks.get_timeline(owner.id, *Q1, status=TaskStatus.DONE)
    assigned = await tasks.get_timeline(owner.id, *Q1, assignee_id=owner.id)

    assert sorted(i.task.name for i in everything) == ["Mine done", "Mine high", "Shared"]
    assert [i.task.name for i in high] == ["Mine high"]
    assert [i.task.name for i in done] == ["Mine done"]
    assert [i.task.name for i in assigned] == ["Shared"]


@pytest.mark.parametrize(
    "start, end",
    [
        (date(2026, 3, 31), date(2026, 1, 1)),
        (date(2026, 1, 1), date(2026, 1, 1)),
        (date(2026, 1, 1), date(2028, 2, 1)),
    ],
)
async def test_timeline_rejects_bad_range(tasks, owner, start, end):
    with pytest.raises(ValidationError):
        await tasks.get_timeline(owner.id, start, end)


async def test_timeline_accepts_two_year_range(tasks, owner):
    start = date(2026, 1, 1)

    assert await tasks.get_timeline(owner.id, start, start + timedelta(days=730)) == []


# =========================================================================
# TaskAssignmentService
# =========================================================================


async def test_assign_user_is_idempotent(assignments, make_task, owner, other_user):
    task = await make_task("Task")

    first = await assignments.assign_user(task.id, other_user.id, assigned_by_id=owner.id)
    second = await assignments.assign_user(task.id, other_user.id, assigned_by_id=owner.id)

    assert first.id == second.id
    assert len(await assignments.get_task_assignments(task.id)) == 1
    assert first.user.email == "other@example.com"


async def test_assign_unknown_or_inactive_user_is_not_found(assignments, make_task, make_user):
    task = await make_task("Task")
    inactive = await make_user("gone@example.com", is_active=False)

    with pytest.raises(NotFoundError):
        await assignments.assign_user(task.id, inactive.id)


async def test_remove_assignment(assignments, make_task, other_user):
    task = await make_task("Task")
    await assignments.assign_user(task.id, other_user.id)

    await assignments.remove_assignment(task.id, other_user.id)

    assert not await assignments.is_user_assigned(task.id, other_user.id)
    with pytest.raises(NotFoundError):
        await assignments.remove_assignment(task.id, other_user.id)
