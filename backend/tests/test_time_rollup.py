"""Tests for rollup folding and TimeRollupService."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from taskflow.exceptions import HierarchyIntegrityError, NotFoundError
from taskflow.models.task import TimeEntry
from taskflow.services.time_rollup import TaskTimeRollup, TimeRollupService, fold_rollups


@pytest.fixture
def rollups(db):
    return TimeRollupService(db)


@pytest.fixture
def log(db, owner):
    async def _log(task, minutes):
        db.add(
            TimeEntry(
                task_id=task.id,
                user_id=owner.id,
                minutes=minutes,
                entry_date=datetime(2026, 1, 5, tzinfo=timezone.utc),
                created_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
            )
        )
        await db.flush()

    return _log


# =========================================================================
# fold_rollups
# =========================================================================


def test_fold_sums_children_bottom_up():
    root, a, b, a1 = uuid4(), uuid4(), uuid4(), uuid4()
    children = {root: [a, b], a: [a1]}
    direct = {root: 5, a: 10, a1: 7, b: 3}

    result = fold_rollups(root, children, direct)

    assert result[a1] == TaskTimeRollup(a1, 7, 0)
    assert result[a] == TaskTimeRollup(a, 10, 7)
    assert result[root].direct_minutes == 5
    assert result[root].children_minutes == 20
    assert result[root].total_minutes == 25


def test_fold_handles_deep_chains_without_recursion():
    ids = [uuid4() for _ in range(5000)]
    children = {parent: [child] for parent, child in zip(ids, ids[1:])}
    direct = {task_id: 1 for task_id in ids}

    result = fold_rollups(ids[0], children, direct)

    assert result[ids[0]].total_minutes == 5000
    assert result[ids[-1]].children_minutes == 0


def test_fold_detects_cycles():
    a, b = uuid4(), uuid4()

    with pytest.raises(HierarchyIntegrityError):
        fold_rollups(a, {a: [b], b: [a]}, {})


def test_fold_reuses_memo_across_roots():
    root, child = uuid4(), uuid4()
    memo = {}
    fold_rollups(child, {}, {child: 4}, memo)
    # A memoized node is not re-folded even if its direct minutes differ
    result = fold_rollups(root, {root: [child]}, {root: 1, child: 999}, memo)

    assert result[root].total_minutes == 5


# =========================================================================
# TimeRollupService
# =========================================================================


async def test_compute_rollup_aggregates_subtree(rollups, make_task, log):
    parent = await make_task("Parent")
    c1 = await make_task("C1", parent=parent)
    c2 = await make_task("C2", parent=parent)
    await log(parent, 30)
    await log(c1, 60)
    await log(c2, 45)

    rollup = await rollups.compute_rollup(parent.id)

    assert rollup.direct_minutes == 30
    assert rollup.children_minutes == 105
    assert rollup.total_minutes == 135


async def test_compute_rollup_counts_grandchildren_and_ignores_deleted(rollups, make_task, log):
    parent = await make_task("Parent")
    child = await make_task("Child", parent=parent)
    grandchild = await make_task("Grandchild", parent=child)
    deleted = await make_task("Deleted", parent=parent, deleted_at=datetime.now(timezone.utc))
    under_deleted = await make_task("Under deleted", parent=deleted)
    await log(grandchild, 20)
    await log(deleted, 100)
    await log(under_deleted, 100)

    rollup = await rollups.compute_rollup(parent.id)
    child_rollup = await rollups.compute_rollup(child.id)

    assert rollup.direct_minutes == 0
    assert rollup.children_minutes == 20
    assert child_rollup.total_minutes == 20


async def test_compute_rollup_leaf_without_entries_is_zero(rollups, make_task):
    leaf = await make_task("Leaf")

    rollup = await rollups.compute_rollup(leaf.id)

    assert rollup == TaskTimeRollup(leaf.id, 0, 0)


async def test_compute_rollup_for_deleted_task_is_not_found(rollups, make_task):
    gone = await make_task("Gone", deleted_at=datetime.now(timezone.utc))

    with pytest.raises(NotFoundError):
        await rollups.compute_rollup(gone.id)


async def test_compute_rollups_batch_handles_nested_roots(rollups, make_task, log):
    root = await make_task("Root")
    child = await make_task("Child", parent=root)
    other = await make_task("Other")
    gone = await make_task("Gone", deleted_at=datetime.now(timezone.utc))
    await log(root, 10)
    await log(child, 15)
    await log(other, 1)

    result = await rollups.compute_rollups([root.id, child.id, other.id, gone.id, uuid4()])

    assert set(result) == {root.id, child.id, other.id}
    assert result[root.id].total_minutes == 25
    assert result[child.id].total_minutes == 15
    assert result[other.id].total_minutes == 1


async def test_compute_rollups_empty_input(rollups):
    assert await rollups.compute_rollups([]) == {}
