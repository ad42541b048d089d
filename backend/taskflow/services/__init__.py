"""Services package."""

from taskflow.services.task import TaskService
from taskflow.services.task_assignment import TaskAssignmentService
from taskflow.services.task_hierarchy import HierarchyNode, TaskHierarchyService
from taskflow.services.time_entry import TimeEntryService
from taskflow.services.time_rollup import TaskTimeRollup, TimeRollupService, fold_rollups

__all__ = [
    "TaskService",
    "TaskAssignmentService",
    "TaskHierarchyService",
    "HierarchyNode",
    "TimeEntryService",
    "TimeRollupService",
    "TaskTimeRollup",
    "fold_rollups",
]
