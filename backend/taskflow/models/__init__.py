"""SQLAlchemy models package."""

from taskflow.models.user import User
from taskflow.models.task import (
    EntryType,
    Task,
    TaskAssignment,
    TaskPriority,
    TaskStatus,
    TaskType,
    TimeEntry,
)

__all__ = [
    "User",
    # Tasks
    "Task",
    "TaskAssignment",
    "TaskStatus",
    "TaskPriority",
    "TaskType",
    # Time tracking
    "TimeEntry",
    "EntryType",
]
