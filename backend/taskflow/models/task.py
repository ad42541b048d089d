"""Task, assignment and time entry models."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskflow.db.base import Base, BaseModel, SoftDeleteMixin, UUIDMixin

if TYPE_CHECKING:
    from taskflow.models.user import User


class TaskStatus(str, Enum):
    """Workflow status of a task."""

    TODO = "ToDo"
    IN_PROGRESS = "InProgress"
    BLOCKED = "Blocked"
    WAITING = "Waiting"
    DONE = "Done"


class TaskPriority(str, Enum):
    """Task priority, lowest first."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class TaskType(str, Enum):
    """Kind of node in the task tree."""

    PROJECT = "Project"
    MILESTONE = "Milestone"
    TASK = "Task"


class EntryType(str, Enum):
    """How a time entry was captured."""

    TIMER = "Timer"
    MANUAL = "Manual"


class Task(BaseModel, SoftDeleteMixin):
    """A node in the task tree. Never hard-deleted."""

    __tablename__ = "tasks"
    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="progress_range"),
    )

    # Basic info
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status, priority and type
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.TODO.value, index=True
    )
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskPriority.MEDIUM.value, index=True
    )
    task_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskType.TASK.value
    )
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timeline
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)

    # Hierarchy (single parent)
    parent_task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Ownership
    created_by_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    created_by: Mapped["User"] = relationship(
        "User", foreign_keys=[created_by_id], lazy="joined"
    )
    assignments: Mapped[list["TaskAssignment"]] = relationship(
        "TaskAssignment", back_populates="task", lazy="selectin",
        cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        try:
            return f"<Task {self.name[:30]}>"
        except Exception:
            try:
                return f"<Task id={self.id}>"
            except Exception:
                return "<Task detached>"


class TaskAssignment(BaseModel):
    """Assignment of a user to a task - enables multiple assignees."""

    __tablename__ = "task_assignments"
    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_assignment"),
    )

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Who assigned this user
    assigned_by_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    task: Mapped["Task"] = relationship("Task", back_populates="assignments")
    user: Mapped["User"] = relationship("User", foreign_keys=[user_id], lazy="joined")

    def __repr__(self) -> str:
        return f"<TaskAssignment task={self.task_id} user={self.user_id}>"


class TimeEntry(Base, UUIDMixin):
    """Immutable record of minutes worked on a task. Created or deleted, never updated."""

    __tablename__ = "time_entries"
    __table_args__ = (
        CheckConstraint("minutes >= 1 AND minutes <= 1440", name="minutes_range"),
        Index("ix_time_entries_task_id_entry_date", "task_id", "entry_date"),
    )

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    entry_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EntryType.MANUAL.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    # Relationships
    user: Mapped["User"] = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<TimeEntry task={self.task_id} minutes={self.minutes}>"
