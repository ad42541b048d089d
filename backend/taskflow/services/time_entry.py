"""Time entry service. The only writer of TimeEntry rows."""

from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import Settings, get_settings
from taskflow.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskflow.models.task import EntryType, Task, TimeEntry
from taskflow.utils.time import format_duration

logger = structlog.get_logger()


class TimeEntryService:
    """Service for logging, listing and deleting time entries."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    async def log_time(
        self,
        task_id: UUID,
        user_id: UUID,
        minutes: int,
        entry_type: EntryType = EntryType.MANUAL,
        note: str | None = None,
        entry_date: datetime | None = None,
    ) -> TimeEntry:
        """Record minutes worked on a task."""
        max_minutes = self.settings.time_entry_max_minutes
        if minutes < 1 or minutes > max_minutes:
            raise ValidationError(
                f"Minutes must be between 1 and {max_minutes} (24 hours)."
            )
        max_note = self.settings.time_entry_note_max_length
        if note is not None and len(note) > max_note:
            raise ValidationError(f"Note cannot exceed {max_note} characters.")

        result = await self.db.execute(
            select(Task.id).where(Task.id == task_id, Task.deleted_at.is_(None))
        )
        if result.first() is None:
            raise NotFoundError("Task", task_id)

        entry = TimeEntry(
            task_id=task_id,
            user_id=user_id,
            minutes=minutes,
            note=note or None,
            entry_date=entry_date or datetime.now(timezone.utc),
            entry_type=EntryType(entry_type).value,
        )
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)

        logger.info(
            "time_logged",
            task_id=str(task_id),
            user_id=str(user_id),
            minutes=minutes,
            duration=format_duration(minutes),
            entry_type=entry.entry_type,
        )
        return entry

    async def get_task_entries(self, task_id: UUID) -> Sequence[TimeEntry]:
        """All entries for a task, newest work first."""
        result = await self.db.execute(
            select(TimeEntry)
            .where(TimeEntry.task_id == task_id)
            .order_by(TimeEntry.entry_date.desc(), TimeEntry.created_at.desc())
        )
        return result.scalars().all()

    async def delete_entry(self, entry_id: UUID, requesting_user_id: UUID) -> None:
        """Delete an entry. Only its author may do so."""
        entry = await self.db.get(TimeEntry, entry_id)
        if entry is None:
            raise NotFoundError("Time entry", entry_id)
        if entry.user_id != requesting_user_id:
            raise ForbiddenError("You can only delete your own time entries.")

        await self.db.delete(entry)
        await self.db.flush()

        logger.info(
            "time_entry_deleted",
            entry_id=str(entry_id),
            task_id=str(entry.task_id),
            user_id=str(requesting_user_id),
        )

    async def sum_minutes_by_task(self, task_ids: Sequence[UUID]) -> dict[UUID, int]:
        """Total logged minutes per task id. Tasks without entries are absent."""
        if not task_ids:
            return {}
        result = await self.db.execute(
            select(TimeEntry.task_id, func.sum(TimeEntry.minutes))
            .where(TimeEntry.task_id.in_(task_ids))
            .group_by(TimeEntry.task_id)
        )
        return {task_id: int(total) for task_id, total in result.all()}
