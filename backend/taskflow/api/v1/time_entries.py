"""Time entry endpoints. Logging and listing live under /tasks/{id}/time-entries."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from taskflow.api.v1.auth import CurrentUser
from taskflow.db.session import DBSession
from taskflow.models.task import EntryType, TimeEntry
from taskflow.services.time_entry import TimeEntryService
from taskflow.utils.time import format_duration

router = APIRouter()


class TimeEntryCreate(BaseModel):
    """Log time against a task."""

    minutes: int = Field(..., ge=1, le=1440)
    note: str | None = Field(None, max_length=500)
    entry_date: datetime | None = None
    entry_type: EntryType = EntryType.MANUAL


class TimeEntryResponse(BaseModel):
    """Time entry response."""

    id: UUID
    task_id: UUID
    user_id: UUID
    user_name: str | None = None
    minutes: int
    duration: str
    entry_date: datetime
    note: str | None
    entry_type: str
    created_at: datetime


def entry_to_response(entry: TimeEntry) -> dict:
    """Convert a time entry to a response dict with author info."""
    return {
        "id": entry.id,
        "task_id": entry.task_id,
        "user_id": entry.user_id,
        "user_name": entry.user.display_name if entry.user else None,
        "minutes": entry.minutes,
        "duration": format_duration(entry.minutes),
        "entry_date": entry.entry_date,
        "note": entry.note,
        "entry_type": entry.entry_type,
        "created_at": entry.created_at,
    }


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_time_entry(
    entry_id: UUID,
    current_user: CurrentUser,
    db: DBSession,
) -> None:
    """Delete one of your own time entries."""
    await TimeEntryService(db).delete_entry(entry_id, current_user.id)
