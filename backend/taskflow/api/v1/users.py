"""User directory endpoints for picking assignees."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Query
from pydantic import BaseModel
from sqlalchemy import or_, select

from taskflow.api.v1.auth import CurrentUser
from taskflow.db.session import DBSession
from taskflow.exceptions import ValidationError
from taskflow.models.user import User

router = APIRouter()
logger = structlog.get_logger()

SEARCH_LIMIT = 20


class UserListItem(BaseModel):
    """User list item for assignee selection."""

    user_id: UUID
    email: str
    display_name: str


def _to_list_item(user: User) -> UserListItem:
    return UserListItem(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name or user.email,
    )


@router.get("/search", response_model=list[UserListItem])
async def search_users(
    current_user: CurrentUser,
    db: DBSession,
    q: str = Query("", max_length=100),
) -> list[UserListItem]:
    """Active users whose name or email contains ``q``, at most 20."""
    term = q.strip()
    if not term:
        raise ValidationError("Search query cannot be empty")

    pattern = f"%{term}%"
    result = await db.scalars(
        select(User)
        .where(
            User.is_active.is_(True),
            or_(User.email.ilike(pattern), User.display_name.ilike(pattern)),
        )
        .order_by(User.display_name, User.email)
        .limit(SEARCH_LIMIT)
    )
    users = result.all()

    logger.debug("users_searched", user_id=str(current_user.id), results=len(users))
    return [_to_list_item(u) for u in users]


@router.get("", response_model=list[UserListItem])
async def list_users(
    current_user: CurrentUser,
    db: DBSession,
) -> list[UserListItem]:
    """Every active user, by display name."""
    result = await db.scalars(
        select(User).where(User.is_active.is_(True)).order_by(User.display_name, User.email)
    )
    return [_to_list_item(u) for u in result.all()]
