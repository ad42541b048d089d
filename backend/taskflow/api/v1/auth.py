"""Bearer token authentication.

Tokens are HS256 JWTs whose ``sub`` is the user ID. Issuing them belongs to
the identity provider; ``create_access_token`` exists for tooling and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict

from taskflow.config import get_settings
from taskflow.db.session import DBSession
from taskflow.models.user import User

router = APIRouter()
logger = structlog.get_logger()
settings = get_settings()
security = HTTPBearer(auto_error=False)

TOKEN_TYPE = "access"


class UserResponse(BaseModel):
    """User information response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    display_name: str
    is_active: bool


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(user_id: UUID, expires_delta: timedelta | None = None) -> str:
    """Sign an access token for ``user_id``."""
    expires_delta = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    claims = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + expires_delta,
        "type": TOKEN_TYPE,
    }
    return jwt.encode(
        claims,
        settings.jwt_secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )


def decode_access_token(token: str) -> UUID:
    """Return the user ID from a valid access token, else raise 401."""
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret_key.get_secret_value(),
            algorithms=[settings.jwt_algorithm],
        )
        if claims.get("type") != TOKEN_TYPE:
            raise _unauthorized("Invalid token")
        return UUID(str(claims["sub"]))
    except (JWTError, KeyError, ValueError) as exc:
        logger.info("access_token_rejected", error=type(exc).__name__)
        raise _unauthorized("Invalid token") from exc


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: DBSession,
) -> User:
    """Resolve the bearer token to an active user."""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    user = await db.get(User, decode_access_token(credentials.credentials))
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: CurrentUser) -> User:
    return current_user
