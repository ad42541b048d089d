"""User model."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from taskflow.db.base import BaseModel


class User(BaseModel):
    """Application user. Owns tasks and time entries, may be assigned to tasks."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        try:
            return f"<User {self.email}>"
        except Exception:
            return "<User detached>"
