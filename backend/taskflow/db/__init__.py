"""Database package."""

from taskflow.db.base import Base, BaseModel, SoftDeleteMixin
from taskflow.db.session import DBSession, get_db_session

__all__ = ["Base", "BaseModel", "SoftDeleteMixin", "DBSession", "get_db_session"]
