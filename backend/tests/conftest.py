"""Shared fixtures: in-memory SQLite schema, users, tasks and an API client."""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Awaitable, Callable

import httpx
import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from taskflow.api.v1.auth import create_access_token
from taskflow.db.base import Base
from taskflow.db.session import get_db_session
from taskflow.main import create_app
from taskflow.models.task import Task
from taskflow.models.user import User

BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db: AsyncSession) -> Callable[..., Awaitable[User]]:
    async def _make_user(email: str, display_name: str | None = None, is_active: bool = True) -> User:
        user = User(
            email=email,
            display_name=display_name or email.split("@")[0].title(),
            is_active=is_active,
            created_at=BASE_TIME,
            updated_at=BASE_TIME,
        )
        db.add(user)
        await db.flush()
        return user

    return _make_user


@pytest.fixture
async def owner(make_user) -> User:
    return await make_user("owner@example.com", "Olive Owner")


@pytest.fixture
async def other_user(make_user) -> User:
    return await make_user("other@example.com", "Oscar Other")


@pytest.fixture
def make_task(db: AsyncSession, owner: User) -> Callable[..., Awaitable[Task]]:
    """Insert a task directly, with explicit timestamps so ordering is deterministic."""
    counter = {"n": 0}

    async def _make_task(
        name: str,
        parent: Task | None = None,
        created_by: User | None = None,
        **fields,
    ) -> Task:
        counter["n"] += 1
        stamp = BASE_TIME + timedelta(minutes=counter["n"])
        task = Task(
            name=name,
            parent_task_id=parent.id if parent else None,
            created_by_id=(created_by or owner).id,
            created_at=stamp,
            updated_at=stamp,
            **fields,
        )
        db.add(task)
        await db.flush()
        return task

    return _make_task


@pytest.fixture
async def api_client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """API client whose requests each get their own session on the test engine."""

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory.begin() as session:
            yield session

    app = create_app()
    app.dependency_overrides[get_db_session] = override_get_db_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
async def api_users(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, User]:
    """Committed users for API tests, keyed by short name."""
    async with session_factory() as session:
        users = {
            "alice": User(email="alice@example.com", display_name="Alice"),
            "bob": User(email="bob@example.com", display_name="Bob"),
            "carol": User(email="carol@example.com", display_name="Carol"),
        }
        session.add_all(users.values())
        await session.commit()
        return users


@pytest.fixture
def auth_as(api_users: dict[str, User]) -> Callable[[str], dict[str, str]]:
    """Bearer headers for one of the api_users."""

    def _auth_as(name: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(api_users[name].id)}"}

    return _auth_as
