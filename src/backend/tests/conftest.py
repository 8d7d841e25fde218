"""
Pytest configuration and fixtures for testing.

Provides:
- In-memory SQLite databases (async via aiosqlite, and blocking)
- A statement counter for asserting store round trips
- Sample users and roles

Usage:
    pytest src/backend/tests -v
"""

from typing import AsyncGenerator, Generator, List

import pytest
import pytest_asyncio
from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from db.models import Role, User, UserRole
from tests.factories import RoleFactory, UserFactory


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine():
    """Create an in-memory async SQLite engine with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh async session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def statements(async_engine) -> List[str]:
    """Collect every SQL statement sent through the async test engine."""
    executed: List[str] = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        executed.append(statement)

    event.listen(async_engine.sync_engine, "before_cursor_execute", _record)
    yield executed
    event.remove(async_engine.sync_engine, "before_cursor_execute", _record)


@pytest.fixture
def commits(db_session: AsyncSession) -> List[Session]:
    """Record every commit made on the async test session."""
    committed: List[Session] = []

    def _record(session):
        committed.append(session)

    event.listen(db_session.sync_session, "after_commit", _record)
    yield committed
    event.remove(db_session.sync_session, "after_commit", _record)


@pytest.fixture
def sync_engine():
    """Create an in-memory blocking SQLite engine with all tables."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def sync_session(sync_engine) -> Generator[Session, None, None]:
    """Create a fresh blocking session for each test."""
    factory = sessionmaker(bind=sync_engine, expire_on_commit=False, autoflush=False)
    with factory() as session:
        yield session


# ============================================================================
# Database Test Data Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def sample_role(db_session: AsyncSession) -> Role:
    """Create a sample role for testing."""
    role = RoleFactory.create(name="Test Role", description="A test role")
    db_session.add(role)
    await db_session.commit()
    return role


@pytest_asyncio.fixture
async def sample_user(db_session: AsyncSession) -> User:
    """Create user 'alice' with password 'secret'."""
    user = UserFactory.create(username="alice", password="secret", full_name="Alice")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def sample_user_with_roles(
    db_session: AsyncSession, sample_user: User, sample_role: Role
) -> User:
    """
    Give the sample user two roles, then return a freshly loaded copy
    whose relationships are not loaded.
    """
    other_role = RoleFactory.create(name="Other Role")
    db_session.add(other_role)
    db_session.add_all(
        [
            UserRole(user_id=sample_user.id, role_id=sample_role.id),
            UserRole(user_id=sample_user.id, role_id=other_role.id),
        ]
    )
    await db_session.commit()

    user_id = sample_user.id
    db_session.expunge_all()
    return await db_session.get(User, user_id)
