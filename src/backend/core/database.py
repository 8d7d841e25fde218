"""
Database engines and scoped sessions.

Engines are created lazily from settings. Each unit of work opens its own
session through one of the scopes below and hands it to the repositories
it builds; the scope, not the repository, commits, rolls back and closes.
"""

import logging
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncGenerator, Generator, Optional

from sqlalchemy import create_engine as create_sync_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import PendingRollbackError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from .config import settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None
_sync_engine: Optional[Engine] = None
_sync_session_factory: Optional[sessionmaker] = None


def _engine_kwargs() -> dict:
    """Engine options for the configured dialect."""
    kwargs = {"echo": settings.database.echo}

    if settings.database.is_sqlite:
        # SQLite runs on one shared connection
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_timeout=settings.database.pool_timeout,
            pool_recycle=settings.database.pool_recycle,
        )

    return kwargs


def get_engine() -> AsyncEngine:
    """Get the shared async engine, creating it on first use."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.database.url, **_engine_kwargs())
        logger.info(f"Created async engine for {_engine.url.get_backend_name()}")
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get the async session factory bound to the shared engine."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,  # Prevent additional queries after commit
            autoflush=False,
        )
    return _session_factory


def get_sync_engine() -> Engine:
    """Get the shared blocking engine, creating it on first use."""
    global _sync_engine
    if _sync_engine is None:
        _sync_engine = create_sync_engine(
            settings.database.database_url_sync, **_engine_kwargs()
        )
        logger.info(f"Created sync engine for {_sync_engine.url.get_backend_name()}")
    return _sync_engine


def get_sync_session_factory() -> sessionmaker:
    """Get the blocking session factory bound to the shared sync engine."""
    global _sync_session_factory
    if _sync_session_factory is None:
        _sync_session_factory = sessionmaker(
            bind=get_sync_engine(),
            expire_on_commit=False,
            autoflush=False,
        )
    return _sync_session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.
    Commits on success, rolls back on error.
    """
    async with get_session_factory()() as session:
        try:
            yield session
            try:
                await session.commit()
            except PendingRollbackError:
                await session.rollback()
                raise
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope(
    factory: Optional[async_sessionmaker] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Open an async session for one unit of work.

    Example:
        async with session_scope() as db:
            users = UserRepository(db)
            await users.update_last_login_date(user)

    Args:
        factory: Session factory to use (defaults to the shared one)

    Yields:
        AsyncSession owned by this scope
    """
    factory = factory or get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.warning("Rolling back session after error")
            await session.rollback()
            raise


@contextmanager
def sync_session_scope(
    factory: Optional[sessionmaker] = None,
) -> Generator[Session, None, None]:
    """Blocking counterpart of session_scope()."""
    factory = factory or get_sync_session_factory()
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            logger.warning("Rolling back session after error")
            session.rollback()
            raise


async def init_db() -> None:
    """
    Create all tables registered on the SQLModel metadata.
    Schema management beyond create_all belongs to migrations.
    """
    # Register table models before create_all
    import db.models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    """
    Dispose engines and forget session factories.
    Should be called on application shutdown.
    """
    global _engine, _session_factory, _sync_engine, _sync_session_factory

    if _engine is not None:
        await _engine.dispose()
    if _sync_engine is not None:
        _sync_engine.dispose()

    _engine = None
    _session_factory = None
    _sync_engine = None
    _sync_session_factory = None
