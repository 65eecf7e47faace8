"""
Database Session Management

Provides async SQLAlchemy engine, session factory, and repository scopes
for PostgreSQL.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from ..config import settings
from .repository import ItemRepository


# Create async engine
async_engine = create_async_engine(
    settings.database_url,
    echo=False,  # Set True for SQL debugging
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

# Session factory
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI endpoints that need database access.

    Usage:
        @router.get("/items")
        async def get_items(session: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def repository_scope() -> AsyncIterator[ItemRepository]:
    """
    Open a dedicated session for one unit of background work.

    Each matching run in a trigger fan-out gets its own scope, since an
    AsyncSession must not be shared between concurrent tasks.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield ItemRepository(session)
        except Exception:
            await session.rollback()
            raise
