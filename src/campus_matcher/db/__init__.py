"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
item repository for PostgreSQL with pgvector.
"""

from .session import get_async_session, async_engine, AsyncSessionLocal, repository_scope
from .models import Base, Request, FoundItem, Match
from .repository import ItemRepository

__all__ = [
    "get_async_session",
    "async_engine",
    "AsyncSessionLocal",
    "repository_scope",
    "Base",
    "Request",
    "FoundItem",
    "Match",
    "ItemRepository",
]
