"""
SQLAlchemy Models

Defines the database schema for:
- Requests (lost-item submissions) with their embeddings
- Found items logged by staff, with their embeddings
- Matches between a request and a found item (children of the request)
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    DateTime,
    ForeignKey,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from pgvector.sqlalchemy import Vector


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Searchable Item Columns
# ---------------------------------------------------------------------

class SearchableItemMixin:
    """
    Columns shared by requests and found items.

    The vector column has no fixed width so that embeddings generated under
    an older dimension can still be read and recognised as stale via
    `embedding_dim`.
    """

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    attributes: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    category: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)
    campus: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, index=True)

    embedding = Column(Vector(), nullable=True)
    embedding_dim: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    embedding_generated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


# ---------------------------------------------------------------------
# Request Model
# ---------------------------------------------------------------------

class Request(SearchableItemMixin, Base):
    """
    A user's report of something they lost.
    """
    __tablename__ = "requests"

    user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)

    matches: Mapped[List["Match"]] = relationship(
        "Match",
        back_populates="request",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Match.rank",
    )


# ---------------------------------------------------------------------
# Found Item Model
# ---------------------------------------------------------------------

class FoundItem(SearchableItemMixin, Base):
    """
    An item logged by staff as found on campus.
    """
    __tablename__ = "found_items"

    __table_args__ = (
        Index("idx_found_items_dim_category_campus", "embedding_dim", "category", "campus"),
    )


# ---------------------------------------------------------------------
# Match Model
# ---------------------------------------------------------------------

class Match(Base):
    """
    A candidate found item for a request, produced by the latest matching run.

    At most one row per (request, found item). Rows are owned by the request
    and disappear with it.
    """
    __tablename__ = "matches"

    request_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("requests.id", ondelete="CASCADE"),
        primary_key=True,
    )
    found_item_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("found_items.id", ondelete="CASCADE"),
        primary_key=True,
    )
    distance: Mapped[float] = mapped_column(Float, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending | accepted | rejected
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    request: Mapped["Request"] = relationship("Request", back_populates="matches")

    __table_args__ = (
        Index("idx_match_request_rank", "request_id", "rank"),
    )
