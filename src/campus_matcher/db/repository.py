"""
Item Repository

PostgreSQL + pgvector access for requests, found items and their matches.
Every value leaving this module is an explicit record from
`matching.models`; ORM rows stay inside.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy import select, update, delete, insert, func, text
from sqlalchemy.exc import DBAPIError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Request, FoundItem, Match
from ..core.errors import IndexUnavailable
from ..matching.models import (
    ItemAttributes,
    ItemKind,
    MatchRecord,
    MatchResult,
    MatchStatus,
    Prefilters,
    SearchableItem,
)

logger = logging.getLogger("matcher.repository")

_MODELS = {
    ItemKind.REQUEST: Request,
    ItemKind.FOUND_ITEM: FoundItem,
}

_PREFILTER_COLUMNS = {
    "category": FoundItem.category,
    "campus": FoundItem.campus,
}


class ItemRepository:
    """
    Document-store facade used by the matching engine.

    One instance wraps one AsyncSession; it is not safe to share between
    concurrent tasks. Writes are flushed but only made durable by `commit()`.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize with an async database session.

        Parameters
        ----------
        session : AsyncSession
            SQLAlchemy async session for database operations.
        """
        self._session = session

    async def commit(self) -> None:
        """
        Commit the current transaction.
        """
        await self._session.commit()

    # ------------------------------------------------------------------
    # Searchable items
    # ------------------------------------------------------------------

    async def get_item(self, kind: ItemKind, item_id: str) -> Optional[SearchableItem]:
        """
        Load a request or found item, or None if it does not exist.
        """
        model = _MODELS[kind]
        result = await self._session.execute(select(model).where(model.id == item_id))
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return _to_record(kind, row)

    async def list_items(
        self,
        kind: ItemKind,
        limit: Optional[int] = None,
    ) -> List[SearchableItem]:
        """
        Return items of one kind, oldest first.
        """
        model = _MODELS[kind]
        stmt = select(model).order_by(model.created_at, model.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self._session.execute(stmt)
        return [_to_record(kind, row) for row in result.scalars().all()]

    async def list_request_ids(self, limit: int) -> List[str]:
        """
        Return up to `limit` request IDs, oldest first.
        """
        stmt = select(Request.id).order_by(Request.created_at, Request.id).limit(limit)
        result = await self._session.execute(stmt)
        return [row[0] for row in result.all()]

    async def create_item(
        self,
        kind: ItemKind,
        attributes: Dict[str, Any],
        category: Optional[str] = None,
        campus: Optional[str] = None,
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> SearchableItem:
        """
        Insert a new request or found item and return it.

        User fields are only stored on requests.
        """
        if kind is ItemKind.REQUEST:
            row = Request(
                attributes=attributes,
                category=category,
                campus=campus,
                user_id=user_id,
                user_email=user_email,
            )
        else:
            row = FoundItem(attributes=attributes, category=category, campus=campus)

        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return _to_record(kind, row)

    async def delete_request(self, request_id: str) -> bool:
        """
        Delete a request. Its matches are removed by the ON DELETE CASCADE.
        """
        stmt = delete(Request).where(Request.id == request_id)
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def save_embedding(
        self,
        kind: ItemKind,
        item_id: str,
        vector: Sequence[float],
        dim: int,
    ) -> None:
        """
        Store a freshly generated embedding with its dimension and timestamp.
        """
        model = _MODELS[kind]
        stmt = (
            update(model)
            .where(model.id == item_id)
            .values(
                embedding=list(vector),
                embedding_dim=dim,
                embedding_generated_at=func.now(),
            )
        )
        await self._session.execute(stmt)

    # ------------------------------------------------------------------
    # Similarity search
    # ------------------------------------------------------------------

    async def find_nearest(
        self,
        query_vector: Sequence[float],
        dim: int,
        prefilters: Optional[Prefilters],
        limit: int,
    ) -> List[Tuple[str, Optional[float]]]:
        """
        K-nearest found items by cosine distance.

        Prefilters are equality conditions in the WHERE clause, so the
        candidate pool is narrowed before ordering by distance. Only found
        items embedded with the current dimension are considered.

        Returns
        -------
        List[Tuple[str, Optional[float]]]
            (found_item_id, distance) pairs, nearest first.

        Raises
        ------
        IndexUnavailable
            If pgvector or the found_items table is missing.
        """
        cosine_distance = FoundItem.embedding.cosine_distance(list(query_vector))

        stmt = (
            select(FoundItem.id, cosine_distance.label("distance"))
            .where(FoundItem.embedding.is_not(None))
            .where(FoundItem.embedding_dim == dim)
        )

        if prefilters is not None:
            for field, value in prefilters.as_conditions().items():
                stmt = stmt.where(_PREFILTER_COLUMNS[field] == value)

        stmt = stmt.order_by(cosine_distance).limit(limit)

        try:
            result = await self._session.execute(stmt)
        except ProgrammingError as exc:
            await self._session.rollback()
            logger.error("Vector search failed: %s", exc)
            raise IndexUnavailable(type(exc.orig).__name__ if exc.orig else "programming error") from exc
        except DBAPIError as exc:
            if "vector" not in str(exc).lower():
                raise
            await self._session.rollback()
            logger.error("Vector search failed: %s", exc)
            raise IndexUnavailable("vector operator failed") from exc

        return [
            (row.id, float(row.distance) if row.distance is not None else None)
            for row in result.all()
        ]

    async def vector_extension_installed(self) -> bool:
        """
        Return True if the pgvector extension is present in the database.
        """
        result = await self._session.execute(
            text("SELECT 1 FROM pg_extension WHERE extname = 'vector'")
        )
        return result.scalar() is not None

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    async def replace_matches(
        self,
        request_id: str,
        matches: Sequence[MatchResult],
    ) -> int:
        """
        Delete every match of a request and insert the given set.

        The parent request row is locked first, so concurrent reconciles of
        the same request are serialised: the later one waits for the earlier
        commit, then its DELETE sees and removes the earlier rows. All
        statements run in the current transaction; nothing is visible to
        other sessions until `commit()`.

        Returns the number of rows removed.
        """
        lock_stmt = select(Request.id).where(Request.id == request_id).with_for_update()
        await self._session.execute(lock_stmt)

        delete_stmt = delete(Match).where(Match.request_id == request_id)
        result = await self._session.execute(delete_stmt)
        removed = result.rowcount or 0

        if matches:
            await self._session.execute(
                insert(Match),
                [
                    {
                        "request_id": request_id,
                        "found_item_id": m.found_item_id,
                        "distance": m.distance,
                        "confidence": m.confidence,
                        "rank": m.rank,
                        "status": MatchStatus.PENDING.value,
                    }
                    for m in matches
                ],
            )

        await self._session.flush()
        return removed

    async def list_matches(self, request_id: str) -> List[MatchRecord]:
        """
        Return the persisted matches of a request ordered by rank.
        """
        stmt = select(Match).where(Match.request_id == request_id).order_by(Match.rank)
        result = await self._session.execute(stmt)
        return [
            MatchRecord(
                request_id=row.request_id,
                found_item_id=row.found_item_id,
                distance=row.distance,
                confidence=row.confidence,
                rank=row.rank,
                status=MatchStatus(row.status),
                created_at=row.created_at,
                updated_at=row.updated_at,
            )
            for row in result.scalars().all()
        ]


# ---------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------

def _to_record(kind: ItemKind, row: Any) -> SearchableItem:
    embedding = None
    if row.embedding is not None:
        embedding = np.asarray(row.embedding, dtype="float64").tolist()

    return SearchableItem(
        kind=kind,
        id=row.id,
        attributes=ItemAttributes.model_validate(row.attributes or {}),
        category=row.category,
        campus=row.campus,
        embedding=embedding,
        embedding_dim=row.embedding_dim,
        embedding_generated_at=row.embedding_generated_at,
        user_id=getattr(row, "user_id", None),
        user_email=getattr(row, "user_email", None),
        created_at=row.created_at,
    )
