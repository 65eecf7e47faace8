"""
Match-Set Reconciler

Replaces the persisted match set of a request with the result of the latest
matching run. Delete and insert happen in one transaction, so readers see
either the previous set or the new one, never a mix and never a transient
empty set. An empty candidate list clears the request's matches.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ..db.repository import ItemRepository
from .models import MatchResult

logger = logging.getLogger("matcher.reconciler")


class MatchSetReconciler:
    def __init__(self, repository: ItemRepository) -> None:
        self._repository = repository

    async def reconcile(self, request_id: str, matches: Sequence[MatchResult]) -> None:
        found_ids = [m.found_item_id for m in matches]
        if len(set(found_ids)) != len(found_ids):
            raise ValueError(f"duplicate found items in match set for request {request_id}")

        removed = await self._repository.replace_matches(request_id, matches)
        await self._repository.commit()
        logger.info(
            "Replaced matches for request %s: removed=%d created=%d",
            request_id,
            removed,
            len(matches),
        )
