"""
Trigger Handlers

Reactive matching on document creation:

- New request    -> match that request against all found items (small limit).
- New found item -> embed the found item, then re-match existing requests
                    (capped) in bounded-concurrency batches.

Both handlers funnel through `MatchOrchestrator.match_request` and are
best-effort: failures are handed to the injected `BestEffortPolicy` and never
propagate to the publisher. Each unit of work opens its own repository scope
and is bounded by `settings.match_timeout_seconds`.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from typing import Callable, List, Optional

from ..config import settings
from ..core.errors import MatchTimeout
from ..db.repository import ItemRepository
from ..embeddings.cache import EmbeddingCache
from ..embeddings.embedder import Embedder
from ..matching.models import ItemKind, MatchOptions, MatchRunResult
from ..matching.orchestrator import MatchOrchestrator
from .bus import DocumentCreated, TriggerBus
from .policy import BestEffortPolicy, LogAndContinuePolicy

logger = logging.getLogger("matcher.triggers")

RepositoryScope = Callable[[], AbstractAsyncContextManager[ItemRepository]]


class MatchTriggers:
    """
    Handlers for creation events, wired to a repository scope and embedder.
    """

    def __init__(
        self,
        repository_scope: RepositoryScope,
        embedder: Embedder,
        policy: Optional[BestEffortPolicy] = None,
        match_limit: Optional[int] = None,
        fanout_cap: Optional[int] = None,
        concurrency: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._repository_scope = repository_scope
        self._embedder = embedder
        self.policy = policy or LogAndContinuePolicy()
        self.match_limit = match_limit or settings.trigger_match_limit
        self.fanout_cap = fanout_cap or settings.trigger_fanout_cap
        self.concurrency = max(1, concurrency or settings.trigger_concurrency)
        self.timeout_seconds = timeout_seconds or settings.match_timeout_seconds

    def register(self, bus: TriggerBus) -> None:
        bus.subscribe(ItemKind.REQUEST, self.on_request_created)
        bus.subscribe(ItemKind.FOUND_ITEM, self.on_found_item_created)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def on_request_created(self, event: DocumentCreated) -> None:
        request_id = event.document_id
        logger.info("New request created: %s, triggering automatic matching", request_id)

        result = await self.policy.run(
            self._match_one(request_id),
            context=f"Matching new request {request_id}",
        )
        if result is not None:
            logger.info(
                "Matched new request %s: %d matches",
                request_id,
                len(result.matches),
            )

    async def on_found_item_created(self, event: DocumentCreated) -> None:
        found_item_id = event.document_id
        logger.info(
            "New found item created: %s, triggering batch matching for requests",
            found_item_id,
        )

        request_ids = await self.policy.run(
            self._prepare_fanout(found_item_id),
            context=f"Preparing fan-out for found item {found_item_id}",
        )
        if not request_ids:
            return

        matched = 0
        for start in range(0, len(request_ids), self.concurrency):
            batch = request_ids[start : start + self.concurrency]
            logger.info(
                "Processing batch %d (%d requests)",
                start // self.concurrency + 1,
                len(batch),
            )
            results = await asyncio.gather(
                *(
                    self.policy.run(
                        self._match_one(request_id),
                        context=f"Matching request {request_id} against found item {found_item_id}",
                    )
                    for request_id in batch
                )
            )
            matched += sum(1 for r in results if r is not None)

        logger.info(
            "Completed batch matching for found item %s: %d/%d requests matched",
            found_item_id,
            matched,
            len(request_ids),
        )

    # ------------------------------------------------------------------
    # Units of work
    # ------------------------------------------------------------------

    async def _match_one(self, request_id: str) -> MatchRunResult:
        options = MatchOptions(
            limit=self.match_limit,
            distance_threshold=settings.default_distance_threshold,
        )
        async with self._repository_scope() as repository:
            orchestrator = MatchOrchestrator(repository, self._embedder)
            try:
                return await asyncio.wait_for(
                    orchestrator.match_request(request_id, options),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                raise MatchTimeout(request_id, self.timeout_seconds) from exc

    async def _prepare_fanout(self, found_item_id: str) -> List[str]:
        """
        Embed the new found item, then list the requests to re-match.
        """
        async with self._repository_scope() as repository:
            found_item = await repository.get_item(ItemKind.FOUND_ITEM, found_item_id)
            if found_item is None:
                logger.error("Found item %s not found", found_item_id)
                return []

            await EmbeddingCache(repository, self._embedder).ensure_embedding(found_item)

            request_ids = await repository.list_request_ids(limit=self.fanout_cap)

        logger.info("Found %d requests to match (cap=%d)", len(request_ids), self.fanout_cap)
        return request_ids
