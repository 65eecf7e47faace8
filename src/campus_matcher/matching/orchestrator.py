"""
Matching Orchestrator

The single algorithm behind every way a request gets matched: the on-demand
HTTP call, the new-request trigger and the new-found-item trigger all run
`MatchOrchestrator.match_request` unchanged.

Algorithm
---------
1. Load the request (RequestNotFound if absent).
2. Ensure it has a valid embedding.
3. Retrieve the nearest found items, with optional prefilters, up to `limit`.
4. Score each candidate; drop those farther than `distance_threshold`.
5. Rank survivors 0..n-1 in ascending distance.
6. Replace the request's persisted match set with the survivors.

Reconcile is called once, at the end, with the complete list, so a run that
is abandoned earlier leaves the previous match set untouched. Re-running with
unchanged inputs reproduces the same match set (modulo timestamps).
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import settings
from ..core.errors import RequestNotFound
from ..db.repository import ItemRepository
from ..embeddings.cache import EmbeddingCache
from ..embeddings.embedder import Embedder
from .models import ItemKind, MatchOptions, MatchResult, MatchRunResult
from .reconciler import MatchSetReconciler
from .retriever import NearestNeighborRetriever
from .scoring import distance_to_confidence

logger = logging.getLogger("matcher.orchestrator")


def default_options() -> MatchOptions:
    return MatchOptions(
        limit=settings.default_match_limit,
        distance_threshold=settings.default_distance_threshold,
    )


class MatchOrchestrator:
    """
    Composes embedding cache, retriever, scorer and reconciler.

    Instances are cheap and bound to one repository (one DB session).
    """

    def __init__(
        self,
        repository: ItemRepository,
        embedder: Embedder,
        cache: Optional[EmbeddingCache] = None,
        retriever: Optional[NearestNeighborRetriever] = None,
        reconciler: Optional[MatchSetReconciler] = None,
    ) -> None:
        self._repository = repository
        self.cache = cache or EmbeddingCache(repository, embedder)
        self.retriever = retriever or NearestNeighborRetriever(repository)
        self.reconciler = reconciler or MatchSetReconciler(repository)

    async def match_request(
        self,
        request_id: str,
        options: Optional[MatchOptions] = None,
    ) -> MatchRunResult:
        """
        Match one request against the found-item pool and persist the result.

        Parameters
        ----------
        request_id : str
            ID of the request to match.
        options : Optional[MatchOptions]
            limit (1..100), distance_threshold (0..2), prefilters.
            Defaults come from settings.

        Returns
        -------
        MatchRunResult
            The request ID and the persisted matches, best first.

        Raises
        ------
        RequestNotFound
        MissingDescription
        EmbeddingDimensionMismatch
        IndexUnavailable
        """
        options = options or default_options()

        logger.info(
            "Starting match for request %s (limit=%d, threshold=%.3f, prefilters=%s)",
            request_id,
            options.limit,
            options.distance_threshold,
            options.prefilters.as_conditions() if options.prefilters else {},
        )

        # 1. Load request and ensure embedding
        request = await self._repository.get_item(ItemKind.REQUEST, request_id)
        if request is None:
            raise RequestNotFound(request_id)

        query_vector = await self.cache.ensure_embedding(request)

        # 2. Nearest found items
        candidates = await self.retriever.retrieve(
            query_vector,
            prefilters=options.prefilters,
            limit=options.limit,
        )

        # 3. Threshold, score and rank
        survivors = sorted(
            (c for c in candidates if c.distance <= options.distance_threshold),
            key=lambda c: c.distance,
        )
        dropped = len(candidates) - len(survivors)
        if dropped:
            logger.info(
                "Filtered %d candidates above threshold %.3f for request %s",
                dropped,
                options.distance_threshold,
                request_id,
            )

        matches = [
            MatchResult(
                found_item_id=c.found_item_id,
                distance=c.distance,
                confidence=distance_to_confidence(c.distance),
                rank=rank,
            )
            for rank, c in enumerate(survivors)
        ]

        # 4. Replace the persisted match set
        await self.reconciler.reconcile(request_id, matches)

        logger.info("Matched request %s: %d matches", request_id, len(matches))
        return MatchRunResult(request_id=request_id, matches=matches)
