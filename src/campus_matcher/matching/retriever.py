"""
Nearest-Neighbor Retriever

Wraps the repository's pgvector search with the contract the orchestrator
relies on: bounded limits, validated query vectors, and a distance for
every candidate.

Degraded mode
-------------
Some vector backends cannot report a distance for every result. When
`allow_synthetic_distance` is off (the default) a missing distance raises
`IndexUnavailable`. When it is on, a deterministic estimate derived from the
rank is used instead, kept strictly above the previous candidate's distance
so confidence still falls with rank. Such candidates are flagged
`synthetic_distance=True`.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..config import settings
from ..core.errors import IndexUnavailable
from ..db.repository import ItemRepository
from .models import Candidate, Prefilters

logger = logging.getLogger("matcher.retriever")

MIN_LIMIT = 1
MAX_LIMIT = 100

SYNTHETIC_BASE_DISTANCE = 0.08
SYNTHETIC_RANK_STEP = 0.15
SYNTHETIC_MIN_GAP = 1e-6


def synthetic_distance(rank: int, previous: Optional[float]) -> float:
    """
    Estimate a distance for the candidate at `rank`.

    Strictly greater than `previous` when one is given.
    """
    estimate = SYNTHETIC_BASE_DISTANCE + rank * SYNTHETIC_RANK_STEP
    if previous is not None and estimate <= previous:
        estimate = previous + SYNTHETIC_MIN_GAP
    return estimate


class NearestNeighborRetriever:
    """
    Cosine-distance KNN over the found-item pool.
    """

    def __init__(
        self,
        repository: ItemRepository,
        dim: Optional[int] = None,
        allow_synthetic_distance: Optional[bool] = None,
    ) -> None:
        self._repository = repository
        self.dim = dim or settings.embedding_dim
        if allow_synthetic_distance is None:
            allow_synthetic_distance = settings.allow_synthetic_distance
        self.allow_synthetic_distance = allow_synthetic_distance

    async def retrieve(
        self,
        query_vector: Sequence[float],
        prefilters: Optional[Prefilters] = None,
        limit: int = 10,
    ) -> List[Candidate]:
        """
        Return up to `limit` found items nearest to `query_vector`.

        Parameters
        ----------
        query_vector : Sequence[float]
            Vector of exactly `dim` components.
        prefilters : Optional[Prefilters]
            Equality conditions applied before the similarity ordering.
        limit : int
            Maximum number of candidates, 1..100.

        Returns
        -------
        List[Candidate]
            Candidates ordered by ascending distance.

        Raises
        ------
        ValueError
            If the limit is out of range or the vector has the wrong size.
        IndexUnavailable
            If the backend cannot run the search, or omits a distance while
            degraded mode is off.
        """
        if not MIN_LIMIT <= limit <= MAX_LIMIT:
            raise ValueError(f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}, got {limit}")

        if len(query_vector) != self.dim:
            raise ValueError(
                f"query vector has {len(query_vector)} components, expected {self.dim}"
            )

        conditions = prefilters.as_conditions() if prefilters else {}
        if conditions:
            logger.info("Applying prefilters: %s", conditions)

        rows = await self._repository.find_nearest(query_vector, self.dim, prefilters, limit)
        logger.info("Vector search returned %d results (limit=%d)", len(rows), limit)

        candidates: List[Candidate] = []
        previous: Optional[float] = None

        for rank, (found_item_id, distance) in enumerate(rows):
            synthetic = False
            if distance is None:
                if not self.allow_synthetic_distance:
                    raise IndexUnavailable(
                        f"backend reported no distance for candidate {found_item_id}"
                    )
                distance = synthetic_distance(rank, previous)
                synthetic = True
                logger.warning(
                    "Using synthetic distance %.3f for %s at rank %d",
                    distance,
                    found_item_id,
                    rank,
                )

            candidates.append(
                Candidate(
                    found_item_id=found_item_id,
                    distance=distance,
                    synthetic_distance=synthetic,
                )
            )
            previous = distance

        return candidates
