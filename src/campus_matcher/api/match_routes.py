"""
Match Routes

On-demand matching of a request against the found-item pool, and read access
to a request's current match set.

Errors raised by the matching engine are not caught here: the global
handlers registered in `main.create_app` map them to status codes
(RequestNotFound -> 404, MissingDescription -> 400,
EmbeddingDimensionMismatch -> 500, IndexUnavailable -> 503).
"""

import asyncio
import logging
from time import perf_counter
from typing import Annotated

from fastapi import APIRouter, Depends, status

from .models import (
    MatchItem,
    MatchRequestBody,
    MatchResponse,
    StoredMatchItem,
    StoredMatchesResponse,
)
from .dependencies import get_embedder, get_repository
from ..config import settings
from ..core.errors import MatchTimeout, RequestNotFound
from ..db import ItemRepository
from ..embeddings.embedder import Embedder
from ..matching.models import ItemKind
from ..matching.orchestrator import MatchOrchestrator

logger = logging.getLogger("matcher.api")

router = APIRouter(tags=["matching"])


@router.post(
    "/match",
    response_model=MatchResponse,
    summary="Match a request against found items",
    status_code=status.HTTP_200_OK,
)
async def match(
    req: MatchRequestBody,
    repository: Annotated[ItemRepository, Depends(get_repository)],
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> MatchResponse:
    """
    Run the matching algorithm for one request and replace its match set.

    Parameters
    ----------
    req : MatchRequestBody
        Contains:
        - requestId: ID of the request to match
        - limit: Maximum number of matches (1..100, default 10)
        - distanceThreshold: Maximum cosine distance (0..2, default 0.6)
        - prefilters: Optional category / campus equality filters

    Returns
    -------
    MatchResponse
        The persisted matches, best first, and the elapsed milliseconds.
    """
    started = perf_counter()
    options = req.to_options()

    logger.info("Processing match for requestId=%s", req.request_id)

    orchestrator = MatchOrchestrator(repository, embedder)
    try:
        result = await asyncio.wait_for(
            orchestrator.match_request(req.request_id, options),
            timeout=settings.match_timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise MatchTimeout(req.request_id, settings.match_timeout_seconds) from exc

    duration = int((perf_counter() - started) * 1000)
    logger.info(
        "Match completed in %dms (requestId=%s, matches=%d)",
        duration,
        req.request_id,
        len(result.matches),
    )

    return MatchResponse(
        request_id=result.request_id,
        matches=[
            MatchItem(
                lost_id=m.found_item_id,
                distance=m.distance,
                confidence=m.confidence,
                rank=m.rank,
            )
            for m in result.matches
        ],
        duration=duration,
    )


@router.get(
    "/requests/{request_id}/matches",
    response_model=StoredMatchesResponse,
    summary="List the current matches of a request",
)
async def list_request_matches(
    request_id: str,
    repository: Annotated[ItemRepository, Depends(get_repository)],
) -> StoredMatchesResponse:
    """
    Return the persisted match set of a request ordered by rank.

    An empty list means no matches yet, not an error.
    """
    request = await repository.get_item(ItemKind.REQUEST, request_id)
    if request is None:
        raise RequestNotFound(request_id)

    records = await repository.list_matches(request_id)

    return StoredMatchesResponse(
        request_id=request_id,
        matches=[
            StoredMatchItem(
                lost_id=r.found_item_id,
                distance=r.distance,
                confidence=r.confidence,
                rank=r.rank,
                status=r.status,
            )
            for r in records
        ],
    )
