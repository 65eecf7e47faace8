"""
Embedding Cache Tests

Covers the cache-hit path (no writes), generation on miss, stale dimensions,
and the two fatal conditions: missing description and wrong output size.
"""

from unittest.mock import AsyncMock

import pytest

from campus_matcher.core.errors import EmbeddingDimensionMismatch, MissingDescription
from campus_matcher.embeddings.cache import EmbeddingCache
from campus_matcher.embeddings.embedder import Embedder
from campus_matcher.matching.models import ItemKind

from fakes import DIM, keyword_vector


@pytest.mark.asyncio
async def test_miss_generates_and_writes_once(repo, embedder):
    item = repo.add_request("REQ1", "  Black iPhone 13 with cracked screen  ")
    cache = EmbeddingCache(repo, embedder, dim=DIM)

    vector = await cache.ensure_embedding(item)

    assert len(vector) == DIM
    assert embedder.calls == ["Black iPhone 13 with cracked screen"]
    assert repo.embedding_writes == [(ItemKind.REQUEST, "REQ1")]
    assert repo.commits == 1

    stored = await repo.get_item(ItemKind.REQUEST, "REQ1")
    assert stored.embedding == vector
    assert stored.embedding_dim == DIM
    assert stored.embedding_generated_at is not None


@pytest.mark.asyncio
async def test_hit_is_idempotent_and_write_free(repo, embedder):
    vector = keyword_vector("blue umbrella")
    item = repo.add_request("REQ1", "blue umbrella", embedding=vector)
    cache = EmbeddingCache(repo, embedder, dim=DIM)

    first = await cache.ensure_embedding(item)
    second = await cache.ensure_embedding(item)

    assert first == vector
    assert second == first
    assert embedder.calls == []
    assert repo.embedding_writes == []
    assert repo.commits == 0


@pytest.mark.asyncio
async def test_stale_dimension_is_regenerated(repo, embedder):
    item = repo.add_request(
        "REQ1",
        "grey hoodie",
        embedding=[0.5] * 16,
        embedding_dim=16,
    )
    cache = EmbeddingCache(repo, embedder, dim=DIM)

    vector = await cache.ensure_embedding(item)

    assert len(vector) == DIM
    assert embedder.calls == ["grey hoodie"]
    assert repo.embedding_writes == [(ItemKind.REQUEST, "REQ1")]


@pytest.mark.asyncio
async def test_recorded_dimension_must_match_vector(repo, embedder):
    # Recorded dim says DIM but the vector is short: not trusted.
    item = repo.add_request("REQ1", "keys on a lanyard", embedding=[0.1] * 10, embedding_dim=DIM)
    cache = EmbeddingCache(repo, embedder, dim=DIM)

    await cache.ensure_embedding(item)

    assert embedder.calls == ["keys on a lanyard"]


@pytest.mark.asyncio
@pytest.mark.parametrize("description", [None, "", "   \n\t "])
async def test_missing_description_fails_without_fallback(repo, embedder, description):
    item = repo.add_found_item("LOST1", description)
    cache = EmbeddingCache(repo, embedder, dim=DIM)

    with pytest.raises(MissingDescription) as excinfo:
        await cache.ensure_embedding(item)

    assert "found_items/LOST1" in str(excinfo.value)
    assert excinfo.value.status_code == 400
    assert embedder.calls == []
    assert repo.embedding_writes == []


@pytest.mark.asyncio
async def test_dimension_mismatch_is_fatal_and_not_persisted(repo):
    bad_embedder = AsyncMock(spec=Embedder)
    bad_embedder.embed_one.return_value = [0.1] * (DIM - 1)
    item = repo.add_request("REQ1", "red backpack")
    cache = EmbeddingCache(repo, bad_embedder, dim=DIM)

    with pytest.raises(EmbeddingDimensionMismatch) as excinfo:
        await cache.ensure_embedding(item)

    assert excinfo.value.expected == DIM
    assert excinfo.value.actual == DIM - 1
    assert excinfo.value.status_code == 500
    assert repo.embedding_writes == []
    assert repo.commits == 0
