import pytest

from campus_matcher.core.errors import IndexUnavailable
from campus_matcher.matching.models import Prefilters
from campus_matcher.matching.retriever import (
    SYNTHETIC_BASE_DISTANCE,
    SYNTHETIC_RANK_STEP,
    NearestNeighborRetriever,
    synthetic_distance,
)

from fakes import DIM, basis_vector, unit_vector_at_distance


class NoDistanceRepository:
    """Backend that returns neighbours in order but without distances."""

    def __init__(self, rows):
        self.rows = rows

    async def find_nearest(self, query_vector, dim, prefilters, limit):
        return self.rows[:limit]


@pytest.mark.asyncio
async def test_candidates_are_ordered_by_distance(repo):
    repo.add_found_item("FAR", "x", embedding=unit_vector_at_distance(0.5))
    repo.add_found_item("NEAR", "x", embedding=unit_vector_at_distance(0.1))
    repo.add_found_item("MID", "x", embedding=unit_vector_at_distance(0.3))

    retriever = NearestNeighborRetriever(repo, dim=DIM)
    candidates = await retriever.retrieve(basis_vector(), limit=10)

    assert [c.found_item_id for c in candidates] == ["NEAR", "MID", "FAR"]
    assert candidates[0].distance == pytest.approx(0.1)
    assert not any(c.synthetic_distance for c in candidates)


@pytest.mark.asyncio
async def test_limit_caps_result_count(repo):
    for i in range(5):
        repo.add_found_item(f"F{i}", "x", embedding=unit_vector_at_distance(0.1 * (i + 1)))

    candidates = await NearestNeighborRetriever(repo, dim=DIM).retrieve(basis_vector(), limit=2)

    assert len(candidates) == 2
    assert repo.find_nearest_calls[0]["limit"] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 101, -3])
async def test_limit_out_of_range_is_rejected(repo, limit):
    with pytest.raises(ValueError):
        await NearestNeighborRetriever(repo, dim=DIM).retrieve(basis_vector(), limit=limit)
    assert repo.find_nearest_calls == []


@pytest.mark.asyncio
async def test_query_vector_must_have_configured_dimension(repo):
    with pytest.raises(ValueError):
        await NearestNeighborRetriever(repo, dim=DIM).retrieve([1.0, 0.0], limit=5)


@pytest.mark.asyncio
async def test_prefilters_narrow_the_pool(repo):
    repo.add_found_item("A", "x", category="electronics", campus="north", embedding=unit_vector_at_distance(0.2))
    repo.add_found_item("B", "x", category="clothing", campus="north", embedding=unit_vector_at_distance(0.1))
    repo.add_found_item("C", "x", category="electronics", campus="south", embedding=unit_vector_at_distance(0.1))

    prefilters = Prefilters(category="electronics", campus="north")
    candidates = await NearestNeighborRetriever(repo, dim=DIM).retrieve(
        basis_vector(), prefilters=prefilters, limit=10
    )

    assert [c.found_item_id for c in candidates] == ["A"]
    assert repo.find_nearest_calls[0]["prefilters"] == prefilters


@pytest.mark.asyncio
async def test_items_without_current_embedding_are_skipped(repo):
    repo.add_found_item("NONE", "x")
    repo.add_found_item("STALE", "x", embedding=[1.0] * 16)
    repo.add_found_item("OK", "x", embedding=unit_vector_at_distance(0.2))

    candidates = await NearestNeighborRetriever(repo, dim=DIM).retrieve(basis_vector())

    assert [c.found_item_id for c in candidates] == ["OK"]


@pytest.mark.asyncio
async def test_unavailable_backend_propagates(repo):
    repo.vector_available = False

    with pytest.raises(IndexUnavailable) as excinfo:
        await NearestNeighborRetriever(repo, dim=DIM).retrieve(basis_vector())

    assert excinfo.value.status_code == 503
    assert "CREATE EXTENSION vector" in excinfo.value.to_payload()["hint"]


@pytest.mark.asyncio
async def test_missing_distance_fails_by_default():
    backend = NoDistanceRepository([("F1", None), ("F2", None)])
    retriever = NearestNeighborRetriever(backend, dim=DIM, allow_synthetic_distance=False)

    with pytest.raises(IndexUnavailable):
        await retriever.retrieve(basis_vector())


@pytest.mark.asyncio
async def test_degraded_mode_estimates_increasing_distances():
    backend = NoDistanceRepository([("F1", None), ("F2", None), ("F3", None)])
    retriever = NearestNeighborRetriever(backend, dim=DIM, allow_synthetic_distance=True)

    first = await retriever.retrieve(basis_vector())
    second = await retriever.retrieve(basis_vector())

    distances = [c.distance for c in first]
    assert distances == pytest.approx([0.08, 0.23, 0.38])
    assert all(a < b for a, b in zip(distances, distances[1:]))
    assert all(c.synthetic_distance for c in first)
    assert first == second


@pytest.mark.asyncio
async def test_degraded_mode_keeps_real_distances():
    backend = NoDistanceRepository([("F1", 0.05), ("F2", None)])
    retriever = NearestNeighborRetriever(backend, dim=DIM, allow_synthetic_distance=True)

    candidates = await retriever.retrieve(basis_vector())

    assert candidates[0].distance == 0.05
    assert not candidates[0].synthetic_distance
    assert candidates[1].synthetic_distance
    assert candidates[1].distance > candidates[0].distance


def test_synthetic_distance_stays_above_previous():
    assert synthetic_distance(0, None) == SYNTHETIC_BASE_DISTANCE
    assert synthetic_distance(2, None) == pytest.approx(SYNTHETIC_BASE_DISTANCE + 2 * SYNTHETIC_RANK_STEP)
    assert synthetic_distance(1, 0.9) > 0.9
