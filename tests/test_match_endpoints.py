from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from campus_matcher.api.dependencies import get_embedder, get_repository, get_trigger_bus
from campus_matcher.main import app
from campus_matcher.matching.models import ItemKind
from campus_matcher.triggers.bus import TriggerBus

from fakes import KeywordEmbedder, basis_vector, keyword_vector, unit_vector_at_distance


@pytest.fixture
def bus():
    return TriggerBus()


@pytest.fixture
def override_dependencies(repo, embedder, bus):
    async def _get_repository():
        yield repo

    app.dependency_overrides[get_repository] = _get_repository
    app.dependency_overrides[get_embedder] = lambda: embedder
    app.dependency_overrides[get_trigger_bus] = lambda: bus
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def async_client(override_dependencies):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------
# POST /match
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_match_returns_ranked_matches(async_client, repo):
    repo.add_request("R1", "anything", embedding=basis_vector())
    repo.add_found_item("F2", "x", embedding=unit_vector_at_distance(0.3))
    repo.add_found_item("F1", "x", embedding=unit_vector_at_distance(0.1))

    resp = await async_client.post(
        "/match",
        json={"requestId": "R1", "limit": 5, "distanceThreshold": 0.6},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["requestId"] == "R1"
    assert isinstance(body["duration"], int)
    assert [(m["lostId"], m["rank"]) for m in body["matches"]] == [("F1", 0), ("F2", 1)]
    assert body["matches"][0]["confidence"] == pytest.approx(0.95)
    assert body["matches"][1]["distance"] == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_match_passes_prefilters(async_client, repo):
    repo.add_request("R1", "anything", embedding=basis_vector())
    repo.add_found_item("A", "x", category="bags", embedding=unit_vector_at_distance(0.2))
    repo.add_found_item("B", "x", category="keys", embedding=unit_vector_at_distance(0.1))

    resp = await async_client.post(
        "/match",
        json={"requestId": "R1", "prefilters": {"category": "bags"}},
    )

    assert resp.status_code == 200
    assert [m["lostId"] for m in resp.json()["matches"]] == ["A"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"requestId": ""},
        {"requestId": "R1", "limit": 0},
        {"requestId": "R1", "limit": 101},
        {"requestId": "R1", "distanceThreshold": 2.5},
        {"requestId": "R1", "prefilters": {"category": 5}},
    ],
)
async def test_match_rejects_invalid_payloads(async_client, payload):
    resp = await async_client.post("/match", json=payload)

    assert resp.status_code == 400
    body = resp.json()
    assert body["ok"] is False
    assert body["errorType"] == "ValidationError"


@pytest.mark.asyncio
async def test_match_ignores_unknown_fields(async_client, repo):
    repo.add_request("R1", "anything", embedding=basis_vector())
    repo.add_found_item("A", "x", category="bags", embedding=unit_vector_at_distance(0.2))
    repo.add_found_item("B", "x", category="keys", embedding=unit_vector_at_distance(0.1))

    resp = await async_client.post(
        "/match",
        json={
            "requestId": "R1",
            "clientVersion": "2",
            "prefilters": {"category": "bags", "color": "black"},
        },
    )

    assert resp.status_code == 200
    assert [m["lostId"] for m in resp.json()["matches"]] == ["A"]
    assert repo.find_nearest_calls[0]["prefilters"].as_conditions() == {"category": "bags"}


@pytest.mark.asyncio
async def test_match_unknown_request_is_404(async_client):
    resp = await async_client.post("/match", json={"requestId": "nope"})

    assert resp.status_code == 404
    assert resp.json() == {
        "ok": False,
        "error": "Request with ID 'nope' not found",
        "errorType": "RequestNotFoundError",
    }


@pytest.mark.asyncio
async def test_match_missing_description_is_400(async_client, repo):
    repo.add_request("R1", None)

    resp = await async_client.post("/match", json={"requestId": "R1"})

    assert resp.status_code == 400
    assert resp.json()["errorType"] == "MissingDescriptionError"


@pytest.mark.asyncio
async def test_match_dimension_mismatch_is_500(async_client, repo):
    app.dependency_overrides[get_embedder] = lambda: KeywordEmbedder(dim=10)
    repo.add_request("R1", "brown leather wallet")

    resp = await async_client.post("/match", json={"requestId": "R1"})

    assert resp.status_code == 500
    assert resp.json()["errorType"] == "EmbeddingDimensionMismatchError"
    assert repo.embedding_writes == []


@pytest.mark.asyncio
async def test_match_index_unavailable_is_503_with_hint(async_client, repo):
    repo.add_request("R1", "anything", embedding=basis_vector())
    repo.vector_available = False

    resp = await async_client.post("/match", json={"requestId": "R1"})

    assert resp.status_code == 503
    body = resp.json()
    assert body["errorType"] == "IndexUnavailableError"
    assert "hint" in body


@pytest.mark.asyncio
async def test_unexpected_failure_is_generic_500(async_client, repo):
    repo.get_item = AsyncMock(side_effect=RuntimeError("connection reset by peer"))

    resp = await async_client.post("/match", json={"requestId": "R1"})

    assert resp.status_code == 500
    body = resp.json()
    assert body == {"ok": False, "error": "Internal server error", "errorType": "InternalError"}
    assert "connection reset" not in resp.text


# ---------------------------------------------------------------------
# GET /requests/{id}/matches
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_matches_after_run(async_client, repo):
    repo.add_request("R1", "anything", embedding=basis_vector())
    repo.add_found_item("F1", "x", embedding=unit_vector_at_distance(0.1))
    await async_client.post("/match", json={"requestId": "R1"})

    resp = await async_client.get("/requests/R1/matches")

    assert resp.status_code == 200
    matches = resp.json()["matches"]
    assert [(m["lostId"], m["rank"], m["status"]) for m in matches] == [("F1", 0, "pending")]


@pytest.mark.asyncio
async def test_list_matches_empty_for_unmatched_request(async_client, repo):
    repo.add_request("R1", "anything")

    resp = await async_client.get("/requests/R1/matches")

    assert resp.status_code == 200
    assert resp.json()["matches"] == []


@pytest.mark.asyncio
async def test_list_matches_unknown_request_is_404(async_client):
    resp = await async_client.get("/requests/nope/matches")
    assert resp.status_code == 404


# ---------------------------------------------------------------------
# Item creation and deletion
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_request_commits_and_publishes(async_client, repo, bus):
    resp = await async_client.post(
        "/requests",
        json={
            "attributes": {"genericDescription": "navy backpack", "color": "navy"},
            "campus": "north",
            "userId": "u-1",
            "userEmail": "u1@example.edu",
        },
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["collection"] == "requests"
    assert repo.commits == 1

    stored = await repo.get_item(ItemKind.REQUEST, body["id"])
    assert stored.attributes.generic_description == "navy backpack"
    assert stored.user_email == "u1@example.edu"

    event = await bus.get_next_event()
    assert event.collection is ItemKind.REQUEST
    assert event.document_id == body["id"]


@pytest.mark.asyncio
async def test_create_found_item_publishes_found_item_event(async_client, bus):
    resp = await async_client.post(
        "/found-items",
        json={"attributes": {"genericDescription": "navy backpack"}, "category": "bags"},
    )

    assert resp.status_code == 201
    event = await bus.get_next_event()
    assert event.collection is ItemKind.FOUND_ITEM
    assert event.document_id == resp.json()["id"]


@pytest.mark.asyncio
async def test_create_found_item_rejects_user_fields(async_client, bus):
    resp = await async_client.post(
        "/found-items",
        json={"attributes": {"genericDescription": "x"}, "userId": "u-1"},
    )

    assert resp.status_code == 400
    assert bus._queue.empty()


@pytest.mark.asyncio
async def test_delete_request_removes_matches(async_client, repo):
    repo.add_request("R1", "anything", embedding=basis_vector())
    repo.add_found_item("F1", "x", embedding=keyword_vector("x"))
    repo.matches["R1"] = []

    resp = await async_client.delete("/requests/R1")

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "id": "R1"}
    assert "R1" not in repo.matches

    missing = await async_client.delete("/requests/R1")
    assert missing.status_code == 404


# ---------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health_reports_vector_index(async_client, repo):
    resp = await async_client.get("/health")
    assert resp.json() == {"status": "ok", "vector_index": True}

    repo.vector_available = False
    resp = await async_client.get("/health")
    assert resp.json() == {"status": "degraded", "vector_index": False}
