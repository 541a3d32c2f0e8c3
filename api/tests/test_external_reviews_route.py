"""
Tests for the external review routes.

Run: cd api && python -m pytest tests/test_external_reviews_route.py
"""

import base64
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from integrations.core.errors import CorruptCredential, EntitlementRequired, UpstreamError
from integrations.core.types import (
    IntegrationPlatform,
    PlatformSyncResult,
    Review,
    ReviewPlatform,
    SyncResult,
)
from main import app
from routes import external_reviews

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def bearer(owner_id: str = "owner-1") -> dict:
    def segment(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    token = f"{segment({'alg': 'HS256'})}.{segment({'sub': owner_id})}.signature"
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def engine():
    return MagicMock()


@pytest.fixture
def places():
    adapter = MagicMock()
    adapter.search_places = AsyncMock(return_value=[])
    return adapter


@pytest.fixture
def client(engine, places, integration_store, review_store):
    app.dependency_overrides[external_reviews.get_sync_engine] = lambda: engine
    app.dependency_overrides[external_reviews.get_review_store] = lambda: review_store
    app.dependency_overrides[external_reviews.get_integration_store] = lambda: integration_store
    app.dependency_overrides[external_reviews.get_places_adapter] = lambda: places

    yield TestClient(app)

    app.dependency_overrides.clear()


# =============================================================================
# POST /api/external-reviews/sync
# =============================================================================

def test_sync_returns_aggregate(client, engine):
    engine.sync = AsyncMock(return_value=SyncResult(
        success=True,
        results={
            "google": PlatformSyncResult(success=False, error="Google integration not found"),
            "facebook": PlatformSyncResult(success=True, count=2, summary={"overall_star_rating": 4.6, "rating_count": 87}),
        },
        total_synced=2,
        synced_at=NOW,
    ))

    response = client.post(
        "/api/external-reviews/sync",
        json={"platforms": ["google", "meta"], "placeId": "ChIJ123"},
        headers=bearer(),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["totalSynced"] == 2
    assert body["syncedAt"] == NOW.isoformat()
    assert body["results"]["google"] == {"success": False, "count": 0, "error": "Google integration not found"}
    assert body["results"]["facebook"]["count"] == 2
    assert body["results"]["facebook"]["summary"]["rating_count"] == 87

    engine.sync.assert_awaited_once_with("owner-1", ["google", "meta"], {"place_id": "ChIJ123"})


def test_sync_defaults(client, engine):
    engine.sync = AsyncMock(return_value=SyncResult(success=False, synced_at=NOW))

    response = client.post("/api/external-reviews/sync", json={}, headers=bearer())

    assert response.status_code == 200
    engine.sync.assert_awaited_once_with("owner-1", None, {})


def test_sync_requires_premium(client, engine):
    engine.sync = AsyncMock(side_effect=EntitlementRequired("owner-1"))

    response = client.post("/api/external-reviews/sync", json={}, headers=bearer())

    assert response.status_code == 403
    assert response.json() == {"error": "Premium subscription required", "requiresPremium": True}


def test_sync_corrupt_credential(client, engine):
    engine.sync = AsyncMock(side_effect=CorruptCredential("Credential failed integrity check"))

    response = client.post("/api/external-reviews/sync", json={}, headers=bearer())

    assert response.status_code == 500
    assert response.json()["detail"] == "Credential failed integrity check"


def test_sync_unexpected_error(client, engine):
    engine.sync = AsyncMock(side_effect=RuntimeError("database unavailable"))

    response = client.post("/api/external-reviews/sync", json={}, headers=bearer())

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to sync reviews"


def test_sync_requires_auth(client, engine):
    engine.sync = AsyncMock()

    assert client.post("/api/external-reviews/sync", json={}).status_code == 401
    assert client.post(
        "/api/external-reviews/sync", json={}, headers={"Authorization": "Bearer not-a-jwt"}
    ).status_code == 401
    engine.sync.assert_not_called()


# =============================================================================
# Read endpoints
# =============================================================================

def test_list_reviews_newest_first(client, review_store):
    for review_id, day in [("google_a", 10), ("google_b", 12)]:
        review_store.add(Review(
            id=review_id,
            owner_id="owner-1",
            platform=ReviewPlatform.GOOGLE,
            review_date=datetime(2024, 1, day, tzinfo=timezone.utc),
        ))
    review_store.add(Review(
        id="other",
        owner_id="owner-2",
        platform=ReviewPlatform.GOOGLE,
        review_date=NOW,
    ))

    response = client.get("/api/external-reviews", headers=bearer())

    assert response.status_code == 200
    reviews = response.json()["reviews"]
    assert [r["id"] for r in reviews] == ["google_b", "google_a"]
    assert reviews[0]["author"] == "Anonymous"


def test_integration_status_hides_secrets(client, make_record):
    make_record(
        platform=IntegrationPlatform.META,
        account_ref={"page_id": "1234"},
        user_token="user-token",
        expires_in=timedelta(days=30),
    )

    response = client.get("/api/external-reviews/integrations/facebook", headers=bearer())

    assert response.status_code == 200
    body = response.json()
    assert body["platform"] == "meta"
    assert body["connected"] is True
    assert body["account_ref"] == {"page_id": "1234"}
    for secret in ("access_secret", "refresh_secret", "user_secret"):
        assert secret not in body


def test_integration_status_not_connected(client):
    response = client.get("/api/external-reviews/integrations/google", headers=bearer())

    assert response.status_code == 200
    assert response.json()["connected"] is False


def test_integration_status_unknown_platform(client):
    response = client.get("/api/external-reviews/integrations/yelp", headers=bearer())

    assert response.status_code == 404


def test_place_search(client, places):
    places.search_places = AsyncMock(return_value=[{
        "place_id": "ChIJ123",
        "name": "Trattoria Uno",
        "formatted_address": "1 Main St",
        "rating": 4.4,
        "user_ratings_total": 210,
    }])

    response = client.get("/api/external-reviews/places/search", params={"query": "trattoria"}, headers=bearer())

    assert response.status_code == 200
    assert response.json()["places"][0]["place_id"] == "ChIJ123"
    places.search_places.assert_awaited_once_with("trattoria")


def test_place_search_unconfigured(client, places):
    places.search_places = AsyncMock(
        side_effect=UpstreamError("GOOGLE_PLACES_API_KEY environment variable is required")
    )

    response = client.get("/api/external-reviews/places/search", params={"query": "x"}, headers=bearer())

    assert response.status_code == 502
    assert "GOOGLE_PLACES_API_KEY" in response.json()["detail"]
