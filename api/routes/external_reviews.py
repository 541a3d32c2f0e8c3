"""
External Review Routes

On-demand review sync from Google and Facebook into the unified review store.

Endpoints:
- POST /external-reviews/sync - Sync reviews for the current owner
- GET /external-reviews - List synced reviews, newest first
- GET /external-reviews/integrations/:platform - Connection status (no secrets)
- GET /external-reviews/places/search - Search Google places for a place id
"""

import logging
from datetime import datetime
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from integrations.core.errors import (
    CorruptCredential,
    EntitlementRequired,
    UpstreamError,
)
from integrations.core.stores import IntegrationRecordStore, ReviewStore
from integrations.core.types import IntegrationPlatform, ReviewPlatform, SyncResult
from integrations.providers import GooglePlacesAdapter
from services.review_sync import ReviewSyncEngine, build_review_sync_engine
from services.supabase import CurrentOwner, get_service_client

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Dependencies
# =============================================================================

_engine: Optional[ReviewSyncEngine] = None


def get_sync_engine() -> ReviewSyncEngine:
    """Process-wide engine, so token refresh locks are shared across requests."""
    global _engine
    if _engine is None:
        _engine = build_review_sync_engine(get_service_client())
    return _engine


def get_review_store() -> ReviewStore:
    from services.review_store import SupabaseReviewStore
    return SupabaseReviewStore(get_service_client())


def get_integration_store() -> IntegrationRecordStore:
    from services.review_store import SupabaseIntegrationStore
    return SupabaseIntegrationStore(get_service_client())


def get_places_adapter() -> GooglePlacesAdapter:
    from services.review_store import SupabaseOwnerDirectory
    return GooglePlacesAdapter(SupabaseOwnerDirectory(get_service_client()))


SyncEngine = Annotated[ReviewSyncEngine, Depends(get_sync_engine)]
Reviews = Annotated[ReviewStore, Depends(get_review_store)]
Integrations = Annotated[IntegrationRecordStore, Depends(get_integration_store)]
PlacesAdapter = Annotated[GooglePlacesAdapter, Depends(get_places_adapter)]


# =============================================================================
# Request/Response Models
# =============================================================================

class SyncRequest(BaseModel):
    """Sync request body. Platforms default to google."""
    model_config = ConfigDict(populate_by_name=True)

    platforms: Optional[list[str]] = None
    place_id: Optional[str] = Field(default=None, alias="placeId")
    google_source: Optional[str] = Field(default=None, alias="googleSource")


class ExternalReviewResponse(BaseModel):
    id: str
    platform: str
    author: str
    rating: int
    comment: str
    review_date: datetime
    synced_at: Optional[datetime] = None


class ExternalReviewListResponse(BaseModel):
    reviews: list[ExternalReviewResponse]


class IntegrationStatusResponse(BaseModel):
    """Connection status for a platform. Secrets are never returned."""
    platform: str
    connected: bool
    status: Optional[str] = None
    account_ref: dict[str, Any] = Field(default_factory=dict)
    secret_expiry: Optional[datetime] = None
    last_sync_watermark: Optional[datetime] = None


class PlaceSearchResult(BaseModel):
    place_id: Optional[str] = None
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None


class PlaceSearchResponse(BaseModel):
    places: list[PlaceSearchResult]


def _serialize_sync_result(result: SyncResult) -> dict[str, Any]:
    results = {}
    for platform, outcome in result.results.items():
        entry: dict[str, Any] = {"success": outcome.success, "count": outcome.count}
        if outcome.error:
            entry["error"] = outcome.error
        if outcome.summary:
            entry["summary"] = outcome.summary
        results[platform] = entry

    return {
        "success": result.success,
        "results": results,
        "totalSynced": result.total_synced,
        "syncedAt": result.synced_at.isoformat(),
    }


# =============================================================================
# Sync
# =============================================================================

@router.post("/external-reviews/sync")
async def sync_external_reviews(
    request: SyncRequest,
    auth: CurrentOwner,
    engine: SyncEngine,
):
    """
    Sync reviews for the authenticated owner.

    Per-platform failures are reported in the body; the request only fails
    for missing entitlement or a corrupt stored credential.
    """
    owner_id = auth.owner_id

    options: dict[str, Any] = {}
    if request.place_id:
        options["place_id"] = request.place_id
    if request.google_source:
        options["google_source"] = request.google_source

    try:
        result = await engine.sync(owner_id, request.platforms, options)
    except EntitlementRequired:
        return JSONResponse(
            status_code=403,
            content={"error": "Premium subscription required", "requiresPremium": True},
        )
    except CorruptCredential as e:
        logger.error(f"[REVIEW_SYNC] Corrupt credential for owner {owner_id[:8]}: {e}")
        raise HTTPException(status_code=500, detail=e.message)
    except Exception as e:
        logger.error(f"[REVIEW_SYNC] Sync failed for owner {owner_id[:8]}: {e}")
        raise HTTPException(status_code=500, detail="Failed to sync reviews")

    return _serialize_sync_result(result)


# =============================================================================
# Read endpoints
# =============================================================================

@router.get("/external-reviews")
async def list_external_reviews(
    auth: CurrentOwner,
    reviews: Reviews,
    platform: Optional[ReviewPlatform] = Query(None),
) -> ExternalReviewListResponse:
    """List the owner's synced reviews, newest first."""
    try:
        rows = await reviews.list_for_owner(auth.owner_id, platform)
    except Exception as e:
        logger.error(f"[EXTERNAL_REVIEWS] Failed to list reviews for {auth.owner_id[:8]}: {e}")
        raise HTTPException(status_code=500, detail="Failed to list reviews")

    return ExternalReviewListResponse(reviews=[
        ExternalReviewResponse(
            id=row.id,
            platform=row.platform.value,
            author=row.author,
            rating=row.rating,
            comment=row.comment,
            review_date=row.review_date,
            synced_at=row.synced_at,
        )
        for row in rows
    ])


# "facebook" and "instagram" reviews come through the Meta integration
INTEGRATION_ALIASES = {
    "google": IntegrationPlatform.GOOGLE,
    "meta": IntegrationPlatform.META,
    "facebook": IntegrationPlatform.META,
    "instagram": IntegrationPlatform.META,
}


@router.get("/external-reviews/integrations/{platform}")
async def get_review_integration(
    platform: str,
    auth: CurrentOwner,
    integrations: Integrations,
) -> IntegrationStatusResponse:
    """Connection status for one platform."""
    integration_platform = INTEGRATION_ALIASES.get(platform.lower())
    if integration_platform is None:
        raise HTTPException(status_code=404, detail=f"Unknown platform: {platform}")

    try:
        record = await integrations.get(auth.owner_id, integration_platform)
    except Exception as e:
        logger.error(f"[EXTERNAL_REVIEWS] Failed to get {platform} for {auth.owner_id[:8]}: {e}")
        raise HTTPException(status_code=500, detail="Failed to get integration")

    if record is None:
        return IntegrationStatusResponse(platform=integration_platform.value, connected=False)

    return IntegrationStatusResponse(
        platform=integration_platform.value,
        connected=record.status.value == "active",
        status=record.status.value,
        account_ref=record.account_ref,
        secret_expiry=record.secret_expiry,
        last_sync_watermark=record.last_sync_watermark,
    )


@router.get("/external-reviews/places/search")
async def search_google_places(
    auth: CurrentOwner,
    places: PlacesAdapter,
    query: str = Query(..., min_length=1),
) -> PlaceSearchResponse:
    """Search Google places so the owner can pick their listing."""
    try:
        results = await places.search_places(query)
    except UpstreamError as e:
        logger.warning(f"[EXTERNAL_REVIEWS] Place search failed for {auth.owner_id[:8]}: {e.message}")
        raise HTTPException(status_code=502, detail=e.message)

    return PlaceSearchResponse(places=[PlaceSearchResult(**place) for place in results])
