"""
Google API Client.

Direct REST client for the Google endpoints review sync depends on:

- OAuth2 token endpoint (refresh_token grant)
- Business Profile reviews listing (bearer auth)
- Places API (New) text search and place details (API key + field mask)

Calls go through the shared retry helper; non-2xx responses surface as
UpstreamError with the provider's status code.
"""

import logging
from typing import Optional, Any

import httpx

from .errors import UpstreamError
from .http import request_with_retry, parse_json, raise_for_status

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
BUSINESS_PROFILE_BASE_URL = "https://mybusiness.googleapis.com/v4"
PLACES_BASE_URL = "https://places.googleapis.com/v1"

# Business Profile caps pageSize at 50
_REVIEWS_PAGE_SIZE = 50
_MAX_REVIEW_PAGES = 20

PLACE_DETAILS_FIELD_MASK = "id,displayName,rating,userRatingCount,reviews"
PLACE_LOOKUP_FIELD_MASK = "places.id,places.displayName,places.formattedAddress"
PLACE_SEARCH_FIELD_MASK = (
    "places.id,places.displayName,places.formattedAddress,places.rating,places.userRatingCount"
)


class GoogleAPIClient:
    """
    Direct API client for Google review sources.

    Usage:
        client = GoogleAPIClient()

        tokens = await client.refresh_access_token(
            client_id="...",
            client_secret="...",
            refresh_token="..."
        )
        reviews = await client.list_location_reviews(
            access_token=tokens["access_token"],
            location_path="accounts/123/locations/456",
        )
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._http_client = http_client

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        return await request_with_retry(
            method, url, provider="google", http_client=self._http_client, **kwargs
        )

    # =========================================================================
    # OAuth
    # =========================================================================

    async def refresh_access_token(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str
    ) -> dict[str, Any]:
        """
        Exchange a refresh token for a new access token.

        Returns the token endpoint's JSON body as-is. A rejected refresh
        token comes back as {"error": "invalid_grant", ...} with no
        access_token; the caller decides what that means.
        """
        response = await self._request(
            "post",
            GOOGLE_TOKEN_URL,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        data = parse_json(response, "google")

        if not isinstance(data, dict):
            raise UpstreamError("Unexpected token response from Google", provider="google")

        if "error" in data:
            logger.warning(
                f"[GOOGLE_API] Token refresh rejected: {data.get('error_description', data.get('error'))}"
            )

        return data

    # =========================================================================
    # Business Profile
    # =========================================================================

    async def list_location_reviews(
        self,
        access_token: str,
        location_path: str,
    ) -> list[dict[str, Any]]:
        """
        List all reviews for a Business Profile location.

        Args:
            access_token: OAuth access token with business.manage scope
            location_path: "accounts/{accountId}/locations/{locationId}"

        Returns list of review objects (reviewId, reviewer, starRating,
        comment, createTime, updateTime, name).
        """
        url = f"{BUSINESS_PROFILE_BASE_URL}/{location_path}/reviews"
        headers = {"Authorization": f"Bearer {access_token}"}

        reviews: list[dict[str, Any]] = []
        page_token: Optional[str] = None

        for _ in range(_MAX_REVIEW_PAGES):
            params: dict[str, Any] = {"pageSize": _REVIEWS_PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token

            response = await self._request("get", url, headers=headers, params=params)
            raise_for_status(response, "google")
            data = parse_json(response, "google")

            reviews.extend(data.get("reviews") or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                break
        else:
            logger.warning(
                f"[GOOGLE_API] Stopped paging {location_path} after {_MAX_REVIEW_PAGES} pages"
            )

        return reviews

    # =========================================================================
    # Places API (New)
    # =========================================================================

    async def search_text(
        self,
        api_key: str,
        query: str,
        field_mask: str = PLACE_LOOKUP_FIELD_MASK,
    ) -> list[dict[str, Any]]:
        """Text search for places. Returns the raw `places` list."""
        response = await self._request(
            "post",
            f"{PLACES_BASE_URL}/places:searchText",
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": api_key,
                "X-Goog-FieldMask": field_mask,
            },
            json={"textQuery": query},
        )
        raise_for_status(response, "google_places")
        data = parse_json(response, "google_places")
        return data.get("places") or []

    async def get_place_details(self, api_key: str, place_id: str) -> dict[str, Any]:
        """Fetch place details including up to five public reviews."""
        response = await self._request(
            "get",
            f"{PLACES_BASE_URL}/places/{place_id}",
            headers={
                "Content-Type": "application/json",
                "X-Goog-Api-Key": api_key,
                "X-Goog-FieldMask": PLACE_DETAILS_FIELD_MASK,
            },
        )
        if response.status_code == 403:
            logger.error(
                "[GOOGLE_API] Places returned 403. Check that 'Places API (New)' is enabled, "
                "billing is active, and the API key is not restricted from it."
            )
        raise_for_status(response, "google_places")
        return parse_json(response, "google_places")


# Singleton instance
_google_client: Optional[GoogleAPIClient] = None


def get_google_client() -> GoogleAPIClient:
    """Get the global GoogleAPIClient instance."""
    global _google_client
    if _google_client is None:
        _google_client = GoogleAPIClient()
    return _google_client
