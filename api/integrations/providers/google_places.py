"""
Google Places fallback adapter.

Used when the owner has no Business Profile integration. Needs only a
Places API key and returns the handful of public reviews Places exposes
for a listing. Places gives no stable review id, so ids are synthesized
from author and publish time.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from integrations.core.errors import UpstreamError
from integrations.core.google_client import (
    PLACE_SEARCH_FIELD_MASK,
    GoogleAPIClient,
    get_google_client,
)
from integrations.core.stores import OwnerDirectory
from integrations.core.types import IntegrationRecord, Review, ReviewPlatform

from .base import (
    DEFAULT_AUTHOR,
    FetchResult,
    ReviewAdapter,
    content_fingerprint,
    derive_review_id,
    nested_get,
    normalize_rating,
    parse_timestamp,
    resolve_place_id,
    text_value,
)

logger = logging.getLogger(__name__)


class GooglePlacesAdapter(ReviewAdapter):
    """Public reviews from Places API (New), keyed by place id."""

    def __init__(
        self,
        directory: OwnerDirectory,
        client: Optional[GoogleAPIClient] = None,
        api_key: Optional[str] = None,
    ):
        self._directory = directory
        self._client = client or get_google_client()
        self._api_key = api_key or os.getenv("GOOGLE_PLACES_API_KEY", "")

    @property
    def source(self) -> str:
        return "places"

    @property
    def platform(self) -> ReviewPlatform:
        return ReviewPlatform.GOOGLE

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def find_place_id(self, name: str, address: str) -> Optional[str]:
        """Text search by "name address"; first hit wins. Lookup failures return None."""
        try:
            places = await self._client.search_text(self._api_key, f"{name} {address}".strip())
        except UpstreamError as e:
            logger.error(f"[PLACES] Place search failed: {e}")
            return None
        if places:
            return places[0].get("id")
        return None

    async def search_places(self, query: str) -> list[dict[str, Any]]:
        """Search places for the place-id picker."""
        self._require_api_key()
        places = await self._client.search_text(
            self._api_key, query, field_mask=PLACE_SEARCH_FIELD_MASK
        )
        return [
            {
                "place_id": place.get("id"),
                "name": text_value(place.get("displayName")) or None,
                "formatted_address": place.get("formattedAddress"),
                "rating": place.get("rating"),
                "user_ratings_total": place.get("userRatingCount"),
            }
            for place in places
        ]

    def _require_api_key(self) -> None:
        if not self._api_key:
            raise UpstreamError(
                "GOOGLE_PLACES_API_KEY environment variable is required",
                provider="google_places",
            )

    async def fetch_reviews(
        self,
        owner_id: str,
        since: Optional[datetime] = None,
        *,
        access_token: Optional[str] = None,
        integration: Optional[IntegrationRecord] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> FetchResult:
        self._require_api_key()
        options = options or {}

        place_id = await resolve_place_id(
            self._directory,
            owner_id,
            explicit_place_id=options.get("place_id"),
            lookup=self.find_place_id,
        )
        if not place_id:
            raise UpstreamError(
                "Could not find Google Place ID. Please provide a Place ID or ensure "
                "name/address is accurate.",
                provider="google_places",
            )

        details = await self._client.get_place_details(self._api_key, place_id)
        items = details.get("reviews") or []

        reviews = self._normalize_items(owner_id, items, since, place_id=place_id)
        logger.info(f"[PLACES] {len(items)} fetched for place {place_id}, owner {owner_id[:8]}")

        return FetchResult(
            reviews=reviews,
            summary={
                "place_id": place_id,
                "name": text_value(details.get("displayName")) or None,
                "rating": details.get("rating"),
                "user_rating_count": details.get("userRatingCount"),
            },
        )

    def _normalize(self, owner_id: str, item: dict[str, Any], **context: Any) -> Review:
        place_id = context["place_id"]
        attribution = item.get("authorAttribution")
        author = nested_get(attribution, "displayName") or nested_get(attribution, "uri") or DEFAULT_AUTHOR
        author_key = nested_get(attribution, "uri") or nested_get(attribution, "displayName")

        rating = item.get("rating")
        if isinstance(rating, dict):
            rating = rating.get("value")

        comment = text_value(item.get("text"))

        publish_time = item.get("publishTime")
        review_date = parse_timestamp(publish_time)
        if review_date is None:
            # Only a relative description ("2 weeks ago") is available
            logger.warning(
                f"[PLACES] No usable publishTime (relative: "
                f"{item.get('relativePublishTimeDescription')!r}), using now"
            )
            review_date = datetime.now(timezone.utc)

        if publish_time and author_key:
            key = derive_review_id("places", place_id, publish_time, author_key)
        else:
            key = derive_review_id(
                "places", place_id, content_fingerprint(author, publish_time, comment)
            )

        return Review(
            id=key,
            owner_id=owner_id,
            platform=ReviewPlatform.GOOGLE,
            author=str(author),
            rating=normalize_rating(rating),
            comment=comment,
            review_date=review_date,
        )
