"""
Search-proxy (Serper) review adapter.

Pulls Google reviews for a place id through the Serper reviews endpoint.
Entries are heterogeneous: an `isoDate` is preferred, then `date`. Serper
often gives only relative strings ("2 weeks ago"), which are not parsed;
those entries fall back to the current time and a warning is logged every
time, since a "now" date defeats watermark filtering for that entry.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from integrations.core.errors import UpstreamError
from integrations.core.serper_client import SerperClient
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


class SearchProxyAdapter(ReviewAdapter):
    """Google reviews through the Serper search proxy."""

    def __init__(
        self,
        directory: OwnerDirectory,
        client: Optional[SerperClient] = None,
        api_key: Optional[str] = None,
    ):
        self._directory = directory
        self._client = client or SerperClient()
        self._api_key = api_key or os.getenv("SERPER_API_KEY", "")
        self.date_fallbacks = 0

    @property
    def source(self) -> str:
        return "search_proxy"

    @property
    def platform(self) -> ReviewPlatform:
        return ReviewPlatform.GOOGLE

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def fetch_reviews(
        self,
        owner_id: str,
        since: Optional[datetime] = None,
        *,
        access_token: Optional[str] = None,
        integration: Optional[IntegrationRecord] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> FetchResult:
        if not self._api_key:
            raise UpstreamError(
                "SERPER_API_KEY environment variable is required", provider="serper"
            )
        options = options or {}

        place_id = await resolve_place_id(
            self._directory, owner_id, explicit_place_id=options.get("place_id")
        )
        if not place_id:
            raise UpstreamError(
                "Place ID is required. Please provide a Google Place ID.", provider="serper"
            )

        items = await self._client.fetch_reviews(self._api_key, place_id)
        reviews = self._normalize_items(owner_id, items, since, place_id=place_id)
        logger.info(f"[SEARCH_PROXY] {len(items)} fetched for place {place_id}, owner {owner_id[:8]}")

        return FetchResult(reviews=reviews)

    def _normalize(self, owner_id: str, item: dict[str, Any], **context: Any) -> Review:
        place_id = context["place_id"]
        author = nested_get(item, "user", "name") or DEFAULT_AUTHOR
        comment = text_value(item.get("snippet"))
        raw_date = item.get("isoDate") or item.get("date")

        review_date = parse_timestamp(item.get("isoDate")) or parse_timestamp(item.get("date"))
        parsed_date = review_date
        if review_date is None:
            self.date_fallbacks += 1
            logger.warning(
                f"[SEARCH_PROXY] Unparseable review date {raw_date!r} for place {place_id}, "
                f"defaulting to now; watermark filtering is unreliable for this review"
            )
            review_date = datetime.now(timezone.utc)

        if item.get("id"):
            key = derive_review_id("serper", item["id"])
        else:
            # Relative dates ("2 weeks ago") drift as the review ages; only a parsed date is stable
            key = derive_review_id(
                "serper",
                place_id,
                content_fingerprint(author, parsed_date.isoformat() if parsed_date else None, comment),
            )

        return Review(
            id=key,
            owner_id=owner_id,
            platform=ReviewPlatform.GOOGLE,
            author=str(author),
            rating=normalize_rating(item.get("rating")),
            comment=comment,
            review_date=review_date,
        )
