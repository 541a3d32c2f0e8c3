"""
Meta (Facebook Page) ratings adapter.

Reads the page's overall rating aggregate and its ratings sub-collection.
Basic access tiers expose no long-lived review id, so ids are built from
page id plus the rating's id (or created_time). Review text needs elevated
permissions and is often absent.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from integrations.core.errors import UpstreamError
from integrations.core.meta_client import MetaGraphClient, get_meta_client
from integrations.core.types import (
    IntegrationPlatform,
    IntegrationRecord,
    Review,
    ReviewPlatform,
)

from .base import (
    DEFAULT_AUTHOR,
    FetchResult,
    ReviewAdapter,
    content_fingerprint,
    derive_review_id,
    nested_get,
    normalize_rating,
    parse_timestamp,
    text_value,
)

logger = logging.getLogger(__name__)

# Pages that switched to recommendations report a type instead of stars
RECOMMENDATION_RATINGS = {
    "positive": 5,
    "negative": 1,
}


class MetaPageRatingsAdapter(ReviewAdapter):
    """Facebook Page ratings via the Graph API (page token required)."""

    def __init__(self, client: Optional[MetaGraphClient] = None):
        self._client = client or get_meta_client()

    @property
    def source(self) -> str:
        return "meta"

    @property
    def platform(self) -> ReviewPlatform:
        return ReviewPlatform.FACEBOOK

    @property
    def integration_platform(self) -> Optional[IntegrationPlatform]:
        return IntegrationPlatform.META

    async def fetch_reviews(
        self,
        owner_id: str,
        since: Optional[datetime] = None,
        *,
        access_token: Optional[str] = None,
        integration: Optional[IntegrationRecord] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> FetchResult:
        if not access_token or integration is None:
            raise UpstreamError(
                "Meta integration not connected or inactive. Please connect your Meta account first.",
                provider="meta",
            )

        page_id = integration.account_ref.get("page_id")
        if not page_id:
            raise UpstreamError("Meta integration has no page configured", provider="meta")

        payload = await self._client.get_page_ratings(str(page_id), access_token)
        items = payload.get("ratings") or []

        reviews = self._normalize_items(owner_id, items, since, page_id=str(page_id))
        logger.info(
            f"[META] {len(items)} ratings fetched for page {page_id}, "
            f"{len(reviews)} after watermark"
        )

        return FetchResult(
            reviews=reviews,
            summary={
                "overall_star_rating": payload.get("overall_star_rating"),
                "rating_count": payload.get("rating_count"),
            },
        )

    def _normalize(self, owner_id: str, item: dict[str, Any], **context: Any) -> Review:
        page_id = context["page_id"]
        author = nested_get(item, "reviewer", "name") or DEFAULT_AUTHOR
        comment = text_value(item.get("review_text"))

        created_time = item.get("created_time")
        review_date = parse_timestamp(created_time)
        if review_date is None:
            logger.warning(f"[META] Unparseable created_time {created_time!r}, using now")
            review_date = datetime.now(timezone.utc)

        rating = normalize_rating(item.get("rating"))
        if rating == 0:
            rating = RECOMMENDATION_RATINGS.get(str(item.get("recommendation_type", "")).lower(), 0)

        native_id = item.get("id") or created_time
        if native_id:
            key = derive_review_id("meta", page_id, native_id)
        else:
            key = derive_review_id("meta", page_id, content_fingerprint(author, comment))

        return Review(
            id=key,
            owner_id=owner_id,
            platform=ReviewPlatform.FACEBOOK,
            author=str(author),
            rating=rating,
            comment=comment,
            review_date=review_date,
        )
