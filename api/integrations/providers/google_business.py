"""
Google Business Profile adapter.

Lists reviews for the location stored on the owner's Google integration.
The reviews endpoint has no date filter, so the watermark is applied
client-side against createTime.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from integrations.core.errors import UpstreamError
from integrations.core.google_client import GoogleAPIClient, get_google_client
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
    parse_timestamp,
    text_value,
)

logger = logging.getLogger(__name__)

STAR_RATINGS = {
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
}

_LOCATION_ID = re.compile(r"locations/([^/]+)")
_REVIEW_ID = re.compile(r"/reviews/([^/]+)$")


def map_star_rating(value: Any) -> int:
    """Map the Business Profile starRating enum to 1-5 (0 if unspecified)."""
    if not isinstance(value, str):
        return 0
    return STAR_RATINGS.get(value.upper(), 0)


def build_location_path(account_ref: dict[str, Any]) -> str:
    """
    Build "accounts/{a}/locations/{l}" from an integration's account_ref.

    A location already in full form is used as-is; "locations/{l}" or a bare
    "{l}" is prefixed with the account id.
    """
    location = (account_ref.get("location_id") or "").strip("/")
    if not location:
        raise UpstreamError("Google integration has no location configured", provider="google")

    if location.startswith("accounts/"):
        return location

    match = _LOCATION_ID.search(location)
    location_id = match.group(1) if match else location

    account = (account_ref.get("account_id") or "").strip("/")
    if not account:
        raise UpstreamError("Google integration has no account configured", provider="google")
    if not account.startswith("accounts/"):
        account = f"accounts/{account}"

    return f"{account}/locations/{location_id}"


def extract_review_id(item: dict[str, Any]) -> Optional[str]:
    """reviewId, or the last segment of `.../reviews/{id}` in name."""
    review_id = item.get("reviewId")
    if review_id:
        return str(review_id)

    name = item.get("name")
    if isinstance(name, str):
        match = _REVIEW_ID.search(name)
        if match:
            return match.group(1)
    return None


class GoogleBusinessProfileAdapter(ReviewAdapter):
    """Reviews from the Business Profile API (owner OAuth required)."""

    def __init__(self, client: Optional[GoogleAPIClient] = None):
        self._client = client or get_google_client()

    @property
    def source(self) -> str:
        return "business_profile"

    @property
    def platform(self) -> ReviewPlatform:
        return ReviewPlatform.GOOGLE

    @property
    def integration_platform(self) -> Optional[IntegrationPlatform]:
        return IntegrationPlatform.GOOGLE

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
            raise UpstreamError("Google integration not active", provider="google")

        location_path = build_location_path(integration.account_ref)
        items = await self._client.list_location_reviews(access_token, location_path)

        reviews = self._normalize_items(owner_id, items, since)
        logger.info(
            f"[BUSINESS_PROFILE] {len(items)} fetched, {len(reviews)} after watermark "
            f"for owner {owner_id[:8]}"
        )
        return FetchResult(reviews=reviews)

    def _normalize(self, owner_id: str, item: dict[str, Any], **context: Any) -> Review:
        author = nested_get(item, "reviewer", "displayName") or DEFAULT_AUTHOR
        comment = text_value(item.get("comment"))

        review_date = parse_timestamp(item.get("createTime"))
        if review_date is None:
            logger.warning(
                f"[BUSINESS_PROFILE] Unparseable createTime {item.get('createTime')!r}, using now"
            )
            review_date = datetime.now(timezone.utc)

        review_id = extract_review_id(item)
        if review_id:
            key = derive_review_id("google", review_id)
        else:
            key = derive_review_id(
                "google", content_fingerprint(author, item.get("createTime"), comment)
            )

        return Review(
            id=key,
            owner_id=owner_id,
            platform=ReviewPlatform.GOOGLE,
            author=str(author),
            rating=map_star_rating(item.get("starRating")),
            comment=comment,
            review_date=review_date,
        )
