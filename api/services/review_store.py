"""
Supabase-backed stores for review sync.

Tables:
- review_integrations: one row per (owner_id, platform), secrets encrypted
- external_reviews: unified review rows, unique on (owner_id, platform, id)
- restaurants: owner profile (name, address, cached google_place_id)
"""

import logging
from datetime import datetime
from typing import Optional

from dateutil import parser as dateparser
from supabase import Client

from integrations.core.types import (
    IntegrationPlatform,
    IntegrationRecord,
    OwnerProfile,
    Review,
    ReviewPlatform,
)

logger = logging.getLogger(__name__)


def _parse_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return dateparser.isoparse(value)


class SupabaseIntegrationStore:
    """Integration records in `review_integrations`, unique on (owner_id, platform)."""

    table = "review_integrations"

    def __init__(self, client: Client):
        self._client = client

    async def get(self, owner_id: str, platform: IntegrationPlatform) -> Optional[IntegrationRecord]:
        result = self._client.table(self.table).select("*").eq(
            "owner_id", owner_id
        ).eq("platform", platform.value).limit(1).execute()

        if not result.data:
            return None
        return IntegrationRecord(**result.data[0])

    async def upsert(self, record: IntegrationRecord) -> None:
        self._client.table(self.table).upsert(
            record.model_dump(mode="json"),
            on_conflict="owner_id,platform",
        ).execute()


class SupabaseReviewStore:
    """Unified reviews in `external_reviews`."""

    table = "external_reviews"

    def __init__(self, client: Client):
        self._client = client

    async def find(self, owner_id: str, platform: ReviewPlatform, review_id: str) -> Optional[Review]:
        result = self._client.table(self.table).select("*").eq(
            "owner_id", owner_id
        ).eq("platform", platform.value).eq("id", review_id).limit(1).execute()
        if not result.data:
            return None
        return Review(**result.data[0])

    async def insert(self, review: Review) -> None:
        self._client.table(self.table).insert(review.model_dump(mode="json")).execute()

    async def update(self, review: Review) -> None:
        payload = review.model_dump(mode="json", exclude={"id", "owner_id", "platform"})
        self._client.table(self.table).update(payload).eq(
            "owner_id", review.owner_id
        ).eq("platform", review.platform.value).eq("id", review.id).execute()

    async def latest_synced_at(self, owner_id: str, platform: ReviewPlatform) -> Optional[datetime]:
        result = self._client.table(self.table).select("synced_at").eq(
            "owner_id", owner_id
        ).eq("platform", platform.value).order("synced_at", desc=True).limit(1).execute()

        if not result.data:
            return None
        return _parse_datetime(result.data[0].get("synced_at"))

    async def list_for_owner(
        self, owner_id: str, platform: Optional[ReviewPlatform] = None
    ) -> list[Review]:
        query = self._client.table(self.table).select(
            "id, owner_id, platform, author, rating, comment, review_date, synced_at"
        ).eq("owner_id", owner_id)
        if platform is not None:
            query = query.eq("platform", platform.value)

        result = query.order("review_date", desc=True).execute()
        return [Review(**row) for row in result.data or []]


class SupabaseOwnerDirectory:
    """Owner profiles; the Places and search-proxy adapters cache place ids here."""

    table = "restaurants"

    def __init__(self, client: Client):
        self._client = client

    async def get_profile(self, owner_id: str) -> Optional[OwnerProfile]:
        result = self._client.table(self.table).select(
            "id, name, address, google_place_id"
        ).eq("id", owner_id).limit(1).execute()

        if not result.data:
            return None

        row = result.data[0]
        return OwnerProfile(
            owner_id=row["id"],
            name=row.get("name"),
            address=row.get("address"),
            google_place_id=row.get("google_place_id"),
        )

    async def save_place_id(self, owner_id: str, place_id: str) -> None:
        self._client.table(self.table).update(
            {"google_place_id": place_id}
        ).eq("id", owner_id).execute()
        logger.info(f"[OWNERS] Saved google_place_id for owner {owner_id[:8]}")
