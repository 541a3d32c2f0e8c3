"""
Persistence interfaces consumed by review sync.

Concrete Supabase implementations live in services/review_store.py and
services/entitlements.py; tests use in-memory fakes.
"""

from datetime import datetime
from typing import Optional, Protocol

from .types import (
    IntegrationPlatform,
    IntegrationRecord,
    OwnerProfile,
    Review,
    ReviewPlatform,
)


class IntegrationRecordStore(Protocol):
    async def get(self, owner_id: str, platform: IntegrationPlatform) -> Optional[IntegrationRecord]: ...

    async def upsert(self, record: IntegrationRecord) -> None: ...


class ReviewStore(Protocol):
    async def find(self, owner_id: str, platform: ReviewPlatform, review_id: str) -> Optional[Review]: ...

    async def insert(self, review: Review) -> None: ...

    async def update(self, review: Review) -> None: ...

    async def latest_synced_at(self, owner_id: str, platform: ReviewPlatform) -> Optional[datetime]: ...

    async def list_for_owner(
        self, owner_id: str, platform: Optional[ReviewPlatform] = None
    ) -> list[Review]: ...


class OwnerDirectory(Protocol):
    async def get_profile(self, owner_id: str) -> Optional[OwnerProfile]: ...

    async def save_place_id(self, owner_id: str, place_id: str) -> None: ...


class EntitlementGate(Protocol):
    async def is_entitled(self, owner_id: str) -> bool: ...
