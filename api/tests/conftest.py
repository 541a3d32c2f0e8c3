"""
Shared fixtures for review sync tests.

In-memory stand-ins for the Supabase-backed stores; records are copied on
the way in and out so tests see exactly what was persisted.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from integrations.core.tokens import CredentialVault
from integrations.core.types import (
    IntegrationPlatform,
    IntegrationRecord,
    IntegrationStatus,
    OwnerProfile,
    Review,
    ReviewPlatform,
)

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class InMemoryIntegrationStore:
    def __init__(self):
        self.records: dict[tuple[str, IntegrationPlatform], IntegrationRecord] = {}
        self.upserts = 0

    async def get(self, owner_id: str, platform: IntegrationPlatform) -> Optional[IntegrationRecord]:
        record = self.records.get((owner_id, platform))
        return record.model_copy(deep=True) if record else None

    async def upsert(self, record: IntegrationRecord) -> None:
        self.upserts += 1
        self.records[(record.owner_id, record.platform)] = record.model_copy(deep=True)


class InMemoryReviewStore:
    def __init__(self):
        self.rows: dict[tuple[str, ReviewPlatform, str], Review] = {}
        self.inserts = 0
        self.updates = 0

    def add(self, review: Review) -> None:
        self.rows[(review.owner_id, review.platform, review.id)] = review

    def ids(self, owner_id: str = "owner-1") -> list[str]:
        return [review_id for (owner, _, review_id) in self.rows if owner == owner_id]

    def row(self, review_id: str, owner_id: str = "owner-1") -> Optional[Review]:
        for (owner, _, key), review in self.rows.items():
            if owner == owner_id and key == review_id:
                return review
        return None

    async def find(self, owner_id: str, platform: ReviewPlatform, review_id: str) -> Optional[Review]:
        return self.rows.get((owner_id, platform, review_id))

    async def insert(self, review: Review) -> None:
        key = (review.owner_id, review.platform, review.id)
        assert key not in self.rows, f"duplicate insert for {key}"
        self.inserts += 1
        self.rows[key] = review

    async def update(self, review: Review) -> None:
        key = (review.owner_id, review.platform, review.id)
        assert key in self.rows, f"update of missing row {key}"
        self.updates += 1
        self.rows[key] = review

    async def latest_synced_at(self, owner_id: str, platform: ReviewPlatform) -> Optional[datetime]:
        synced = [
            row.synced_at for row in self.rows.values()
            if row.owner_id == owner_id and row.platform == platform and row.synced_at
        ]
        return max(synced) if synced else None

    async def list_for_owner(self, owner_id: str, platform: Optional[ReviewPlatform] = None) -> list[Review]:
        rows = [
            row for row in self.rows.values()
            if row.owner_id == owner_id and (platform is None or row.platform == platform)
        ]
        return sorted(rows, key=lambda row: row.review_date, reverse=True)


class InMemoryOwnerDirectory:
    def __init__(self, profiles: Optional[dict[str, OwnerProfile]] = None):
        self.profiles = profiles or {}
        self.saved: list[tuple[str, str]] = []

    async def get_profile(self, owner_id: str) -> Optional[OwnerProfile]:
        return self.profiles.get(owner_id)

    async def save_place_id(self, owner_id: str, place_id: str) -> None:
        self.saved.append((owner_id, place_id))
        profile = self.profiles.get(owner_id) or OwnerProfile(owner_id=owner_id)
        self.profiles[owner_id] = profile.model_copy(update={"google_place_id": place_id})


class StaticEntitlementGate:
    def __init__(self, entitled: bool = True):
        self.entitled = entitled
        self.checked: list[str] = []

    async def is_entitled(self, owner_id: str) -> bool:
        self.checked.append(owner_id)
        return self.entitled


@pytest.fixture
def vault():
    return CredentialVault("test-passphrase")


@pytest.fixture
def integration_store():
    return InMemoryIntegrationStore()


@pytest.fixture
def review_store():
    return InMemoryReviewStore()


@pytest.fixture
def owner_directory():
    return InMemoryOwnerDirectory({
        "owner-1": OwnerProfile(owner_id="owner-1", name="Trattoria Uno", address="1 Main St"),
    })


@pytest.fixture
def make_record(vault, integration_store):
    """Factory that builds and stores an integration record with encrypted secrets."""

    def _make(
        owner_id: str = "owner-1",
        platform: IntegrationPlatform = IntegrationPlatform.GOOGLE,
        access_token: str = "access-token",
        refresh_token: Optional[str] = "refresh-token",
        user_token: Optional[str] = None,
        expires_in: timedelta = timedelta(hours=1),
        watermark: Optional[datetime] = None,
        account_ref: Optional[dict] = None,
        status: IntegrationStatus = IntegrationStatus.ACTIVE,
    ) -> IntegrationRecord:
        record = IntegrationRecord(
            owner_id=owner_id,
            platform=platform,
            account_ref=account_ref or {},
            access_secret=vault.encrypt(access_token),
            refresh_secret=vault.encrypt(refresh_token) if refresh_token else None,
            user_secret=vault.encrypt(user_token) if user_token else None,
            secret_expiry=NOW + expires_in,
            last_sync_watermark=watermark,
            status=status,
        )
        integration_store.records[(owner_id, platform)] = record.model_copy(deep=True)
        return record

    return _make


@pytest.fixture
def gate():
    return StaticEntitlementGate(entitled=True)
