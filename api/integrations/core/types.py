"""
Review sync type definitions.

Shared types for integration records, normalized reviews and sync results.
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field
from datetime import datetime


class IntegrationPlatform(str, Enum):
    """Platforms that hold an OAuth integration record."""
    GOOGLE = "google"
    META = "meta"


class IntegrationStatus(str, Enum):
    """Lifecycle status of an integration record."""
    ACTIVE = "active"
    EXPIRED = "expired"
    REVOKED = "revoked"


class ReviewPlatform(str, Enum):
    """Platform a review was published on."""
    GOOGLE = "google"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"


class IntegrationRecord(BaseModel):
    """
    Per-owner, per-platform integration state.

    Secrets are always ciphertext produced by CredentialVault.

    account_ref holds provider addressing:
    - google: { account_id: "accounts/123", location_id: "locations/456" }
    - meta: { page_id: "1234", instagram_business_account_id: "5678" }
    """
    owner_id: str
    platform: IntegrationPlatform
    account_ref: dict[str, Any] = Field(default_factory=dict)
    access_secret: str
    refresh_secret: Optional[str] = None
    user_secret: Optional[str] = None  # Meta only: mints page secrets
    secret_expiry: datetime
    last_sync_watermark: Optional[datetime] = None
    status: IntegrationStatus = IntegrationStatus.ACTIVE


class Review(BaseModel):
    """Unified review row, keyed by a deterministic id."""
    id: str
    owner_id: str
    platform: ReviewPlatform
    author: str = "Anonymous"
    rating: int = 0
    comment: str = ""
    review_date: datetime
    synced_at: Optional[datetime] = None


class OwnerProfile(BaseModel):
    """Public business details used to locate an owner's place listing."""
    owner_id: str
    name: Optional[str] = None
    address: Optional[str] = None
    google_place_id: Optional[str] = None


class PlatformSyncResult(BaseModel):
    """Outcome of syncing one platform."""
    success: bool
    count: int = 0
    error: Optional[str] = None
    summary: Optional[dict[str, Any]] = None


class SyncResult(BaseModel):
    """Aggregate outcome of one sync call."""
    success: bool
    results: dict[str, PlatformSyncResult] = Field(default_factory=dict)
    total_synced: int = 0
    synced_at: datetime
