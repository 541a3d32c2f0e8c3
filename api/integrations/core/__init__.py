"""Core review integration infrastructure."""

from .errors import (
    ReviewSyncError,
    IntegrationNotFound,
    IntegrationNotActive,
    ReauthorizationRequired,
    CorruptCredential,
    UpstreamError,
    EntitlementRequired,
)
from .tokens import CredentialVault
from .types import (
    IntegrationPlatform,
    IntegrationStatus,
    IntegrationRecord,
    ReviewPlatform,
    Review,
)

__all__ = [
    "ReviewSyncError",
    "IntegrationNotFound",
    "IntegrationNotActive",
    "ReauthorizationRequired",
    "CorruptCredential",
    "UpstreamError",
    "EntitlementRequired",
    "CredentialVault",
    "IntegrationPlatform",
    "IntegrationStatus",
    "IntegrationRecord",
    "ReviewPlatform",
    "Review",
]
