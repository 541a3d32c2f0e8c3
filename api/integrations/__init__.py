"""
Review Integration System

Pulls third-party reviews (Google Business Profile, Google Places, Serper,
Facebook Pages) into the unified review store.

Modules:
- core/: credential vault, token lifecycle, provider API clients, types
- providers/: per-source adapters that normalize reviews
"""

from .core.tokens import CredentialVault
from .core.types import (
    IntegrationPlatform,
    IntegrationStatus,
    ReviewPlatform,
)

__all__ = [
    "CredentialVault",
    "IntegrationPlatform",
    "IntegrationStatus",
    "ReviewPlatform",
]
