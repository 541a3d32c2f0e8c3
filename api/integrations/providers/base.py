"""
Base classes for review provider adapters.

Each adapter turns one upstream source's payload into unified Review rows.
Adapters own all provider-specific parsing and defaulting; the sync engine
only ever sees Review objects.

Defaults for missing upstream fields:
- author: "Anonymous"
- comment: ""
- rating: 0 (unknown)

A malformed entry is logged and skipped; it never aborts the fetch.
"""

import hashlib
import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from dateutil import parser as dateparser

from integrations.core.stores import OwnerDirectory
from integrations.core.types import (
    IntegrationPlatform,
    IntegrationRecord,
    Review,
    ReviewPlatform,
)

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR = "Anonymous"

_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_]")


@dataclass
class FetchResult:
    """Reviews returned by one adapter call, plus optional listing aggregates."""
    reviews: list[Review] = field(default_factory=list)
    summary: Optional[dict[str, Any]] = None


# =============================================================================
# Normalization helpers
# =============================================================================

def sanitize_id(value: str) -> str:
    return _UNSAFE_ID_CHARS.sub("_", value)


def derive_review_id(prefix: str, *parts: Any) -> str:
    """
    Build a deterministic review key from a source prefix and the provider's
    identity for the review.

    >>> derive_review_id("google", "AbC-123")
    'google_AbC_123'
    """
    return sanitize_id("_".join([prefix, *(str(part) for part in parts)]))


def content_fingerprint(*parts: Any) -> str:
    """Stable hash for reviews that carry no provider identity."""
    joined = "\x1f".join("" if part is None else str(part) for part in parts)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:32]


def normalize_rating(value: Any) -> int:
    """
    Normalize a provider rating to an integer 1-5, or 0 when unknown.

    Decimal ratings are rounded half up; out of range values are clamped.
    """
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or number <= 0:
        return 0
    return max(1, min(5, int(number + 0.5)))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime, or None."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = dateparser.isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_before_watermark(review_date: datetime, since: Optional[datetime]) -> bool:
    """True when the review predates the watermark (strictly before)."""
    if since is None:
        return False
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return review_date < since


def nested_get(data: Any, *keys: str) -> Any:
    """Walk nested dicts, returning None as soon as a level is missing."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def text_value(value: Any) -> str:
    """Flatten `{"text": "..."}` shaped fields to a plain string."""
    if isinstance(value, dict):
        value = value.get("text")
    if value is None:
        return ""
    return str(value)


async def resolve_place_id(
    directory: OwnerDirectory,
    owner_id: str,
    explicit_place_id: Optional[str] = None,
    lookup: Optional[Callable[[str, str], Awaitable[Optional[str]]]] = None,
) -> Optional[str]:
    """
    Resolve the Google place id for an owner.

    Priority: 1. explicit value, 2. cached value on the owner profile,
    3. lookup(name, address) when given. New or discovered ids are saved
    back to the owner directory.
    """
    profile = await directory.get_profile(owner_id)
    cached = profile.google_place_id if profile else None

    if explicit_place_id:
        if explicit_place_id != cached:
            await directory.save_place_id(owner_id, explicit_place_id)
        return explicit_place_id

    if cached:
        return cached

    if lookup is None or profile is None or not profile.name:
        return None

    found = await lookup(profile.name, profile.address or "")
    if found:
        logger.info(f"[PLACES] Discovered place id for owner {owner_id[:8]}")
        await directory.save_place_id(owner_id, found)
    return found


# =============================================================================
# Adapter interface
# =============================================================================

class ReviewAdapter(ABC):
    """
    Abstract base class for review provider adapters.

    Adapters are stateless per call: owner, watermark, token and integration
    record are passed to fetch_reviews().
    """

    @property
    @abstractmethod
    def source(self) -> str:
        """Registry key for this adapter (e.g. "business_profile")."""
        pass

    @property
    @abstractmethod
    def platform(self) -> ReviewPlatform:
        """Platform recorded on the reviews this adapter produces."""
        pass

    @property
    def integration_platform(self) -> Optional[IntegrationPlatform]:
        """
        OAuth integration this adapter needs a token from.

        None for API-key sources that work without owner authorization.
        """
        return None

    @property
    def is_configured(self) -> bool:
        """Whether service-level configuration (API keys) is present."""
        return True

    @abstractmethod
    async def fetch_reviews(
        self,
        owner_id: str,
        since: Optional[datetime] = None,
        *,
        access_token: Optional[str] = None,
        integration: Optional[IntegrationRecord] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> FetchResult:
        """
        Fetch and normalize reviews for an owner.

        Args:
            owner_id: Owner being synced
            since: Watermark; reviews dated strictly before it are dropped
            access_token: Valid plaintext token for OAuth sources
            integration: The owner's integration record for OAuth sources
            options: Provider-specific options from the caller (place_id, ...)

        Raises:
            UpstreamError: Provider failure or missing configuration
        """
        pass

    @abstractmethod
    def _normalize(self, owner_id: str, item: dict[str, Any], **context: Any) -> Review:
        """Map one upstream entry to a Review, substituting defaults."""
        pass

    def _normalize_items(
        self,
        owner_id: str,
        items: list[Any],
        since: Optional[datetime],
        **context: Any,
    ) -> list[Review]:
        reviews: list[Review] = []
        skipped = 0

        for index, item in enumerate(items):
            if not isinstance(item, dict):
                logger.warning(f"[{self.source.upper()}] Skipping non-object review at index {index}")
                continue
            try:
                review = self._normalize(owner_id, item, **context)
            except (TypeError, ValueError, AttributeError, KeyError) as e:
                logger.warning(f"[{self.source.upper()}] Skipping malformed review at index {index}: {e}")
                continue

            if is_before_watermark(review.review_date, since):
                skipped += 1
                continue
            reviews.append(review)

        if skipped:
            logger.info(f"[{self.source.upper()}] Skipped {skipped} review(s) older than watermark")
        return reviews
