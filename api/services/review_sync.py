"""
Review Sync Engine

Pulls external reviews into the unified review store on demand.

Per sync call:
1. Entitlement gate, checked once before any platform is touched
2. For each requested platform, independently:
   - pick the adapter (Google: Business Profile, Serper or Places)
   - get a valid token from the platform's token manager (OAuth sources)
   - resolve the watermark and fetch reviews through the adapter
   - upsert each review by its deterministic id, counting inserts only
   - advance the integration's watermark to the sync start time
3. Aggregate per-platform results

One platform failing never stops the others. Only EntitlementRequired and
CorruptCredential escape as exceptions.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from supabase import Client

from integrations.core.errors import (
    EntitlementRequired,
    IntegrationNotFound,
    ReauthorizationRequired,
    ReviewSyncError,
    UpstreamError,
)
from integrations.core.stores import (
    EntitlementGate,
    IntegrationRecordStore,
    ReviewStore,
)
from integrations.core.token_lifecycle import (
    GoogleTokenManager,
    MetaTokenManager,
    TokenLifecycleManager,
    as_utc,
    utcnow,
)
from integrations.core.tokens import CredentialVault, get_vault
from integrations.core.types import (
    IntegrationPlatform,
    PlatformSyncResult,
    Review,
    SyncResult,
)
from integrations.providers import (
    GoogleBusinessProfileAdapter,
    GooglePlacesAdapter,
    MetaPageRatingsAdapter,
    ReviewAdapter,
    SearchProxyAdapter,
)
from integrations.providers.base import is_before_watermark

logger = logging.getLogger(__name__)

DEFAULT_PLATFORMS = ["google"]

PLATFORM_ALIASES = {
    "meta": "facebook",
}

GOOGLE_SOURCES = ("business_profile", "places", "search_proxy")


def normalize_platforms(platforms: Optional[Iterable[str]]) -> list[str]:
    """Lowercase, resolve aliases, dedupe (keeping order). None means google."""
    requested = list(DEFAULT_PLATFORMS) if platforms is None else list(platforms)
    normalized: list[str] = []
    for platform in requested:
        key = str(platform).strip().lower()
        key = PLATFORM_ALIASES.get(key, key)
        if key and key not in normalized:
            normalized.append(key)
    return normalized


class ReviewSyncEngine:
    """
    Orchestrates token acquisition, adapter fetch and idempotent merge.

    Usage:
        engine = build_review_sync_engine(get_service_client())
        result = await engine.sync(owner_id, ["google", "facebook"], {"place_id": "..."})
    """

    def __init__(
        self,
        *,
        integrations: IntegrationRecordStore,
        reviews: ReviewStore,
        entitlements: EntitlementGate,
        adapters: Iterable[ReviewAdapter],
        token_managers: dict[IntegrationPlatform, TokenLifecycleManager],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._integrations = integrations
        self._reviews = reviews
        self._entitlements = entitlements
        self._adapters: dict[str, ReviewAdapter] = {adapter.source: adapter for adapter in adapters}
        self._token_managers = token_managers
        self._clock = clock

    async def sync(
        self,
        owner_id: str,
        platforms: Optional[Iterable[str]] = None,
        options: Optional[dict[str, Any]] = None,
    ) -> SyncResult:
        """
        Sync reviews for an owner across platforms.

        Args:
            owner_id: Owner to sync
            platforms: "google", "facebook" (alias "meta"); defaults to ["google"]
            options: place_id, google_source

        Raises:
            EntitlementRequired: Owner is not entitled (nothing was fetched)
            CorruptCredential: A stored secret failed integrity verification
        """
        requested = normalize_platforms(platforms)
        options = options or {}

        if not await self._entitlements.is_entitled(owner_id):
            logger.info(f"[REVIEW_SYNC] Owner {owner_id[:8]} not entitled to review sync")
            raise EntitlementRequired(owner_id)

        started_at = self._clock()
        results: dict[str, PlatformSyncResult] = {}

        for platform in requested:
            try:
                count, summary = await self._sync_platform(owner_id, platform, options, started_at)
                results[platform] = PlatformSyncResult(success=True, count=count, summary=summary)
                logger.info(f"[REVIEW_SYNC] {platform}: {count} new review(s) for owner {owner_id[:8]}")
            except ReviewSyncError as e:
                if e.fatal:
                    raise
                logger.warning(f"[REVIEW_SYNC] {platform} failed for owner {owner_id[:8]}: {e.message}")
                results[platform] = PlatformSyncResult(success=False, count=0, error=e.message)
            except Exception as e:
                logger.error(f"[REVIEW_SYNC] {platform} crashed for owner {owner_id[:8]}: {e}")
                results[platform] = PlatformSyncResult(
                    success=False,
                    count=0,
                    error=str(e) or f"Failed to sync {platform} reviews",
                )

        return SyncResult(
            success=any(result.success for result in results.values()),
            results=results,
            total_synced=sum(result.count for result in results.values()),
            synced_at=started_at,
        )

    def _adapter(self, source: str) -> ReviewAdapter:
        adapter = self._adapters.get(source)
        if adapter is None:
            raise UpstreamError(f"No review adapter registered for source '{source}'")
        return adapter

    async def _select_adapter(
        self, owner_id: str, platform: str, options: dict[str, Any]
    ) -> ReviewAdapter:
        if platform == "facebook":
            return self._adapter("meta")

        if platform == "google":
            source = options.get("google_source")
            if source:
                if source not in GOOGLE_SOURCES:
                    raise UpstreamError(f"Unknown Google source: {source}", provider="google")
                return self._adapter(source)

            record = await self._integrations.get(owner_id, IntegrationPlatform.GOOGLE)
            if record is not None:
                return self._adapter("business_profile")

            search_proxy = self._adapters.get("search_proxy")
            if search_proxy is not None and search_proxy.is_configured:
                return search_proxy
            return self._adapter("places")

        raise UpstreamError(f"Review sync is not supported for platform '{platform}'")

    async def _sync_platform(
        self,
        owner_id: str,
        platform: str,
        options: dict[str, Any],
        started_at: datetime,
    ) -> tuple[int, Optional[dict[str, Any]]]:
        adapter = await self._select_adapter(owner_id, platform, options)
        integration_platform = adapter.integration_platform

        manager: Optional[TokenLifecycleManager] = None
        record = None
        access_token = None

        if integration_platform is not None:
            manager = self._token_managers[integration_platform]
            access_token = await manager.get_valid_access_token(owner_id)

            # Read after token acquisition so a refresh just persisted is not overwritten
            record = await self._integrations.get(owner_id, integration_platform)
            if record is None:
                raise IntegrationNotFound(integration_platform.value, owner_id)
            since = record.last_sync_watermark
        else:
            since = await self._reviews.latest_synced_at(owner_id, adapter.platform)

        if since is not None:
            since = as_utc(since)

        try:
            fetched = await adapter.fetch_reviews(
                owner_id,
                since,
                access_token=access_token,
                integration=record,
                options=options,
            )
        except UpstreamError as e:
            if e.status_code == 401 and manager is not None:
                await manager.mark_expired(owner_id)
                raise ReauthorizationRequired(manager.platform.value) from e
            raise

        new_count = await self._merge(owner_id, fetched.reviews, since, started_at)

        if record is not None:
            prior = record.last_sync_watermark
            record.last_sync_watermark = (
                max(as_utc(prior), started_at) if prior is not None else started_at
            )
            await self._integrations.upsert(record)

        return new_count, fetched.summary

    async def _merge(
        self,
        owner_id: str,
        reviews: list[Review],
        since: Optional[datetime],
        synced_at: datetime,
    ) -> int:
        """Upsert reviews by (owner, platform, id). Returns how many were inserted."""
        new_count = 0

        for review in reviews:
            if is_before_watermark(review.review_date, since):
                continue

            row = review.model_copy(update={"owner_id": owner_id, "synced_at": synced_at})
            existing = await self._reviews.find(owner_id, row.platform, row.id)
            if existing is not None:
                await self._reviews.update(row)
            else:
                await self._reviews.insert(row)
                new_count += 1

        return new_count


def build_review_sync_engine(
    client: Client,
    vault: Optional[CredentialVault] = None,
) -> ReviewSyncEngine:
    """Wire the engine with Supabase stores and the default adapters."""
    from services.entitlements import SupabaseEntitlementGate
    from services.review_store import (
        SupabaseIntegrationStore,
        SupabaseOwnerDirectory,
        SupabaseReviewStore,
    )

    vault = vault or get_vault()
    integrations = SupabaseIntegrationStore(client)
    directory = SupabaseOwnerDirectory(client)

    return ReviewSyncEngine(
        integrations=integrations,
        reviews=SupabaseReviewStore(client),
        entitlements=SupabaseEntitlementGate(client),
        adapters=[
            GoogleBusinessProfileAdapter(),
            GooglePlacesAdapter(directory),
            SearchProxyAdapter(directory),
            MetaPageRatingsAdapter(),
        ],
        token_managers={
            IntegrationPlatform.GOOGLE: GoogleTokenManager(integrations, vault),
            IntegrationPlatform.META: MetaTokenManager(integrations, vault),
        },
    )
