"""
Token lifecycle management for review integrations.

Each platform gets one manager with the same contract:

    token = await manager.get_valid_access_token(owner_id)

The stored access secret is returned directly while it is more than
REFRESH_SKEW away from expiry. Otherwise the manager refreshes it against
the provider, re-encrypts and persists the result, or marks the record
`expired` and raises ReauthorizationRequired when the provider will not
issue a new token.

Refresh happens on demand, under a per-(owner, platform) lock so concurrent
callers in this process share one refresh instead of racing.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .errors import (
    IntegrationNotActive,
    IntegrationNotFound,
    ReauthorizationRequired,
    UpstreamError,
)
from .google_client import GoogleAPIClient, get_google_client
from .meta_client import MetaGraphClient, get_meta_client
from .oauth import OAuthConfig, google_oauth_config, meta_oauth_config
from .stores import IntegrationRecordStore
from .tokens import CredentialVault
from .types import IntegrationPlatform, IntegrationRecord, IntegrationStatus

logger = logging.getLogger(__name__)

REFRESH_SKEW = timedelta(minutes=5)

# Google access tokens default to one hour, Meta long-lived tokens to 60 days
GOOGLE_DEFAULT_EXPIRES_IN = 3600
META_LONG_LIVED_EXPIRES_IN = 5184000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes from storage as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TokenLifecycleManager(ABC):
    """
    Base class for per-platform token managers.

    Subclasses implement _refresh(), which runs only when the stored
    secret is inside the refresh window.
    """

    platform: IntegrationPlatform

    def __init__(
        self,
        store: IntegrationRecordStore,
        vault: CredentialVault,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._vault = vault
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def label(self) -> str:
        return self.platform.value.upper()

    def _lock_for(self, owner_id: str) -> asyncio.Lock:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[owner_id] = lock
        return lock

    async def get_valid_access_token(self, owner_id: str) -> str:
        """
        Return a plaintext access token that is valid for at least REFRESH_SKEW.

        Raises:
            IntegrationNotFound: No record for this owner
            IntegrationNotActive: Record is expired or revoked
            ReauthorizationRequired: Provider refused to issue a new token
            CorruptCredential: Stored ciphertext failed verification
            UpstreamError: Provider unreachable (record left untouched)
        """
        async with self._lock_for(owner_id):
            record = await self._store.get(owner_id, self.platform)

            if record is None:
                raise IntegrationNotFound(self.platform.value, owner_id)

            if record.status != IntegrationStatus.ACTIVE:
                raise IntegrationNotActive(self.platform.value, record.status.value)

            now = self._clock()
            if now + REFRESH_SKEW < as_utc(record.secret_expiry):
                return self._vault.decrypt(record.access_secret)

            logger.info(f"[{self.label}_TOKEN] Refreshing token for owner {owner_id[:8]}")
            return await self._refresh(record, now)

    async def mark_expired(self, owner_id: str) -> None:
        """Durably flag the owner's record as needing re-authorization."""
        record = await self._store.get(owner_id, self.platform)
        if record is None or record.status == IntegrationStatus.EXPIRED:
            return
        await self._expire(record)

    async def _expire(self, record: IntegrationRecord) -> None:
        record.status = IntegrationStatus.EXPIRED
        await self._store.upsert(record)
        logger.warning(
            f"[{self.label}_TOKEN] Marked integration expired for owner {record.owner_id[:8]}"
        )

    @abstractmethod
    async def _refresh(self, record: IntegrationRecord, now: datetime) -> str:
        """Obtain a new access token, persist it, and return the plaintext."""
        pass


class GoogleTokenManager(TokenLifecycleManager):
    """Refreshes Google access tokens with the stored refresh token."""

    platform = IntegrationPlatform.GOOGLE

    def __init__(
        self,
        store: IntegrationRecordStore,
        vault: CredentialVault,
        client: Optional[GoogleAPIClient] = None,
        oauth_config: Optional[OAuthConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(store, vault, clock)
        self._client = client or get_google_client()
        self._config = oauth_config or google_oauth_config()

    async def _refresh(self, record: IntegrationRecord, now: datetime) -> str:
        if not self._config.is_configured:
            raise UpstreamError(
                f"Google OAuth not configured ({self._config.env_names})",
                provider="google",
            )

        if not record.refresh_secret:
            await self._expire(record)
            raise ReauthorizationRequired(self.platform.value, "no refresh token stored")

        refresh_token = self._vault.decrypt(record.refresh_secret)
        tokens = await self._client.refresh_access_token(
            self._config.client_id,
            self._config.client_secret,
            refresh_token,
        )

        access_token = tokens.get("access_token")
        if not access_token:
            # Refresh token is invalid or revoked
            await self._expire(record)
            raise ReauthorizationRequired(
                self.platform.value, tokens.get("error_description") or tokens.get("error")
            )

        expires_in = tokens.get("expires_in") or GOOGLE_DEFAULT_EXPIRES_IN
        record.access_secret = self._vault.encrypt(access_token)
        record.secret_expiry = now + timedelta(seconds=int(expires_in))

        # Google rarely rotates refresh tokens, but keep the new one when it does
        if tokens.get("refresh_token"):
            record.refresh_secret = self._vault.encrypt(tokens["refresh_token"])

        await self._store.upsert(record)
        logger.info(f"[GOOGLE_TOKEN] Refreshed token for owner {record.owner_id[:8]}")
        return access_token


class MetaTokenManager(TokenLifecycleManager):
    """
    Keeps Meta page access tokens usable.

    Page tokens are long-lived, so the first step is a validity probe. Only
    when the probe fails is a fresh page token minted from the stored user
    token and extended to a long-lived one.
    """

    platform = IntegrationPlatform.META

    def __init__(
        self,
        store: IntegrationRecordStore,
        vault: CredentialVault,
        client: Optional[MetaGraphClient] = None,
        oauth_config: Optional[OAuthConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(store, vault, clock)
        self._client = client or get_meta_client()
        self._config = oauth_config or meta_oauth_config()

    def _probe_token(self, access_token: str) -> str:
        # App token when configured; otherwise the token inspects itself
        if self._config.is_configured:
            return self._config.app_access_token
        return access_token

    async def _refresh(self, record: IntegrationRecord, now: datetime) -> str:
        access_token = self._vault.decrypt(record.access_secret)

        info = await self._client.debug_token(access_token, self._probe_token(access_token))
        if info.get("is_valid"):
            expires_at = info.get("expires_at")
            if expires_at:
                record.secret_expiry = datetime.fromtimestamp(int(expires_at), tz=timezone.utc)
            else:
                # expires_at == 0 means the page token does not expire
                record.secret_expiry = now + timedelta(seconds=META_LONG_LIVED_EXPIRES_IN)
            await self._store.upsert(record)
            logger.info(f"[META_TOKEN] Page token still valid for owner {record.owner_id[:8]}")
            return access_token

        page_id = record.account_ref.get("page_id")
        if not record.user_secret or not page_id:
            await self._expire(record)
            raise ReauthorizationRequired(self.platform.value, "page token invalid")

        if not self._config.is_configured:
            raise UpstreamError(
                f"Meta app not configured ({self._config.env_names})",
                provider="meta",
            )

        user_token = self._vault.decrypt(record.user_secret)
        page_token = await self._client.get_page_access_token(page_id, user_token)
        if not page_token:
            await self._expire(record)
            raise ReauthorizationRequired(self.platform.value, "could not mint page token")

        long_lived = await self._client.exchange_long_lived_token(
            self._config.client_id,
            self._config.client_secret,
            page_token,
        )
        new_token = long_lived.get("access_token")
        if not new_token:
            await self._expire(record)
            raise ReauthorizationRequired(self.platform.value, "long-lived exchange failed")

        expires_in = long_lived.get("expires_in") or META_LONG_LIVED_EXPIRES_IN
        record.access_secret = self._vault.encrypt(new_token)
        record.secret_expiry = now + timedelta(seconds=int(expires_in))
        await self._store.upsert(record)
        logger.info(f"[META_TOKEN] Re-minted page token for owner {record.owner_id[:8]}")
        return new_token
