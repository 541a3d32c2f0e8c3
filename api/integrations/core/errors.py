"""
Review sync error taxonomy.

Errors raised by the credential vault, token lifecycle managers, provider
adapters and the sync engine. `fatal` errors abort a whole sync call; all
others are caught per platform and reported in the platform's result entry.
"""

from typing import Optional


class ReviewSyncError(Exception):
    """Base class for review sync failures."""

    fatal = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class IntegrationNotFound(ReviewSyncError):
    """No Integration Record exists for the owner and platform."""

    def __init__(self, platform: str, owner_id: str):
        super().__init__(f"{platform.title()} integration not found")
        self.platform = platform
        self.owner_id = owner_id


class IntegrationNotActive(ReviewSyncError):
    """Integration Record exists but is expired or revoked."""

    def __init__(self, platform: str, status: str):
        super().__init__(f"{platform.title()} integration is {status}")
        self.platform = platform
        self.status = status


class ReauthorizationRequired(ReviewSyncError):
    """Token refresh failed for good. The owner has to reconnect the account."""

    def __init__(self, platform: str, detail: Optional[str] = None):
        message = f"Failed to refresh token. Please re-authorize your {platform.title()} account."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.platform = platform


class CorruptCredential(ReviewSyncError):
    """Stored ciphertext is malformed or fails integrity verification."""

    fatal = True


class UpstreamError(ReviewSyncError):
    """Non-2xx or malformed response from a provider, or missing provider config."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class EntitlementRequired(ReviewSyncError):
    """Owner is not entitled to run review sync."""

    fatal = True

    def __init__(self, owner_id: str):
        super().__init__("Premium subscription required")
        self.owner_id = owner_id
