"""
OAuth client configuration for review integrations.

The authorization handshake lives outside this service; here we only need
the client credentials used to refresh and exchange tokens.
"""

import os

# =============================================================================
# OAuth Configuration
# =============================================================================


class OAuthConfig:
    """OAuth configuration for a provider."""

    def __init__(
        self,
        provider: str,
        client_id_env: str,
        client_secret_env: str,
    ):
        self.provider = provider
        self.client_id_env = client_id_env
        self.client_secret_env = client_secret_env
        self.client_id = os.getenv(client_id_env, "")
        self.client_secret = os.getenv(client_secret_env, "")

    @property
    def is_configured(self) -> bool:
        """Check if OAuth credentials are configured."""
        return bool(self.client_id and self.client_secret)

    @property
    def env_names(self) -> str:
        return f"{self.client_id_env} / {self.client_secret_env}"

    @property
    def app_access_token(self) -> str:
        """Graph-style app token ("{app_id}|{app_secret}")."""
        return f"{self.client_id}|{self.client_secret}"


def google_oauth_config() -> OAuthConfig:
    return OAuthConfig(
        provider="google",
        client_id_env="GOOGLE_CLIENT_ID",
        client_secret_env="GOOGLE_CLIENT_SECRET",
    )


def meta_oauth_config() -> OAuthConfig:
    return OAuthConfig(
        provider="meta",
        client_id_env="META_APP_ID",
        client_secret_env="META_APP_SECRET",
    )
