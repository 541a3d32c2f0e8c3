"""
Meta Graph API Client.

Covers the Graph endpoints used for Facebook Page ratings:

- debug_token (token validity probe)
- /{page-id}?fields=access_token (mint a page token from a user token)
- /oauth/access_token grant_type=fb_exchange_token (long-lived exchange)
- /{page-id}?fields=overall_star_rating,rating_count,ratings{...}

Graph authenticates with the access token as a query parameter.
"""

import logging
import os
from typing import Optional, Any

import httpx

from .errors import UpstreamError
from .http import request_with_retry, parse_json, raise_for_status

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"
DEFAULT_GRAPH_VERSION = "v21.0"

PAGE_RATINGS_FIELDS = (
    "overall_star_rating,rating_count,"
    "ratings{reviewer,rating,recommendation_type,created_time,review_text,id}"
)

# Graph error code for expired or invalidated access tokens
_OAUTH_EXCEPTION_CODE = 190
_MAX_RATING_PAGES = 20


class MetaGraphClient:
    """Direct API client for the Meta Graph API."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        graph_version: Optional[str] = None,
    ):
        self._http_client = http_client
        self.graph_version = graph_version or os.getenv("META_GRAPH_VERSION", DEFAULT_GRAPH_VERSION)

    async def _get(self, url: str, params: Optional[dict[str, Any]] = None) -> httpx.Response:
        return await request_with_retry(
            "get", url, provider="meta", http_client=self._http_client, params=params
        )

    # =========================================================================
    # Tokens
    # =========================================================================

    async def debug_token(self, input_token: str, access_token: str) -> dict[str, Any]:
        """
        Inspect a token. Returns the `data` object
        ({is_valid, expires_at, scopes, ...}) or {} if Graph rejected the probe.
        """
        response = await self._get(
            f"{GRAPH_BASE_URL}/debug_token",
            params={"input_token": input_token, "access_token": access_token},
        )
        data = parse_json(response, "meta")
        if not isinstance(data, dict):
            return {}
        return data.get("data") or {}

    async def get_page_access_token(self, page_id: str, user_token: str) -> Optional[str]:
        """Mint a page access token from a user access token."""
        response = await self._get(
            f"{GRAPH_BASE_URL}/{page_id}",
            params={"fields": "access_token", "access_token": user_token},
        )
        data = parse_json(response, "meta")
        if not isinstance(data, dict):
            return None
        if "error" in data:
            logger.warning(f"[META_API] Page token request rejected: {_error_message(data)}")
        return data.get("access_token")

    async def exchange_long_lived_token(
        self,
        app_id: str,
        app_secret: str,
        token: str,
    ) -> dict[str, Any]:
        """
        Exchange a token for a long-lived one (about 60 days).

        Returns the JSON body as-is ({access_token, token_type, expires_in}
        on success, {error: {...}} on rejection).
        """
        response = await self._get(
            f"{GRAPH_BASE_URL}/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": app_id,
                "client_secret": app_secret,
                "fb_exchange_token": token,
            },
        )
        data = parse_json(response, "meta")
        if not isinstance(data, dict):
            raise UpstreamError("Unexpected token exchange response from Meta", provider="meta")
        if "error" in data:
            logger.warning(f"[META_API] Long-lived exchange rejected: {_error_message(data)}")
        return data

    # =========================================================================
    # Page ratings
    # =========================================================================

    async def get_page_ratings(self, page_id: str, access_token: str) -> dict[str, Any]:
        """
        Fetch page rating aggregates and the ratings sub-collection.

        Follows ratings paging links and returns
        {overall_star_rating, rating_count, ratings: [...]}.
        Expired tokens (HTTP 401 or Graph code 190) raise UpstreamError
        with status_code 401.
        """
        response = await self._get(
            f"{GRAPH_BASE_URL}/{self.graph_version}/{page_id}",
            params={"fields": PAGE_RATINGS_FIELDS, "access_token": access_token},
        )
        self._raise_for_status(response)
        payload = parse_json(response, "meta")

        ratings_block = payload.get("ratings")
        if isinstance(ratings_block, dict):
            ratings = list(ratings_block.get("data") or [])
            next_url = (ratings_block.get("paging") or {}).get("next")
        elif isinstance(ratings_block, list):
            ratings = list(ratings_block)
            next_url = None
        else:
            ratings = []
            next_url = None

        pages = 1
        while next_url and pages < _MAX_RATING_PAGES:
            # Paging links already carry the access token
            response = await self._get(next_url)
            self._raise_for_status(response)
            page = parse_json(response, "meta")
            ratings.extend(page.get("data") or [])
            next_url = (page.get("paging") or {}).get("next")
            pages += 1

        return {
            "overall_star_rating": payload.get("overall_star_rating"),
            "rating_count": payload.get("rating_count"),
            "ratings": ratings,
        }

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code in (400, 401):
            try:
                body = response.json()
            except ValueError:
                body = {}
            error = body.get("error") if isinstance(body, dict) else None
            if response.status_code == 401 or (
                isinstance(error, dict) and error.get("code") == _OAUTH_EXCEPTION_CODE
            ):
                raise UpstreamError(
                    f"Meta API error: access token rejected - {_error_message(body)}",
                    provider="meta",
                    status_code=401,
                )
        raise_for_status(response, "meta")


def _error_message(data: Any) -> str:
    if not isinstance(data, dict):
        return "unknown error"
    error = data.get("error")
    if isinstance(error, dict):
        return error.get("message") or str(error)
    return str(error) if error else "unknown error"


# Singleton instance
_meta_client: Optional[MetaGraphClient] = None


def get_meta_client() -> MetaGraphClient:
    """Get the global MetaGraphClient instance."""
    global _meta_client
    if _meta_client is None:
        _meta_client = MetaGraphClient()
    return _meta_client
