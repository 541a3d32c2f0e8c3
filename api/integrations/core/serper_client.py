"""
Serper review search client.

Single call: POST https://google.serper.dev/reviews with the place id,
authenticated by the X-API-KEY header. Returns a JSON body with `reviews[]`.
"""

import logging
from typing import Optional, Any

import httpx

from .http import request_with_retry, parse_json, raise_for_status

logger = logging.getLogger(__name__)

SERPER_REVIEWS_URL = "https://google.serper.dev/reviews"


class SerperClient:
    """Client for the Serper review-search proxy."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._http_client = http_client

    async def fetch_reviews(self, api_key: str, place_id: str) -> list[Any]:
        """Fetch reviews for a Google place id. Returns the raw `reviews` list."""
        response = await request_with_retry(
            "post",
            SERPER_REVIEWS_URL,
            provider="serper",
            http_client=self._http_client,
            headers={
                "X-API-KEY": api_key,
                "Content-Type": "application/json",
            },
            json={"placeId": place_id},
        )
        raise_for_status(response, "serper")
        payload = parse_json(response, "serper")

        reviews = payload.get("reviews") if isinstance(payload, dict) else None
        if not isinstance(reviews, list):
            logger.info(f"[SERPER_API] No reviews[] in response for place {place_id}")
            return []
        return reviews
