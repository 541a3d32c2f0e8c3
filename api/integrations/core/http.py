"""
Shared HTTP plumbing for upstream review providers.

Retries transient failures (429, 5xx, timeouts) with exponential backoff and
converts everything else into UpstreamError.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from .errors import UpstreamError

logger = logging.getLogger(__name__)

# Shared timeout for all provider calls
UPSTREAM_TIMEOUT = httpx.Timeout(30.0, connect=10.0)

# Max retries for transient failures (429, 5xx)
MAX_RETRIES = 3
RETRY_BACKOFF_SECONDS = [1, 2, 4]


async def request_with_retry(
    method: str,
    url: str,
    *,
    provider: str,
    http_client: Optional[httpx.AsyncClient] = None,
    **kwargs,
) -> httpx.Response:
    """
    Make an HTTP request with retry on transient failures (429, 5xx).

    Retries up to MAX_RETRIES times with exponential backoff.
    Does NOT retry on 4xx (except 429); those responses are returned as-is
    so callers can inspect provider error bodies.

    Raises:
        UpstreamError: If every attempt failed or timed out
    """
    tag = provider.upper()
    response: Optional[httpx.Response] = None
    last_error: Optional[Exception] = None

    for attempt in range(MAX_RETRIES):
        wait = RETRY_BACKOFF_SECONDS[attempt] if attempt < len(RETRY_BACKOFF_SECONDS) else 4
        try:
            if http_client is not None:
                response = await http_client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT) as client:
                    response = await client.request(method, url, **kwargs)

            if response.status_code == 429 or response.status_code >= 500:
                logger.warning(
                    f"[{tag}_API] {method.upper()} {_redact(url)} returned {response.status_code}, "
                    f"retrying in {wait}s (attempt {attempt + 1}/{MAX_RETRIES})"
                )
                await asyncio.sleep(wait)
                continue

            return response

        except httpx.TimeoutException as e:
            last_error = e
            logger.warning(
                f"[{tag}_API] {method.upper()} {_redact(url)} timed out, "
                f"retrying in {wait}s (attempt {attempt + 1}/{MAX_RETRIES})"
            )
            await asyncio.sleep(wait)
        except httpx.HTTPError as e:
            raise UpstreamError(f"{provider} request failed: {e}", provider=provider)

    # All retries exhausted
    if last_error is not None and response is None:
        raise UpstreamError(
            f"{provider} request failed after {MAX_RETRIES} retries: {last_error}",
            provider=provider,
        )
    raise UpstreamError(
        f"{provider} API returned {response.status_code} after {MAX_RETRIES} retries: {response.text[:500]}",
        provider=provider,
        status_code=response.status_code,
    )


def parse_json(response: httpx.Response, provider: str) -> Any:
    """Decode a JSON body or raise UpstreamError."""
    try:
        return response.json()
    except ValueError:
        raise UpstreamError(
            f"Invalid JSON from {provider}: {response.text[:200]}",
            provider=provider,
            status_code=response.status_code,
        )


def raise_for_status(response: httpx.Response, provider: str) -> None:
    """Raise UpstreamError for any non-2xx response."""
    if response.is_success:
        return

    detail = response.text[:500]
    try:
        body = response.json()
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            detail = error.get("message", detail)
        elif error:
            detail = str(error)
    except ValueError:
        pass

    raise UpstreamError(
        f"{provider} API error: {response.status_code} {response.reason_phrase} - {detail}",
        provider=provider,
        status_code=response.status_code,
    )


def _redact(url: str) -> str:
    """Drop the query string so tokens passed as params never reach the logs."""
    return url.split("?", 1)[0]
