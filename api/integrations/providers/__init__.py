"""
Review Provider Adapters

One adapter per upstream review source, each normalizing its payload
into the unified Review shape:

- business_profile: Google Business Profile (OAuth)
- places: Google Places API fallback (API key)
- search_proxy: Serper review search (API key)
- meta: Facebook Page ratings (OAuth)

Usage:
    from integrations.providers import MetaPageRatingsAdapter

    result = await MetaPageRatingsAdapter().fetch_reviews(owner_id, access_token=token, integration=record)
"""

from .base import FetchResult, ReviewAdapter, derive_review_id, normalize_rating
from .google_business import GoogleBusinessProfileAdapter
from .google_places import GooglePlacesAdapter
from .meta import MetaPageRatingsAdapter
from .search_proxy import SearchProxyAdapter

__all__ = [
    "FetchResult",
    "ReviewAdapter",
    "derive_review_id",
    "normalize_rating",
    "GoogleBusinessProfileAdapter",
    "GooglePlacesAdapter",
    "MetaPageRatingsAdapter",
    "SearchProxyAdapter",
]
