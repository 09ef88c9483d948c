"""
DataForSEO integration

- client: authenticated HTTP client, every call through a rate limiter
- rate_limiter: general, tasksReady and googleAds limiter classes
- cache: Redis response cache with per-data-type TTLs
- errors: error classification for retries and pipeline step errors
- modules: per-API wrappers (SERP, Labs, Backlinks, Business, OnPage,
  Keywords, AI Optimization)
"""

from .client import DataForSEOClient, create_client, safe_get_result
from .errors import (
    DataForSEOError,
    ErrorCategory,
    STATUS_CODES,
    classify_error,
    create_step_error,
)
from .rate_limiter import get_limiter, get_limiter_stats, reset_limiters
from .cache import CacheTTL, DataForSEOCache, cache_key, get_cache
from .service import DataForSEO, create_dataforseo

__all__ = [
    # Client
    "DataForSEOClient",
    "create_client",
    "safe_get_result",
    "DataForSEO",
    "create_dataforseo",

    # Errors
    "DataForSEOError",
    "ErrorCategory",
    "STATUS_CODES",
    "classify_error",
    "create_step_error",

    # Rate limiting
    "get_limiter",
    "get_limiter_stats",
    "reset_limiters",

    # Cache
    "CacheTTL",
    "DataForSEOCache",
    "cache_key",
    "get_cache",
]
