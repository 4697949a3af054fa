"""
Service layer infrastructure - resilience patterns for external API calls.

Provides:
- CacheStore: Thread-safe in-memory cache with TTL and background sweep
- RateLimitTracker: Normalizes provider rate-limit headers
- ResilientFetcher: HTTP client with retries, backoff and rate-limit waits
- ReadThroughCache: Cache-first access with stale fallback
- RequestDeduplicator: Single-flight protection for concurrent misses
"""

from portfolio_api.services.errors import (
    ServiceError,
    ConfigurationError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
    UpstreamStatusError,
)
from portfolio_api.services.cache import CacheStore, CacheStats, stale_key
from portfolio_api.services.rate_limit import (
    GITHUB_RATE_LIMIT_HEADERS,
    QIITA_RATE_LIMIT_HEADERS,
    RateLimitHeaders,
    RateLimitInfo,
    RateLimitTracker,
)
from portfolio_api.services.retry import (
    Classification,
    Outcome,
    RetryContext,
    RetryPolicy,
    backoff_ms,
    classify,
)
from portfolio_api.services.client import FetchResponse, ResilientFetcher, ServiceConfig
from portfolio_api.services.deduplicator import RequestDeduplicator
from portfolio_api.services.read_through import ReadThroughCache

__all__ = [
    # Errors
    "ServiceError",
    "ConfigurationError",
    "RateLimitError",
    "RequestTimeoutError",
    "ServiceUnavailableError",
    "UpstreamStatusError",
    # Cache
    "CacheStore",
    "CacheStats",
    "stale_key",
    # Rate limits
    "GITHUB_RATE_LIMIT_HEADERS",
    "QIITA_RATE_LIMIT_HEADERS",
    "RateLimitHeaders",
    "RateLimitInfo",
    "RateLimitTracker",
    # Retry policy
    "Classification",
    "Outcome",
    "RetryContext",
    "RetryPolicy",
    "backoff_ms",
    "classify",
    # Client
    "FetchResponse",
    "ResilientFetcher",
    "ServiceConfig",
    # Deduplicator
    "RequestDeduplicator",
    # Read-through
    "ReadThroughCache",
]
