"""
Rate-limit tracking for upstream providers.

Providers report their quota in response headers with different names
(``x-ratelimit-*`` for GitHub, ``rate-*`` for Qiita). RateLimitTracker
normalizes them into RateLimitInfo and keeps the latest value in the cache
store until the quota window resets.
"""

from datetime import datetime, timezone
from typing import Mapping, NamedTuple

from loguru import logger
from pydantic import BaseModel, ConfigDict

from portfolio_api.services.cache import CacheStore

LOW_REMAINING_THRESHOLD = 10


class RateLimitHeaders(NamedTuple):
    """Header names carrying limit, remaining and reset values."""

    limit: str
    remaining: str
    reset: str


GITHUB_RATE_LIMIT_HEADERS = RateLimitHeaders(
    limit="x-ratelimit-limit",
    remaining="x-ratelimit-remaining",
    reset="x-ratelimit-reset",
)

QIITA_RATE_LIMIT_HEADERS = RateLimitHeaders(
    limit="rate-limit",
    remaining="rate-remaining",
    reset="rate-reset",
)


class RateLimitInfo(BaseModel):
    """Normalized provider quota. reset_at is a Unix timestamp in seconds."""

    model_config = ConfigDict(frozen=True)

    limit: int
    remaining: int
    reset_at: int

    @property
    def reset_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at, tz=timezone.utc)

    def seconds_until_reset(self, now: float) -> float:
        return max(0.0, self.reset_at - now)


class RateLimitTracker:
    """
    Parses rate-limit headers and stores the latest value for one provider.

    Usage:
        tracker = RateLimitTracker(cache, "qiita", QIITA_RATE_LIMIT_HEADERS)
        info = tracker.parse(response.headers)
        if info:
            tracker.record(info)
        tracker.get()  # pure cache read
    """

    def __init__(
        self,
        cache: CacheStore,
        service_id: str,
        headers: RateLimitHeaders,
    ):
        self._cache = cache
        self.service_id = service_id
        self.headers = headers
        self.cache_key = f"{service_id}:rate-limit"

    def parse(self, headers: Mapping[str, str]) -> RateLimitInfo | None:
        """Extract RateLimitInfo, or None if any header is missing or invalid."""
        raw_limit = headers.get(self.headers.limit)
        raw_remaining = headers.get(self.headers.remaining)
        raw_reset = headers.get(self.headers.reset)

        if not raw_limit or not raw_remaining or not raw_reset:
            return None

        try:
            return RateLimitInfo(
                limit=int(raw_limit),
                remaining=int(raw_remaining),
                reset_at=int(raw_reset),
            )
        except ValueError:
            logger.warning(
                f"Invalid rate limit headers from {self.service_id}: "
                f"limit={raw_limit}, remaining={raw_remaining}, reset={raw_reset}"
            )
            return None

    def record(self, info: RateLimitInfo) -> None:
        """Store info until its reset time."""
        ttl_seconds = info.seconds_until_reset(self._cache.now())
        self._cache.set(self.cache_key, info, ttl_seconds)

    def observe(self, info: RateLimitInfo) -> None:
        """Log the quota, warning when it runs low."""
        logger.debug(
            f"{self.service_id} rate limit: {info.remaining}/{info.limit} "
            f"(resets at {info.reset_at_datetime.isoformat()})"
        )
        if info.remaining < LOW_REMAINING_THRESHOLD:
            logger.warning(
                f"{self.service_id} rate limit is low: {info.remaining} remaining"
            )

    def get(self) -> RateLimitInfo | None:
        """Last recorded quota. Never touches the network."""
        return self._cache.get(self.cache_key)
