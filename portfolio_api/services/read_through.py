"""
ReadThroughCache - cache-first access to one upstream resource family.

fetch(**params):
1. Primary cache hit -> return it, no network.
2. Miss -> call the upstream fetch function (which owns retries).
3. Success -> write the primary entry (short TTL) and its ':stale' shadow
   (long TTL), record rate-limit info, return.
4. Failure -> serve the ':stale' shadow if present, else raise
   ServiceUnavailableError.
"""

from typing import Any, Awaitable, Callable, Generic, TypeVar

from loguru import logger

from portfolio_api.services.cache import CacheStore, stale_key
from portfolio_api.services.client import FetchResponse
from portfolio_api.services.deduplicator import RequestDeduplicator
from portfolio_api.services.errors import ServiceError, ServiceUnavailableError
from portfolio_api.services.rate_limit import RateLimitInfo, RateLimitTracker

T = TypeVar("T")

DEFAULT_FRESH_TTL = 900  # 15 minutes
DEFAULT_STALE_TTL = 3600  # 1 hour, fallback on upstream errors

# Failures that make a fetch fall back to the stale copy. Payloads that do not
# match the expected shape surface as KeyError/TypeError/ValueError (pydantic
# ValidationError included) while fetch_fn maps them.
FALLBACK_ERRORS = (ServiceError, KeyError, TypeError, ValueError)


class ReadThroughCache(Generic[T]):
    """
    Read-through cache with stale fallback for one resource family.

    Usage:
        articles = ReadThroughCache(
            name="Qiita articles",
            cache=cache,
            key_template=lambda per_page: f"qiita:articles:{per_page}",
            fetch_fn=load_articles,  # returns FetchResponse[list[QiitaArticle]]
            rate_limits=tracker,
        )
        await articles.fetch(per_page=10)
    """

    def __init__(
        self,
        name: str,
        cache: CacheStore,
        key_template: Callable[..., str],
        fetch_fn: Callable[..., Awaitable[FetchResponse[T]]],
        fresh_ttl: float = DEFAULT_FRESH_TTL,
        stale_ttl: float = DEFAULT_STALE_TTL,
        rate_limits: RateLimitTracker | None = None,
        deduplicator: RequestDeduplicator | None = None,
        service_id: str | None = None,
    ):
        self.name = name
        self.fresh_ttl = fresh_ttl
        self.stale_ttl = stale_ttl
        self.service_id = service_id
        self._cache = cache
        self._key_template = key_template
        self._fetch_fn = fetch_fn
        self._rate_limits = rate_limits
        self._deduplicator = deduplicator

    def key_for(self, **params: Any) -> str:
        return self._key_template(**params)

    async def fetch(self, **params: Any) -> T:
        """Return the resource, from cache when possible."""
        key = self.key_for(**params)

        cached = self._cache.get(key)
        if cached is not None:
            logger.info(f"{self.name} served from cache ({key})")
            return cached

        if self._deduplicator is not None:
            return await self._deduplicator.dedupe(key, lambda: self._load(key, params))
        return await self._load(key, params)

    async def _load(self, key: str, params: dict[str, Any]) -> T:
        try:
            response = await self._fetch_fn(**params)
            value = response.data
        except FALLBACK_ERRORS as e:
            logger.error(f"Failed to fetch {self.name}: {type(e).__name__}: {e}")

            stale = self._cache.get(stale_key(key))
            if stale is not None:
                logger.warning(f"{self.name} upstream error, serving stale cache ({key})")
                return stale

            raise ServiceUnavailableError(
                f"{self.name} is currently unavailable",
                service_id=self.service_id,
            ) from e

        self._cache.set(key, value, self.fresh_ttl)
        self._cache.set(stale_key(key), value, self.stale_ttl)

        if response.rate_limit is not None and self._rate_limits is not None:
            self._rate_limits.record(response.rate_limit)

        logger.info(f"Fetched {self.name} from upstream ({key})")
        return value

    def invalidate(self, **params: Any) -> bool:
        """Drop the primary entry. The stale shadow is kept for fallback."""
        return self._cache.delete(self.key_for(**params))

    def get_rate_limit_info(self) -> RateLimitInfo | None:
        """Pure cache read of the provider's last known quota."""
        if self._rate_limits is None:
            return None
        return self._rate_limits.get()
