"""
Base data source interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from portfolio_api.services.cache import CacheStore
from portfolio_api.services.client import FetchResponse, ResilientFetcher
from portfolio_api.services.deduplicator import RequestDeduplicator
from portfolio_api.services.rate_limit import RateLimitInfo
from portfolio_api.services.read_through import (
    DEFAULT_FRESH_TTL,
    DEFAULT_STALE_TTL,
    ReadThroughCache,
)

T = TypeVar("T")


class ApiModel(BaseModel):
    """Immutable DTO. Python attributes are snake_case, JSON is camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BaseDataSource(ABC):
    """
    Abstract base class for upstream providers.

    All data sources should:
    - Use ResilientFetcher for HTTP requests (retries, rate limits)
    - Serve reads through ReadThroughCache (fresh + stale copies)
    - Return pydantic models
    - Treat missing account configuration as "no data", not as an error
    """

    def __init__(
        self,
        fetcher: ResilientFetcher,
        cache: CacheStore,
        deduplicator: RequestDeduplicator | None = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.deduplicator = deduplicator

    @property
    @abstractmethod
    def service_id(self) -> str:
        """Unique identifier for this data source."""
        ...

    @abstractmethod
    def is_configured(self) -> bool:
        """Check if the account to read from is configured."""
        ...

    def read_through(
        self,
        name: str,
        key_template: Callable[..., str],
        fetch_fn: Callable[..., Awaitable[FetchResponse[T]]],
        fresh_ttl: float = DEFAULT_FRESH_TTL,
        stale_ttl: float = DEFAULT_STALE_TTL,
    ) -> ReadThroughCache[T]:
        """Build a read-through cache bound to this provider."""
        return ReadThroughCache(
            name=name,
            cache=self.cache,
            key_template=key_template,
            fetch_fn=fetch_fn,
            fresh_ttl=fresh_ttl,
            stale_ttl=stale_ttl,
            rate_limits=self.fetcher.rate_limits,
            deduplicator=self.deduplicator,
            service_id=self.service_id,
        )

    def get_rate_limit_info(self) -> RateLimitInfo | None:
        """Last known quota for this provider. Never touches the network."""
        if self.fetcher.rate_limits is None:
            return None
        return self.fetcher.rate_limits.get()

    async def close(self) -> None:
        await self.fetcher.close()
