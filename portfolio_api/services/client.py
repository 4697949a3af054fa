"""
ResilientFetcher - async HTTP client for one upstream provider.

Combines:
- Per-attempt timeout with cancellation of the in-flight request
- Bounded retries with exponential backoff and jitter
- Rate-limit aware waiting (sleep until the provider's reset time)

Caching is not done here; see ReadThroughCache.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, TypeVar

import httpx
from loguru import logger

from portfolio_api.services.errors import (
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
    ServiceUnavailableError,
    UpstreamStatusError,
)
from portfolio_api.services.rate_limit import RateLimitInfo, RateLimitTracker
from portfolio_api.services.retry import (
    Classification,
    Outcome,
    RetryContext,
    RetryPolicy,
    classify,
    wait_ms_for,
)

T = TypeVar("T")


@dataclass
class FetchResponse(Generic[T]):
    """Parsed payload of a successful upstream call."""

    data: T
    rate_limit: RateLimitInfo | None = None
    status_code: int = 200


@dataclass
class ServiceConfig:
    """Configuration for a specific upstream provider."""

    service_id: str
    base_url: str
    display_name: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def label(self) -> str:
        return self.display_name or self.service_id


class ResilientFetcher:
    """
    HTTP client with retry, backoff and rate-limit handling for one provider.

    Usage:
        fetcher = ResilientFetcher(
            ServiceConfig(service_id="qiita", base_url="https://qiita.com/api/v2"),
            rate_limits=RateLimitTracker(cache, "qiita", QIITA_RATE_LIMIT_HEADERS),
        )

        response = await fetcher.request("/users/someone/items", params={"page": 1})
        response.data        # decoded JSON
        response.rate_limit  # RateLimitInfo | None

    Raises ServiceUnavailableError once the retry budget is exhausted or a
    non-retryable response arrives. The underlying cause is chained.
    """

    def __init__(
        self,
        config: ServiceConfig,
        rate_limits: RateLimitTracker | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ):
        self.config = config
        self.rate_limits = rate_limits
        self._sleep = sleep
        self._clock = clock
        self._rng = rng

        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def service_id(self) -> str:
        return self.config.service_id

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.retry_policy.timeout_seconds),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._http_client

    def _build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.base_url}{path}"

    async def request(
        self,
        path: str,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
        policy: RetryPolicy | None = None,
    ) -> FetchResponse[Any]:
        """
        Perform one logical call with retries.

        Args:
            path: Path relative to the provider base URL, or a full URL
            method: HTTP method
            params: Query parameters
            json_data: JSON body for POST requests
            headers: Extra headers merged over the provider defaults
            policy: Override the provider's retry policy for this call

        Returns:
            FetchResponse with the decoded JSON payload

        Raises:
            ServiceUnavailableError: retries exhausted or non-retryable response
        """
        policy = policy or self.config.retry_policy
        url = self._build_url(path)
        req_headers = {**self.config.headers, **(headers or {})}
        label = self.config.label

        client = await self._get_http_client()
        ctx = RetryContext(max_attempts=policy.max_attempts)

        for attempt in range(policy.max_attempts):
            ctx.attempt = attempt
            rate_limit: RateLimitInfo | None = None

            try:
                response = await asyncio.wait_for(
                    client.request(
                        method,
                        url,
                        params=params,
                        headers=req_headers,
                        json=json_data,
                    ),
                    timeout=policy.timeout_seconds,
                )
            except (httpx.TimeoutException, asyncio.TimeoutError) as e:
                ctx.last_error = RequestTimeoutError(
                    self.service_id, policy.timeout_seconds
                )
                ctx.last_error.__cause__ = e
                classification = Classification(Outcome.TRANSIENT)
            except httpx.RequestError as e:
                ctx.last_error = ServiceError(
                    f"{type(e).__name__}: {e}", service_id=self.service_id
                )
                ctx.last_error.__cause__ = e
                classification = Classification(Outcome.TRANSIENT)
            else:
                if self.rate_limits is not None:
                    rate_limit = self.rate_limits.parse(response.headers)
                classification = classify(response.status_code, rate_limit)

                if classification.outcome == Outcome.SUCCESS:
                    if rate_limit is not None and self.rate_limits is not None:
                        self.rate_limits.record(rate_limit)
                        self.rate_limits.observe(rate_limit)
                    try:
                        data = response.json()
                    except ValueError as e:
                        ctx.last_error = UpstreamStatusError(
                            self.service_id,
                            response.status_code,
                            f"malformed JSON body: {e}",
                        )
                        logger.error(f"{label} API returned a malformed response")
                        break

                    logger.debug(
                        f"{label} {method} {url} -> {response.status_code} "
                        f"(attempt {attempt + 1}/{policy.max_attempts})"
                    )
                    return FetchResponse(
                        data=data,
                        rate_limit=rate_limit,
                        status_code=response.status_code,
                    )

                if classification.outcome == Outcome.RATE_LIMITED:
                    reset = (
                        rate_limit.reset_at_datetime.isoformat()
                        if rate_limit
                        else "unknown"
                    )
                    logger.warning(f"{label} API rate limit exceeded. Reset at: {reset}")
                    if rate_limit is not None and self.rate_limits is not None:
                        self.rate_limits.record(rate_limit)
                    retry_after = (
                        rate_limit.seconds_until_reset(self._clock())
                        if rate_limit
                        else None
                    )
                    ctx.last_error = RateLimitError(self.service_id, retry_after)
                else:
                    body = await self._safe_read_text(response)
                    ctx.last_error = UpstreamStatusError(
                        self.service_id, response.status_code, body
                    )
                    if classification.outcome == Outcome.TERMINAL:
                        logger.error(
                            f"{label} API error: {response.status_code} "
                            f"{response.reason_phrase} - {body[:200]}"
                        )
                        break

            if not ctx.has_remaining:
                break

            wait_ms = wait_ms_for(
                classification, attempt, policy, self._clock(), self._rng
            )
            logger.warning(
                f"{label} request failed ({ctx.last_error}). retry in {wait_ms}ms "
                f"(attempt {attempt + 1}/{policy.max_attempts})"
            )
            await self._sleep(wait_ms / 1000)

        logger.error(
            f"{label} request failed after {ctx.attempt + 1} attempts: {ctx.last_error}"
        )
        raise ServiceUnavailableError(
            f"{label} API is currently unavailable",
            service_id=self.service_id,
        ) from ctx.last_error

    @staticmethod
    async def _safe_read_text(response: httpx.Response) -> str:
        try:
            await response.aread()
            return response.text
        except (httpx.HTTPError, UnicodeDecodeError):
            return ""

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
        logger.debug(f"ResilientFetcher '{self.service_id}' closed")

    async def __aenter__(self) -> "ResilientFetcher":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
