"""
GitHub API data source for public repositories and the contribution calendar.

API Documentation: https://docs.github.com/en/rest
Unauthenticated: 60 calls/hour, with a token: 5000 calls/hour.
The GraphQL API (contribution calendar) always requires a token.
"""

from typing import Any
from urllib.parse import quote

from loguru import logger

from portfolio_api.datasource.base import ApiModel, BaseDataSource
from portfolio_api.services.cache import CacheStore
from portfolio_api.services.client import FetchResponse, ResilientFetcher, ServiceConfig
from portfolio_api.services.deduplicator import RequestDeduplicator
from portfolio_api.services.errors import ServiceUnavailableError, UpstreamStatusError
from portfolio_api.services.rate_limit import GITHUB_RATE_LIMIT_HEADERS, RateLimitTracker
from portfolio_api.services.retry import RetryPolicy
from portfolio_api.utils import clamp_limit, coerce_page

DEFAULT_REPOSITORY_LIMIT = 20

REPOSITORIES_CACHE_TTL = 900  # 15 minutes
REPOSITORIES_STALE_CACHE_TTL = 3600
CONTRIBUTIONS_CACHE_TTL = 900
CONTRIBUTIONS_STALE_CACHE_TTL = 3600

CONTRIBUTIONS_CACHE_KEY = "github:contributions"

CONTRIBUTIONS_QUERY = """
query($login: String!) {
  user(login: $login) {
    contributionsCollection {
      contributionCalendar {
        totalContributions
        weeks {
          contributionDays {
            date
            contributionCount
            color
          }
        }
      }
    }
  }
}
"""


class GitHubRepository(ApiModel):
    """Public repository summary."""

    id: str
    name: str
    description: str | None = None
    url: str
    star_count: int
    fork_count: int
    primary_language: str | None = None
    updated_at: str

    @classmethod
    def from_api(cls, repo: dict[str, Any]) -> "GitHubRepository":
        return cls(
            id=str(repo["id"]),
            name=repo["name"],
            description=repo.get("description"),
            url=repo["html_url"],
            star_count=repo["stargazers_count"],
            fork_count=repo["forks_count"],
            primary_language=repo.get("language"),
            updated_at=repo["updated_at"],
        )


class Pagination(ApiModel):
    page: int
    per_page: int
    has_more: bool


class RepositoryPage(ApiModel):
    repositories: list[GitHubRepository]
    pagination: Pagination


class ContributionDay(ApiModel):
    date: str
    contribution_count: int
    color: str


class ContributionWeek(ApiModel):
    contribution_days: list[ContributionDay]


class ContributionCalendar(ApiModel):
    total_contributions: int = 0
    weeks: list[ContributionWeek] = []


class GitHubSource(BaseDataSource):
    """
    GitHub data source.

    Reads the configured user's public repositories (REST) and contribution
    calendar (GraphQL). Without GITHUB_USERNAME every read returns an empty
    result instead of failing.
    """

    BASE_URL = "https://api.github.com"
    SERVICE_ID = "github"
    USER_AGENT = "portfolio-api"

    def __init__(
        self,
        username: str,
        cache: CacheStore,
        token: str = "",
        retry_policy: RetryPolicy | None = None,
        deduplicator: RequestDeduplicator | None = None,
        **fetcher_options: Any,
    ):
        self.username = username
        self.token = token

        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.USER_AGENT,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        fetcher = ResilientFetcher(
            ServiceConfig(
                service_id=self.SERVICE_ID,
                base_url=self.BASE_URL,
                display_name="GitHub",
                headers=headers,
                retry_policy=retry_policy or RetryPolicy(),
            ),
            rate_limits=RateLimitTracker(
                cache, self.SERVICE_ID, GITHUB_RATE_LIMIT_HEADERS
            ),
            **fetcher_options,
        )
        super().__init__(fetcher, cache, deduplicator)

        self.repositories = self.read_through(
            name="GitHub repositories",
            key_template=lambda per_page, page: (
                f"github:repositories:{per_page}:page{page}"
            ),
            fetch_fn=self._fetch_repositories,
            fresh_ttl=REPOSITORIES_CACHE_TTL,
            stale_ttl=REPOSITORIES_STALE_CACHE_TTL,
        )
        self.contributions = self.read_through(
            name="GitHub contributions",
            key_template=lambda: CONTRIBUTIONS_CACHE_KEY,
            fetch_fn=self._fetch_contributions,
            fresh_ttl=CONTRIBUTIONS_CACHE_TTL,
            stale_ttl=CONTRIBUTIONS_STALE_CACHE_TTL,
        )

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        return bool(self.username)

    async def get_user_repositories(
        self,
        limit: Any = DEFAULT_REPOSITORY_LIMIT,
        page: Any = 1,
    ) -> RepositoryPage:
        """
        Fetch one page of the user's public repositories, most recently
        updated first.

        Args:
            limit: Page size, clamped to 1..100 (default 20)
            page: 1-based page number

        Raises:
            ServiceUnavailableError: upstream failed and no stale copy exists
        """
        per_page = clamp_limit(limit, DEFAULT_REPOSITORY_LIMIT)
        page_number = coerce_page(page)

        if not self.is_configured():
            logger.warning("GITHUB_USERNAME is not configured, returning empty list.")
            return RepositoryPage(
                repositories=[],
                pagination=Pagination(page=page_number, per_page=per_page, has_more=False),
            )

        return await self.repositories.fetch(per_page=per_page, page=page_number)

    async def _fetch_repositories(
        self, per_page: int, page: int
    ) -> FetchResponse[RepositoryPage]:
        response = await self.fetcher.request(
            f"/users/{quote(self.username, safe='')}/repos",
            params={
                "per_page": per_page,
                "page": page,
                "sort": "updated",
                "direction": "desc",
            },
        )

        repositories = [GitHubRepository.from_api(r) for r in response.data]
        result = RepositoryPage(
            repositories=repositories,
            pagination=Pagination(
                page=page,
                per_page=per_page,
                has_more=len(repositories) == per_page,
            ),
        )
        logger.info(
            f"Fetched {len(repositories)} repositories from GitHub API (page {page})"
        )
        return FetchResponse(result, response.rate_limit, response.status_code)

    async def get_contribution_calendar(self) -> ContributionCalendar:
        """
        Fetch the user's contribution calendar for the last year.

        Raises:
            ServiceUnavailableError: upstream failed (or no token is configured)
                and no stale copy exists
        """
        if not self.is_configured():
            logger.warning(
                "GITHUB_USERNAME is not configured, returning empty contribution calendar."
            )
            return ContributionCalendar()

        return await self.contributions.fetch()

    async def refresh_contribution_calendar(self) -> ContributionCalendar:
        """Drop the cached calendar and fetch it again."""
        self.contributions.invalidate()
        logger.info("GitHub contributions cache cleared for refresh")
        return await self.get_contribution_calendar()

    async def _fetch_contributions(self) -> FetchResponse[ContributionCalendar]:
        if not self.token:
            raise ServiceUnavailableError(
                "GITHUB_TOKEN is not configured, GitHub GraphQL API requires authentication",
                service_id=self.SERVICE_ID,
            )

        response = await self.fetcher.request(
            "/graphql",
            method="POST",
            json_data={
                "query": CONTRIBUTIONS_QUERY,
                "variables": {"login": self.username},
            },
        )

        payload = response.data
        if not isinstance(payload, dict):
            raise UpstreamStatusError(
                self.SERVICE_ID, response.status_code, "unexpected GraphQL payload"
            )
        if payload.get("errors"):
            raise UpstreamStatusError(
                self.SERVICE_ID, response.status_code, str(payload["errors"])
            )

        user = (payload.get("data") or {}).get("user")
        if user is None:
            raise UpstreamStatusError(
                self.SERVICE_ID,
                response.status_code,
                f"GitHub user '{self.username}' not found",
            )

        calendar = ContributionCalendar.model_validate(
            user["contributionsCollection"]["contributionCalendar"]
        )
        logger.info(
            f"Fetched {calendar.total_contributions} contributions from GitHub GraphQL API"
        )
        return FetchResponse(calendar, response.rate_limit, response.status_code)
