"""
Qiita API data source for a user's articles and profile.

API Documentation: https://qiita.com/api/v2/docs
Unauthenticated: 60 calls/hour, with a token: 1000 calls/hour.
Quota is reported in the Rate-Limit / Rate-Remaining / Rate-Reset headers.
"""

from typing import Any
from urllib.parse import quote

from loguru import logger

from portfolio_api.datasource.base import ApiModel, BaseDataSource
from portfolio_api.services.cache import CacheStore
from portfolio_api.services.client import FetchResponse, ResilientFetcher, ServiceConfig
from portfolio_api.services.deduplicator import RequestDeduplicator
from portfolio_api.services.errors import ServiceUnavailableError
from portfolio_api.services.rate_limit import QIITA_RATE_LIMIT_HEADERS, RateLimitTracker
from portfolio_api.services.retry import RetryPolicy
from portfolio_api.utils import clamp_limit

DEFAULT_ARTICLE_LIMIT = 10

ARTICLES_CACHE_TTL = 900  # 15 minutes
ARTICLES_STALE_CACHE_TTL = 3600  # 1 hour
USER_INFO_CACHE_TTL = 3600
USER_INFO_STALE_CACHE_TTL = 86400

ARTICLES_CACHE_KEY_PREFIX = "qiita:articles"
USER_INFO_CACHE_KEY = "qiita:user-info"
TAG_ITEMS_CACHE_KEY_PREFIX = "qiita:tag-items"

DEFAULT_TAG_ITEMS_LIMIT = 20
TAG_ITEMS_CACHE_TTL = 3600
TAG_ITEMS_STALE_CACHE_TTL = 86400

# Tag listings feed the daily batch, which can afford to wait longer.
TAG_ITEMS_RETRY_POLICY = RetryPolicy(
    max_retries=3,
    timeout_ms=10_000,
    backoff_base_ms=1000,
    jitter_ms=500,
)


class QiitaTag(ApiModel):
    name: str
    versions: list[str] = []


class QiitaArticle(ApiModel):
    """Article summary as shown on the portfolio."""

    id: str
    title: str
    url: str
    likes_count: int
    stocks_count: int
    created_at: str
    tags: list[QiitaTag] = []

    @classmethod
    def api_fields(cls, article: dict[str, Any]) -> dict[str, Any]:
        """Rename Qiita's snake_case payload keys to model fields."""
        return {
            "id": article["id"],
            "title": article["title"],
            "url": article["url"],
            "likes_count": article["likes_count"],
            "stocks_count": article["stocks_count"],
            "created_at": article["created_at"],
            "tags": [
                QiitaTag(name=tag["name"], versions=tag.get("versions") or [])
                for tag in article.get("tags") or []
            ],
        }

    @classmethod
    def from_api(cls, article: dict[str, Any]) -> "QiitaArticle":
        return cls(**cls.api_fields(article))


class QiitaAuthor(ApiModel):
    id: str
    name: str
    profile_image_url: str


class QiitaTagItem(QiitaArticle):
    """Article from a tag listing, which also carries its author."""

    author: QiitaAuthor

    @classmethod
    def from_api(cls, article: dict[str, Any]) -> "QiitaTagItem":
        user = article["user"]
        return cls(
            **cls.api_fields(article),
            author=QiitaAuthor(
                id=user["id"],
                name=user.get("name") or "",
                profile_image_url=user["profile_image_url"],
            ),
        )


class QiitaUser(ApiModel):
    """Public profile of the configured Qiita user."""

    id: str
    name: str
    profile_image_url: str
    description: str | None = None
    followers_count: int
    followees_count: int
    items_count: int
    website_url: str | None = None
    organization: str | None = None

    @classmethod
    def from_api(cls, user: dict[str, Any]) -> "QiitaUser":
        return cls(
            id=user["id"],
            name=user.get("name") or "",
            profile_image_url=user["profile_image_url"],
            description=user.get("description"),
            followers_count=user["followers_count"],
            followees_count=user["followees_count"],
            items_count=user["items_count"],
            website_url=user.get("website_url"),
            organization=user.get("organization"),
        )


class QiitaSource(BaseDataSource):
    """
    Qiita data source.

    Reads the configured user's articles and profile, plus tag listings for
    the AI-articles batch. Without QIITA_USER_ID the user reads return an empty
    result instead of failing.
    """

    BASE_URL = "https://qiita.com/api/v2"
    SERVICE_ID = "qiita"

    def __init__(
        self,
        user_id: str,
        cache: CacheStore,
        token: str = "",
        retry_policy: RetryPolicy | None = None,
        deduplicator: RequestDeduplicator | None = None,
        **fetcher_options: Any,
    ):
        self.user_id = user_id
        self.token = token

        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        fetcher = ResilientFetcher(
            ServiceConfig(
                service_id=self.SERVICE_ID,
                base_url=self.BASE_URL,
                display_name="Qiita",
                headers=headers,
                retry_policy=retry_policy or RetryPolicy(),
            ),
            rate_limits=RateLimitTracker(
                cache, self.SERVICE_ID, QIITA_RATE_LIMIT_HEADERS
            ),
            **fetcher_options,
        )
        super().__init__(fetcher, cache, deduplicator)

        self.articles = self.read_through(
            name="Qiita articles",
            key_template=lambda per_page: f"{ARTICLES_CACHE_KEY_PREFIX}:{per_page}",
            fetch_fn=self._fetch_articles,
            fresh_ttl=ARTICLES_CACHE_TTL,
            stale_ttl=ARTICLES_STALE_CACHE_TTL,
        )
        self.user_info = self.read_through(
            name="Qiita user info",
            key_template=lambda: USER_INFO_CACHE_KEY,
            fetch_fn=self._fetch_user_info,
            fresh_ttl=USER_INFO_CACHE_TTL,
            stale_ttl=USER_INFO_STALE_CACHE_TTL,
        )
        self.tag_items = self.read_through(
            name="Qiita tag items",
            key_template=lambda tag, per_page: (
                f"{TAG_ITEMS_CACHE_KEY_PREFIX}:{tag}:{per_page}"
            ),
            fetch_fn=self._fetch_tag_items,
            fresh_ttl=TAG_ITEMS_CACHE_TTL,
            stale_ttl=TAG_ITEMS_STALE_CACHE_TTL,
        )

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    def is_configured(self) -> bool:
        return bool(self.user_id)

    @property
    def _user_path(self) -> str:
        return f"/users/{quote(self.user_id, safe='')}"

    async def get_user_articles(self, limit: Any = DEFAULT_ARTICLE_LIMIT) -> list[QiitaArticle]:
        """
        Fetch the user's latest articles.

        Args:
            limit: Number of articles, clamped to 1..100 (default 10)

        Raises:
            ServiceUnavailableError: upstream failed and no stale copy exists
        """
        if not self.is_configured():
            logger.warning("QIITA_USER_ID is not configured, returning empty list.")
            return []

        per_page = clamp_limit(limit, DEFAULT_ARTICLE_LIMIT)
        return await self.articles.fetch(per_page=per_page)

    async def _fetch_articles(self, per_page: int) -> FetchResponse[list[QiitaArticle]]:
        response = await self.fetcher.request(
            f"{self._user_path}/items",
            params={"page": 1, "per_page": per_page},
        )
        articles = [QiitaArticle.from_api(a) for a in response.data]
        logger.info(f"Fetched {len(articles)} articles from Qiita API")
        return FetchResponse(articles, response.rate_limit, response.status_code)

    async def get_user_info(self) -> QiitaUser | None:
        """
        Fetch the user's profile.

        The profile is optional on the page, so a total outage (no fresh
        data, no stale copy) yields None rather than an error.
        """
        if not self.is_configured():
            logger.warning("QIITA_USER_ID is not configured, cannot fetch user info.")
            return None

        try:
            return await self.user_info.fetch()
        except ServiceUnavailableError as e:
            logger.error(f"Qiita user info unavailable: {e}")
            return None

    async def _fetch_user_info(self) -> FetchResponse[QiitaUser]:
        response = await self.fetcher.request(self._user_path)
        user = QiitaUser.from_api(response.data)
        logger.info(f"Fetched user info for {self.user_id} from Qiita API")
        return FetchResponse(user, response.rate_limit, response.status_code)

    async def get_tag_items(
        self, tag: str, per_page: Any = DEFAULT_TAG_ITEMS_LIMIT
    ) -> list[QiitaTagItem]:
        """
        Fetch the newest articles for a tag. Does not depend on QIITA_USER_ID.

        Raises:
            ServiceUnavailableError: upstream failed and no stale copy exists
        """
        per_page = clamp_limit(per_page, DEFAULT_TAG_ITEMS_LIMIT)
        return await self.tag_items.fetch(tag=tag, per_page=per_page)

    async def _fetch_tag_items(
        self, tag: str, per_page: int
    ) -> FetchResponse[list[QiitaTagItem]]:
        response = await self.fetcher.request(
            f"/tags/{quote(tag, safe='')}/items",
            params={"page": 1, "per_page": per_page},
            policy=TAG_ITEMS_RETRY_POLICY,
        )
        items = [QiitaTagItem.from_api(a) for a in response.data]
        logger.debug(f"Fetched {len(items)} articles for tag {tag}")
        return FetchResponse(items, response.rate_limit, response.status_code)
