"""
AI articles batch - collects popular AI-related Qiita articles into one snapshot.

fetch_and_save():
1. For each tag, read the tag listing through the Qiita read-through cache.
   A failing tag is logged and skipped, the run continues.
2. Merge: first occurrence of an article id wins, tag names are collected.
3. Rank by likes (descending) and keep the top max_total.
4. Persist the snapshot file (failure is logged, not raised) and cache it.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from portfolio_api.datasource.ai_articles.models import (
    AI_RELATED_TAGS,
    AIArticle,
    AIArticleSnapshot,
    utc_now_iso,
)
from portfolio_api.datasource.ai_articles.storage import SnapshotStorage
from portfolio_api.datasource.base import ApiModel
from portfolio_api.datasource.qiita import QiitaSource
from portfolio_api.services.cache import CacheStore
from portfolio_api.services.errors import ServiceError
from portfolio_api.utils import to_int

SNAPSHOT_CACHE_KEY = "ai-articles"
SNAPSHOT_CACHE_TTL = 3600  # 1 hour

ARTICLES_PER_TAG = 20
MAX_TOTAL_ARTICLES = 100
TAG_DELAY_SECONDS = 0.2


@dataclass
class TagFetchResult:
    """Outcome of one tag listing within a batch run."""

    tag: str
    articles: list[AIArticle]
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class AIArticleQueryResult(ApiModel):
    articles: list[AIArticle]
    last_updated: str
    total: int


class AIArticlesService:
    """
    Builds and serves the AI articles snapshot.

    Reads (get_snapshot, get_tags, query) never touch the network: they go
    cache -> snapshot file -> empty snapshot.
    """

    def __init__(
        self,
        qiita: QiitaSource,
        storage: SnapshotStorage,
        cache: CacheStore,
        tags: Iterable[str] = AI_RELATED_TAGS,
        per_tag: int = ARTICLES_PER_TAG,
        max_total: int = MAX_TOTAL_ARTICLES,
        delay_seconds: float = TAG_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        now: Callable[[], str] = utc_now_iso,
    ):
        self.qiita = qiita
        self.storage = storage
        self.cache = cache
        self.tags = tuple(tags)
        self.per_tag = per_tag
        self.max_total = max_total
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._now = now

    async def _fetch_tag(self, tag: str) -> TagFetchResult:
        logger.debug(f"Fetching articles for tag: {tag}")
        try:
            items = await self.qiita.get_tag_items(tag, per_page=self.per_tag)
        except ServiceError as e:
            logger.warning(f"Failed to fetch articles for tag {tag}: {e}")
            return TagFetchResult(tag=tag, articles=[], error=str(e))

        fetched_at = self._now()
        return TagFetchResult(
            tag=tag,
            articles=[AIArticle.from_item(item, fetched_at) for item in items],
        )

    async def fetch_and_save(self) -> AIArticleSnapshot:
        """Run the full batch and replace the stored snapshot."""
        logger.info("Starting AI articles batch fetch...")

        results: list[TagFetchResult] = []
        for index, tag in enumerate(self.tags):
            if index > 0 and self.delay_seconds > 0:
                await self._sleep(self.delay_seconds)
            results.append(await self._fetch_tag(tag))

        articles: list[AIArticle] = []
        seen_ids: set[str] = set()
        found_tags: set[str] = set()
        for result in results:
            for article in result.articles:
                if article.id in seen_ids:
                    continue
                seen_ids.add(article.id)
                articles.append(article)
                found_tags.update(t.name for t in article.tags)

        # sorted() is stable, so equal like counts keep first-seen order
        ranked = sorted(articles, key=lambda a: a.likes_count, reverse=True)

        snapshot = AIArticleSnapshot(
            last_updated=self._now(),
            articles=ranked[: self.max_total],
            tags=sorted(found_tags),
        )

        if not self.storage.write(snapshot):
            logger.error("Failed to save AI articles to file")

        self.cache.set(SNAPSHOT_CACHE_KEY, snapshot, SNAPSHOT_CACHE_TTL)

        failed = [r.tag for r in results if not r.succeeded]
        logger.info(
            f"AI articles batch fetch completed: {len(snapshot.articles)} articles saved "
            f"({len(results) - len(failed)}/{len(results)} tags succeeded)"
        )
        if failed:
            logger.warning(f"AI articles tags failed: {', '.join(failed)}")

        return snapshot

    def get_snapshot(self) -> AIArticleSnapshot:
        cached = self.cache.get(SNAPSHOT_CACHE_KEY)
        if cached is not None:
            logger.debug("AI articles served from memory cache")
            return cached

        stored = self.storage.read()
        if stored is not None:
            self.cache.set(SNAPSHOT_CACHE_KEY, stored, SNAPSHOT_CACHE_TTL)
            logger.debug("AI articles served from file storage")
            return stored

        logger.warning("No AI articles data available")
        return AIArticleSnapshot.empty()

    def get_tags(self) -> list[str]:
        return list(self.get_snapshot().tags)

    def query(self, tag: str | None = None, limit: Any = None) -> AIArticleQueryResult:
        """
        Filter the snapshot by tag name (case-insensitive) and truncate.

        A missing, non-numeric or non-positive limit means no truncation.
        """
        snapshot = self.get_snapshot()
        articles = list(snapshot.articles)

        if tag:
            wanted = tag.lower()
            articles = [
                a for a in articles if any(t.name.lower() == wanted for t in a.tags)
            ]

        count = to_int(limit)
        if count is not None and count > 0:
            articles = articles[:count]

        return AIArticleQueryResult(
            articles=articles,
            last_updated=snapshot.last_updated,
            total=len(articles),
        )
