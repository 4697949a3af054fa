"""
Portfolio API entry point.
Wires the cache, the GitHub/Qiita sources and the AI articles batch together.
"""

import asyncio
import sys

from loguru import logger

from portfolio_api.datasource.ai_articles import (
    AIArticlesScheduler,
    AIArticlesService,
    SnapshotStorage,
)
from portfolio_api.datasource.github import GitHubSource
from portfolio_api.datasource.qiita import QiitaSource
from portfolio_api.services import CacheStore, RequestDeduplicator, RetryPolicy
from portfolio_api.settings import Settings


async def main() -> None:
    """Main function"""
    settings = Settings.from_env()

    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    logger.info("Starting portfolio API...")

    cache = CacheStore(cleanup_interval=settings.cache_cleanup_interval)
    deduplicator = RequestDeduplicator() if settings.single_flight else None
    policy = RetryPolicy(
        max_retries=settings.api_max_retries,
        timeout_ms=settings.api_timeout_ms,
    )

    github = GitHubSource(
        settings.github_username,
        cache,
        token=settings.github_token,
        retry_policy=policy,
        deduplicator=deduplicator,
    )
    qiita = QiitaSource(
        settings.qiita_user_id,
        cache,
        token=settings.qiita_token,
        retry_policy=policy,
        deduplicator=deduplicator,
    )
    ai_articles = AIArticlesService(
        qiita, SnapshotStorage(settings.ai_articles_data_path), cache
    )
    scheduler = AIArticlesScheduler(
        ai_articles,
        cron=settings.ai_articles_cron,
        startup_delay=settings.ai_articles_startup_delay,
    )

    try:
        logger.info("Starting AI articles scheduler...")
        scheduler.start()

        logger.info("Portfolio API is running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)
            logger.debug(f"Cache stats: {cache.get_stats().to_dict()}")

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received interrupt signal, shutting down...")
        raise
    finally:
        if scheduler.is_running():
            scheduler.stop()

        if deduplicator is not None:
            await deduplicator.cancel_all()

        await github.close()
        await qiita.close()
        cache.close()

        logger.info("Portfolio API stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
