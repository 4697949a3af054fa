"""
AI articles scheduler.
Uses APScheduler to run the batch daily, plus once shortly after startup when
no snapshot exists yet.
"""

from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from loguru import logger

from portfolio_api.datasource.ai_articles.models import AIArticleSnapshot
from portfolio_api.datasource.ai_articles.service import AIArticlesService
from portfolio_api.utils import safe_job

DEFAULT_CRON = "0 18 * * *"  # 03:00 JST
DEFAULT_STARTUP_DELAY = 5.0


class AIArticlesScheduler:
    """Daily AI articles batch scheduler."""

    def __init__(
        self,
        service: AIArticlesService,
        cron: str = DEFAULT_CRON,
        startup_delay: float = DEFAULT_STARTUP_DELAY,
        scheduler: AsyncIOScheduler | None = None,
    ):
        self.service = service
        self.cron = cron
        self.startup_delay = startup_delay
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._is_running = False

    @safe_job
    async def fetch_job(self) -> None:
        """Scheduled batch run."""
        logger.info("Starting scheduled AI articles fetch job...")
        snapshot = await self.service.fetch_and_save()
        logger.info(
            f"Scheduled AI articles fetch completed: {len(snapshot.articles)} articles"
        )

    @safe_job
    async def startup_check_job(self) -> None:
        """Run the batch once if there is nothing to serve yet."""
        snapshot = self.service.get_snapshot()
        if snapshot.is_empty:
            logger.info("No AI articles data found. Starting initial fetch...")
            await self.service.fetch_and_save()
        else:
            logger.info(
                f"AI articles data already exists: {len(snapshot.articles)} articles"
            )

    def start(self) -> None:
        """Start the scheduler."""
        if self._is_running:
            logger.warning("AI articles scheduler is already running")
            return

        self.scheduler.add_job(
            self.fetch_job,
            trigger=CronTrigger.from_crontab(self.cron, timezone=timezone.utc),
            id="ai_articles_fetch",
            name="AI Articles Fetcher",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.startup_check_job,
            trigger=DateTrigger(
                run_date=datetime.now(timezone.utc)
                + timedelta(seconds=self.startup_delay)
            ),
            id="ai_articles_startup_check",
            name="AI Articles Startup Check",
            replace_existing=True,
        )

        self.scheduler.start()
        self._is_running = True

        logger.info(f"AI articles scheduler started: cron '{self.cron}' (UTC)")

    def stop(self) -> None:
        """Stop the scheduler."""
        if not self._is_running:
            logger.warning("AI articles scheduler is not running")
            return

        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("AI articles scheduler stopped")

    def is_running(self) -> bool:
        return self._is_running

    async def refresh_now(self) -> AIArticleSnapshot:
        """Run the batch immediately (manual trigger). Errors propagate."""
        logger.info("Manual AI articles fetch triggered")
        snapshot = await self.service.fetch_and_save()
        logger.info(f"Manual AI articles fetch completed: {len(snapshot.articles)} articles")
        return snapshot
