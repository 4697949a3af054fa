"""Tests for the AI articles scheduler triggers."""

import pytest

from portfolio_api.datasource.ai_articles.models import AIArticleSnapshot
from portfolio_api.datasource.ai_articles.scheduler import AIArticlesScheduler


class FakeService:
    def __init__(self, snapshot: AIArticleSnapshot | None = None, error: Exception | None = None):
        self.snapshot = snapshot or AIArticleSnapshot.empty()
        self.error = error
        self.runs = 0

    def get_snapshot(self) -> AIArticleSnapshot:
        return self.snapshot

    async def fetch_and_save(self) -> AIArticleSnapshot:
        self.runs += 1
        if self.error is not None:
            raise self.error
        return self.snapshot


class FakeScheduler:
    """Records add_job calls instead of running an event-loop scheduler."""

    def __init__(self):
        self.jobs: dict[str, dict] = {}
        self.started = False
        self.shutdown_called = False

    def add_job(self, func, trigger, id, **kwargs):
        self.jobs[id] = {"func": func, "trigger": trigger, **kwargs}

    def start(self):
        self.started = True

    def shutdown(self, wait=True):
        self.shutdown_called = True


def populated_snapshot() -> AIArticleSnapshot:
    return AIArticleSnapshot.model_validate(
        {
            "lastUpdated": "2024-05-01T18:00:00.000Z",
            "articles": [
                {
                    "id": "a",
                    "title": "t",
                    "url": "https://qiita.com/x/items/a",
                    "likesCount": 1,
                    "stocksCount": 0,
                    "createdAt": "2024-05-01T00:00:00+09:00",
                    "tags": [],
                    "author": {"id": "x", "name": "", "profileImageUrl": "https://example.com/x.png"},
                    "fetchedAt": "2024-05-01T18:00:00.000Z",
                }
            ],
            "tags": [],
        }
    )


async def test_start_registers_daily_cron_and_startup_check():
    fake = FakeScheduler()
    scheduler = AIArticlesScheduler(FakeService(), scheduler=fake)

    scheduler.start()

    assert fake.started
    assert scheduler.is_running()
    cron = fake.jobs["ai_articles_fetch"]["trigger"]
    assert str(cron.fields[5]) == "18"  # hour
    assert str(cron.fields[6]) == "0"  # minute
    assert str(cron.timezone) == "UTC"
    assert "ai_articles_startup_check" in fake.jobs


async def test_start_twice_is_a_no_op():
    fake = FakeScheduler()
    scheduler = AIArticlesScheduler(FakeService(), scheduler=fake)

    scheduler.start()
    fake.jobs.clear()
    scheduler.start()

    assert fake.jobs == {}


async def test_stop():
    fake = FakeScheduler()
    scheduler = AIArticlesScheduler(FakeService(), scheduler=fake)
    scheduler.start()

    scheduler.stop()

    assert fake.shutdown_called
    assert not scheduler.is_running()


async def test_startup_check_fetches_when_empty():
    service = FakeService()
    scheduler = AIArticlesScheduler(service, scheduler=FakeScheduler())

    await scheduler.startup_check_job()

    assert service.runs == 1


async def test_startup_check_skips_when_data_exists():
    service = FakeService(populated_snapshot())
    scheduler = AIArticlesScheduler(service, scheduler=FakeScheduler())

    await scheduler.startup_check_job()

    assert service.runs == 0


async def test_scheduled_job_swallows_and_logs_failures():
    service = FakeService(error=RuntimeError("disk on fire"))
    scheduler = AIArticlesScheduler(service, scheduler=FakeScheduler())

    assert await scheduler.fetch_job() is None
    assert service.runs == 1


async def test_refresh_now_propagates_failures():
    service = FakeService(error=RuntimeError("boom"))
    scheduler = AIArticlesScheduler(service, scheduler=FakeScheduler())

    with pytest.raises(RuntimeError):
        await scheduler.refresh_now()


async def test_refresh_now_returns_snapshot():
    snapshot = populated_snapshot()
    scheduler = AIArticlesScheduler(FakeService(snapshot), scheduler=FakeScheduler())

    assert await scheduler.refresh_now() is snapshot
