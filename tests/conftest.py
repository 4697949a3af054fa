"""Shared fixtures: a cache on a fake clock, recorded sleeps, mock upstreams."""

import json
from typing import Any, Callable

import httpx
import pytest

from portfolio_api.services.cache import CacheStore

START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced wall clock (epoch seconds)."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once."""

    def __init__(self, clock: FakeClock | None = None):
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


class MockUpstream:
    """
    httpx.MockTransport backed by a queue of canned responses.

    Each entry is an httpx.Response, an exception instance to raise, or a
    callable taking the request. The last entry repeats once the queue runs dry.
    """

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def call_count(self) -> int:
        return len(self.requests)


def json_response(
    payload: Any, status_code: int = 200, headers: dict[str, str] | None = None
) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(payload).encode(),
        headers={"content-type": "application/json", **(headers or {})},
    )


def qiita_article(article_id: str, likes: int = 0, tags: list[str] | None = None) -> dict:
    """Qiita item payload as returned by /items endpoints."""
    return {
        "id": article_id,
        "title": f"Article {article_id}",
        "url": f"https://qiita.com/someone/items/{article_id}",
        "likes_count": likes,
        "stocks_count": 1,
        "created_at": "2024-05-01T09:00:00+09:00",
        "tags": [{"name": name, "versions": []} for name in (tags or ["Python"])],
        "user": {
            "id": "someone",
            "name": "Some One",
            "profile_image_url": "https://example.com/someone.png",
        },
    }


def github_repo(repo_id: int, name: str = "") -> dict:
    return {
        "id": repo_id,
        "name": name or f"repo-{repo_id}",
        "description": None,
        "html_url": f"https://github.com/someone/repo-{repo_id}",
        "stargazers_count": 3,
        "forks_count": 1,
        "language": "Python",
        "updated_at": "2024-05-01T00:00:00Z",
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock):
    """In-memory cache on the fake clock, without the background sweep."""
    store = CacheStore(clock=clock, start_sweeper=False)
    yield store
    store.close()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def no_jitter() -> Callable[[], float]:
    return lambda: 0.0
