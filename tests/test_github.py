"""Tests for the GitHub data source."""

import json

import httpx
import pytest

from portfolio_api.datasource.github import ContributionCalendar, GitHubSource
from portfolio_api.services.errors import ServiceUnavailableError
from portfolio_api.services.retry import RetryPolicy

from conftest import START_TIME, MockUpstream, github_repo, json_response

CALENDAR_PAYLOAD = {
    "data": {
        "user": {
            "contributionsCollection": {
                "contributionCalendar": {
                    "totalContributions": 42,
                    "weeks": [
                        {
                            "contributionDays": [
                                {
                                    "date": "2024-05-01",
                                    "contributionCount": 3,
                                    "color": "#40c463",
                                }
                            ]
                        }
                    ],
                }
            }
        }
    }
}


def make_source(upstream, cache, clock, sleep, username="someone", token=""):
    return GitHubSource(
        username,
        cache,
        token=token,
        retry_policy=RetryPolicy(max_retries=2),
        http_client=upstream.client(),
        sleep=sleep,
        clock=clock,
        rng=lambda: 0.0,
    )


# =============================================================================
# Repositories
# =============================================================================


async def test_repositories_request_shape(cache, clock, sleep):
    upstream = MockUpstream(json_response([github_repo(1), github_repo(2)]))
    github = make_source(upstream, cache, clock, sleep, token="secret")

    page = await github.get_user_repositories()

    request = upstream.requests[0]
    assert request.url.path == "/users/someone/repos"
    assert dict(request.url.params) == {
        "per_page": "20",
        "page": "1",
        "sort": "updated",
        "direction": "desc",
    }
    assert request.headers["accept"] == "application/vnd.github+json"
    assert request.headers["authorization"] == "Bearer secret"
    assert "user-agent" in request.headers

    assert [r.id for r in page.repositories] == ["1", "2"]
    assert page.pagination.has_more is False


async def test_repositories_cached_under_page_key(cache, clock, sleep):
    upstream = MockUpstream(json_response([github_repo(1)]))
    github = make_source(upstream, cache, clock, sleep)

    first = await github.get_user_repositories()
    second = await github.get_user_repositories(limit="20", page="1")

    assert upstream.call_count == 1
    assert first == second
    assert cache.get("github:repositories:20:page1") == first
    assert cache.get("github:repositories:20:page1:stale") == first


async def test_oversized_limit_is_clamped(cache, clock, sleep):
    upstream = MockUpstream(json_response([]))
    github = make_source(upstream, cache, clock, sleep)

    page = await github.get_user_repositories(limit=1000, page=3)

    assert upstream.requests[0].url.params["per_page"] == "100"
    assert page.pagination.per_page == 100
    assert page.pagination.page == 3


async def test_full_page_has_more(cache, clock, sleep):
    upstream = MockUpstream(json_response([github_repo(1), github_repo(2)]))
    github = make_source(upstream, cache, clock, sleep)

    page = await github.get_user_repositories(limit=2)

    assert page.pagination.has_more is True


async def test_repository_page_serializes_camel_case(cache, clock, sleep):
    upstream = MockUpstream(json_response([github_repo(7, "dotfiles")]))
    github = make_source(upstream, cache, clock, sleep)

    page = await github.get_user_repositories()
    data = page.to_json_dict()

    assert data["pagination"] == {"page": 1, "perPage": 20, "hasMore": False}
    assert data["repositories"][0]["starCount"] == 3
    assert data["repositories"][0]["url"] == "https://github.com/someone/repo-7"


async def test_missing_username_returns_empty_page(cache, clock, sleep):
    upstream = MockUpstream(json_response([]))
    github = make_source(upstream, cache, clock, sleep, username="")

    page = await github.get_user_repositories()

    assert page.repositories == []
    assert page.pagination.has_more is False
    assert upstream.call_count == 0
    assert cache.size() == 0


async def test_outage_with_stale_copy_degrades(cache, clock, sleep):
    upstream = MockUpstream(
        json_response([github_repo(1)]), httpx.Response(503)
    )
    github = make_source(upstream, cache, clock, sleep)

    first = await github.get_user_repositories()
    clock.advance(901)
    second = await github.get_user_repositories()

    assert second == first
    assert upstream.call_count == 4  # 1 + 3 attempts


async def test_rate_limit_info_is_recorded(cache, clock, sleep):
    reset = int(START_TIME) + 3600
    upstream = MockUpstream(
        json_response(
            [],
            headers={
                "x-ratelimit-limit": "60",
                "x-ratelimit-remaining": "57",
                "x-ratelimit-reset": str(reset),
            },
        )
    )
    github = make_source(upstream, cache, clock, sleep)

    assert github.get_rate_limit_info() is None
    await github.get_user_repositories()

    info = github.get_rate_limit_info()
    assert (info.limit, info.remaining, info.reset_at) == (60, 57, reset)
    assert cache.get("github:rate-limit") == info


# =============================================================================
# Contribution calendar
# =============================================================================


async def test_contribution_calendar(cache, clock, sleep):
    upstream = MockUpstream(json_response(CALENDAR_PAYLOAD))
    github = make_source(upstream, cache, clock, sleep, token="secret")

    calendar = await github.get_contribution_calendar()

    request = upstream.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/graphql"
    body = json.loads(request.content)
    assert body["variables"] == {"login": "someone"}

    assert calendar.total_contributions == 42
    assert calendar.weeks[0].contribution_days[0].contribution_count == 3
    assert calendar.to_json_dict()["weeks"][0]["contributionDays"][0]["color"] == "#40c463"
    assert cache.get("github:contributions") == calendar


async def test_contribution_calendar_requires_token(cache, clock, sleep):
    upstream = MockUpstream(json_response(CALENDAR_PAYLOAD))
    github = make_source(upstream, cache, clock, sleep, token="")

    with pytest.raises(ServiceUnavailableError):
        await github.get_contribution_calendar()

    assert upstream.call_count == 0


async def test_contribution_calendar_without_token_serves_stale(cache, clock, sleep):
    stale = ContributionCalendar(total_contributions=5)
    cache.set("github:contributions:stale", stale, 3600)
    github = make_source(MockUpstream(json_response({})), cache, clock, sleep)

    assert await github.get_contribution_calendar() == stale


async def test_graphql_errors_are_failures(cache, clock, sleep):
    upstream = MockUpstream(json_response({"errors": [{"message": "bad query"}]}))
    github = make_source(upstream, cache, clock, sleep, token="secret")

    with pytest.raises(ServiceUnavailableError):
        await github.get_contribution_calendar()

    assert upstream.call_count == 1


async def test_unknown_user_is_a_failure(cache, clock, sleep):
    upstream = MockUpstream(json_response({"data": {"user": None}}))
    github = make_source(upstream, cache, clock, sleep, token="secret")

    with pytest.raises(ServiceUnavailableError):
        await github.get_contribution_calendar()


async def test_missing_username_returns_empty_calendar(cache, clock, sleep):
    upstream = MockUpstream(json_response(CALENDAR_PAYLOAD))
    github = make_source(upstream, cache, clock, sleep, username="", token="secret")

    calendar = await github.get_contribution_calendar()

    assert calendar == ContributionCalendar()
    assert calendar.to_json_dict() == {"totalContributions": 0, "weeks": []}
    assert upstream.call_count == 0


async def test_refresh_bypasses_fresh_copy(cache, clock, sleep):
    upstream = MockUpstream(json_response(CALENDAR_PAYLOAD))
    github = make_source(upstream, cache, clock, sleep, token="secret")

    await github.get_contribution_calendar()
    await github.get_contribution_calendar()
    assert upstream.call_count == 1

    await github.refresh_contribution_calendar()
    assert upstream.call_count == 2
