"""Tests for environment-driven settings and the job wrapper."""

from pathlib import Path

import pytest

from portfolio_api.services.errors import ConfigurationError
from portfolio_api.settings import Settings
from portfolio_api.utils import safe_job


def test_defaults():
    settings = Settings.from_env({})

    assert settings.github_username == ""
    assert settings.api_timeout_ms == 8000
    assert settings.api_max_retries == 2
    assert settings.cache_cleanup_interval == 60
    assert settings.single_flight is True
    assert settings.ai_articles_data_path == Path("data/ai-articles.json")
    assert settings.ai_articles_cron == "0 18 * * *"
    assert settings.ai_articles_startup_delay == 5
    assert settings.log_level == "INFO"


def test_reads_environment_names():
    settings = Settings.from_env(
        {
            "GITHUB_TOKEN": "ghp_x",
            "GITHUB_USERNAME": "octo",
            "QIITA_USER_ID": "someone",
            "API_MAX_RETRIES": "4",
            "SINGLE_FLIGHT": "false",
            "LOG_LEVEL": "debug",
            "UNRELATED": "ignored",
        }
    )

    assert settings.github_token == "ghp_x"
    assert settings.github_username == "octo"
    assert settings.qiita_user_id == "someone"
    assert settings.api_max_retries == 4
    assert settings.single_flight is False
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "env",
    [
        {"API_TIMEOUT_MS": "0"},
        {"API_MAX_RETRIES": "-1"},
        {"API_MAX_RETRIES": "lots"},
        {"CACHE_CLEANUP_INTERVAL": "0"},
        {"LOG_LEVEL": "loud"},
        {"AI_ARTICLES_CRON": "daily"},
    ],
)
def test_invalid_values_raise_configuration_error(env):
    with pytest.raises(ConfigurationError):
        Settings.from_env(env)


async def test_safe_job_returns_result():
    @safe_job
    async def job(x):
        return x * 2

    assert await job(21) == 42
    assert job.__name__ == "job"


async def test_safe_job_logs_and_swallows_failure():
    @safe_job
    async def job():
        raise ValueError("nope")

    assert await job() is None
