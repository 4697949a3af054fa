import os
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from portfolio_api.services.errors import ConfigurationError

LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    # GitHub Configuration
    github_token: str = Field(default="", alias="GITHUB_TOKEN")
    github_username: str = Field(default="", alias="GITHUB_USERNAME")

    # Qiita Configuration
    qiita_token: str = Field(default="", alias="QIITA_TOKEN")
    qiita_user_id: str = Field(default="", alias="QIITA_USER_ID")

    # Upstream request policy
    api_timeout_ms: int = Field(default=8_000, gt=0, alias="API_TIMEOUT_MS")
    api_max_retries: int = Field(default=2, ge=0, le=10, alias="API_MAX_RETRIES")

    # Cache Configuration
    cache_cleanup_interval: float = Field(
        default=60.0, gt=0, alias="CACHE_CLEANUP_INTERVAL"
    )
    single_flight: bool = Field(default=True, alias="SINGLE_FLIGHT")

    # AI articles batch
    ai_articles_data_path: Path = Field(
        default=Path("data/ai-articles.json"), alias="AI_ARTICLES_DATA_PATH"
    )
    ai_articles_cron: str = Field(default="0 18 * * *", alias="AI_ARTICLES_CRON")
    ai_articles_startup_delay: float = Field(
        default=5.0, ge=0, alias="AI_ARTICLES_STARTUP_DELAY"
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("ai_articles_cron")
    @classmethod
    def _check_cron(cls, value: str) -> str:
        if len(value.split()) != 5:
            raise ValueError(f"expected a 5-field crontab expression, got {value!r}")
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from the environment (.env included)."""
        if environ is None:
            load_dotenv()
            environ = os.environ
        try:
            return cls.model_validate(dict(environ))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
