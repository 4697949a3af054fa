from datetime import datetime, timezone

from portfolio_api.datasource.base import ApiModel
from portfolio_api.datasource.qiita import QiitaAuthor, QiitaTagItem

AI_RELATED_TAGS = (
    "AI",
    "機械学習",
    "MachineLearning",
    "ChatGPT",
    "LLM",
    "生成AI",
    "GenerativeAI",
    "OpenAI",
    "Claude",
    "GPT",
    "Gemini",
    "DeepLearning",
    "NLP",
    "自然言語処理",
    "Transformer",
    "Diffusion",
    "StableDiffusion",
)

AIArticleAuthor = QiitaAuthor


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


class AIArticle(QiitaTagItem):
    """Tag-listing article stamped with the time the batch picked it up."""

    fetched_at: str

    @classmethod
    def from_item(cls, item: QiitaTagItem, fetched_at: str) -> "AIArticle":
        return cls(**item.model_dump(), fetched_at=fetched_at)


class AIArticleSnapshot(ApiModel):
    """
    Full result of one batch run.

    Serialized as {"lastUpdated", "articles", "tags"}. Replaced as a whole on
    every run, never patched.
    """

    last_updated: str = ""
    articles: list[AIArticle] = []
    tags: list[str] = []

    @classmethod
    def empty(cls) -> "AIArticleSnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.articles
