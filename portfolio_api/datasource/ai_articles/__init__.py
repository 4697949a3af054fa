from portfolio_api.datasource.ai_articles.models import (
    AI_RELATED_TAGS,
    AIArticle,
    AIArticleAuthor,
    AIArticleSnapshot,
)
from portfolio_api.datasource.ai_articles.scheduler import AIArticlesScheduler
from portfolio_api.datasource.ai_articles.service import (
    AIArticleQueryResult,
    AIArticlesService,
    TagFetchResult,
)
from portfolio_api.datasource.ai_articles.storage import SnapshotStorage

__all__ = [
    "AI_RELATED_TAGS",
    "AIArticle",
    "AIArticleAuthor",
    "AIArticleQueryResult",
    "AIArticleSnapshot",
    "AIArticlesScheduler",
    "AIArticlesService",
    "SnapshotStorage",
    "TagFetchResult",
]
