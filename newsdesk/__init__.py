"""Editorial tooling: document import, article bodies and front-page ordering."""

from .body import ArticleBody, collect_media_ids, validate_article_body
from .frontpage import FrontPageEntry, FrontPageError, ReorderPlan

__all__ = [
    "ArticleBody",
    "FrontPageEntry",
    "FrontPageError",
    "ReorderPlan",
    "collect_media_ids",
    "validate_article_body",
]
