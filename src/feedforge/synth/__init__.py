"""自建 RSS 模块."""

from feedforge.synth.builder import (
    ArticleStructureNotFoundError,
    NoArticlesFoundError,
    PageMetadata,
    RSSBuilder,
    RSSBuilderConfig,
    RSSBuildError,
)
from feedforge.synth.detection import ArticleStructure
from feedforge.synth.generator import RSSFeed, RSSItem, generate_rss

__all__ = [
    "ArticleStructure",
    "ArticleStructureNotFoundError",
    "NoArticlesFoundError",
    "PageMetadata",
    "RSSBuildError",
    "RSSBuilder",
    "RSSBuilderConfig",
    "RSSFeed",
    "RSSItem",
    "generate_rss",
]
