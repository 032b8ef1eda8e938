"""核心业务逻辑."""

from feedforge.core.feed_parser import FeedEntry, FeedParseError, ParsedFeed, parse_feed
from feedforge.core.item_processor import ItemProcessor, ProcessResult
from feedforge.core.refresh import (
    ProjectRefreshResult,
    RefreshService,
    RefreshSummary,
    SourceRefreshResult,
)
from feedforge.core.repository import Repository
from feedforge.core.webhooks import WebhookDispatcher

__all__ = [
    "FeedEntry",
    "FeedParseError",
    "ItemProcessor",
    "ParsedFeed",
    "ProcessResult",
    "ProjectRefreshResult",
    "RefreshService",
    "RefreshSummary",
    "Repository",
    "SourceRefreshResult",
    "WebhookDispatcher",
    "parse_feed",
]
