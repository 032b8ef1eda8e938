"""网络抓取与订阅发现模块."""

from feedforge.fetcher.client import FetchConfig, FetchError, FetchTimeoutError, HttpFetcher
from feedforge.fetcher.discovery import DiscoveredFeed, DiscoveryResult, FeedDiscoverer
from feedforge.fetcher.protection import ProtectionResult, detect_protection

__all__ = [
    "DiscoveredFeed",
    "DiscoveryResult",
    "FeedDiscoverer",
    "FetchConfig",
    "FetchError",
    "FetchTimeoutError",
    "HttpFetcher",
    "ProtectionResult",
    "detect_protection",
]
