"""RSS/Atom 订阅地址自动发现."""

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from typing import ClassVar
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from feedforge.fetcher.client import FetchError, HttpFetcher
from feedforge.fetcher.protection import Confidence, detect_protection
from feedforge.utils.url import normalize_url

logger = logging.getLogger(__name__)

FEED_ACCEPT_HEADER = (
    "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"
)

# 常见订阅路径（按优先级）
FEED_PATH_CANDIDATES: tuple[str, ...] = (
    "/feed",
    "/feed.xml",
    "/feed.rss",
    "/feed/atom",
    "/atom.xml",
    "/rss",
    "/rss.xml",
    "/rss/feed",
    "/news/rss.xml",
    "/news/feed",
    "/news/rss",
    "/index.xml",
    "/feeds/all.atom.xml",
    "/feeds/posts/default",
    "/blog/feed",
    "/blog/rss",
    "/.rss",
    "/.atom",
)

_FEED_URL_PATTERNS = (
    re.compile(r"/feed", re.I),
    re.compile(r"/rss", re.I),
    re.compile(r"/atom", re.I),
    re.compile(r"\.xml$", re.I),
    re.compile(r"\.rss$", re.I),
)

_FEED_ROOT_MARKERS = ("<rss", "<feed", "<rdf:RDF")


@dataclass(frozen=True)
class DiscoveredFeed:
    """发现的订阅源."""

    url: str
    title: str | None = None
    type: str | None = None
    cloudflare_protected: bool = False
    cloudflare_confidence: Confidence = "low"


@dataclass(frozen=True)
class DiscoveryResult:
    """发现结果."""

    feeds: tuple[DiscoveredFeed, ...] = field(default_factory=tuple)
    cloudflare_protected: bool = False
    confidence: Confidence = "low"


def looks_like_feed(text: str) -> bool:
    """判断响应体是否为 RSS/Atom/RDF 文档."""
    trimmed = text.lstrip("﻿").strip()
    head = trimmed[:2048]
    if trimmed.startswith("<?xml"):
        return any(marker in trimmed for marker in _FEED_ROOT_MARKERS)
    return any(head.startswith(marker) for marker in _FEED_ROOT_MARKERS)


def is_feed_like_url(url: str) -> bool:
    """URL 本身是否像订阅地址."""
    return any(pattern.search(url) for pattern in _FEED_URL_PATTERNS)


def _rel_values(tag: object) -> list[str]:
    rel = getattr(tag, "get", lambda _key: None)("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return [value.lower() for value in rel]


def find_feed_links(html: str, base_url: str) -> list[DiscoveredFeed]:
    """
    从 HTML 的 <link> 标签中找出订阅候选.

    只做解析，不做网络校验。
    """
    soup = BeautifulSoup(html, "lxml")
    candidates: list[DiscoveredFeed] = []

    for link in soup.find_all("link", href=True):
        rels = _rel_values(link)
        href = str(link.get("href", "")).strip()
        if not href:
            continue

        link_type = link.get("type")
        link_type = str(link_type) if link_type else None
        title = link.get("title")
        title = str(title) if title else None

        if "alternate" in rels:
            lowered_type = (link_type or "").lower()
            is_feed_type = any(key in lowered_type for key in ("rss", "atom", "xml"))
            lowered_href = href.lower()
            is_feed_href = (
                any(key in lowered_href for key in ("feed", "rss", "atom"))
                or lowered_href.endswith(".xml")
                or lowered_href.endswith(".rss")
            )
            if not (is_feed_type or is_feed_href):
                continue
        elif any("feed" in rel for rel in rels):
            link_type = link_type or "RSS/Atom"
        else:
            continue

        resolved = normalize_url(urljoin(base_url, href))
        if resolved:
            candidates.append(
                DiscoveredFeed(url=resolved, title=title, type=link_type)
            )

    return candidates


class FeedDiscoverer:
    """订阅地址发现器."""

    PROBE_PATHS: ClassVar[tuple[str, ...]] = FEED_PATH_CANDIDATES

    def __init__(self, fetcher: HttpFetcher, concurrency: int = 4) -> None:
        self.fetcher = fetcher
        self.concurrency = concurrency

    async def check_direct_feed_url(self, url: str) -> str | None:
        """
        校验 URL 是否直接返回订阅内容.

        Returns:
            规范化后的订阅 URL；不是订阅或请求失败时返回 None
        """
        normalized = normalize_url(url)
        if not normalized:
            return None

        try:
            response = await self.fetcher.get(
                normalized, headers={"Accept": FEED_ACCEPT_HEADER}
            )
        except FetchError:
            return None

        if not response.is_success:
            return None

        content_type = response.headers.get("content-type", "").lower()
        is_feed_content_type = any(
            key in content_type for key in ("xml", "rss", "atom")
        )
        if not is_feed_content_type and not is_feed_like_url(normalized):
            return None

        return normalized if looks_like_feed(response.text) else None

    async def _probe_common_paths(self, base_url: str) -> list[str]:
        """并发探测常见路径，保持路径列表的顺序."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def probe(path: str) -> str | None:
            candidate = normalize_url(urljoin(base_url, path))
            if not candidate:
                return None
            async with semaphore:
                return await self.check_direct_feed_url(candidate)

        results = await asyncio.gather(*(probe(path) for path in self.PROBE_PATHS))
        return [url for url in results if url]

    async def discover_all_feeds(self, site_url: str) -> DiscoveryResult:
        """
        发现站点的全部订阅地址.

        1. URL 本身就是订阅 → 直接返回
        2. 抓取首页并做反爬检测
        3. 解析 <link rel="alternate"> / <link rel="feed">，逐个校验
        4. 仍然没有结果（或遇到挑战页）时探测常见路径

        不抛异常，失败时返回空列表并保留已获得的反爬信号。
        """
        base_url = normalize_url(site_url)
        if not base_url:
            return DiscoveryResult()

        direct = await self.check_direct_feed_url(base_url)
        if direct:
            return DiscoveryResult(
                feeds=(DiscoveredFeed(url=direct, title="Direct Feed", type="RSS/Atom"),)
            )

        discovered: dict[str, DiscoveredFeed] = {}
        protected = False
        confidence: Confidence = "low"
        is_challenge_page = False

        try:
            response = await self.fetcher.get(base_url)
        except FetchError as e:
            logger.info(f"首页抓取失败，改为探测常见路径: {base_url} - {e}")
            response = None

        if response is not None:
            html = response.text
            protection = detect_protection(response.status_code, response.headers, html)
            protected = protection.is_protected
            confidence = protection.confidence
            is_challenge_page = protection.is_protected

            content_type = response.headers.get("content-type", "").lower()
            if response.is_success and "html" in content_type and not is_challenge_page:
                for candidate in find_feed_links(html, base_url):
                    if candidate.url in discovered:
                        continue
                    verified = await self.check_direct_feed_url(candidate.url)
                    if verified and verified not in discovered:
                        discovered[verified] = replace(
                            candidate,
                            url=verified,
                            cloudflare_protected=protected,
                            cloudflare_confidence=confidence,
                        )

        if is_challenge_page or not discovered:
            for verified in await self._probe_common_paths(base_url):
                if verified not in discovered:
                    discovered[verified] = DiscoveredFeed(
                        url=verified,
                        cloudflare_protected=protected,
                        cloudflare_confidence=confidence,
                    )

        if not discovered:
            logger.info(f"未发现订阅地址: {base_url}")

        return DiscoveryResult(
            feeds=tuple(discovered.values()),
            cloudflare_protected=protected,
            confidence=confidence,
        )

    async def discover_feed_url(self, site_url: str) -> str | None:
        """只返回第一个发现的订阅地址（兼容旧调用方）."""
        result = await self.discover_all_feeds(site_url)
        return result.feeds[0].url if result.feeds else None
