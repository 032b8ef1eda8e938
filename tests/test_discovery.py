"""测试订阅地址发现."""

from conftest import FakeWeb, make_rss

from feedforge.fetcher.client import HttpFetcher
from feedforge.fetcher.discovery import (
    FeedDiscoverer,
    find_feed_links,
    is_feed_like_url,
    looks_like_feed,
)

ATOM = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom"><title>Atom</title></feed>"""

HOME_WITH_LINK = """<html><head>
<link rel="alternate" type="application/rss+xml" title="Main Feed" href="/feed.xml">
<link rel="stylesheet" href="/style.css">
</head><body>Home</body></html>"""

HOME_PLAIN = "<html><head><title>Home</title></head><body>Nothing here</body></html>"

CHALLENGE = "<html><head><title>Just a moment...</title></head><body>Checking your browser</body></html>"


class TestFeedHelpers:
    """测试纯函数部分."""

    def test_looks_like_feed(self) -> None:
        """RSS/Atom/RDF 根元素."""
        assert looks_like_feed(make_rss())
        assert looks_like_feed(ATOM)
        assert looks_like_feed('<rdf:RDF xmlns:rdf="x"></rdf:RDF>')
        assert not looks_like_feed(HOME_PLAIN)
        assert not looks_like_feed('<?xml version="1.0"?><sitemap/>')

    def test_is_feed_like_url(self) -> None:
        """URL 形态判断."""
        assert is_feed_like_url("https://example.com/feed")
        assert is_feed_like_url("https://example.com/index.xml")
        assert not is_feed_like_url("https://example.com/about")

    def test_find_feed_links(self) -> None:
        """解析 alternate 与 rel=feed，相对地址按页面解析."""
        html = """<head>
        <link rel="alternate" type="application/atom+xml" href="atom.xml">
        <link rel="alternate" hreflang="de" href="/de/">
        <link rel="feed" href="https://example.com/updates">
        </head>"""

        feeds = find_feed_links(html, "https://example.com/blog/")

        assert [feed.url for feed in feeds] == [
            "https://example.com/blog/atom.xml",
            "https://example.com/updates",
        ]
        assert feeds[0].type == "application/atom+xml"
        assert feeds[1].type == "RSS/Atom"

    def test_find_feed_links_skips_blocked_targets(self) -> None:
        """指向内网的候选被丢弃."""
        html = '<link rel="alternate" type="application/rss+xml" href="http://127.0.0.1/rss">'
        assert find_feed_links(html, "https://example.com") == []


class TestFeedDiscoverer:
    """测试 FeedDiscoverer."""

    async def test_link_tag_discovery(self, web: FakeWeb, fetcher: HttpFetcher) -> None:
        """从首页 link 标签发现并校验订阅."""
        web.add("https://example.com", HOME_WITH_LINK)
        web.add_feed("https://example.com/feed.xml", make_rss())

        result = await FeedDiscoverer(fetcher).discover_all_feeds("example.com")

        assert len(result.feeds) == 1
        feed = result.feeds[0]
        assert feed.url == "https://example.com/feed.xml"
        assert feed.title == "Main Feed"
        assert feed.type == "application/rss+xml"
        assert result.cloudflare_protected is False
        # 找到结果后不再探测常见路径
        assert web.requests_to("https://example.com/rss") == []

    async def test_direct_feed_url(self, web: FakeWeb, fetcher: HttpFetcher) -> None:
        """URL 本身就是订阅时直接返回."""
        web.add_feed("https://example.com/feed.xml", make_rss())

        result = await FeedDiscoverer(fetcher).discover_all_feeds(
            "https://example.com/feed.xml"
        )

        assert [(f.url, f.title, f.type) for f in result.feeds] == [
            ("https://example.com/feed.xml", "Direct Feed", "RSS/Atom")
        ]
        assert len(web.requests) == 1

    async def test_probes_common_paths(self, web: FakeWeb, fetcher: HttpFetcher) -> None:
        """首页没有 link 标签时探测常见路径."""
        web.add("https://example.com", HOME_PLAIN)
        web.add_feed("https://example.com/feed", ATOM, content_type="application/atom+xml")

        result = await FeedDiscoverer(fetcher).discover_all_feeds("https://example.com")

        assert [feed.url for feed in result.feeds] == ["https://example.com/feed"]
        assert result.feeds[0].title is None

    async def test_candidate_must_be_a_feed(self, web: FakeWeb, fetcher: HttpFetcher) -> None:
        """候选地址返回 HTML 时被丢弃."""
        web.add("https://example.com", HOME_WITH_LINK)
        web.add("https://example.com/feed.xml", HOME_PLAIN)

        result = await FeedDiscoverer(fetcher).discover_all_feeds("https://example.com")

        assert result.feeds == ()

    async def test_nothing_found(self, web: FakeWeb, fetcher: HttpFetcher) -> None:
        """没有任何订阅."""
        web.add("https://example.com", HOME_PLAIN)

        discoverer = FeedDiscoverer(fetcher)
        result = await discoverer.discover_all_feeds("https://example.com")

        assert result.feeds == ()
        assert result.confidence == "low"
        assert await discoverer.discover_feed_url("https://example.com") is None

    async def test_challenge_page_falls_back_to_probing(
        self, web: FakeWeb, fetcher: HttpFetcher
    ) -> None:
        """挑战页：记录反爬信号并探测常见路径."""
        web.add(
            "https://example.com",
            CHALLENGE,
            status=503,
            headers={"cf-ray": "8a1b", "server": "cloudflare"},
        )
        web.add_feed("https://example.com/rss.xml", make_rss())

        result = await FeedDiscoverer(fetcher).discover_all_feeds("https://example.com")

        assert result.cloudflare_protected is True
        assert result.confidence == "high"
        assert [feed.url for feed in result.feeds] == ["https://example.com/rss.xml"]
        assert result.feeds[0].cloudflare_protected is True

    async def test_probe_order_follows_path_list(
        self, web: FakeWeb, fetcher: HttpFetcher
    ) -> None:
        """探测结果按路径优先级排序."""
        web.add("https://example.com", HOME_PLAIN)
        web.add_feed("https://example.com/rss.xml", make_rss())
        web.add_feed("https://example.com/feed", make_rss())

        url = await FeedDiscoverer(fetcher, concurrency=2).discover_feed_url(
            "https://example.com"
        )

        assert url == "https://example.com/feed"

    async def test_invalid_url(self, fetcher: HttpFetcher) -> None:
        """非法地址直接返回空结果."""
        result = await FeedDiscoverer(fetcher).discover_all_feeds("http://localhost/feed")
        assert result.feeds == ()
