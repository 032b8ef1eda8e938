"""从 HTML 列表页抓取文章并生成 RSS."""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from feedforge.fetcher.client import FetchError, HttpFetcher
from feedforge.synth.detection import (
    DEFAULT_LINK_SELECTOR,
    DEFAULT_TITLE_SELECTOR,
    detect_article_list_urls,
    detect_article_structure,
)
from feedforge.synth.generator import RSSFeed, RSSItem, generate_rss
from feedforge.utils.dates import extract_date_from_element
from feedforge.utils.url import get_origin, normalize_url

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_TITLE_SEPARATORS = ("|", "—", "–")


class RSSBuildError(Exception):
    """自建 RSS 失败."""


class NoArticlesFoundError(RSSBuildError):
    """页面上没有符合条件的文章."""


class ArticleStructureNotFoundError(RSSBuildError):
    """无法识别文章结构."""


class RSSBuilderConfig(BaseModel):
    """
    自建 RSS 的选择器配置.

    数据库中以 camelCase 键存储（siteUrl、articleSelector ...），两种写法都接受。
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    site_url: str
    article_list_url: str | None = None
    article_selector: str = "article"
    title_selector: str = DEFAULT_TITLE_SELECTOR
    link_selector: str = DEFAULT_LINK_SELECTOR
    date_selector: str | None = None
    content_selector: str | None = None
    author_selector: str | None = None
    max_items: int = 20


@dataclass(frozen=True)
class PageMetadata:
    """页面标题与描述."""

    title: str | None = None
    description: str | None = None


def _text(element: Tag | None) -> str:
    if element is None:
        return ""
    return _WHITESPACE_RE.sub(" ", element.get_text().strip())


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str | None:
    meta = soup.find("meta", attrs=attrs)
    if meta is None:
        return None
    content = meta.get("content")
    return content.strip() if isinstance(content, str) and content.strip() else None


def clean_page_title(title: str) -> str:
    """去掉标题中 ' | 站点名' 一类的后缀."""
    for separator in _TITLE_SEPARATORS:
        title = title.split(separator)[0]
    return title.strip()


def _enclosing_anchor(element: Tag) -> Tag | None:
    if element.name == "a":
        return element
    return element.find_parent("a")


def _extract_item(
    article: Tag,
    config: RSSBuilderConfig,
    base_url: str,
    now: datetime | None,
) -> RSSItem | None:
    """解析单篇文章，缺少标题或链接时返回 None."""
    title_el = article.select_one(config.title_selector)
    title = _text(title_el)
    if title_el is None or not title:
        return None

    link = ""
    link_el = article.select_one(config.link_selector)
    if link_el is not None:
        href = link_el.get("href")
        link = href.strip() if isinstance(href, str) else ""
    if not link:
        anchor = _enclosing_anchor(title_el)
        href = anchor.get("href") if anchor is not None else None
        link = href.strip() if isinstance(href, str) else ""
    if not link:
        return None
    link = urljoin(base_url, link)

    pub_date = extract_date_from_element(article, config.date_selector, now)

    content: str | None = None
    if config.content_selector:
        content_el = article.select_one(config.content_selector)
        description = _text(content_el)
        content = content_el.decode_contents() if content_el is not None else None
    else:
        description = _text(article.find("p"))

    author: str | None = None
    if config.author_selector:
        author = _text(article.select_one(config.author_selector)) or None

    return RSSItem(
        title=title,
        link=link,
        description=description or title,
        content=content or None,
        pub_date=pub_date,
        guid=link,
        author=author,
    )


def build_rss_from_html(
    html: str,
    config: RSSBuilderConfig,
    page_url: str | None = None,
    now: datetime | None = None,
) -> str:
    """
    按配置解析 HTML 并生成 RSS（不发网络请求）.

    Args:
        html: 列表页 HTML
        config: 选择器配置
        page_url: 列表页地址，相对链接按其 origin 解析
        now: 当前时间（用于相对日期和 lastBuildDate）

    Raises:
        NoArticlesFoundError: 没有合格的文章
    """
    page_url = page_url or config.article_list_url or config.site_url
    base_url = get_origin(page_url)
    soup = BeautifulSoup(html, "lxml")

    items: list[RSSItem] = []
    for article in soup.select(config.article_selector)[: config.max_items]:
        item = _extract_item(article, config, base_url, now)
        if item is not None:
            items.append(item)

    if not items:
        msg = "No articles found on the page"
        raise NoArticlesFoundError(msg)

    html_tag = soup.find("html")
    language = html_tag.get("lang") if html_tag is not None else None
    page_title = soup.title.get_text() if soup.title is not None else ""

    feed = RSSFeed(
        title=page_title or urlsplit(config.site_url).hostname or config.site_url,
        link=config.site_url,
        description=_meta_content(soup, name="description"),
        language=language if isinstance(language, str) and language else "en",
        last_build_date=now or datetime.now(UTC),
        items=tuple(items),
    )
    return generate_rss(feed)


class RSSBuilder:
    """自建 RSS 构建器."""

    def __init__(self, fetcher: HttpFetcher) -> None:
        self.fetcher = fetcher

    async def scrape_and_build_rss(self, config: RSSBuilderConfig) -> str:
        """抓取列表页并生成 RSS XML."""
        page_url = normalize_url(config.article_list_url or config.site_url)
        if not page_url:
            msg = "Invalid URL"
            raise RSSBuildError(msg)

        html = await self.fetcher.fetch_html(
            page_url, timeout=self.fetcher.config.synthesis_timeout
        )
        return build_rss_from_html(html, config, page_url)

    async def auto_build_rss(self, site_url: str) -> str:
        """先识别结构（必要时先找列表页），再生成 RSS."""
        structure = await detect_article_structure(site_url, self.fetcher)
        if structure is not None:
            config = RSSBuilderConfig(site_url=site_url, **structure.selectors())
            return await self.scrape_and_build_rss(config)

        list_urls = await detect_article_list_urls(site_url, self.fetcher)
        if list_urls:
            structure = await detect_article_structure(list_urls[0], self.fetcher)
            if structure is not None:
                config = RSSBuilderConfig(
                    site_url=site_url,
                    article_list_url=list_urls[0],
                    **structure.selectors(),
                )
                return await self.scrape_and_build_rss(config)

        msg = "Could not detect article structure"
        raise ArticleStructureNotFoundError(msg)

    async def extract_page_metadata(self, url: str) -> PageMetadata:
        """读取页面 <title> 与 meta / og 描述，失败时返回空值."""
        normalized = normalize_url(url)
        if not normalized:
            return PageMetadata()

        try:
            html = await self.fetcher.fetch_html(normalized)
        except FetchError as e:
            logger.info(f"页面元数据抓取失败: {normalized} - {e}")
            return PageMetadata()

        soup = BeautifulSoup(html, "lxml")
        title = None
        if soup.title is not None:
            title = clean_page_title(soup.title.get_text().strip()) or None

        description = _meta_content(soup, name="description") or _meta_content(
            soup, property="og:description"
        )
        return PageMetadata(title=title, description=description)
