"""文章列表结构识别（自建 RSS 使用）."""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from feedforge.fetcher.client import FetchError, HttpFetcher
from feedforge.fetcher.protection import Confidence
from feedforge.utils.dates import extract_date_from_element
from feedforge.utils.url import normalize_url

logger = logging.getLogger(__name__)

# 文章容器选择器（按优先级）
ARTICLE_SELECTORS: tuple[str, ...] = (
    "article",
    "[role='article']",
    ".post",
    ".entry",
    ".article",
    ".blog-post",
    ".news-item",
    ".content-item",
    ".item",
    "li",
    ".card",
)

DATE_SELECTORS: tuple[str, ...] = (
    "time",
    "[datetime]",
    ".date",
    ".published",
    ".post-date",
    ".entry-date",
    ".article-date",
    ".timestamp",
)

CONTENT_SELECTORS: tuple[str, ...] = (".content", ".excerpt", ".summary", "p")

# 列表页常见路径
ARTICLE_LIST_PATHS: tuple[str, ...] = (
    "/blog",
    "/posts",
    "/news",
    "/articles",
    "/updates",
    "/feed",
    "/archive",
    "/",
)

MIN_ARTICLE_MATCHES = 3
HIGH_CONFIDENCE_MATCHES = 5
MIN_TITLE_LINK_LENGTH = 10

DEFAULT_TITLE_SELECTOR = "h1, h2, h3"
DEFAULT_LINK_SELECTOR = "a"

_DATE_CLASS_KEYWORDS = ("date", "published", "time")
_DATE_CLASS_CANDIDATES = ", ".join(
    f'[class*="{keyword}" i]' for keyword in _DATE_CLASS_KEYWORDS
)


@dataclass(frozen=True)
class ArticleStructure:
    """识别出的文章结构."""

    article_selector: str
    title_selector: str
    link_selector: str
    confidence: Confidence
    date_selector: str | None = None
    content_selector: str | None = None
    author_selector: str | None = None

    def selectors(self) -> dict[str, str | None]:
        """选择器部分，可直接用于 RSSBuilderConfig."""
        data = asdict(self)
        data.pop("confidence")
        return data


def _links_in(elements: list[Tag]) -> list[Tag]:
    return [el for el in elements if el.find("a") is not None]


def _find_article_container(soup: BeautifulSoup) -> tuple[str, Confidence] | None:
    for selector in ARTICLE_SELECTORS:
        count = len(soup.select(selector))
        if count >= MIN_ARTICLE_MATCHES:
            confidence: Confidence = (
                "high" if count >= HIGH_CONFIDENCE_MATCHES else "medium"
            )
            return selector, confidence

    # 兜底：带链接的列表项
    list_items = _links_in(soup.find_all("li"))
    if len(list_items) >= MIN_ARTICLE_MATCHES:
        return "li", "medium" if len(list_items) >= HIGH_CONFIDENCE_MATCHES else "low"

    return None


def _detect_date_selector(sample: Tag, now: datetime | None) -> str | None:
    for selector in DATE_SELECTORS:
        if sample.select_one(selector) is not None:
            return selector

    # class 名包含 date / published / time
    element = sample.select_one(_DATE_CLASS_CANDIDATES)
    if element is not None:
        for cls in element.get("class") or []:
            if any(keyword in cls.lower() for keyword in _DATE_CLASS_KEYWORDS):
                return f".{cls}"

    # 尝试直接解析，再按标签名反推
    if extract_date_from_element(sample, now=now) is None:
        return None
    for element in sample.find_all(True):
        if extract_date_from_element(element, now=now) is not None:
            return element.name

    return None


def detect_structure_from_html(
    html: str, now: datetime | None = None
) -> ArticleStructure | None:
    """从 HTML 推断文章结构，没有合格容器时返回 None."""
    soup = BeautifulSoup(html, "lxml")

    found = _find_article_container(soup)
    if found is None:
        return None
    article_selector, confidence = found

    sample = soup.select_one(article_selector)
    if sample is None:
        return None

    title_selector = DEFAULT_TITLE_SELECTOR
    link_selector = DEFAULT_LINK_SELECTOR
    title_link = sample.find("a")
    if title_link is not None:
        if len(title_link.get_text().strip()) > MIN_TITLE_LINK_LENGTH:
            title_selector = "a"

    content_selector = next(
        (s for s in CONTENT_SELECTORS if sample.select_one(s) is not None), None
    )

    return ArticleStructure(
        article_selector=article_selector,
        title_selector=title_selector,
        link_selector=link_selector,
        confidence=confidence,
        date_selector=_detect_date_selector(sample, now),
        content_selector=content_selector,
    )


async def detect_article_structure(
    url: str, fetcher: HttpFetcher
) -> ArticleStructure | None:
    """抓取页面并推断文章结构，失败时返回 None."""
    normalized = normalize_url(url)
    if not normalized:
        return None

    try:
        html = await fetcher.fetch_html(normalized)
    except FetchError as e:
        logger.info(f"结构识别抓取失败: {normalized} - {e}")
        return None

    return detect_structure_from_html(html)


def count_article_like_elements(html: str) -> int:
    """统计页面中类似文章的元素数量."""
    soup = BeautifulSoup(html, "lxml")
    return (
        len(soup.find_all("article"))
        + len(soup.select(".post"))
        + len(soup.select(".entry"))
        + len(_links_in(soup.find_all("li")))
    )


async def detect_article_list_urls(base_url: str, fetcher: HttpFetcher) -> list[str]:
    """依次探测常见列表页路径，返回看起来像文章列表的页面."""
    detected: list[str] = []

    for path in ARTICLE_LIST_PATHS:
        candidate = normalize_url(urljoin(base_url, path))
        if not candidate:
            continue

        try:
            html = await fetcher.fetch_html(
                candidate, timeout=fetcher.config.probe_timeout
            )
        except FetchError:
            continue

        if count_article_like_elements(html) >= MIN_ARTICLE_MATCHES:
            detected.append(candidate)

    return detected
