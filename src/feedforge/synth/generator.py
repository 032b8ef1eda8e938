"""RSS 2.0 文档生成."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

CONTENT_NAMESPACE = "http://purl.org/rss/1.0/modules/content/"
GENERATOR_NAME = "Custom RSS Builder"

_DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTH_NAMES = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


@dataclass(frozen=True)
class RSSItem:
    """RSS 条目."""

    title: str
    link: str
    description: str | None = None
    pub_date: datetime | None = None
    guid: str | None = None
    author: str | None = None
    content: str | None = None


@dataclass(frozen=True)
class RSSFeed:
    """RSS 频道."""

    title: str
    link: str
    description: str | None = None
    language: str | None = None
    last_build_date: datetime | None = None
    items: tuple[RSSItem, ...] = field(default_factory=tuple)


def format_rss_date(value: datetime) -> str:
    """RFC 822 日期，统一转换为 UTC（+0000）."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return (
        f"{_DAY_NAMES[value.weekday()]}, {value.day} "
        f"{_MONTH_NAMES[value.month - 1]} {value.year} "
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d} +0000"
    )


def escape_xml(text: str) -> str:
    """转义五个 XML 预定义实体."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def wrap_cdata(text: str) -> str:
    """用 CDATA 包裹内容，拆开正文中的 ']]>'."""
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def generate_rss(feed: RSSFeed) -> str:
    """
    生成 RSS 2.0 XML.

    输出只由输入决定，相同输入得到相同字节。
    """
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<rss version="2.0" xmlns:content="{CONTENT_NAMESPACE}">',
        "  <channel>",
        f"    <title>{escape_xml(feed.title)}</title>",
        f"    <link>{escape_xml(feed.link)}</link>",
    ]

    if feed.description:
        lines.append(f"    <description>{escape_xml(feed.description)}</description>")
    if feed.language:
        lines.append(f"    <language>{escape_xml(feed.language)}</language>")
    if feed.last_build_date:
        lines.append(
            f"    <lastBuildDate>{format_rss_date(feed.last_build_date)}</lastBuildDate>"
        )
    lines.append(f"    <generator>{GENERATOR_NAME}</generator>")

    for item in feed.items:
        lines.append("    <item>")
        lines.append(f"      <title>{escape_xml(item.title)}</title>")
        lines.append(f"      <link>{escape_xml(item.link)}</link>")

        if item.guid and item.guid != item.link:
            lines.append(f'      <guid isPermaLink="false">{escape_xml(item.guid)}</guid>')
        else:
            lines.append(f'      <guid isPermaLink="true">{escape_xml(item.link)}</guid>')

        if item.pub_date:
            lines.append(f"      <pubDate>{format_rss_date(item.pub_date)}</pubDate>")
        if item.author:
            lines.append(f"      <author>{escape_xml(item.author)}</author>")
        if item.description:
            lines.append(f"      <description>{escape_xml(item.description)}</description>")
        if item.content:
            lines.append(f"      <content:encoded>{wrap_cdata(item.content)}</content:encoded>")

        lines.append("    </item>")

    lines.append("  </channel>")
    lines.append("</rss>")

    return "\n".join(lines)
