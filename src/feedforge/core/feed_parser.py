"""RSS/Atom 文档解析（feedparser 适配）."""

import logging
import time
from datetime import UTC, datetime
from typing import Any

import feedparser
from pydantic import BaseModel

from feedforge.utils.html_parser import html_to_text

logger = logging.getLogger(__name__)


class FeedParseError(Exception):
    """订阅内容无法解析."""


class FeedEntry(BaseModel):
    """订阅中的一条条目."""

    guid: str | None = None
    link: str | None = None
    title: str | None = None
    creator: str | None = None
    author: str | None = None
    pub_date: str | None = None
    iso_date: str | None = None
    content_snippet: str | None = None
    content: str | None = None
    content_encoded: str | None = None


class ParsedFeed(BaseModel):
    """解析后的订阅."""

    title: str | None = None
    description: str | None = None
    link: str | None = None
    entries: list[FeedEntry] = []


def _struct_to_iso(value: time.struct_time | None) -> str | None:
    if not value:
        return None
    return datetime(*value[:6], tzinfo=UTC).isoformat()


def _creator(entry: Any) -> str | None:
    detail = entry.get("author_detail") or {}
    return detail.get("name") or None


def _entry_from_feedparser(entry: Any) -> FeedEntry:
    content_encoded = None
    contents = entry.get("content") or []
    if contents:
        content_encoded = contents[0].get("value") or None

    summary = entry.get("summary") or None

    return FeedEntry(
        guid=entry.get("id") or None,
        link=entry.get("link") or None,
        title=(entry.get("title") or "").strip() or None,
        creator=_creator(entry),
        author=entry.get("author") or None,
        pub_date=entry.get("published") or entry.get("updated") or None,
        iso_date=_struct_to_iso(
            entry.get("published_parsed") or entry.get("updated_parsed")
        ),
        content_snippet=html_to_text(summary) or None,
        content=summary,
        content_encoded=content_encoded,
    )


def parse_feed(content: str | bytes) -> ParsedFeed:
    """
    解析 RSS / Atom / RDF 文档.

    Raises:
        FeedParseError: 内容不是可识别的订阅格式
    """
    parsed = feedparser.parse(content)

    if not parsed.get("version") and not parsed.entries:
        reason = parsed.get("bozo_exception") or "unrecognized feed format"
        msg = f"Invalid feed: {reason}"
        raise FeedParseError(msg)

    if parsed.get("bozo"):
        logger.debug(f"订阅格式不规范，已宽松解析: {parsed.get('bozo_exception')}")

    channel = parsed.feed
    return ParsedFeed(
        title=channel.get("title") or None,
        description=channel.get("subtitle") or channel.get("description") or None,
        link=channel.get("link") or None,
        entries=[_entry_from_feedparser(entry) for entry in parsed.entries],
    )
