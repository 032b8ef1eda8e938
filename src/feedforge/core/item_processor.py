"""订阅条目入库."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC

from feedforge.core.feed_parser import FeedEntry
from feedforge.core.repository import Repository
from feedforge.models.item import Item
from feedforge.utils.dates import parse_date
from feedforge.utils.url import normalize_url

logger = logging.getLogger(__name__)

SNIPPET_MAX_LENGTH = 500


@dataclass
class ProcessResult:
    """一批条目的处理结果."""

    items_added: int = 0
    new_items: list[Item] = field(default_factory=list)


class ItemProcessor:
    """把解析后的订阅条目写入 Item 表（按项目 + URL 去重）."""

    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    async def process_feed_item(
        self, entry: FeedEntry, project_id: str, source_id: str
    ) -> tuple[Item | None, bool]:
        """
        处理单个条目.

        Returns:
            (条目, 是否新建)；缺少链接/标题或链接被拒绝时返回 (None, False)
        """
        if not entry.link or not entry.title:
            return None, False

        url = normalize_url(entry.link)
        if not url:
            return None, False

        published_at = parse_date(entry.pub_date) or parse_date(entry.iso_date)
        if published_at is not None:
            # 统一存 UTC，按时间筛选时才可比较
            published_at = published_at.astimezone(UTC)

        encoded = entry.content_encoded
        snippet = (
            entry.content_snippet
            or (encoded[:SNIPPET_MAX_LENGTH] if encoded else None)
            or (entry.content[:SNIPPET_MAX_LENGTH] if entry.content else None)
        )
        content_html = encoded or entry.content or snippet
        author = entry.creator or entry.author

        try:
            return await self.repository.upsert_item(
                project_id,
                source_id,
                url,
                title=entry.title,
                guid=entry.guid,
                author=author,
                published_at=published_at,
                content_snippet=snippet[:SNIPPET_MAX_LENGTH] if snippet else None,
                content_html=content_html,
            )
        except Exception as e:
            logger.warning(f"条目入库失败: {url} - {e}")
            return None, False

    async def process_feed_items(
        self, entries: Iterable[FeedEntry], project_id: str, source_id: str
    ) -> ProcessResult:
        """依次处理条目，统计新建数量."""
        result = ProcessResult()

        for entry in entries:
            item, created = await self.process_feed_item(entry, project_id, source_id)
            if created and item is not None:
                result.items_added += 1
                result.new_items.append(item)

        return result
