"""项目条目读取 API."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query

from feedforge.core.webhooks import (
    format_optional_timestamp,
    format_timestamp,
    source_summary,
)
from feedforge.models.item import Item
from feedforge.models.source import Source
from feedforge.services import Services, get_services
from feedforge.utils.dates import parse_date

router = APIRouter(prefix="/api/p", tags=["items"])

# 单次最多返回的条目数
MAX_ITEMS_LIMIT = 100


def item_to_dict(item: Item, source: Source | None) -> dict:
    """条目响应格式."""
    return {
        "id": item.id,
        "guid": item.guid,
        "url": item.url,
        "title": item.title,
        "author": item.author,
        "publishedAt": format_optional_timestamp(item.published_at),
        "contentSnippet": item.content_snippet,
        "contentHtml": item.content_html,
        "source": source_summary(source) if source else None,
    }


@router.get("/{slug}/items")
async def list_items(
    slug: str,
    limit: int = Query(default=50, ge=1),
    since: str | None = None,
    services: Services = Depends(get_services),
) -> dict:
    """
    按发布时间倒序返回项目条目.

    - limit 超过 100 时按 100 处理
    - since 无法解析时忽略
    """
    project = await services.repository.get_project_by_slug(slug)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    since_at = parse_date(since) if since else None
    items = await services.repository.list_project_items(
        project.id, since=since_at, limit=min(limit, MAX_ITEMS_LIMIT)
    )
    sources = {
        source.id: source
        for source in await services.repository.list_project_sources(project.id)
    }

    return {
        "project": {"id": project.id, "name": project.name, "slug": project.slug},
        "generatedAt": format_timestamp(datetime.now(UTC)),
        "items": [item_to_dict(item, sources.get(item.source_id)) for item in items],
    }
