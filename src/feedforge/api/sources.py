"""订阅源 API."""

import logging
from typing import Any, Literal

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from feedforge.core.feed_parser import FeedParseError, parse_feed
from feedforge.fetcher.client import FetchError
from feedforge.fetcher.discovery import DiscoveredFeed
from feedforge.fetcher.protection import detect_protection_from_url
from feedforge.models.source import FeedType, Source, SourceStatus
from feedforge.services import Services, get_services
from feedforge.synth.builder import RSSBuildError, RSSBuilderConfig
from feedforge.synth.detection import detect_article_structure
from feedforge.utils.url import normalize_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sources", tags=["sources"])


class CamelModel(BaseModel):
    """请求体同时接受 snake_case 与 camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DiscoverRequest(CamelModel):
    """发现请求."""

    url: str


class CreateSourceRequest(CamelModel):
    """添加订阅源请求."""

    project_id: str
    site_url: str
    feed_url: str | None = None
    feed_type: Literal["NATIVE", "CUSTOM"] = "NATIVE"
    custom_rss_config: dict[str, Any] | None = None


class UpdateSourceRequest(CamelModel):
    """编辑订阅源请求，只修改请求中出现的字段."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)


def _feed_to_dict(feed: DiscoveredFeed) -> dict[str, Any]:
    return {
        "url": feed.url,
        "title": feed.title,
        "type": feed.type,
        "cloudflareProtected": feed.cloudflare_protected,
        "cloudflareConfidence": feed.cloudflare_confidence,
    }


def source_to_dict(source: Source) -> dict[str, Any]:
    """订阅源响应格式."""
    return {
        "id": source.id,
        "project_id": source.project_id,
        "title": source.title,
        "description": source.description,
        "site_url": source.site_url,
        "feed_url": source.feed_url,
        "feed_type": str(source.feed_type),
        "status": str(source.status),
        "last_fetched_at": (
            source.last_fetched_at.isoformat() if source.last_fetched_at else None
        ),
        "last_error": source.last_error,
        "custom_rss_config": source.custom_rss_config,
        "cloudflare_protected": source.cloudflare_protected,
        "detection_metadata": source.detection_metadata,
        "created_at": source.created_at.isoformat(),
    }


@router.post("/discover", response_model=None)
async def discover_feeds(
    request: DiscoverRequest,
    services: Services = Depends(get_services),
) -> dict | JSONResponse:
    """发现站点的订阅地址；没有结果时提示可以自建 RSS."""
    if not normalize_url(request.url):
        raise HTTPException(status_code=400, detail="Invalid URL")

    result = await services.discoverer.discover_all_feeds(request.url)

    if not result.feeds:
        return JSONResponse(
            status_code=404,
            content={
                "error": "Could not discover any RSS/Atom feeds from the provided URL",
                "cloudflareProtected": result.cloudflare_protected,
                "cloudflareConfidence": result.confidence,
                "canBuildCustomRSS": True,
            },
        )

    return {
        "feeds": [_feed_to_dict(feed) for feed in result.feeds],
        "cloudflareProtected": result.cloudflare_protected,
        "cloudflareConfidence": result.confidence,
    }


@router.post("/detect")
async def detect_structure(
    request: DiscoverRequest,
    services: Services = Depends(get_services),
) -> dict:
    """识别文章列表结构，供自建 RSS 使用."""
    structure = await detect_article_structure(request.url, services.fetcher)
    if structure is None:
        raise HTTPException(status_code=404, detail="Could not detect article structure")

    return {
        "articleSelector": structure.article_selector,
        "titleSelector": structure.title_selector,
        "linkSelector": structure.link_selector,
        "dateSelector": structure.date_selector,
        "contentSelector": structure.content_selector,
        "authorSelector": structure.author_selector,
        "confidence": structure.confidence,
    }


@router.post("/preview")
async def preview_custom_rss(
    config: RSSBuilderConfig,
    services: Services = Depends(get_services),
) -> Response:
    """按选择器配置生成 RSS 预览."""
    try:
        xml = await services.builder.scrape_and_build_rss(config)
    except RSSBuildError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except FetchError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    return Response(content=xml, media_type="application/rss+xml; charset=utf-8")


async def _native_metadata(
    services: Services, feed_url: str
) -> tuple[str | None, str | None]:
    """尽量读取订阅标题和描述，失败时留给首次刷新回填."""
    try:
        response = await services.fetcher.get(
            feed_url, timeout=services.fetcher.config.probe_timeout
        )
        if not response.is_success:
            return None, None
        feed = parse_feed(response.content)
    except (FetchError, FeedParseError) as e:
        logger.info(f"订阅元数据读取失败，等待首次刷新回填: {feed_url} - {e}")
        return None, None
    return feed.title, feed.description


async def _refresh_in_background(services: Services, source_id: str) -> None:
    result = await services.refresher.refresh_source(source_id)
    if not result.success:
        logger.warning(f"新订阅源首次刷新失败: {source_id} - {result.error}")


@router.post("", status_code=201)
async def create_source(
    request: CreateSourceRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
) -> dict:
    """添加订阅源，创建后立即在后台刷新一次."""
    project = await services.repository.get_project(request.project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    site_url = normalize_url(request.site_url)
    if not site_url:
        raise HTTPException(status_code=400, detail="Invalid site URL")

    if await services.repository.find_source_by_site(project.id, site_url):
        raise HTTPException(
            status_code=400, detail="Source already exists for this project"
        )

    protection = await detect_protection_from_url(site_url, services.fetcher)

    title: str | None = None
    description: str | None = None

    if request.feed_type == FeedType.CUSTOM:
        feed_url = site_url
        metadata = await services.builder.extract_page_metadata(site_url)
        title, description = metadata.title, metadata.description
    else:
        feed_url = normalize_url(request.feed_url) if request.feed_url else None
        if request.feed_url and not feed_url:
            raise HTTPException(status_code=400, detail="Invalid feed URL")
        if not feed_url:
            feed_url = await services.discoverer.discover_feed_url(site_url)
        if not feed_url:
            raise HTTPException(
                status_code=400,
                detail="Could not discover RSS/Atom feed from the provided URL",
            )
        title, description = await _native_metadata(services, feed_url)

    source = await services.repository.create_source(
        Source(
            project_id=project.id,
            site_url=site_url,
            feed_url=feed_url,
            title=title,
            description=description,
            status=SourceStatus.ACTIVE,
            feed_type=request.feed_type,
            custom_rss_config=request.custom_rss_config,
            cloudflare_protected=protection.is_protected,
            detection_metadata=protection.to_metadata(),
        )
    )
    logger.info(f"已添加订阅源: {source.id} ({site_url})")

    background_tasks.add_task(_refresh_in_background, services, source.id)

    return source_to_dict(source)


@router.post("/{source_id}/refresh")
async def refresh_source(
    source_id: str,
    services: Services = Depends(get_services),
) -> dict:
    """立即刷新单个订阅源."""
    result = await services.refresher.refresh_source(source_id)
    if not result.success and result.error == "Source not found":
        raise HTTPException(status_code=404, detail="Source not found")

    return {
        "success": result.success,
        "itemsAdded": result.items_added,
        "error": result.error,
    }


@router.patch("/{source_id}")
async def update_source(
    source_id: str,
    request: UpdateSourceRequest,
    services: Services = Depends(get_services),
) -> dict:
    """修改订阅源标题和描述."""
    changes = request.model_dump(exclude_unset=True)
    if "title" in changes and changes["title"] is None:
        raise HTTPException(status_code=400, detail="Title cannot be empty")

    source = await services.repository.update_source(source_id, **changes)
    if source is None:
        raise HTTPException(status_code=404, detail="Source not found")

    return source_to_dict(source)


@router.delete("/{source_id}")
async def delete_source(
    source_id: str,
    services: Services = Depends(get_services),
) -> dict:
    """删除订阅源及其全部条目."""
    items_deleted = await services.repository.delete_source(source_id)
    if items_deleted is None:
        raise HTTPException(status_code=404, detail="Source not found")

    return {"success": True, "itemsDeleted": items_deleted}
