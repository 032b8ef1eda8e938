"""订阅源刷新编排."""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from feedforge.core.feed_parser import ParsedFeed, parse_feed
from feedforge.core.item_processor import ItemProcessor
from feedforge.core.repository import Repository
from feedforge.core.webhooks import WebhookDispatcher
from feedforge.fetcher.client import FetchError, HttpFetcher
from feedforge.models.base import utcnow
from feedforge.models.source import FeedType, Source, SourceStatus
from feedforge.synth.builder import RSSBuilder, RSSBuilderConfig
from feedforge.utils.url import normalize_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceRefreshResult:
    """单个订阅源的刷新结果."""

    success: bool
    items_added: int = 0
    error: str | None = None


@dataclass(frozen=True)
class ProjectRefreshResult:
    """项目刷新汇总."""

    success: bool
    sources_processed: int = 0
    sources_succeeded: int = 0
    sources_failed: int = 0
    total_items_added: int = 0


@dataclass
class RefreshSummary:
    """全部项目的刷新汇总（定时任务 / cron 接口）."""

    projects_processed: int = 0
    projects_succeeded: int = 0
    projects_failed: int = 0
    total_sources_processed: int = 0
    total_sources_succeeded: int = 0
    total_sources_failed: int = 0
    total_items_added: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """接口返回格式（camelCase）."""
        data = asdict(self)
        return {
            "projectsProcessed": data["projects_processed"],
            "projectsSucceeded": data["projects_succeeded"],
            "projectsFailed": data["projects_failed"],
            "totalSourcesProcessed": data["total_sources_processed"],
            "totalSourcesSucceeded": data["total_sources_succeeded"],
            "totalSourcesFailed": data["total_sources_failed"],
            "totalItemsAdded": data["total_items_added"],
            "errors": data["errors"],
        }


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


class RefreshService:
    """
    刷新服务.

    refresh_source 从不抛出异常：任何失败都记录到订阅源（status=ERROR,
    last_error）并以失败结果返回，同一项目的其他订阅源不受影响。
    """

    def __init__(
        self,
        repository: Repository,
        fetcher: HttpFetcher,
        builder: RSSBuilder,
        dispatcher: WebhookDispatcher,
    ) -> None:
        self.repository = repository
        self.fetcher = fetcher
        self.builder = builder
        self.dispatcher = dispatcher
        self.processor = ItemProcessor(repository)

    async def _load_native_feed(self, source: Source) -> ParsedFeed:
        feed_url = normalize_url(source.feed_url)
        if not feed_url:
            msg = "Invalid feed URL"
            raise ValueError(msg)

        logger.info(f"抓取订阅: {feed_url}")
        try:
            response = await self.fetcher.get(
                feed_url, timeout=self.fetcher.config.feed_timeout
            )
        except FetchError as e:
            msg = f"Failed to fetch feed: {e}"
            raise FetchError(msg) from e

        if not response.is_success:
            msg = f"HTTP {response.status_code}: {response.reason_phrase}"
            raise FetchError(msg)

        logger.info(
            f"订阅抓取成功，最终地址: {response.url}, 长度: {len(response.content)}"
        )
        return parse_feed(response.content)

    async def _load_custom_feed(self, source: Source) -> ParsedFeed:
        stored = dict(source.custom_rss_config or {})
        config = RSSBuilderConfig.model_validate({"siteUrl": source.site_url, **stored})
        if not config.article_list_url:
            config = config.model_copy(update={"article_list_url": source.site_url})

        xml = await self.builder.scrape_and_build_rss(config)
        logger.info(f"自建 RSS 生成完成: {source.id}, 长度: {len(xml)}")
        return parse_feed(xml)

    def _success_fields(self, source: Source, feed: ParsedFeed) -> dict[str, Any]:
        fields: dict[str, Any] = {"last_fetched_at": utcnow(), "last_error": None}
        if source.status != SourceStatus.INACTIVE:
            fields["status"] = SourceStatus.ACTIVE
        # 只在未设置时回填
        if feed.title and not source.title:
            fields["title"] = feed.title
        if feed.description and not source.description:
            fields["description"] = feed.description
        return fields

    async def _record_failure(self, source: Source, error: str) -> None:
        fields: dict[str, Any] = {"last_fetched_at": utcnow(), "last_error": error}
        if source.status != SourceStatus.INACTIVE:
            fields["status"] = SourceStatus.ERROR

        try:
            await self.repository.update_source(source.id, **fields)
        except Exception:
            logger.exception(f"更新订阅源错误状态失败: {source.id}")

        try:
            self.dispatcher.notify_source_refresh(
                source.project_id, source, False, 0, error
            )
        except Exception:
            logger.exception(f"调度刷新失败通知失败: {source.id}")

    async def refresh_source(self, source_id: str) -> SourceRefreshResult:
        """刷新单个订阅源."""
        source = await self.repository.get_source(source_id)
        if source is None:
            logger.error(f"订阅源不存在: {source_id}")
            return SourceRefreshResult(success=False, error="Source not found")

        logger.info(
            f"开始刷新订阅源: {source.title or 'Untitled'} "
            f"({source.feed_type}, {source.feed_url or source.site_url})"
        )

        try:
            if source.feed_type == FeedType.CUSTOM:
                feed = await self._load_custom_feed(source)
            else:
                feed = await self._load_native_feed(source)

            items_added = 0
            if feed.entries:
                processed = await self.processor.process_feed_items(
                    feed.entries, source.project_id, source.id
                )
                items_added = processed.items_added
                if processed.new_items:
                    self.dispatcher.notify_new_items(
                        source.project_id, source, processed.new_items
                    )

            updated = await self.repository.update_source(
                source.id, **self._success_fields(source, feed)
            )
            self.dispatcher.notify_source_refresh(
                source.project_id, updated or source, True, items_added
            )

            logger.info(f"订阅源刷新成功: {source.id}, 新增 {items_added} 条")
            return SourceRefreshResult(success=True, items_added=items_added)

        except Exception as e:
            error = _error_message(e)
            logger.exception(f"订阅源刷新失败: {source.id} - {error}")
            await self._record_failure(source, error)
            return SourceRefreshResult(success=False, error=error)

    async def refresh_project(self, project_id: str) -> ProjectRefreshResult:
        """并发刷新项目下全部订阅源，单个失败不影响其他."""
        sources = await self.repository.list_project_sources(project_id)

        results = await asyncio.gather(
            *(self.refresh_source(source.id) for source in sources),
            return_exceptions=True,
        )

        succeeded = 0
        failed = 0
        items_added = 0
        for result in results:
            if isinstance(result, SourceRefreshResult) and result.success:
                succeeded += 1
                items_added += result.items_added
            else:
                failed += 1

        return ProjectRefreshResult(
            success=succeeded > 0 or not sources,
            sources_processed=len(sources),
            sources_succeeded=succeeded,
            sources_failed=failed,
            total_items_added=items_added,
        )

    async def refresh_all_projects(self) -> RefreshSummary:
        """刷新全部项目."""
        projects = await self.repository.list_projects()
        results = await asyncio.gather(
            *(self.refresh_project(project.id) for project in projects),
            return_exceptions=True,
        )

        summary = RefreshSummary(projects_processed=len(projects))
        for project, result in zip(projects, results, strict=True):
            if isinstance(result, BaseException):
                summary.projects_failed += 1
                summary.errors.append(f"{project.slug}: {_error_message(result)}")
                continue

            if result.success:
                summary.projects_succeeded += 1
            else:
                summary.projects_failed += 1
            summary.total_sources_processed += result.sources_processed
            summary.total_sources_succeeded += result.sources_succeeded
            summary.total_sources_failed += result.sources_failed
            summary.total_items_added += result.total_items_added

        logger.info(
            f"全部项目刷新完成: 项目={summary.projects_processed}, "
            f"订阅源成功={summary.total_sources_succeeded}, "
            f"失败={summary.total_sources_failed}, 新增={summary.total_items_added}"
        )
        return summary
