"""应用服务容器."""

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedforge.config import Settings
from feedforge.core.refresh import RefreshService
from feedforge.core.repository import Repository
from feedforge.core.webhooks import WebhookDispatcher
from feedforge.fetcher.client import FetchConfig, HttpFetcher
from feedforge.fetcher.discovery import FeedDiscoverer
from feedforge.synth.builder import RSSBuilder

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """进程内共享的服务实例."""

    settings: Settings
    repository: Repository
    fetcher: HttpFetcher
    discoverer: FeedDiscoverer
    builder: RSSBuilder
    dispatcher: WebhookDispatcher
    refresher: RefreshService


_services: Services | None = None


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Services:
    """按配置组装服务（transport 用于测试替换网络层）."""
    repository = Repository(session_factory)
    fetcher = HttpFetcher(FetchConfig.from_settings(settings), transport=transport)
    builder = RSSBuilder(fetcher)
    dispatcher = WebhookDispatcher(repository, fetcher)

    return Services(
        settings=settings,
        repository=repository,
        fetcher=fetcher,
        discoverer=FeedDiscoverer(fetcher, concurrency=settings.discovery_concurrency),
        builder=builder,
        dispatcher=dispatcher,
        refresher=RefreshService(repository, fetcher, builder, dispatcher),
    )


def init_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Services:
    """初始化全局服务."""
    global _services
    _services = build_services(session_factory, settings, transport)
    logger.info("服务初始化完成")
    return _services


def get_services() -> Services:
    """获取全局服务（用于依赖注入和后台任务）."""
    if _services is None:
        msg = "服务未初始化，请先调用 init_services()"
        raise RuntimeError(msg)
    return _services


def reset_services() -> None:
    """清除全局服务."""
    global _services
    _services = None
