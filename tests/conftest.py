"""测试配置和 fixtures."""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from feedforge.config import Settings
from feedforge.core.repository import Repository
from feedforge.fetcher.client import FetchConfig, HttpFetcher
from feedforge.main import app
from feedforge.models.database import create_session_factory, create_tables
from feedforge.models.project import Project
from feedforge.services import Services, build_services, get_services

Handler = Callable[[httpx.Request], httpx.Response]

RSS_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>{title}</title>
    <link>https://example.com</link>
    <description>{description}</description>
{items}
  </channel>
</rss>"""

RSS_ITEM_TEMPLATE = """    <item>
      <title>{title}</title>
      <link>{link}</link>
      <pubDate>{pub_date}</pubDate>
      <description>{description}</description>
    </item>"""


def make_rss(
    title: str = "Example Feed",
    items: list[tuple[str, str]] | None = None,
    description: str = "Example description",
) -> str:
    """生成测试用 RSS，items 为 (标题, 链接) 列表."""
    rendered = "\n".join(
        RSS_ITEM_TEMPLATE.format(
            title=item_title,
            link=link,
            pub_date="Mon, 24 Nov 2025 10:00:00 +0000",
            description=f"About {item_title}",
        )
        for item_title, link in items or []
    )
    return RSS_TEMPLATE.format(title=title, description=description, items=rendered)


class FakeWeb:
    """按 URL 返回预设响应的 httpx MockTransport，并记录全部请求."""

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    @staticmethod
    def _key(url: str) -> str:
        return url.rstrip("/")

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(self._key(str(request.url)))
        if handler is None:
            return httpx.Response(404, text="not found")
        return handler(request)

    def add(
        self,
        url: str,
        body: str = "",
        status: int = 200,
        content_type: str = "text/html; charset=utf-8",
        headers: dict[str, str] | None = None,
    ) -> None:
        """注册固定响应."""
        response_headers = {"content-type": content_type, **(headers or {})}

        def handler(_request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, text=body, headers=response_headers)

        self.routes[self._key(url)] = handler

    def add_feed(self, url: str, body: str, content_type: str = "application/rss+xml") -> None:
        """注册订阅响应."""
        self.add(url, body, content_type=content_type)

    def add_handler(self, url: str, handler: Handler) -> None:
        """注册自定义处理函数."""
        self.routes[self._key(url)] = handler

    def requests_to(self, url: str, method: str | None = None) -> list[httpx.Request]:
        """发往指定 URL 的请求."""
        return [
            request
            for request in self.requests
            if self._key(str(request.url)) == self._key(url)
            and (method is None or request.method == method)
        ]


@pytest.fixture
def web() -> FakeWeb:
    """模拟的外部网站."""
    return FakeWeb()


@pytest.fixture
def fetcher(web: FakeWeb) -> HttpFetcher:
    """走模拟网络的抓取器."""
    return HttpFetcher(FetchConfig(), transport=web.transport)


@pytest.fixture
def settings() -> Settings:
    """测试配置（不读取 .env）."""
    return Settings(
        _env_file=None,
        cron_secret="test-secret",
        refresh_enabled=False,
    )


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """每个测试独立的 SQLite 文件数据库."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """会话工厂."""
    return create_session_factory(engine)


@pytest.fixture
def repository(session_factory: async_sessionmaker[AsyncSession]) -> Repository:
    """数据访问层."""
    return Repository(session_factory)


@pytest_asyncio.fixture
async def services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    web: FakeWeb,
) -> AsyncGenerator[Services, None]:
    """完整的服务容器（网络走 FakeWeb），结束前等待后台投递."""
    services = build_services(session_factory, settings, transport=web.transport)
    yield services
    await services.dispatcher.wait_idle()


@pytest_asyncio.fixture
async def project(repository: Repository) -> Project:
    """测试项目."""
    return await repository.create_project(name="Tech News", slug="tech-news")


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """创建测试用的 HTTP 客户端."""
    app.dependency_overrides[get_services] = lambda: services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
