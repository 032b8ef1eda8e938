"""测试 Webhook 投递."""

import hashlib
import hmac
import json
from datetime import UTC, datetime

import httpx
import pytest
from conftest import FakeWeb
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedforge.core.repository import Repository
from feedforge.core.webhooks import (
    WebhookDispatcher,
    build_payload,
    format_timestamp,
    serialize_payload,
    sign_payload,
)
from feedforge.fetcher.client import HttpFetcher
from feedforge.models.item import Item
from feedforge.models.project import Project
from feedforge.models.source import Source
from feedforge.models.webhook import DeliveryStatus, Webhook, WebhookEvent

HOOK_URL = "https://hooks.example.com/in"


@pytest.fixture
def dispatcher(repository: Repository, fetcher: HttpFetcher) -> WebhookDispatcher:
    """Webhook 分发器."""
    return WebhookDispatcher(repository, fetcher)


class TestPayload:
    """测试请求体与签名."""

    def test_sign_payload(self) -> None:
        """HMAC-SHA256 十六进制."""
        expected = hmac.new(b"s3cret", b'{"a":1}', hashlib.sha256).hexdigest()
        assert sign_payload(b'{"a":1}', "s3cret") == expected

    def test_format_timestamp(self) -> None:
        """毫秒精度，Z 结尾."""
        value = datetime(2025, 11, 24, 10, 0, 0, 123456, tzinfo=UTC)
        assert format_timestamp(value) == "2025-11-24T10:00:00.123Z"

    def test_serialize_payload_is_compact(self) -> None:
        """紧凑 JSON."""
        assert serialize_payload({"a": 1, "b": [1, 2]}) == b'{"a":1,"b":[1,2]}'

    def test_build_payload(self) -> None:
        """请求体结构."""
        project = Project(id="p1", name="Tech", slug="tech")
        payload = build_payload(
            WebhookEvent.NEW_ITEMS,
            project,
            {"count": 0},
            now=datetime(2025, 11, 24, tzinfo=UTC),
        )
        assert payload == {
            "event": "new_items",
            "project": {"id": "p1", "name": "Tech", "slug": "tech"},
            "timestamp": "2025-11-24T00:00:00.000Z",
            "data": {"count": 0},
        }


class TestWebhookDispatcher:
    """测试投递与记录."""

    async def test_signed_delivery(
        self,
        web: FakeWeb,
        repository: Repository,
        project: Project,
        dispatcher: WebhookDispatcher,
    ) -> None:
        """有密钥时签名覆盖完整请求体，投递记录为 SUCCESS."""
        web.add(HOOK_URL, "ok", content_type="text/plain")
        webhook = await repository.create_webhook(
            project.id, HOOK_URL, ["new_items"], secret="s3cret"
        )

        delivered = await dispatcher.fire("new_items", project, {"count": 0})

        assert delivered == 1
        request = web.requests_to(HOOK_URL, "POST")[0]
        expected = hmac.new(b"s3cret", request.content, hashlib.sha256).hexdigest()
        assert request.headers["x-webhook-signature"] == f"sha256={expected}"
        assert request.headers["content-type"] == "application/json"
        assert request.headers["user-agent"] == "News-Aggregator-Webhook/1.0"

        body = json.loads(request.content)
        assert body["event"] == "new_items"
        assert body["project"] == {"id": project.id, "name": "Tech News", "slug": "tech-news"}
        assert body["timestamp"].endswith("Z")

        deliveries = await repository.list_deliveries(webhook.id)
        assert len(deliveries) == 1
        assert deliveries[0].status == DeliveryStatus.SUCCESS
        assert deliveries[0].status_code == 200
        assert deliveries[0].response == "ok"
        assert deliveries[0].delivered_at is not None
        assert deliveries[0].payload["data"] == {"count": 0}

    async def test_unsigned_delivery(
        self,
        web: FakeWeb,
        repository: Repository,
        project: Project,
        dispatcher: WebhookDispatcher,
    ) -> None:
        """没有密钥时不带签名头."""
        web.add(HOOK_URL, "ok")
        await repository.create_webhook(project.id, HOOK_URL, ["new_items"])

        await dispatcher.fire("new_items", project, {})

        request = web.requests_to(HOOK_URL, "POST")[0]
        assert "x-webhook-signature" not in request.headers

    async def test_http_error_is_recorded(
        self,
        web: FakeWeb,
        repository: Repository,
        project: Project,
        dispatcher: WebhookDispatcher,
    ) -> None:
        """非 2xx 记录为 FAILED."""
        web.add(HOOK_URL, "boom", status=500)
        webhook = await repository.create_webhook(project.id, HOOK_URL, ["new_items"])

        assert await dispatcher.fire("new_items", project, {}) == 0

        delivery = (await repository.list_deliveries(webhook.id))[0]
        assert delivery.status == DeliveryStatus.FAILED
        assert delivery.status_code == 500
        assert delivery.error == "HTTP 500: Internal Server Error"
        assert delivery.delivered_at is None

    async def test_network_error_is_recorded(
        self,
        web: FakeWeb,
        repository: Repository,
        project: Project,
        dispatcher: WebhookDispatcher,
    ) -> None:
        """连接失败记录为 FAILED，不抛出."""

        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        web.add_handler(HOOK_URL, refuse)
        webhook = await repository.create_webhook(project.id, HOOK_URL, ["new_items"])

        assert await dispatcher.fire("new_items", project, {}) == 0

        delivery = (await repository.list_deliveries(webhook.id))[0]
        assert delivery.status == DeliveryStatus.FAILED
        assert delivery.status_code is None
        assert "connection refused" in (delivery.error or "")

    async def test_response_is_truncated(
        self,
        web: FakeWeb,
        repository: Repository,
        project: Project,
        dispatcher: WebhookDispatcher,
    ) -> None:
        """响应内容最多保留 1000 字符."""
        web.add(HOOK_URL, "x" * 1500)
        webhook = await repository.create_webhook(project.id, HOOK_URL, ["new_items"])

        await dispatcher.fire("new_items", project, {})

        delivery = (await repository.list_deliveries(webhook.id))[0]
        assert delivery.response == "x" * 1000

    async def test_only_active_subscribers(
        self,
        web: FakeWeb,
        repository: Repository,
        session_factory: async_sessionmaker[AsyncSession],
        project: Project,
        dispatcher: WebhookDispatcher,
    ) -> None:
        """未订阅该事件或已停用的 Webhook 不会收到请求."""
        web.add(HOOK_URL, "ok")
        await repository.create_webhook(project.id, HOOK_URL, ["source_refresh"])
        async with session_factory() as session:
            session.add(
                Webhook(project_id=project.id, url=HOOK_URL, events=["new_items"], active=False)
            )
            await session.commit()

        assert await dispatcher.fire("new_items", project, {}) == 0
        assert web.requests_to(HOOK_URL) == []

    async def test_notify_new_items(
        self,
        web: FakeWeb,
        repository: Repository,
        project: Project,
        dispatcher: WebhookDispatcher,
    ) -> None:
        """后台投递 new_items，wait_idle 后可见."""
        web.add(HOOK_URL, "ok")
        await repository.create_webhook(project.id, HOOK_URL, ["new_items"])
        source = Source(
            id="s1", project_id=project.id, title="Blog", site_url="https://example.com"
        )
        item = Item(
            project_id=project.id,
            source_id="s1",
            url="https://example.com/1",
            title="One",
            published_at=datetime(2025, 11, 24, 10, 0, tzinfo=UTC),
        )

        dispatcher.notify_new_items(project.id, source, [item])
        dispatcher.notify_new_items(project.id, source, [])
        await dispatcher.wait_idle()

        requests = web.requests_to(HOOK_URL, "POST")
        assert len(requests) == 1
        data = json.loads(requests[0].content)["data"]
        assert data["count"] == 1
        assert data["items"][0]["title"] == "One"
        assert data["items"][0]["publishedAt"] == "2025-11-24T10:00:00.000Z"
        assert data["items"][0]["source"] == {
            "id": "s1",
            "title": "Blog",
            "siteUrl": "https://example.com",
        }

    async def test_notify_for_missing_project(
        self, web: FakeWeb, dispatcher: WebhookDispatcher
    ) -> None:
        """项目不存在时静默结束."""
        source = Source(id="s1", project_id="missing", site_url="https://example.com")
        dispatcher.notify_source_refresh("missing", source, False, 0, "boom")
        await dispatcher.wait_idle()
        assert web.requests == []
