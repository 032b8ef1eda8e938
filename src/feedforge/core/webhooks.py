"""Webhook 投递."""

import asyncio
import hashlib
import hmac
import json
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from feedforge.core.repository import Repository
from feedforge.fetcher.client import HttpFetcher
from feedforge.models.base import utcnow
from feedforge.models.item import Item
from feedforge.models.project import Project
from feedforge.models.source import Source
from feedforge.models.webhook import DeliveryStatus, Webhook, WebhookEvent

logger = logging.getLogger(__name__)

WEBHOOK_USER_AGENT = "News-Aggregator-Webhook/1.0"
SIGNATURE_HEADER = "X-Webhook-Signature"
RESPONSE_MAX_LENGTH = 1000


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA256 十六进制签名."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def format_timestamp(value: datetime) -> str:
    """ISO 8601，毫秒精度，Z 结尾."""
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def format_optional_timestamp(value: datetime | None) -> str | None:
    """同 format_timestamp，数据库读出的无时区时间按 UTC 处理."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return format_timestamp(value)


def source_summary(source: Source) -> dict[str, Any]:
    """Webhook 中的订阅源摘要."""
    return {"id": source.id, "title": source.title, "siteUrl": source.site_url}


def build_payload(
    event: str, project: Project, data: dict[str, Any], now: datetime | None = None
) -> dict[str, Any]:
    """组装 Webhook 请求体."""
    return {
        "event": str(event),
        "project": {"id": project.id, "name": project.name, "slug": project.slug},
        "timestamp": format_timestamp(now or datetime.now(UTC)),
        "data": data,
    }


def serialize_payload(payload: dict[str, Any]) -> bytes:
    """紧凑 JSON，签名基于这份字节."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode()


class WebhookDispatcher:
    """
    Webhook 分发器.

    notify_* 方法只调度后台任务，调用方不等待投递结果；
    投递结果只记录在 WebhookDelivery 中。
    """

    def __init__(self, repository: Repository, fetcher: HttpFetcher) -> None:
        self.repository = repository
        self.fetcher = fetcher
        self._tasks: set[asyncio.Task[None]] = set()

    async def _deliver(self, webhook: Webhook, payload: dict[str, Any]) -> bool:
        """投递到单个 Webhook，返回是否成功."""
        body = serialize_payload(payload)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": WEBHOOK_USER_AGENT,
        }
        if webhook.secret:
            headers[SIGNATURE_HEADER] = f"sha256={sign_payload(body, webhook.secret)}"

        delivery = await self.repository.create_delivery(
            webhook.id, payload["event"], payload
        )

        try:
            response = await self.fetcher.post(
                webhook.url,
                body,
                headers=headers,
                timeout=self.fetcher.config.webhook_timeout,
            )
        except Exception as e:
            logger.warning(f"Webhook 投递失败: {webhook.url} - {e}")
            await self.repository.update_delivery(
                delivery.id, status=DeliveryStatus.FAILED, error=str(e) or type(e).__name__
            )
            return False

        ok = response.is_success
        await self.repository.update_delivery(
            delivery.id,
            status=DeliveryStatus.SUCCESS if ok else DeliveryStatus.FAILED,
            status_code=response.status_code,
            response=response.text[:RESPONSE_MAX_LENGTH],
            delivered_at=utcnow() if ok else None,
            error=None if ok else f"HTTP {response.status_code}: {response.reason_phrase}",
        )
        if ok:
            logger.info(f"Webhook 投递成功: {webhook.url} ({payload['event']})")
        else:
            logger.warning(f"Webhook 返回错误: {webhook.url} - HTTP {response.status_code}")
        return ok

    async def fire(self, event: str, project: Project, data: dict[str, Any]) -> int:
        """
        向项目中订阅了 event 的全部 Webhook 并发投递.

        Returns:
            成功投递的数量
        """
        webhooks = await self.repository.find_active_webhooks(project.id, event)
        if not webhooks:
            return 0

        payload = build_payload(event, project, data)
        results = await asyncio.gather(
            *(self._deliver(webhook, payload) for webhook in webhooks),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                logger.error(f"Webhook 投递异常: {result}")
        return sum(1 for result in results if result is True)

    async def _fire_for_project(
        self, event: str, project_id: str, data: dict[str, Any]
    ) -> None:
        try:
            project = await self.repository.get_project(project_id)
            if project is None:
                return
            await self.fire(event, project, data)
        except Exception:
            logger.exception(f"Webhook 事件处理失败: {event}")

    def _schedule(self, event: str, project_id: str, data: dict[str, Any]) -> None:
        task = asyncio.create_task(self._fire_for_project(event, project_id, data))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def notify_new_items(
        self, project_id: str, source: Source, items: Sequence[Item]
    ) -> None:
        """调度 new_items 事件（没有新条目时不发送）."""
        if not items:
            return

        data = {
            "count": len(items),
            "items": [
                {
                    "id": item.id,
                    "title": item.title,
                    "url": item.url,
                    "author": item.author,
                    "publishedAt": format_optional_timestamp(item.published_at),
                    "contentSnippet": item.content_snippet,
                    "source": source_summary(source),
                }
                for item in items
            ],
        }
        self._schedule(WebhookEvent.NEW_ITEMS, project_id, data)

    def notify_source_refresh(
        self,
        project_id: str,
        source: Source,
        success: bool,
        items_added: int,
        error: str | None = None,
    ) -> None:
        """调度 source_refresh 事件."""
        data = {
            "source": source_summary(source),
            "success": success,
            "itemsAdded": items_added,
            "error": error,
        }
        self._schedule(WebhookEvent.SOURCE_REFRESH, project_id, data)

    async def wait_idle(self) -> None:
        """等待所有已调度的投递完成."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
