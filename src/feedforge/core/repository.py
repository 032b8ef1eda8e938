"""数据访问层：每个操作使用独立的短会话."""

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from feedforge.models.base import utcnow
from feedforge.models.item import Item
from feedforge.models.project import Project
from feedforge.models.source import Source
from feedforge.models.webhook import Webhook, WebhookDelivery

logger = logging.getLogger(__name__)


class Repository:
    """
    存储操作.

    并发任务（多个订阅源刷新、多个 Webhook 投递）共用同一个 Repository，
    但每次调用都打开自己的会话，互不共享。
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # ---------- Project ----------

    async def get_project(self, project_id: str) -> Project | None:
        """按 ID 获取项目."""
        async with self.session_factory() as session:
            return await session.get(Project, project_id)

    async def list_projects(self) -> Sequence[Project]:
        """全部项目."""
        async with self.session_factory() as session:
            result = await session.execute(select(Project).order_by(Project.created_at))
            return result.scalars().all()

    async def get_project_by_slug(self, slug: str) -> Project | None:
        """按 slug 获取项目."""
        async with self.session_factory() as session:
            result = await session.execute(select(Project).where(Project.slug == slug))
            return result.scalar_one_or_none()

    async def create_project(
        self, name: str, slug: str, description: str | None = None
    ) -> Project:
        """创建项目."""
        project = Project(name=name, slug=slug, description=description)
        async with self.session_factory() as session:
            session.add(project)
            await session.commit()
        return project

    # ---------- Source ----------

    async def get_source(self, source_id: str) -> Source | None:
        """按 ID 获取订阅源."""
        async with self.session_factory() as session:
            return await session.get(Source, source_id)

    async def list_project_sources(self, project_id: str) -> Sequence[Source]:
        """项目下的全部订阅源."""
        async with self.session_factory() as session:
            stmt = (
                select(Source)
                .where(Source.project_id == project_id)
                .order_by(Source.created_at)
            )
            result = await session.execute(stmt)
            return result.scalars().all()

    async def find_source_by_site(self, project_id: str, site_url: str) -> Source | None:
        """同一项目内按网站地址查重."""
        async with self.session_factory() as session:
            stmt = select(Source).where(
                Source.project_id == project_id, Source.site_url == site_url
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def create_source(self, source: Source) -> Source:
        """保存新订阅源."""
        async with self.session_factory() as session:
            session.add(source)
            await session.commit()
        return source

    async def update_source(self, source_id: str, **fields: Any) -> Source | None:
        """更新订阅源字段，同时刷新 updated_at."""
        async with self.session_factory() as session:
            source = await session.get(Source, source_id)
            if source is None:
                return None

            for key, value in fields.items():
                setattr(source, key, value)
            source.updated_at = utcnow()

            await session.commit()
            return source

    async def delete_source(self, source_id: str) -> int | None:
        """
        删除订阅源及其条目.

        Returns:
            删除的条目数；订阅源不存在时返回 None
        """
        async with self.session_factory() as session:
            source = await session.get(Source, source_id)
            if source is None:
                return None

            result = await session.execute(delete(Item).where(Item.source_id == source_id))
            await session.delete(source)
            await session.commit()

            deleted = result.rowcount or 0
            logger.info(f"已删除订阅源: {source_id}（条目 {deleted} 条）")
            return deleted

    # ---------- Item ----------

    async def upsert_item(
        self,
        project_id: str,
        source_id: str,
        url: str,
        *,
        title: str,
        guid: str | None = None,
        author: str | None = None,
        published_at: datetime | None = None,
        content_snippet: str | None = None,
        content_html: str | None = None,
    ) -> tuple[Item, bool]:
        """
        按 (project_id, url) 插入或更新条目.

        Returns:
            (条目, 是否新建)
        """
        changes = {
            "title": title,
            "author": author,
            "published_at": published_at,
            "content_snippet": content_snippet,
            "content_html": content_html,
        }

        async with self.session_factory() as session:
            existing = await self._find_item(session, project_id, url)
            if existing is not None:
                return await self._update_item(session, existing, changes), False

            item = Item(
                project_id=project_id,
                source_id=source_id,
                url=url,
                guid=guid,
                **changes,
            )
            session.add(item)
            try:
                await session.commit()
            except IntegrityError:
                # 并发刷新先一步插入了同一 URL
                await session.rollback()
                existing = await self._find_item(session, project_id, url)
                if existing is None:
                    raise
                return await self._update_item(session, existing, changes), False

            return item, True

    @staticmethod
    async def _find_item(session: AsyncSession, project_id: str, url: str) -> Item | None:
        stmt = select(Item).where(Item.project_id == project_id, Item.url == url)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _update_item(
        session: AsyncSession, item: Item, changes: dict[str, Any]
    ) -> Item:
        for key, value in changes.items():
            setattr(item, key, value)
        item.updated_at = utcnow()
        await session.commit()
        return item

    async def list_project_items(
        self,
        project_id: str,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[Item]:
        """
        项目下的条目（按发布时间倒序）.

        Args:
            project_id: 项目 ID
            since: 只返回发布时间不早于该时间的条目（没有发布时间的条目被排除）
            limit: 最多返回的条数
        """
        async with self.session_factory() as session:
            stmt = select(Item).where(Item.project_id == project_id)
            if since is not None:
                stmt = stmt.where(Item.published_at >= since.astimezone(UTC))
            stmt = stmt.order_by(
                Item.published_at.desc().nulls_last(), Item.created_at.desc()
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return result.scalars().all()

    async def cleanup_orphaned_items(self) -> int:
        """删除订阅源已不存在的条目，返回删除数量."""
        async with self.session_factory() as session:
            existing_sources = select(Source.id)
            stmt = delete(Item).where(Item.source_id.not_in(existing_sources))
            result = await session.execute(stmt)
            await session.commit()
            deleted = result.rowcount or 0
            logger.info(f"已清理孤立条目: {deleted}")
            return deleted

    # ---------- Webhook ----------

    async def create_webhook(
        self,
        project_id: str,
        url: str,
        events: list[str],
        secret: str | None = None,
        description: str | None = None,
    ) -> Webhook:
        """创建 Webhook 订阅."""
        webhook = Webhook(
            project_id=project_id,
            url=url,
            events=list(events),
            secret=secret,
            description=description,
        )
        async with self.session_factory() as session:
            session.add(webhook)
            await session.commit()
        return webhook

    async def find_active_webhooks(self, project_id: str, event: str) -> list[Webhook]:
        """项目中订阅了该事件的有效 Webhook."""
        async with self.session_factory() as session:
            stmt = select(Webhook).where(
                Webhook.project_id == project_id,
                Webhook.active == True,  # noqa: E712
            )
            result = await session.execute(stmt)
            return [hook for hook in result.scalars().all() if event in (hook.events or [])]

    async def create_delivery(
        self, webhook_id: str, event: str, payload: dict[str, Any]
    ) -> WebhookDelivery:
        """记录一次待投递."""
        delivery = WebhookDelivery(webhook_id=webhook_id, event=event, payload=payload)
        async with self.session_factory() as session:
            session.add(delivery)
            await session.commit()
        return delivery

    async def update_delivery(self, delivery_id: str, **fields: Any) -> WebhookDelivery | None:
        """更新投递结果."""
        async with self.session_factory() as session:
            delivery = await session.get(WebhookDelivery, delivery_id)
            if delivery is None:
                return None
            for key, value in fields.items():
                setattr(delivery, key, value)
            await session.commit()
            return delivery

    async def list_deliveries(self, webhook_id: str) -> Sequence[WebhookDelivery]:
        """Webhook 的投递记录."""
        async with self.session_factory() as session:
            stmt = (
                select(WebhookDelivery)
                .where(WebhookDelivery.webhook_id == webhook_id)
                .order_by(WebhookDelivery.created_at)
            )
            result = await session.execute(stmt)
            return result.scalars().all()
