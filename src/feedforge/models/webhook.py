"""Webhook 订阅与投递记录模型."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from feedforge.models.base import new_id, utcnow


class WebhookEvent(StrEnum):
    """Webhook 事件."""

    NEW_ITEMS = "new_items"
    SOURCE_REFRESH = "source_refresh"


class DeliveryStatus(StrEnum):
    """投递状态."""

    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Webhook(SQLModel, table=True):
    """项目的 Webhook 订阅."""

    __tablename__ = "webhooks"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    url: str = Field(description="回调地址")
    secret: str | None = Field(default=None, description="HMAC 签名密钥")
    events: list[str] = Field(
        default_factory=list, sa_column=Column(JSON), description="订阅的事件"
    )
    active: bool = Field(default=True)
    description: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)


class WebhookDelivery(SQLModel, table=True):
    """投递日志（只追加，发送前创建、发送后更新）."""

    __tablename__ = "webhook_deliveries"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True)
    webhook_id: str = Field(foreign_key="webhooks.id", index=True)
    event: str = Field(description="事件名")
    status: str = Field(default=DeliveryStatus.PENDING, description="PENDING|SUCCESS|FAILED")
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    status_code: int | None = Field(default=None)
    response: str | None = Field(default=None, description="响应内容（最多 1000 字符）")
    error: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    delivered_at: datetime | None = Field(default=None)
