"""Source 订阅源模型."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from feedforge.models.base import new_id, utcnow


class FeedType(StrEnum):
    """订阅类型."""

    NATIVE = "NATIVE"
    CUSTOM = "CUSTOM"


class SourceStatus(StrEnum):
    """订阅源状态."""

    ACTIVE = "ACTIVE"
    ERROR = "ERROR"
    INACTIVE = "INACTIVE"


class Source(SQLModel, table=True):
    """订阅源：原生 RSS/Atom 或按选择器自建的 RSS."""

    __tablename__ = "sources"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True, description="所属项目")
    title: str | None = Field(default=None, description="标题")
    description: str | None = Field(default=None, description="描述")
    site_url: str = Field(description="网站 URL")
    feed_url: str | None = Field(default=None, description="订阅 URL")
    feed_type: str = Field(default=FeedType.NATIVE, description="订阅类型: NATIVE|CUSTOM")
    status: str = Field(default=SourceStatus.ACTIVE, description="状态: ACTIVE|ERROR|INACTIVE")
    last_fetched_at: datetime | None = Field(default=None, description="最后抓取时间")
    last_error: str | None = Field(default=None, description="最后一次错误")
    custom_rss_config: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON), description="自建 RSS 选择器配置"
    )
    cloudflare_protected: bool = Field(default=False, description="是否检测到反爬保护")
    detection_metadata: dict[str, Any] | None = Field(
        default=None, sa_column=Column(JSON), description="反爬检测详情"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
