"""Item 条目模型."""

from datetime import datetime

from sqlalchemy import Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from feedforge.models.base import new_id, utcnow


class Item(SQLModel, table=True):
    """订阅条目，同一项目内按 URL 去重."""

    __tablename__ = "items"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("project_id", "url", name="uq_items_project_url"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    project_id: str = Field(index=True, description="所属项目")
    source_id: str = Field(index=True, description="来源订阅源")
    url: str = Field(description="规范化后的链接")
    guid: str | None = Field(default=None)
    title: str = Field(description="标题")
    author: str | None = Field(default=None, description="作者")
    published_at: datetime | None = Field(default=None, description="发布时间")
    content_snippet: str | None = Field(default=None, description="摘要（最多 500 字符）")
    content_html: str | None = Field(default=None, sa_type=Text, description="HTML 内容")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
