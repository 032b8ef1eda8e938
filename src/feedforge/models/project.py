"""Project 项目模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from feedforge.models.base import new_id, utcnow


class Project(SQLModel, table=True):
    """项目：一组订阅源及其条目的归属."""

    __tablename__ = "projects"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str = Field(description="项目名称")
    slug: str = Field(unique=True, index=True, description="URL 标识")
    description: str | None = Field(default=None, description="描述")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
