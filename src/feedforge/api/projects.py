"""项目 API."""

import re
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field

from feedforge.api.sources import CamelModel
from feedforge.models.project import Project
from feedforge.models.webhook import Webhook, WebhookEvent
from feedforge.services import Services, get_services
from feedforge.utils.url import normalize_url

router = APIRouter(prefix="/api/projects", tags=["projects"])

_SLUG_RE = re.compile(r"[^a-z0-9]+")


class CreateProjectRequest(CamelModel):
    """创建项目请求."""

    name: str = Field(min_length=1)
    slug: str | None = None
    description: str | None = None


class CreateWebhookRequest(CamelModel):
    """创建 Webhook 请求."""

    url: str
    events: list[WebhookEvent] = Field(min_length=1)
    secret: str | None = None
    description: str | None = None


def slugify(name: str) -> str:
    """由名称生成 slug."""
    return _SLUG_RE.sub("-", name.lower()).strip("-") or "project"


def project_to_dict(project: Project) -> dict[str, Any]:
    """项目响应格式."""
    return {
        "id": project.id,
        "name": project.name,
        "slug": project.slug,
        "description": project.description,
        "created_at": project.created_at.isoformat(),
    }


def webhook_to_dict(webhook: Webhook) -> dict[str, Any]:
    """Webhook 响应格式（不返回密钥）."""
    return {
        "id": webhook.id,
        "project_id": webhook.project_id,
        "url": webhook.url,
        "events": webhook.events,
        "active": webhook.active,
        "has_secret": bool(webhook.secret),
        "description": webhook.description,
        "created_at": webhook.created_at.isoformat(),
    }


@router.post("", status_code=201)
async def create_project(
    request: CreateProjectRequest,
    services: Services = Depends(get_services),
) -> dict:
    """创建项目."""
    slug = slugify(request.slug or request.name)
    if await services.repository.get_project_by_slug(slug):
        raise HTTPException(status_code=400, detail="Project slug already exists")

    project = await services.repository.create_project(
        name=request.name, slug=slug, description=request.description
    )
    return project_to_dict(project)


@router.post("/{project_id}/refresh")
async def refresh_project(
    project_id: str,
    services: Services = Depends(get_services),
) -> dict:
    """刷新项目下全部订阅源."""
    if await services.repository.get_project(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")

    result = await services.refresher.refresh_project(project_id)
    return {
        "success": result.success,
        "sourcesProcessed": result.sources_processed,
        "sourcesSucceeded": result.sources_succeeded,
        "sourcesFailed": result.sources_failed,
        "totalItemsAdded": result.total_items_added,
    }


@router.post("/{project_id}/webhooks", status_code=201)
async def create_webhook(
    project_id: str,
    request: CreateWebhookRequest,
    services: Services = Depends(get_services),
) -> dict:
    """订阅 Webhook."""
    if await services.repository.get_project(project_id) is None:
        raise HTTPException(status_code=404, detail="Project not found")

    url = normalize_url(request.url)
    if not url:
        raise HTTPException(status_code=400, detail="Invalid webhook URL")

    webhook = await services.repository.create_webhook(
        project_id=project_id,
        url=url,
        events=[str(event) for event in request.events],
        secret=request.secret,
        description=request.description,
    )
    return webhook_to_dict(webhook)
