"""定时刷新与维护 API（需要共享密钥）."""

import hmac
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException

from feedforge.services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["cron"])


def verify_cron_secret(
    x_cron_secret: str | None = Header(default=None),
    services: Services = Depends(get_services),
) -> None:
    """校验 x-cron-secret，未配置密钥时一律拒绝."""
    expected = services.settings.cron_secret
    if not expected or not x_cron_secret:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not hmac.compare_digest(x_cron_secret.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/cron/refresh", dependencies=[Depends(verify_cron_secret)])
async def cron_refresh(services: Services = Depends(get_services)) -> dict:
    """刷新全部项目."""
    summary = await services.refresher.refresh_all_projects()
    return {
        "success": True,
        "timestamp": datetime.now(UTC).isoformat(),
        "summary": summary.to_dict(),
    }


@router.post(
    "/admin/cleanup-orphaned-items", dependencies=[Depends(verify_cron_secret)]
)
async def cleanup_orphaned_items(services: Services = Depends(get_services)) -> dict:
    """删除订阅源已不存在的条目."""
    deleted = await services.repository.cleanup_orphaned_items()
    return {"success": True, "deletedCount": deleted}
