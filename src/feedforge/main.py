"""FeedForge 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedforge.api import cron, items, projects, sources
from feedforge.config import get_settings
from feedforge.models.database import close_db, init_db
from feedforge.scheduler import create_scheduler, shutdown_scheduler
from feedforge.services import get_services, init_services

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    # 启动时初始化
    logger.info("正在初始化数据库...")
    session_factory = await init_db(app_settings.database_url)

    init_services(session_factory, app_settings)

    logger.info("正在启动定时任务...")
    create_scheduler(app_settings)

    logger.info("FeedForge 启动完成！")
    yield

    # 关闭时清理
    logger.info("正在关闭...")
    await shutdown_scheduler()
    await get_services().dispatcher.wait_idle()
    await close_db()
    logger.info("FeedForge 已关闭")


app = FastAPI(
    title="FeedForge",
    description="订阅聚合服务 - 订阅发现、自建 RSS、定时刷新与 Webhook 通知",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(sources.router)
app.include_router(projects.router)
app.include_router(items.router)
app.include_router(cron.router)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "FeedForge",
        "version": "0.1.0",
        "description": "订阅聚合服务",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "feedforge.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
