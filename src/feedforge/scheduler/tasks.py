"""定时任务定义."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from feedforge.config import Settings

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None
_refresh_running = False


async def refresh_all_task() -> None:
    """刷新任务：刷新全部项目的订阅源."""
    from feedforge.services import get_services

    global _refresh_running

    # 检查是否已有任务在运行
    if _refresh_running:
        logger.info("已有刷新任务在运行，跳过本次调度")
        return

    _refresh_running = True
    logger.info("开始定时刷新...")
    try:
        summary = await get_services().refresher.refresh_all_projects()
        logger.info(
            f"定时刷新完成: 项目={summary.projects_processed}, "
            f"新增条目={summary.total_items_added}, 错误={len(summary.errors)}"
        )
    except Exception as e:
        logger.exception(f"定时刷新失败: {e}")
    finally:
        _refresh_running = False


def create_scheduler(settings: Settings) -> AsyncIOScheduler | None:
    """创建并启动定时任务调度器."""
    global _scheduler

    if not settings.refresh_enabled:
        logger.info("定时刷新已禁用")
        return None

    _scheduler = AsyncIOScheduler()

    _scheduler.add_job(
        refresh_all_task,
        "interval",
        minutes=settings.refresh_interval_minutes,
        id="refresh_all_task",
        name="刷新全部订阅源",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if settings.refresh_on_startup:
        # 启动时立即执行一次
        _scheduler.add_job(
            refresh_all_task,
            "date",  # 一次性任务
            id="refresh_all_task_initial",
            name="启动时刷新",
        )

    _scheduler.start()
    logger.info(
        f"定时任务调度器已启动，刷新间隔: {settings.refresh_interval_minutes} 分钟"
    )

    return _scheduler


async def shutdown_scheduler() -> None:
    """关闭定时任务调度器."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
        _scheduler = None
