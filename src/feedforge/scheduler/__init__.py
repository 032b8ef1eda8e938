"""定时任务."""

from feedforge.scheduler.tasks import (
    create_scheduler,
    refresh_all_task,
    shutdown_scheduler,
)

__all__ = ["create_scheduler", "refresh_all_task", "shutdown_scheduler"]
