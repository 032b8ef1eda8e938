"""测试定时任务与配置."""

import pytest

from feedforge.config import Settings
from feedforge.scheduler import create_scheduler, refresh_all_task, shutdown_scheduler, tasks
from feedforge.services import Services


class TestSettings:
    """测试配置加载."""

    def test_defaults(self) -> None:
        """默认每天刷新一次."""
        settings = Settings(_env_file=None)
        assert settings.refresh_interval_minutes == 1440
        assert settings.refresh_on_startup is False
        assert settings.cron_secret == ""
        assert settings.discovery_concurrency == 4

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """环境变量覆盖默认值."""
        monkeypatch.setenv("REFRESH_INTERVAL_MINUTES", "30")
        monkeypatch.setenv("CRON_SECRET", "abc")
        settings = Settings(_env_file=None)
        assert settings.refresh_interval_minutes == 30
        assert settings.cron_secret == "abc"


class TestScheduler:
    """测试调度器."""

    async def test_disabled(self) -> None:
        """禁用时不创建调度器."""
        assert create_scheduler(Settings(_env_file=None, refresh_enabled=False)) is None

    async def test_jobs(self) -> None:
        """按间隔注册刷新任务，可选启动时立即执行."""
        settings = Settings(
            _env_file=None,
            refresh_enabled=True,
            refresh_interval_minutes=15,
            refresh_on_startup=True,
        )
        scheduler = create_scheduler(settings)
        try:
            assert scheduler is not None
            job_ids = {job.id for job in scheduler.get_jobs()}
            assert job_ids == {"refresh_all_task", "refresh_all_task_initial"}
            interval_job = scheduler.get_job("refresh_all_task")
            assert interval_job.trigger.interval.total_seconds() == 15 * 60
            assert interval_job.max_instances == 1
        finally:
            await shutdown_scheduler()


class TestRefreshAllTask:
    """测试刷新任务."""

    async def test_runs_refresh(
        self, services: Services, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """调用全量刷新."""
        calls: list[str] = []
        original = services.refresher.refresh_all_projects

        async def tracked():
            calls.append("refresh")
            return await original()

        monkeypatch.setattr(services.refresher, "refresh_all_projects", tracked)
        monkeypatch.setattr("feedforge.services._services", services)

        await refresh_all_task()

        assert calls == ["refresh"]
        assert tasks._refresh_running is False

    async def test_skips_when_running(
        self, services: Services, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """上一次任务未结束时跳过."""
        calls: list[str] = []

        async def tracked():
            calls.append("refresh")

        monkeypatch.setattr(services.refresher, "refresh_all_projects", tracked)
        monkeypatch.setattr("feedforge.services._services", services)
        monkeypatch.setattr(tasks, "_refresh_running", True)

        await refresh_all_task()

        assert calls == []

    async def test_failure_is_logged(
        self, services: Services, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """刷新异常不向调度器抛出."""

        async def broken():
            raise RuntimeError("database gone")

        monkeypatch.setattr(services.refresher, "refresh_all_projects", broken)
        monkeypatch.setattr("feedforge.services._services", services)

        await refresh_all_task()

        assert tasks._refresh_running is False
