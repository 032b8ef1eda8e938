"""应用配置管理."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 数据库配置
    database_url: str = "sqlite+aiosqlite:///./feedforge.db"

    # 网络请求配置
    user_agent: str = "Mozilla/5.0 (compatible; RSS Aggregator/1.0)"
    fetch_timeout_seconds: float = 10.0
    synthesis_timeout_seconds: float = 15.0
    feed_timeout_seconds: float = 30.0
    probe_timeout_seconds: float = 5.0
    webhook_timeout_seconds: float = 10.0
    discovery_concurrency: int = 4

    # 定时刷新配置
    refresh_enabled: bool = True
    refresh_interval_minutes: int = 1440
    refresh_on_startup: bool = False

    # cron / 管理接口共享密钥，为空时禁用
    cron_secret: str = ""


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()
