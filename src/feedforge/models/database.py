"""数据库初始化和会话管理."""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

logger = logging.getLogger(__name__)

# 全局引擎
_engine: AsyncEngine | None = None


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """创建会话工厂."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """创建所有表（已存在则跳过）."""
    # 注册全部表模型
    import feedforge.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def init_db(database_url: str) -> async_sessionmaker[AsyncSession]:
    """初始化数据库，创建所有表."""
    global _engine

    _engine = create_async_engine(database_url, echo=False)
    await create_tables(_engine)
    logger.info("数据库初始化完成")

    return create_session_factory(_engine)


async def close_db() -> None:
    """释放数据库连接."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
    _engine = None
