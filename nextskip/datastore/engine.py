"""
数据库引擎配置和管理
使用SQLAlchemy异步引擎连接SQLite数据库
"""

from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from nextskip.datastore.models import Base
from nextskip.settings import global_settings

T = TypeVar("T")

# 全局数据库引擎实例
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


async def init_db(database_url: str | None = None, echo: bool | None = None) -> None:
    """初始化数据库连接和表结构"""
    global engine, AsyncSessionLocal

    # 创建异步引擎
    engine = create_async_engine(
        database_url or global_settings.database_url,
        echo=global_settings.database_echo if echo is None else echo,
    )

    # 创建会话工厂
    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # 创建所有表
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def run_in_transaction(
    work: Callable[[AsyncSession], Awaitable[T]],
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> T:
    """
    在单个事务中执行 work，成功则提交，异常则回滚并重新抛出。

    提交完成后才返回，调用方可以在返回后安全地执行提交后的动作。
    """
    factory = session_factory or get_session_factory()
    async with factory() as session:
        async with session.begin():
            return await work(session)


async def close_db() -> None:
    """关闭数据库连接"""
    global engine, AsyncSessionLocal
    if engine:
        await engine.dispose()
    engine = None
    AsyncSessionLocal = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """获取会话工厂（用于调度器等需要直接创建会话的场景）"""
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return AsyncSessionLocal
