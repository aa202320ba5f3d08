# hostnode/db/session.py

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from hostnode.core.config import settings

def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """API 与 worker 共用的会话工厂。提交后对象不过期，任务在多个提交之间继续读取同一批 ORM 对象。"""
    return async_sessionmaker(bind=bind, class_=AsyncSession, autoflush=False, expire_on_commit=False)

engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_recycle=3600,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
)

SessionLocal = create_session_factory(engine)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    每个请求一个事务: handler 正常返回则提交，抛出异常则回滚。
    """
    async with SessionLocal() as session:
        async with session.begin():
            yield session
