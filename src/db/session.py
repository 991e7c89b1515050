"""非同期セッション管理"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.db.engine import get_engine


def build_session_factory(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    """セッションファクトリを返す"""
    return async_sessionmaker(
        bind=engine or get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI依存性注入用セッションジェネレータ"""
    session_factory = build_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
