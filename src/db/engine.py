"""SQLAlchemy async engine — コネクションプール管理"""

from functools import lru_cache
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.config.settings import get_settings


def _install_sqlite_transaction_hooks(engine: AsyncEngine) -> None:
    """SQLite でSAVEPOINTを正しく扱うためのトランザクション制御

    ドライバの暗黙BEGINを無効化し、SQLAlchemy のトランザクション開始時に
    明示的に BEGIN を発行する。
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """URLからAsyncEngineを生成（SQLiteはテスト・ローカル用）"""
    settings = get_settings()

    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            echo=echo,
            # busy timeout = スコープロック待ちの上限
            connect_args={"timeout": settings.ledger_lock_timeout_ms / 1000},
        )
        _install_sqlite_transaction_hooks(engine)
        return engine

    return create_async_engine(
        database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """AsyncEngineシングルトンを返す"""
    settings = get_settings()
    return build_engine(settings.database_url, echo=settings.app_debug and settings.is_development)
