"""SQLAlchemy Base model + 共通Mixin"""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, String
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator[datetime]):
    """常にUTC awareで読み書きするDateTime

    SQLite はタイムゾーンを保持しないため、書き込み前にUTCへ変換し、
    読み出し時にUTCを付与する。
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: Any, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """全モデルの基底クラス"""

    pass


class UUIDPrimaryKeyMixin:
    """UUID文字列主キー

    PostgreSQL / SQLite の両方で同じ表現になるよう String(36) で保持する。
    """

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )


class WorkspaceScopedMixin:
    """ワークスペーススコープMixin — NULL はワークスペース横断（グローバル）"""

    workspace_id: Mapped[str | None] = mapped_column(String(36), nullable=True)


TIMESTAMP = UTCDateTime()
