"""Generic 読み取り専用Repository — ワークスペース分離対応"""

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class ReadOnlyRepository(Generic[ModelT]):
    """ワークスペース分離対応の汎用読み取りリポジトリ

    台帳テーブルは追記専用のため、更新・削除メソッドは提供しない。
    """

    def __init__(self, model: type[ModelT], session: AsyncSession) -> None:
        self._model = model
        self._session = session

    async def get_by_id(self, id_: str | UUID, workspace_id: str | UUID | None = None) -> ModelT | None:
        """IDでレコード取得"""
        query = select(self._model).where(self._model.id == str(id_))  # type: ignore[attr-defined]
        if workspace_id and hasattr(self._model, "workspace_id"):
            query = query.where(self._model.workspace_id == str(workspace_id))  # type: ignore[attr-defined]
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def list(
        self,
        workspace_id: str | UUID | None = None,
        offset: int = 0,
        limit: int = 100,
        **filters: Any,
    ) -> list[ModelT]:
        """一覧取得（新しい順・ページネーション対応）"""
        query = select(self._model)

        if workspace_id and hasattr(self._model, "workspace_id"):
            query = query.where(self._model.workspace_id == str(workspace_id))  # type: ignore[attr-defined]

        for key, value in filters.items():
            if hasattr(self._model, key) and value is not None:
                query = query.where(getattr(self._model, key) == value)

        if hasattr(self._model, "created_at"):
            query = query.order_by(self._model.created_at.desc(), self._model.id.desc())  # type: ignore[attr-defined]

        query = query.offset(offset).limit(limit)
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def count(self, workspace_id: str | UUID | None = None, **filters: Any) -> int:
        """レコード数取得"""
        query = select(func.count()).select_from(self._model)

        if workspace_id and hasattr(self._model, "workspace_id"):
            query = query.where(self._model.workspace_id == str(workspace_id))  # type: ignore[attr-defined]

        for key, value in filters.items():
            if hasattr(self._model, key) and value is not None:
                query = query.where(getattr(self._model, key) == value)

        result = await self._session.execute(query)
        return result.scalar_one()
