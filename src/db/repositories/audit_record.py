"""監査レコードRepository — 一覧・チェーン走査用クエリ"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement, Select

from src.config.constants import QUERY_MAX_LIMIT
from src.db.models.archive_checkpoint import ArchiveCheckpoint
from src.db.models.audit_record import AuditRecord
from src.db.repositories.base import ReadOnlyRepository
from src.ledger.types import ChainScope


@dataclass
class AuditRecordFilter:
    """一覧検索条件"""

    action: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    actor_user_id: str | None = None
    workspace_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None


def scope_clause(model: type[AuditRecord] | type[ArchiveCheckpoint], scope: ChainScope) -> ColumnElement[bool]:
    if scope.is_global:
        return model.workspace_id.is_(None)
    return model.workspace_id == scope.workspace_id


def _before(record: AuditRecord) -> ColumnElement[bool]:
    """チェーン順で record より前"""
    return or_(
        AuditRecord.created_at < record.created_at,
        and_(AuditRecord.created_at == record.created_at, AuditRecord.id < record.id),
    )


class AuditRecordRepository(ReadOnlyRepository[AuditRecord]):
    """監査レコード固有のクエリ"""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(AuditRecord, session)

    def _filtered(self, query: Select, filters: AuditRecordFilter) -> Select:
        if filters.workspace_id:
            query = query.where(AuditRecord.workspace_id == filters.workspace_id)
        if filters.action:
            query = query.where(AuditRecord.action == filters.action)
        if filters.resource_type:
            query = query.where(AuditRecord.resource_type == filters.resource_type)
        if filters.resource_id:
            query = query.where(AuditRecord.resource_id == filters.resource_id)
        if filters.actor_user_id:
            query = query.where(AuditRecord.actor_user_id == filters.actor_user_id)
        if filters.start:
            query = query.where(AuditRecord.created_at >= filters.start)
        if filters.end:
            query = query.where(AuditRecord.created_at <= filters.end)
        return query

    async def list_records(
        self,
        filters: AuditRecordFilter | None = None,
        offset: int = 0,
        limit: int = 100,
    ) -> list[AuditRecord]:
        """条件付き一覧（新しい順）"""
        limit = max(1, min(limit, QUERY_MAX_LIMIT))
        query = self._filtered(select(AuditRecord), filters or AuditRecordFilter())
        query = (
            query.order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc()).offset(max(offset, 0)).limit(limit)
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def count_records(self, filters: AuditRecordFilter | None = None) -> int:
        query = self._filtered(select(func.count()).select_from(AuditRecord), filters or AuditRecordFilter())
        result = await self._session.execute(query)
        return result.scalar_one()

    async def get_tip(self, scope: ChainScope) -> AuditRecord | None:
        """スコープ内の最新レコード"""
        query = (
            select(AuditRecord)
            .where(scope_clause(AuditRecord, scope))
            .order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
            .limit(1)
        )
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def fetch_window(self, scope: ChainScope, limit: int | None = None) -> tuple[list[AuditRecord], AuditRecord | None]:
        """最新 limit 件（昇順）と、その直前の生存レコードを返す"""
        query = select(AuditRecord).where(scope_clause(AuditRecord, scope))
        if limit is None:
            query = query.order_by(AuditRecord.created_at.asc(), AuditRecord.id.asc())
            result = await self._session.execute(query)
            return list(result.scalars().all()), None

        query = query.order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc()).limit(limit)
        result = await self._session.execute(query)
        records = list(reversed(result.scalars().all()))
        if not records:
            return [], None

        pred_query = (
            select(AuditRecord)
            .where(scope_clause(AuditRecord, scope), _before(records[0]))
            .order_by(AuditRecord.created_at.desc(), AuditRecord.id.desc())
            .limit(1)
        )
        pred_result = await self._session.execute(pred_query)
        return records, pred_result.scalar_one_or_none()

    async def select_archivable(self, scope: ChainScope, older_than: datetime) -> list[AuditRecord]:
        """created_at < older_than のレコード（昇順）"""
        query = (
            select(AuditRecord)
            .where(scope_clause(AuditRecord, scope), AuditRecord.created_at < older_than)
            .order_by(AuditRecord.created_at.asc(), AuditRecord.id.asc())
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def list_checkpoints(self, scope: ChainScope) -> list[ArchiveCheckpoint]:
        query = (
            select(ArchiveCheckpoint)
            .where(scope_clause(ArchiveCheckpoint, scope))
            .order_by(ArchiveCheckpoint.last_record_created_at.asc(), ArchiveCheckpoint.archived_at.asc())
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def latest_checkpoint(self, scope: ChainScope) -> ArchiveCheckpoint | None:
        query = (
            select(ArchiveCheckpoint)
            .where(scope_clause(ArchiveCheckpoint, scope))
            .order_by(ArchiveCheckpoint.last_record_created_at.desc(), ArchiveCheckpoint.archived_at.desc())
            .limit(1)
        )
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def list_scopes(self) -> list[ChainScope]:
        """レコードまたはチェックポイントが存在するスコープ一覧"""
        record_ws = await self._session.execute(select(AuditRecord.workspace_id).distinct())
        checkpoint_ws = await self._session.execute(select(ArchiveCheckpoint.workspace_id).distinct())
        workspace_ids = {row[0] for row in record_ws} | {row[0] for row in checkpoint_ws}
        scopes = [ChainScope.for_workspace(ws) for ws in workspace_ids]
        return sorted(scopes, key=lambda s: s.key)
