"""監査ログエンドポイント — 照会・検証・アーカイブ"""

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db_session, get_ledger_service
from src.api.middleware.auth import require_permission, resolve_workspace
from src.api.schemas.audit_logs import (
    ArchiveRequest,
    ArchiveResponse,
    AuditRecordListResponse,
    AuditRecordResponse,
    InvalidRecordResponse,
    VerifyRequest,
    VerifyResponse,
)
from src.config.constants import QUERY_MAX_LIMIT
from src.config.settings import get_settings
from src.db.repositories.audit_record import AuditRecordFilter, AuditRecordRepository
from src.ledger.service import AuditLedgerService
from src.ledger.types import ChainScope
from src.security.auth import TokenPayload

router = APIRouter()


@router.get("", response_model=AuditRecordListResponse)
async def list_audit_logs(
    user: TokenPayload = Depends(require_permission("audit_log:read")),
    session: AsyncSession = Depends(get_db_session),
    workspace_id: str | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    actor_user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=QUERY_MAX_LIMIT),
) -> AuditRecordListResponse:
    """監査ログ一覧（新しい順）"""
    filters = AuditRecordFilter(
        workspace_id=resolve_workspace(user, workspace_id),
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_user_id=actor_user_id,
        start=start,
        end=end,
    )
    repo = AuditRecordRepository(session)
    records = await repo.list_records(filters, offset=offset, limit=limit)
    total = await repo.count_records(filters)

    return AuditRecordListResponse(
        items=[AuditRecordResponse.model_validate(r) for r in records],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/{record_id}", response_model=AuditRecordResponse)
async def get_audit_log(
    record_id: str,
    user: TokenPayload = Depends(require_permission("audit_log:read")),
    session: AsyncSession = Depends(get_db_session),
) -> AuditRecordResponse:
    """監査ログ詳細"""
    repo = AuditRecordRepository(session)
    record = await repo.get_by_id(record_id, workspace_id=resolve_workspace(user, None))
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="監査ログが見つかりません")
    return AuditRecordResponse.model_validate(record)


@router.post("/verify", response_model=VerifyResponse, response_model_exclude_none=True)
async def verify_audit_logs(
    body: VerifyRequest,
    user: TokenPayload = Depends(require_permission("audit_log:verify")),
    session: AsyncSession = Depends(get_db_session),
    service: AuditLedgerService = Depends(get_ledger_service),
) -> VerifyResponse:
    """ハッシュチェーンの整合性検証"""
    workspace_id = resolve_workspace(user, body.workspace_id)
    scope = ChainScope.for_workspace(workspace_id) if workspace_id else None
    report = await service.verify_chain(session, scope=scope, limit=service.clamp_limit(body.limit))

    return VerifyResponse(
        valid=report.valid,
        records_checked=report.records_checked,
        invalid_records=[
            InvalidRecordResponse(
                record_id=f.record_id,
                error_message=f.error_message,
                scope=f.scope,
                created_at=f.created_at,
            )
            for f in report.findings
        ]
        or None,
    )


@router.post("/archive", response_model=list[ArchiveResponse])
async def archive_audit_logs(
    body: ArchiveRequest,
    user: TokenPayload = Depends(require_permission("audit_log:archive")),
    session: AsyncSession = Depends(get_db_session),
    service: AuditLedgerService = Depends(get_ledger_service),
) -> list[ArchiveResponse]:
    """保持期間を超えたレコードのアーカイブ"""
    workspace_id = resolve_workspace(user, body.workspace_id)
    if body.older_than is not None:
        older_than = body.older_than
    else:
        months = body.older_than_months or get_settings().ledger_retention_months
        older_than = datetime.now(UTC) - timedelta(days=30 * months)

    if workspace_id:
        results = [
            await service.archive(
                session,
                ChainScope.for_workspace(workspace_id),
                older_than,
                archived_by=user.sub,
                dry_run=body.dry_run,
            )
        ]
    else:
        results = await service.archive_all(session, older_than, archived_by=user.sub, dry_run=body.dry_run)

    return [
        ArchiveResponse(
            scope=r.scope.key,
            dry_run=r.dry_run,
            records_archived=r.records_archived,
            older_than=r.older_than,
            checkpoint_id=r.checkpoint_id,
            last_record_id=r.last_record_id,
            last_record_hash=r.last_record_hash,
            archive_location=r.archive_location,
            archive_checksum=r.archive_checksum,
        )
        for r in results
    ]
