"""監査台帳サービス — 業務コードからの唯一の入口"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.config.constants import LEDGER_RESOURCE_TYPE, AuditAction
from src.config.settings import Settings, get_settings
from src.db.models.audit_record import AuditRecord
from src.ledger.appender import ChainAppender
from src.ledger.archival import ArchiveManager
from src.ledger.errors import ImmutabilityViolation, LedgerError, WriteConflict
from src.ledger.guard import ImmutabilityGuard
from src.ledger.shipping import ShippingDispatcher, build_dispatcher
from src.ledger.types import ArchiveResult, AuditEventInput, ChainScope, VerificationReport, is_critical_action
from src.ledger.verifier import ChainVerifier, SqlRecordFetcher
from src.storage.s3 import ArchiveExporter


class AuditLedgerService:
    """追記・検証・アーカイブのファサード

    - クリティカルなイベントの記録失敗は呼び出し元に伝播（業務操作も失敗させる）
    - 非クリティカルなイベントの記録失敗はログのみ
    - 外部ログ転送はコミット後、失敗しても影響なし
    """

    def __init__(
        self,
        settings: Settings | None = None,
        dispatcher: ShippingDispatcher | None = None,
        exporter: ArchiveExporter | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.appender = ChainAppender(lock_timeout_ms=self._settings.ledger_lock_timeout_ms)
        self.guard = ImmutabilityGuard(self.appender)
        self.archiver = ArchiveManager(self.appender, self.guard, exporter)
        self.dispatcher = dispatcher or build_dispatcher(self._settings)

    async def _append_with_retry(self, session: AsyncSession, event: AuditEventInput) -> AuditRecord:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.ledger_append_retries),
            wait=wait_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(WriteConflict),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "追記リトライ: attempt={}, scope={}",
                        attempt.retry_state.attempt_number,
                        event.scope.key,
                    )
                async with session.begin_nested():
                    record = await self.appender.append(session, event)
        return record

    async def emit_audit_event(
        self,
        session: AsyncSession,
        *,
        action: str,
        actor_user_id: str | UUID | None = None,
        workspace_id: str | UUID | None = None,
        resource_type: str | None = None,
        resource_id: str | UUID | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        critical: bool | None = None,
    ) -> AuditRecord | None:
        """監査イベントを呼び出し元のトランザクション内で記録する

        コミット後に ship_committed() で外部転送すること。
        """
        event = AuditEventInput(
            action=action,
            actor_user_id=actor_user_id,
            workspace_id=workspace_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        is_critical = is_critical_action(event.action) if critical is None else critical

        try:
            return await self._append_with_retry(session, event)
        except LedgerError as e:
            if is_critical:
                logger.error(
                    "クリティカル監査イベントの記録失敗",
                    action=event.action,
                    scope=event.scope.key,
                    error=str(e),
                )
                raise
            logger.warning(
                "監査イベントの記録失敗（非クリティカル）",
                action=event.action,
                scope=event.scope.key,
                error=str(e),
            )
            return None

    async def emit_and_commit(self, session: AsyncSession, **kwargs: Any) -> AuditRecord | None:
        """単独イベントを記録・コミットし、外部転送まで行う"""
        try:
            record = await self.emit_audit_event(session, **kwargs)
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        if record is not None:
            await self.ship_committed([record])
        return record

    async def ship_committed(self, records: Sequence[AuditRecord | None]) -> bool:
        return await self.dispatcher.ship([r for r in records if r is not None])

    async def record_violation(
        self,
        session: AsyncSession,
        violation: ImmutabilityViolation,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditRecord | None:
        """拒否された台帳変更を global チェーンに記録する

        拒否された操作とは別のセッションを渡すこと。
        """
        return await self.emit_and_commit(
            session,
            action=AuditAction.LEDGER_IMMUTABILITY_VIOLATION.value,
            resource_type=violation.table or LEDGER_RESOURCE_TYPE,
            details={"operation": violation.operation, **(details or {})},
            ip_address=ip_address,
            user_agent=user_agent,
            critical=True,
        )

    def clamp_limit(self, limit: int | None) -> int:
        """HTTP経由の検証件数（既定値・上限を適用）"""
        if limit is None:
            return self._settings.ledger_verify_default_limit
        return max(1, min(limit, self._settings.ledger_verify_max_limit))

    async def verify_chain(
        self,
        session: AsyncSession,
        scope: ChainScope | None = None,
        limit: int | None = None,
    ) -> VerificationReport:
        """チェーンを検証する（limit=None は全件）"""
        verifier = ChainVerifier(SqlRecordFetcher(session))
        return await verifier.run(scope=scope, limit=limit)

    async def archive(
        self,
        session: AsyncSession,
        scope: ChainScope,
        older_than: datetime,
        *,
        archived_by: str,
        dry_run: bool = False,
    ) -> ArchiveResult:
        """1スコープのアーカイブを実行しコミットする"""
        try:
            result = await self.archiver.archive(
                session,
                scope,
                older_than,
                archived_by=archived_by,
                dry_run=dry_run,
            )
            if dry_run:
                await session.rollback()
            else:
                await session.commit()
        except Exception:
            await session.rollback()
            logger.error("アーカイブ失敗、ロールバック", scope=scope.key)
            raise

        await self.ship_committed(result.maintenance_records)
        return result

    async def archive_all(
        self,
        session: AsyncSession,
        older_than: datetime,
        *,
        archived_by: str,
        dry_run: bool = False,
    ) -> list[ArchiveResult]:
        """全スコープを個別トランザクションでアーカイブする"""
        scopes = await SqlRecordFetcher(session).list_scopes()
        await session.rollback()
        results = []
        for scope in scopes:
            results.append(
                await self.archive(session, scope, older_than, archived_by=archived_by, dry_run=dry_run)
            )
        return results
