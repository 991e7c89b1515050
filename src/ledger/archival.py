"""アーカイブ / チェックポイント管理

古いレコードを削除する前に、末尾レコードのハッシュをチェックポイントとして残す。
チェックポイント作成とレコード削除は同一トランザクション・同一スコープロック下で行う。
"""

from datetime import datetime

from loguru import logger
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.archive_checkpoint import ArchiveCheckpoint
from src.db.repositories.audit_record import AuditRecordRepository
from src.ledger.appender import ChainAppender
from src.ledger.errors import ArchivalInconsistency, LedgerError, translate_db_error
from src.ledger.guard import ImmutabilityGuard
from src.ledger.hashing import ensure_utc, utc_now_millis
from src.ledger.types import ArchiveResult, ChainScope
from src.monitoring.metrics import ledger_records_archived_total
from src.storage.s3 import ArchiveExporter


class ArchiveManager:
    """スコープ単位のアーカイブ実行"""

    def __init__(
        self,
        appender: ChainAppender,
        guard: ImmutabilityGuard,
        exporter: ArchiveExporter | None = None,
    ) -> None:
        self._appender = appender
        self._guard = guard
        self._exporter = exporter

    async def archive(
        self,
        session: AsyncSession,
        scope: ChainScope,
        older_than: datetime,
        *,
        archived_by: str,
        dry_run: bool = False,
    ) -> ArchiveResult:
        """older_than より古いレコードをアーカイブする

        コミット・ロールバックは呼び出し元の責務。
        対象選択とエクスポートはロック外で行い、ロック取得後に対象が変わっていないことを確認する。
        session は未反映の変更を持たないこと（ロック前に読み取りトランザクションを終了する）。
        """
        older_than = ensure_utc(older_than)
        result = ArchiveResult(scope=scope, older_than=older_than, dry_run=dry_run)
        repo = AuditRecordRepository(session)

        try:
            records = await repo.select_archivable(scope, older_than)
            if not records:
                logger.info("アーカイブ対象なし", scope=scope.key, older_than=older_than.isoformat())
                return result

            anchor = records[-1]
            result.records_archived = len(records)
            result.last_record_id = anchor.id
            result.last_record_hash = anchor.record_hash

            if dry_run:
                logger.info(
                    "アーカイブ（ドライラン）",
                    scope=scope.key,
                    records=len(records),
                    anchor_id=anchor.id,
                    anchor_created_at=anchor.created_at.isoformat(),
                )
                return result

            exported_ids = [r.id for r in records]
            anchor_key = (anchor.created_at, anchor.id)
            # エクスポート中は読み取りトランザクション・ロックを保持しない
            for record in records:
                session.expunge(record)
            await session.rollback()

            if self._exporter is not None:
                export = await self._exporter.export(records, scope)
                result.archive_location = export.location
                result.archive_checksum = export.checksum

            await self._appender.lock_scope(session, scope)
            # エクスポート後に追記されたレコードは対象外
            records = [
                r
                for r in await repo.select_archivable(scope, older_than)
                if (r.created_at, r.id) <= anchor_key
            ]
            if [r.id for r in records] != exported_ids:
                raise ArchivalInconsistency(expected=len(exported_ids), deleted=len(records))
            anchor = records[-1]

            async with self._guard.maintenance(
                session,
                scope=scope,
                reason="archival",
                actor_user_id=None,
            ) as window:
                checkpoint = ArchiveCheckpoint(
                    workspace_id=scope.workspace_id,
                    last_record_id=anchor.id,
                    last_record_created_at=anchor.created_at,
                    last_record_hash=anchor.record_hash,
                    records_archived=len(records),
                    archived_at=utc_now_millis(),
                    archive_location=result.archive_location,
                    archive_checksum=result.archive_checksum,
                    archived_by=archived_by,
                )
                session.add(checkpoint)
                await session.flush()

                for record in records:
                    session.expunge(record)
                deleted = await window.archive_delete([r.id for r in records])
                if deleted != len(records):
                    raise ArchivalInconsistency(expected=len(records), deleted=deleted)

                window.summary = {
                    "records_archived": deleted,
                    "checkpoint_id": checkpoint.id,
                    "archived_by": archived_by,
                }

        except LedgerError:
            raise
        except DBAPIError as e:
            raise translate_db_error(e) from e

        result.checkpoint = checkpoint
        result.checkpoint_id = checkpoint.id
        result.maintenance_records = [window.started_record, window.ended_record]
        ledger_records_archived_total.inc(deleted)
        logger.info(
            "アーカイブ完了",
            scope=scope.key,
            records_archived=deleted,
            checkpoint_id=checkpoint.id,
            archive_location=result.archive_location,
        )
        return result
