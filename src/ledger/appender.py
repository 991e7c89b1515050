"""チェーン追記

スコープロック取得 → 先端読み取り → ハッシュ計算 → INSERT を
呼び出し元のトランザクション内で行う。コミットは呼び出し元の責務。
"""

import time
from datetime import datetime

from loguru import logger
from sqlalchemy import text, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import GENESIS_HASH
from src.db.models.audit_record import AuditRecord
from src.db.models.chain_head import ChainHead
from src.db.repositories.audit_record import AuditRecordRepository
from src.ledger.errors import LedgerError, WriteConflict, translate_db_error
from src.ledger.hashing import ONE_MILLISECOND, compute_record_hash, utc_now_millis
from src.ledger.types import AuditEventInput, ChainScope
from src.monitoring.metrics import ledger_append_duration_seconds, ledger_appends_total


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


class ChainAppender:
    """スコープ単位で直列化された追記"""

    def __init__(self, lock_timeout_ms: int = 5000) -> None:
        self._lock_timeout_ms = lock_timeout_ms

    async def lock_scope(self, session: AsyncSession, scope: ChainScope) -> None:
        """スコープのチェーンヘッド行をロックする

        トランザクション終了まで保持される。同一トランザクション内での再取得は可。
        """
        now = utc_now_millis()
        if dialect_name(session) == "postgresql":
            await session.execute(text(f"SET LOCAL lock_timeout = '{int(self._lock_timeout_ms)}ms'"))

        result = await session.execute(
            update(ChainHead)
            .where(ChainHead.scope_key == scope.key)
            .values(append_count=ChainHead.append_count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return

        # 初回: ヘッド行を作成（同時作成は一意制約違反 → 再試行）
        try:
            async with session.begin_nested():
                session.add(ChainHead(scope_key=scope.key, append_count=1, updated_at=now))
        except IntegrityError as e:
            raise WriteConflict(f"concurrent chain head creation for {scope.key}") from e

    async def _resolve_tip(self, session: AsyncSession, scope: ChainScope) -> tuple[str, datetime | None]:
        """(先端ハッシュ, 先端の created_at) を返す"""
        repo = AuditRecordRepository(session)
        tip = await repo.get_tip(scope)
        checkpoint = await repo.latest_checkpoint(scope)

        floor = None
        if checkpoint is not None:
            floor = checkpoint.last_record_created_at
        if tip is not None:
            if floor is None or tip.created_at > floor:
                floor = tip.created_at
            return tip.record_hash, floor
        if checkpoint is not None:
            return checkpoint.last_record_hash, floor
        return GENESIS_HASH, None

    async def append(self, session: AsyncSession, event: AuditEventInput) -> AuditRecord:
        """イベントをチェーン末尾に追記し、フラッシュ済みのレコードを返す"""
        scope = event.scope
        started = time.perf_counter()
        try:
            await self.lock_scope(session, scope)
            previous_hash, floor = await self._resolve_tip(session, scope)

            created_at = utc_now_millis()
            # 時計の後退・同一ミリ秒でも順序が一意になるよう先端より後にする
            if floor is not None and created_at <= floor:
                created_at = floor + ONE_MILLISECOND

            record = AuditRecord(
                created_at=created_at,
                actor_user_id=event.actor_user_id,
                workspace_id=event.workspace_id,
                action=event.action,
                resource_type=event.resource_type,
                resource_id=event.resource_id,
                details=event.details,
                ip_address=event.ip_address,
                user_agent=event.user_agent,
                previous_hash=previous_hash,
                record_hash=compute_record_hash(
                    previous_hash,
                    created_at,
                    event.actor_user_id,
                    event.action,
                    event.resource_type,
                    event.resource_id,
                    event.workspace_id,
                ),
            )
            session.add(record)
            await session.flush()
        except WriteConflict:
            ledger_appends_total.labels(status="conflict").inc()
            raise
        except LedgerError:
            ledger_appends_total.labels(status="error").inc()
            raise
        except DBAPIError as e:
            error = translate_db_error(e)
            status = "conflict" if isinstance(error, WriteConflict) else "error"
            ledger_appends_total.labels(status=status).inc()
            raise error from e
        finally:
            ledger_append_duration_seconds.observe(time.perf_counter() - started)

        ledger_appends_total.labels(status="success").inc()
        logger.debug(
            "監査レコード追記",
            record_id=record.id,
            action=record.action,
            scope=scope.key,
        )
        return record
