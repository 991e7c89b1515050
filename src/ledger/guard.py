"""不変性ガード

台帳テーブル（audit_records / archive_checkpoints）への UPDATE・DELETE を
アプリケーション層（ORMイベント）とストレージ層（PostgreSQLトリガー）の両方で拒否する。
アーカイブ処理だけが、メンテナンスウィンドウ内で audit_records の DELETE を行える。
"""

import re
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger
from sqlalchemy import delete, event, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import ORMExecuteState, Session, UOWTransaction
from sqlalchemy.sql.elements import TextClause

from src.config.constants import LEDGER_RESOURCE_TYPE, LEDGER_TABLES, AuditAction
from src.db.models.archive_checkpoint import ArchiveCheckpoint
from src.db.models.audit_record import AuditRecord
from src.ledger.appender import ChainAppender, dialect_name
from src.ledger.errors import ImmutabilityViolation
from src.ledger.types import AuditEventInput, ChainScope
from src.monitoring.metrics import ledger_immutability_violations_total

MAINTENANCE_FLAG = "ledger_maintenance"
_DELETE_BATCH_SIZE = 500

_MUTATING_SQL = re.compile(
    r"^\s*(?:update\s+|delete\s+from\s+)\"?(" + "|".join(LEDGER_TABLES) + r")\b",
    re.IGNORECASE,
)

_installed = False


def _reject(table: str, operation: str, session: Session) -> None:
    ledger_immutability_violations_total.inc()
    logger.error(
        "台帳テーブルへの変更を拒否",
        table=table,
        operation=operation,
        maintenance=bool(session.info.get(MAINTENANCE_FLAG)),
    )
    raise ImmutabilityViolation(
        f"{table} is append-only: {operation} rejected",
        table=table,
        operation=operation,
    )


def _in_maintenance(session: Session) -> bool:
    return bool(session.info.get(MAINTENANCE_FLAG))


def _check_statement(table: str, operation: str, session: Session) -> None:
    # メンテナンス中に許可されるのは audit_records の DELETE のみ
    if operation == "DELETE" and table == AuditRecord.__tablename__ and _in_maintenance(session):
        return
    _reject(table, operation, session)


def _before_flush(session: Session, flush_context: UOWTransaction, instances: Any) -> None:
    for obj in session.dirty:
        if isinstance(obj, AuditRecord | ArchiveCheckpoint) and session.is_modified(obj):
            _reject(obj.__tablename__, "UPDATE", session)
    for obj in session.deleted:
        if isinstance(obj, AuditRecord | ArchiveCheckpoint):
            _check_statement(obj.__tablename__, "DELETE", session)


def _do_orm_execute(state: ORMExecuteState) -> None:
    statement = state.statement
    if state.is_update or state.is_delete:
        table = getattr(getattr(statement, "table", None), "name", None)
        if table in LEDGER_TABLES:
            _check_statement(table, "UPDATE" if state.is_update else "DELETE", state.session)
        return

    if isinstance(statement, TextClause):
        match = _MUTATING_SQL.match(statement.text)
        if match:
            operation = "UPDATE" if statement.text.lstrip().lower().startswith("update") else "DELETE"
            _check_statement(match.group(1).lower(), operation, state.session)


def install_immutability_guard() -> None:
    """全 Session にガードを登録する（冪等）"""
    global _installed
    if _installed:
        return
    event.listen(Session, "before_flush", _before_flush)
    event.listen(Session, "do_orm_execute", _do_orm_execute)
    _installed = True


async def _set_storage_flag(session: AsyncSession, enabled: bool) -> None:
    if dialect_name(session) == "postgresql":
        await session.execute(
            text("SELECT set_config('ledger.maintenance', :value, true)"),
            {"value": "on" if enabled else "off"},
        )


class MaintenanceWindow:
    """メンテナンスウィンドウ内で許可される操作"""

    def __init__(self, session: AsyncSession, scope: ChainScope, started_record: AuditRecord) -> None:
        self._session = session
        self.scope = scope
        self.started_record = started_record
        self.ended_record: AuditRecord | None = None
        self.deleted = 0
        self.summary: dict[str, Any] = {}

    async def archive_delete(self, record_ids: Sequence[str]) -> int:
        """指定レコードを削除し、削除件数を返す"""
        deleted = 0
        for i in range(0, len(record_ids), _DELETE_BATCH_SIZE):
            batch = list(record_ids[i : i + _DELETE_BATCH_SIZE])
            result = await self._session.execute(
                delete(AuditRecord)
                .where(AuditRecord.id.in_(batch))
                .execution_options(synchronize_session=False)
            )
            deleted += result.rowcount or 0
        self.deleted += deleted
        return deleted


class ImmutabilityGuard:
    """メンテナンスウィンドウの開閉

    開始・終了はそれぞれ台帳イベントとしてチェーンに追記される。
    """

    def __init__(self, appender: ChainAppender) -> None:
        self._appender = appender
        install_immutability_guard()

    @asynccontextmanager
    async def maintenance(
        self,
        session: AsyncSession,
        *,
        scope: ChainScope,
        reason: str,
        actor_user_id: str | None = None,
    ) -> AsyncIterator[MaintenanceWindow]:
        started = await self._appender.append(
            session,
            AuditEventInput(
                action=AuditAction.LEDGER_MAINTENANCE_STARTED.value,
                actor_user_id=actor_user_id,
                workspace_id=scope.workspace_id,
                resource_type=LEDGER_RESOURCE_TYPE,
                details={"reason": reason},
            ),
        )
        logger.warning("台帳メンテナンス開始", scope=scope.key, reason=reason, record_id=started.id)

        window = MaintenanceWindow(session, scope, started)
        session.info[MAINTENANCE_FLAG] = True
        await _set_storage_flag(session, True)
        try:
            yield window
        finally:
            session.info.pop(MAINTENANCE_FLAG, None)
        # 失敗時はロールバックでトランザクションローカルの設定ごと破棄される
        await _set_storage_flag(session, False)

        window.ended_record = await self._appender.append(
            session,
            AuditEventInput(
                action=AuditAction.LEDGER_MAINTENANCE_ENDED.value,
                actor_user_id=actor_user_id,
                workspace_id=scope.workspace_id,
                resource_type=LEDGER_RESOURCE_TYPE,
                details={"reason": reason, "started_record_id": started.id, **window.summary},
            ),
        )
        logger.warning("台帳メンテナンス終了", scope=scope.key, records_deleted=window.deleted)
