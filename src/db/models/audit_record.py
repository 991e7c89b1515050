"""監査レコードモデル — ハッシュチェーン化された追記専用ログ"""

from datetime import datetime
from typing import Any

from sqlalchemy import DDL, JSON, Index, String, event
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from src.config.constants import GLOBAL_SCOPE_KEY
from src.db.base import TIMESTAMP, Base, UUIDPrimaryKeyMixin, WorkspaceScopedMixin


class AuditRecord(UUIDPrimaryKeyMixin, WorkspaceScopedMixin, Base):
    """監査レコード

    誰が・いつ・何を・どのリソースに対して行ったかを記録し、
    直前レコードのハッシュと連結して改ざんを検知可能にする。
    作成後は更新不可。削除はアーカイブ処理（チェックポイント作成と同一トランザクション）のみ。
    """

    __tablename__ = "audit_records"
    __table_args__ = (
        Index("ix_audit_records_chain_order", "workspace_id", "created_at", "id"),
        Index("ix_audit_records_created_at", "created_at"),
    )

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    actor_user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # ハッシュ対象外のコンテキスト
    details: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    ip_address: Mapped[str | None] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    previous_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    record_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    @property
    def scope_key(self) -> str:
        if self.workspace_id is None:
            return GLOBAL_SCOPE_KEY
        return f"workspace:{self.workspace_id}"

    def to_dict(self) -> dict[str, Any]:
        """エクスポート・ログ転送用の辞書表現"""
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "actor_user_id": self.actor_user_id,
            "workspace_id": self.workspace_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details or {},
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "previous_hash": self.previous_hash,
            "record_hash": self.record_hash,
        }

    def __repr__(self) -> str:
        return f"<AuditRecord {self.id} {self.action} scope={self.scope_key}>"


# --- PostgreSQL: ストレージ層の不変性トリガー ---
# メンテナンスウィンドウ中（ledger.maintenance = 'on'）は DELETE のみ許可する。
# UPDATE はいかなる場合も拒否。

LEDGER_GUARD_FUNCTION = DDL(
    """
CREATE OR REPLACE FUNCTION ledger_reject_mutation() RETURNS trigger AS $$
BEGIN
    IF TG_OP = 'DELETE' AND current_setting('ledger.maintenance', true) = 'on' THEN
        RETURN OLD;
    END IF;
    RAISE EXCEPTION 'ledger table %% is append-only (%% rejected)', TG_TABLE_NAME, TG_OP
        USING ERRCODE = 'insufficient_privilege';
END;
$$ LANGUAGE plpgsql
"""
)


def ledger_guard_trigger(table_name: str) -> DDL:
    """台帳テーブル用の BEFORE UPDATE OR DELETE トリガーDDL"""
    return DDL(
        f"CREATE OR REPLACE TRIGGER {table_name}_immutable "
        f"BEFORE UPDATE OR DELETE ON {table_name} "
        "FOR EACH ROW EXECUTE FUNCTION ledger_reject_mutation()"
    )


# --- SQLite: メンテナンス状態を参照できないため audit_records の DELETE はORMガードのみ ---


def sqlite_guard_trigger(table_name: str, operation: str) -> DDL:
    """SQLite 用の BEFORE <operation> 拒否トリガーDDL"""
    return DDL(
        f"CREATE TRIGGER IF NOT EXISTS {table_name}_no_{operation.lower()} "
        f"BEFORE {operation} ON {table_name} "
        f"BEGIN SELECT RAISE(ABORT, 'ledger table {table_name} is append-only ({operation} rejected)'); END"
    )


event.listen(
    Base.metadata,
    "before_create",
    LEDGER_GUARD_FUNCTION.execute_if(dialect="postgresql"),
)
event.listen(
    AuditRecord.__table__,
    "after_create",
    ledger_guard_trigger(AuditRecord.__tablename__).execute_if(dialect="postgresql"),
)
event.listen(
    AuditRecord.__table__,
    "after_create",
    sqlite_guard_trigger(AuditRecord.__tablename__, "UPDATE").execute_if(dialect="sqlite"),
)
