"""アーカイブチェックポイントモデル"""

from datetime import datetime

from sqlalchemy import Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from src.config.constants import GLOBAL_SCOPE_KEY
from src.db.base import TIMESTAMP, Base, UUIDPrimaryKeyMixin, WorkspaceScopedMixin
from src.db.models.audit_record import ledger_guard_trigger, sqlite_guard_trigger


class ArchiveCheckpoint(UUIDPrimaryKeyMixin, WorkspaceScopedMixin, Base):
    """アーカイブ済み区間の末尾を記録するアンカー

    削除されたレコード群の最終ハッシュを保持し、生存する次レコードの
    previous_hash の正当な参照先となる。作成後は更新・削除不可。
    """

    __tablename__ = "archive_checkpoints"
    __table_args__ = (Index("ix_archive_checkpoints_scope", "workspace_id", "last_record_created_at"),)

    last_record_id: Mapped[str] = mapped_column(String(36), nullable=False)
    last_record_created_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    last_record_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    records_archived: Mapped[int] = mapped_column(Integer, nullable=False)
    archived_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    archive_location: Mapped[str | None] = mapped_column(Text, nullable=True)  # s3://...
    archive_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    archived_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def scope_key(self) -> str:
        if self.workspace_id is None:
            return GLOBAL_SCOPE_KEY
        return f"workspace:{self.workspace_id}"

    def __repr__(self) -> str:
        return f"<ArchiveCheckpoint {self.id} last={self.last_record_id} n={self.records_archived}>"


event.listen(
    ArchiveCheckpoint.__table__,
    "after_create",
    ledger_guard_trigger(ArchiveCheckpoint.__tablename__).execute_if(dialect="postgresql"),
)
for _operation in ("UPDATE", "DELETE"):
    event.listen(
        ArchiveCheckpoint.__table__,
        "after_create",
        sqlite_guard_trigger(ArchiveCheckpoint.__tablename__, _operation).execute_if(dialect="sqlite"),
    )
