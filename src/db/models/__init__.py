from src.db.models.archive_checkpoint import ArchiveCheckpoint
from src.db.models.audit_record import AuditRecord
from src.db.models.chain_head import ChainHead

__all__ = [
    "ArchiveCheckpoint",
    "AuditRecord",
    "ChainHead",
]
