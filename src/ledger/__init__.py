"""改ざん検知可能な監査ハッシュチェーン"""

from src.ledger.errors import (
    ArchivalInconsistency,
    ImmutabilityViolation,
    LedgerError,
    StorageError,
    WriteConflict,
)
from src.ledger.hashing import GENESIS_HASH, compute_record_hash
from src.ledger.types import (
    ArchiveResult,
    AuditEventInput,
    ChainScope,
    Finding,
    VerificationReport,
)

__all__ = [
    "GENESIS_HASH",
    "ArchivalInconsistency",
    "ArchiveResult",
    "AuditEventInput",
    "ChainScope",
    "Finding",
    "ImmutabilityViolation",
    "LedgerError",
    "StorageError",
    "VerificationReport",
    "WriteConflict",
    "compute_record_hash",
]
