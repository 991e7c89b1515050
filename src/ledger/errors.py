"""台帳サブシステムの例外とDBエラー変換"""

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError


class LedgerError(Exception):
    """台帳操作の基底例外"""

    retryable: bool = False


class WriteConflict(LedgerError):
    """スコープロックを時間内に取得できなかった（再試行可能）"""

    retryable = True


class StorageError(LedgerError):
    """ストレージ層の読み書き失敗"""


class ImmutabilityViolation(LedgerError):
    """台帳テーブルへの更新・削除の試み"""

    def __init__(self, message: str, *, table: str | None = None, operation: str | None = None) -> None:
        super().__init__(message)
        self.table = table
        self.operation = operation


class ArchivalInconsistency(LedgerError):
    """アーカイブ削除件数が選択件数と一致しない"""

    def __init__(self, expected: int, deleted: int) -> None:
        super().__init__(f"archival deleted {deleted} records, expected {expected}")
        self.expected = expected
        self.deleted = deleted


# ロック待ち・直列化失敗を示すSQLSTATE
_CONFLICT_SQLSTATES = frozenset({"55P03", "40P01", "40001"})
_CONFLICT_MARKERS = (
    "database is locked",
    "database table is locked",
    "lock timeout",
    "could not obtain lock",
    "deadlock detected",
    "could not serialize access",
)
_GUARD_SQLSTATE = "42501"


def _sqlstate(exc: DBAPIError) -> str | None:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def translate_db_error(exc: DBAPIError) -> LedgerError:
    """ドライバ例外を台帳例外に変換する"""
    state = _sqlstate(exc)
    message = str(exc.orig if exc.orig is not None else exc)
    lowered = message.lower()

    if state == _GUARD_SQLSTATE or "append-only" in lowered:
        return ImmutabilityViolation(message)
    if state in _CONFLICT_SQLSTATES:
        return WriteConflict(message)
    if isinstance(exc, OperationalError | IntegrityError) and any(m in lowered for m in _CONFLICT_MARKERS):
        return WriteConflict(message)
    return StorageError(message)
