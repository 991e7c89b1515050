"""アプリケーション定数定義"""

from enum import StrEnum


# ── ユーザーロール ────────────────────────────────────
class UserRole(StrEnum):
    SUPER_ADMIN = "super_admin"  # 全ワークスペース横断の監査ログ管理
    ADMIN = "admin"
    COMPLIANCE_OFFICER = "compliance_officer"
    MEMBER = "member"
    VIEWER = "viewer"


# ── 監査アクション ────────────────────────────────────
class AuditAction(StrEnum):
    DOCUMENT_CREATE = "document.create"
    DOCUMENT_UPDATE = "document.update"
    DOCUMENT_DELETE = "document.delete"
    DOCUMENT_VIEW_DENIED = "document.view_denied"
    AUTH_LOGIN = "auth.login"
    AUTH_LOGIN_FAILED = "auth.login_failed"
    AUTH_LOGOUT = "auth.logout"
    API_TOKEN_CREATED = "api_token.created"
    API_TOKEN_REVOKED = "api_token.revoked"
    WORKSPACE_MEMBER_ADDED = "workspace.member_added"
    WORKSPACE_MEMBER_REMOVED = "workspace.member_removed"
    # 台帳自身のメンテナンスイベント
    LEDGER_MAINTENANCE_STARTED = "ledger.maintenance_started"
    LEDGER_MAINTENANCE_ENDED = "ledger.maintenance_ended"
    LEDGER_IMMUTABILITY_VIOLATION = "ledger.immutability_violation"


# ── 検証結果メッセージ ────────────────────────────────
class FindingReason(StrEnum):
    RECORD_HASH_MISMATCH = "Record hash mismatch"
    PREVIOUS_HASH_MISMATCH = "Previous hash mismatch"
    CHAIN_ORIGIN_NOT_FOUND = "Chain origin not found"


# ── ログ転送ステータス ────────────────────────────────
class ShippingStatus(StrEnum):
    ENABLED = "enabled"
    DISABLED = "disabled"
    DEGRADED = "degraded"  # サーキットブレーカーOPEN中


# ── 定数値 ────────────────────────────────────────────
GENESIS_HASH = "0" * 64  # 空チェーンの先頭レコードが参照する番兵値
HASH_FIELD_SEPARATOR = "|"
GLOBAL_SCOPE_KEY = "global"  # workspace_id を持たないイベントのチェーン
LEDGER_TABLES = ("audit_records", "archive_checkpoints")
LEDGER_RESOURCE_TYPE = "audit_records"
SCHEDULED_JOB_ACTOR = "scheduled_job"

# 失敗を呼び出し元に返す必要があるアクション（前方一致）
CRITICAL_ACTION_PREFIXES: tuple[str, ...] = (
    "document.",
    "auth.",
    "api_token.",
    "workspace.",
    "admin.",
    "ledger.",
    "audit.",
)
CRITICAL_ACTION_SUFFIXES: tuple[str, ...] = ("_denied",)

QUERY_MAX_LIMIT = 1000
ARCHIVE_EXPORT_PREFIX = "audit-archives"
