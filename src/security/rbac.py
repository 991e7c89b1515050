"""ロールベースアクセス制御（RBAC）"""

from dataclasses import dataclass

from src.config.constants import UserRole


@dataclass(frozen=True)
class Permission:
    """操作権限定義"""

    resource: str
    action: str  # read, verify, archive

    def __str__(self) -> str:
        return f"{self.resource}:{self.action}"


# ── 権限定義 ──────────────────────────────────────────
PERMISSIONS = {
    # 監査ログ
    "audit_log:read": Permission("audit_log", "read"),
    "audit_log:verify": Permission("audit_log", "verify"),
    "audit_log:archive": Permission("audit_log", "archive"),
    # 横断参照（workspace_id 未指定の照会・検証）
    "audit_log:cross_workspace": Permission("audit_log", "cross_workspace"),
}

# ── ロール別権限マッピング ────────────────────────────
ROLE_PERMISSIONS: dict[UserRole, set[str]] = {
    UserRole.SUPER_ADMIN: set(PERMISSIONS.keys()),
    UserRole.ADMIN: {
        "audit_log:read",
        "audit_log:verify",
        "audit_log:archive",
    },
    UserRole.COMPLIANCE_OFFICER: {
        "audit_log:read",
        "audit_log:verify",
    },
    UserRole.MEMBER: set(),
    UserRole.VIEWER: set(),
}


class RBACService:
    """RBAC権限チェックサービス"""

    def has_permission(self, role: str, permission_key: str) -> bool:
        """指定ロールが指定権限を持つか"""
        try:
            user_role = UserRole(role)
        except ValueError:
            return False
        return permission_key in ROLE_PERMISSIONS.get(user_role, set())
