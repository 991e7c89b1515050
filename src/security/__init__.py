from src.security.auth import AuthService
from src.security.rbac import RBACService

__all__ = ["AuthService", "RBACService"]
