"""JWT認証サービス — トークン発行・検証"""

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import jwt
from loguru import logger
from pydantic import BaseModel

from src.config.settings import get_settings


class TokenPayload(BaseModel):
    """JWTトークンペイロード"""

    sub: str  # user_id
    workspace_id: str | None = None  # None = ワークスペース横断（super_admin）
    role: str
    exp: datetime
    iat: datetime
    jti: str


class AuthService:
    """認証サービス — JWT発行・検証"""

    def __init__(self) -> None:
        self._settings = get_settings()

    def create_access_token(
        self,
        user_id: str | UUID,
        role: str,
        workspace_id: str | UUID | None = None,
    ) -> str:
        """アクセストークンを発行"""
        now = datetime.now(UTC)
        payload = {
            "sub": str(user_id),
            "workspace_id": str(workspace_id) if workspace_id else None,
            "role": role,
            "exp": now + timedelta(minutes=self._settings.jwt_access_token_expire_minutes),
            "iat": now,
            "jti": str(uuid.uuid4()),
        }
        token = jwt.encode(payload, self._settings.jwt_secret_key, algorithm=self._settings.jwt_algorithm)
        logger.info("アクセストークン発行", user_id=str(user_id), role=role)
        return token

    def verify_token(self, token: str) -> TokenPayload:
        """JWTトークンを検証してペイロードを返す

        Raises:
            jwt.ExpiredSignatureError: トークン有効期限切れ
            jwt.InvalidTokenError: 不正なトークン
        """
        payload: dict[str, Any] = jwt.decode(
            token,
            self._settings.jwt_secret_key,
            algorithms=[self._settings.jwt_algorithm],
        )
        return TokenPayload(
            sub=payload["sub"],
            workspace_id=payload.get("workspace_id"),
            role=payload["role"],
            exp=datetime.fromtimestamp(payload["exp"], tz=UTC),
            iat=datetime.fromtimestamp(payload["iat"], tz=UTC),
            jti=payload["jti"],
        )
