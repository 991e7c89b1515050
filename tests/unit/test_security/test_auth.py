"""認証サービス テスト"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import jwt
import pytest

from src.config.settings import get_settings
from src.security.auth import AuthService


@pytest.fixture
def auth_service() -> AuthService:
    return AuthService()


@pytest.mark.unit
class TestAuthService:
    """認証サービスのユニットテスト"""

    def test_create_and_verify(self, auth_service: AuthService) -> None:
        user_id = uuid4()
        workspace_id = uuid4()

        token = auth_service.create_access_token(user_id, "compliance_officer", workspace_id)
        payload = auth_service.verify_token(token)

        assert payload.sub == str(user_id)
        assert payload.workspace_id == str(workspace_id)
        assert payload.role == "compliance_officer"
        assert payload.exp > datetime.now(UTC)

    def test_cross_workspace_token(self, auth_service: AuthService) -> None:
        token = auth_service.create_access_token(uuid4(), "super_admin")
        assert auth_service.verify_token(token).workspace_id is None

    def test_unique_jti(self, auth_service: AuthService) -> None:
        user_id = uuid4()
        a = auth_service.verify_token(auth_service.create_access_token(user_id, "admin"))
        b = auth_service.verify_token(auth_service.create_access_token(user_id, "admin"))
        assert a.jti != b.jti

    def test_expired_token_rejected(self, auth_service: AuthService) -> None:
        settings = get_settings()
        now = datetime.now(UTC)
        token = jwt.encode(
            {
                "sub": "u",
                "role": "admin",
                "exp": now - timedelta(minutes=1),
                "iat": now - timedelta(minutes=31),
                "jti": "x",
            },
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(jwt.ExpiredSignatureError):
            auth_service.verify_token(token)

    def test_wrong_secret_rejected(self, auth_service: AuthService) -> None:
        token = jwt.encode({"sub": "u"}, "another-secret", algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            auth_service.verify_token(token)
