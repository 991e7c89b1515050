"""API テスト共通フィクスチャ"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from src.security.auth import TokenPayload


def make_token_payload(role: str = "super_admin", workspace_id: str | None = None) -> TokenPayload:
    """テスト用 TokenPayload を生成するヘルパー"""
    return TokenPayload(
        sub=str(uuid4()),
        workspace_id=workspace_id,
        role=role,
        exp=datetime(2099, 12, 31, tzinfo=UTC),
        iat=datetime.now(UTC),
        jti=str(uuid4()),
    )


@pytest.fixture
def mock_token_payload() -> TokenPayload:
    """テスト用トークンペイロード（ワークスペース横断の管理者）"""
    return make_token_payload()


@pytest.fixture
def test_app(session_factory: Any, ledger_service: Any, mock_token_payload: TokenPayload) -> Any:
    """テスト用FastAPIアプリ（SQLiteセッション・台帳サービス・認証をオーバーライド）"""
    from src.api.dependencies import get_db_session, get_ledger_service
    from src.api.main import create_app
    from src.api.middleware.auth import get_current_user

    async def _db_session() -> AsyncGenerator[Any, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_db_session] = _db_session
    app.dependency_overrides[get_ledger_service] = lambda: ledger_service
    app.dependency_overrides[get_current_user] = lambda: app.state.test_user
    app.state.test_user = mock_token_payload

    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def as_user(test_app: Any) -> Callable[..., TokenPayload]:
    """リクエストユーザーを差し替える"""

    def _switch(role: str, workspace_id: str | None = None) -> TokenPayload:
        payload = make_token_payload(role=role, workspace_id=workspace_id)
        test_app.state.test_user = payload
        return payload

    return _switch


@pytest.fixture
async def client(test_app: Any) -> AsyncGenerator[AsyncClient, None]:
    """テスト用HTTPクライアント"""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def emit(session_factory: Any, ledger_service: Any) -> Callable[..., Any]:
    """独立セッションで監査イベントを記録するヘルパー"""

    async def _emit(**kwargs: Any) -> Any:
        kwargs.setdefault("action", "document.create")
        kwargs.setdefault("resource_type", "document")
        async with session_factory() as session:
            return await ledger_service.emit_and_commit(session, **kwargs)

    return _emit
