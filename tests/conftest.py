"""共通テストフィクスチャ"""

import os
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any
from uuid import UUID

import pytest

# テスト用に環境変数を設定
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("APP_DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("CLOUDWATCH_AUDIT_LOG_GROUP", "")
os.environ.setdefault("S3_BUCKET_AUDIT_ARCHIVE", "")
os.environ.setdefault("LEDGER_LOCK_TIMEOUT_MS", "10000")
os.environ.setdefault("LEDGER_APPEND_RETRIES", "5")


# ── ワークスペース・ユーザーフィクスチャ ──────────────
@pytest.fixture
def workspace_id() -> str:
    return "10000000-0000-0000-0000-000000000001"


@pytest.fixture
def other_workspace_id() -> str:
    return "20000000-0000-0000-0000-000000000002"


@pytest.fixture
def actor_user_id() -> UUID:
    return UUID("30000000-0000-0000-0000-000000000003")


# ── RBAC フィクスチャ ─────────────────────────────────
@pytest.fixture
def rbac_service() -> Any:
    """RBACサービス"""
    from src.security.rbac import RBACService

    return RBACService()


# ── 台帳DBフィクスチャ（SQLiteファイル） ──────────────
@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
async def engine(database_url: str) -> AsyncGenerator[Any, None]:
    """テーブル作成済みのエンジン"""
    from src.db import models  # noqa: F401
    from src.db.base import Base
    from src.db.engine import build_engine

    engine = build_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: Any) -> Any:
    from src.db.session import build_session_factory

    return build_session_factory(engine)


@pytest.fixture
async def session(session_factory: Any) -> AsyncGenerator[Any, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def ledger_service() -> Any:
    """外部転送なしの台帳サービス"""
    from src.config.settings import get_settings
    from src.ledger.service import AuditLedgerService
    from src.ledger.shipping import NullShipper, ShippingDispatcher

    return AuditLedgerService(settings=get_settings(), dispatcher=ShippingDispatcher(NullShipper()))


@pytest.fixture
def make_record() -> Any:
    """チェーンに連結されたメモリ上の AuditRecord を生成するヘルパー"""
    from datetime import UTC, datetime, timedelta

    from src.db.models.audit_record import AuditRecord
    from src.ledger.hashing import GENESIS_HASH, compute_record_hash

    base = datetime(2026, 1, 1, 9, 0, 0, tzinfo=UTC)

    def _make_chain(
        count: int,
        *,
        workspace_id: str | None = None,
        previous_hash: str = GENESIS_HASH,
        start: datetime = base,
        action: str = "document.create",
        id_prefix: str = "00000000",
    ) -> list[AuditRecord]:
        records = []
        prev = previous_hash
        for i in range(count):
            created_at = start + timedelta(seconds=i)
            resource_id = f"doc-{i}"
            record = AuditRecord(
                id=f"{id_prefix}-0000-0000-0000-{i + 1:012d}",
                created_at=created_at,
                actor_user_id="30000000-0000-0000-0000-000000000003",
                workspace_id=workspace_id,
                action=action,
                resource_type="document",
                resource_id=resource_id,
                details={},
                previous_hash=prev,
                record_hash=compute_record_hash(
                    prev,
                    created_at,
                    "30000000-0000-0000-0000-000000000003",
                    action,
                    "document",
                    resource_id,
                    workspace_id,
                ),
            )
            records.append(record)
            prev = record.record_hash
        return records

    return _make_chain
