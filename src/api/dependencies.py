"""FastAPI 依存性注入"""

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.session import get_session
from src.ledger.service import AuditLedgerService
from src.storage.s3 import S3ArchiveExporter


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """DBセッション依存性"""
    async for session in get_session():
        yield session


@lru_cache(maxsize=1)
def get_ledger_service() -> AuditLedgerService:
    """監査台帳サービス依存性（プロセス内シングルトン）"""
    from src.config.settings import get_settings

    settings = get_settings()
    exporter = S3ArchiveExporter() if settings.s3_bucket_audit_archive else None
    return AuditLedgerService(settings=settings, exporter=exporter)
