"""S3 アーカイブエクスポート"""

import asyncio
import hashlib
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import boto3
import orjson
from loguru import logger

from src.config.constants import ARCHIVE_EXPORT_PREFIX
from src.config.settings import get_settings
from src.db.models.audit_record import AuditRecord
from src.ledger.types import ChainScope


@dataclass(frozen=True)
class ArchiveExport:
    location: str
    checksum: str
    record_count: int


class ArchiveExporter(Protocol):
    """アーカイブ対象レコードの外部保存先"""

    async def export(self, records: Sequence[AuditRecord], scope: ChainScope) -> ArchiveExport: ...


def serialize_records(records: Sequence[AuditRecord]) -> bytes:
    """JSON Lines（1行1レコード、チェーン順）"""
    return b"".join(orjson.dumps(r.to_dict()) + b"\n" for r in records)


class S3ArchiveExporter:
    """S3ベースのアーカイブ保存

    - JSON Lines 形式でアップロード
    - SHA-256 チェックサムをメタデータに付与
    """

    def __init__(self, client: Any | None = None, bucket: str | None = None) -> None:
        settings = get_settings()
        self._client = client or boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
        self._bucket = bucket or settings.s3_bucket_audit_archive

    @staticmethod
    def build_key(scope: ChainScope, archived_at: datetime) -> str:
        folder = scope.workspace_id or "cross-workspace"
        return f"{ARCHIVE_EXPORT_PREFIX}/{folder}/{archived_at.strftime('%Y%m%dT%H%M%S%fZ')}.jsonl"

    async def export(self, records: Sequence[AuditRecord], scope: ChainScope) -> ArchiveExport:
        """レコードをS3にアップロードし、保存先とチェックサムを返す"""
        archived_at = datetime.now(UTC)
        body = serialize_records(records)
        checksum = hashlib.sha256(body).hexdigest()
        s3_key = self.build_key(scope, archived_at)

        # boto3 は同期I/Oのためイベントループ外で実行
        await asyncio.to_thread(
            self._client.put_object,
            Bucket=self._bucket,
            Key=s3_key,
            Body=body,
            ContentType="application/x-ndjson",
            ServerSideEncryption="aws:kms",
            Metadata={
                "record-count": str(len(records)),
                "checksum-sha256": checksum,
                "archived-at": archived_at.isoformat(),
                "scope": scope.key,
            },
        )

        location = f"s3://{self._bucket}/{s3_key}"
        logger.info("アーカイブエクスポート完了", location=location, records=len(records), checksum=checksum)
        return ArchiveExport(location=location, checksum=checksum, record_count=len(records))
