"""レコードハッシュの正規化と計算

正規化文字列（区切り文字 ``|``）:

    previous_hash|created_at|actor_user_id|action|resource_type|resource_id|workspace_id

- created_at は UTC のミリ秒精度 ``YYYY-MM-DDTHH:MM:SS.mmmZ``（切り捨て）
- None は空文字列
- UUID は小文字ハイフン区切り

PostgreSQL 側で同じ関数を実装した場合も同一の値になること。
"""

import hashlib
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID

from src.config.constants import GENESIS_HASH, HASH_FIELD_SEPARATOR

__all__ = [
    "GENESIS_HASH",
    "HashableRecord",
    "canonicalize",
    "compute_record_hash",
    "ensure_utc",
    "format_timestamp",
    "recompute_hash",
    "truncate_to_millis",
    "utc_now_millis",
]

ONE_MILLISECOND = timedelta(milliseconds=1)


class HashableRecord(Protocol):
    previous_hash: str
    created_at: datetime
    actor_user_id: str | None
    action: str
    resource_type: str | None
    resource_id: str | None
    workspace_id: str | None


def ensure_utc(value: datetime) -> datetime:
    """naive は UTC とみなし、aware は UTC に変換する"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def truncate_to_millis(value: datetime) -> datetime:
    value = ensure_utc(value)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utc_now_millis() -> datetime:
    return truncate_to_millis(datetime.now(UTC))


def format_timestamp(value: datetime) -> str:
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}Z"


def _field(value: str | UUID | None) -> str:
    if value is None:
        return ""
    return str(value)


def canonicalize(
    previous_hash: str,
    created_at: datetime,
    actor_user_id: str | UUID | None,
    action: str,
    resource_type: str | None,
    resource_id: str | UUID | None,
    workspace_id: str | UUID | None,
) -> str:
    """ハッシュ入力となる正規化文字列を返す"""
    return HASH_FIELD_SEPARATOR.join(
        [
            previous_hash,
            format_timestamp(created_at),
            _field(actor_user_id),
            action,
            _field(resource_type),
            _field(resource_id),
            _field(workspace_id),
        ]
    )


def compute_record_hash(
    previous_hash: str,
    created_at: datetime,
    actor_user_id: str | UUID | None,
    action: str,
    resource_type: str | None,
    resource_id: str | UUID | None,
    workspace_id: str | UUID | None,
) -> str:
    """SHA-256（小文字16進64桁）"""
    payload = canonicalize(
        previous_hash,
        created_at,
        actor_user_id,
        action,
        resource_type,
        resource_id,
        workspace_id,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def recompute_hash(record: HashableRecord) -> str:
    """格納済みフィールドからハッシュを再計算する"""
    return compute_record_hash(
        record.previous_hash,
        record.created_at,
        record.actor_user_id,
        record.action,
        record.resource_type,
        record.resource_id,
        record.workspace_id,
    )
