"""台帳の値オブジェクト・入出力モデル"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Protocol
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from src.config.constants import (
    CRITICAL_ACTION_PREFIXES,
    CRITICAL_ACTION_SUFFIXES,
    GLOBAL_SCOPE_KEY,
    FindingReason,
)
from src.ledger.hashing import HashableRecord

_WORKSPACE_KEY_PREFIX = "workspace:"


@dataclass(frozen=True)
class ChainScope:
    """チェーンスコープ — ワークスペースごとに独立したチェーン

    workspace_id が None のレコードは「グローバル」スコープを構成する。
    """

    workspace_id: str | None = None

    GLOBAL: ClassVar["ChainScope"]

    @classmethod
    def for_workspace(cls, workspace_id: str | UUID | None) -> "ChainScope":
        if workspace_id is None:
            return cls.GLOBAL
        return cls(workspace_id=str(workspace_id))

    @classmethod
    def from_key(cls, key: str) -> "ChainScope":
        if key == GLOBAL_SCOPE_KEY:
            return cls.GLOBAL
        if not key.startswith(_WORKSPACE_KEY_PREFIX):
            raise ValueError(f"invalid chain scope key: {key}")
        return cls(workspace_id=key[len(_WORKSPACE_KEY_PREFIX) :])

    @property
    def key(self) -> str:
        if self.workspace_id is None:
            return GLOBAL_SCOPE_KEY
        return f"{_WORKSPACE_KEY_PREFIX}{self.workspace_id}"

    @property
    def is_global(self) -> bool:
        return self.workspace_id is None

    def __str__(self) -> str:
        return self.key


ChainScope.GLOBAL = ChainScope()


def _normalize_identifier(value: str | UUID | None) -> str | None:
    """UUID形式なら小文字ハイフン区切りに正規化する"""
    if value is None:
        return None
    if isinstance(value, UUID):
        return str(value)
    value = value.strip()
    if not value:
        return None
    try:
        return str(UUID(value))
    except ValueError:
        return value


def is_critical_action(action: str) -> bool:
    """クリティカル（記録失敗で業務操作を失敗させる）アクションか"""
    return action.startswith(CRITICAL_ACTION_PREFIXES) or action.endswith(CRITICAL_ACTION_SUFFIXES)


class AuditEventInput(BaseModel):
    """監査イベントの入力"""

    action: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_]+(\.[a-z0-9_]+)+$")
    actor_user_id: str | None = None
    workspace_id: str | None = None
    resource_type: str | None = Field(None, max_length=100)
    resource_id: str | None = Field(None, max_length=255)
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = Field(None, max_length=50)
    user_agent: str | None = Field(None, max_length=500)

    @field_validator("actor_user_id", "workspace_id", "resource_id", mode="before")
    @classmethod
    def normalize_identifier(cls, v: str | UUID | None) -> str | None:
        return _normalize_identifier(v)

    @property
    def scope(self) -> ChainScope:
        return ChainScope.for_workspace(self.workspace_id)


class ChainRecord(HashableRecord, Protocol):
    id: str


class CheckpointAnchor(Protocol):
    id: str
    last_record_id: str
    last_record_created_at: datetime
    last_record_hash: str


class Finding(BaseModel):
    """検証で見つかった不整合（例外ではなくデータ）"""

    record_id: str
    is_valid: bool = False
    error_message: FindingReason
    scope: str
    created_at: datetime
    expected: str | None = None
    actual: str | None = None


@dataclass
class ChainWindow:
    """検証対象ウィンドウ

    records は (created_at, id) 昇順。predecessor はウィンドウ直前の生存レコード。
    """

    scope: ChainScope
    records: Sequence[ChainRecord]
    predecessor: ChainRecord | None = None
    checkpoints: Sequence[CheckpointAnchor] = ()


@dataclass
class VerificationReport:
    valid: bool
    records_checked: int
    findings: list[Finding] = field(default_factory=list)
    scopes_checked: list[str] = field(default_factory=list)


@dataclass
class ArchiveResult:
    scope: ChainScope
    older_than: datetime
    dry_run: bool
    records_archived: int = 0
    checkpoint: Any | None = None
    checkpoint_id: str | None = None
    last_record_id: str | None = None
    last_record_hash: str | None = None
    archive_location: str | None = None
    archive_checksum: str | None = None
    # 実行時のみ: メンテナンスイベントとして追記されたレコード
    maintenance_records: list[Any] = field(default_factory=list)
