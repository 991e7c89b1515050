"""監査ログスキーマ"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator


class AuditRecordResponse(BaseModel):
    id: str
    created_at: datetime
    actor_user_id: str | None = None
    workspace_id: str | None = None
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    user_agent: str | None = None
    previous_hash: str
    record_hash: str

    model_config = {"from_attributes": True}


class AuditRecordListResponse(BaseModel):
    items: list[AuditRecordResponse]
    total: int
    offset: int
    limit: int


class VerifyRequest(BaseModel):
    workspace_id: str | None = None
    limit: int | None = None


class InvalidRecordResponse(BaseModel):
    record_id: str
    is_valid: bool = False
    error_message: str
    scope: str
    created_at: datetime


class VerifyResponse(BaseModel):
    valid: bool
    records_checked: int
    invalid_records: list[InvalidRecordResponse] | None = None


class ArchiveRequest(BaseModel):
    workspace_id: str | None = None
    older_than_months: int | None = Field(None, ge=1)
    older_than: datetime | None = None
    dry_run: bool = False

    @model_validator(mode="after")
    def one_cutoff(self) -> "ArchiveRequest":
        if self.older_than_months is not None and self.older_than is not None:
            raise ValueError("older_than_months と older_than は同時に指定できません")
        return self


class ArchiveResponse(BaseModel):
    scope: str
    dry_run: bool
    records_archived: int
    older_than: datetime
    checkpoint_id: str | None = None
    last_record_id: str | None = None
    last_record_hash: str | None = None
    archive_location: str | None = None
    archive_checksum: str | None = None
