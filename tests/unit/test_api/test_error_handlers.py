"""台帳例外ハンドラーテスト"""

from typing import Any
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from src.config.constants import AuditAction
from src.db.models.audit_record import AuditRecord
from src.ledger.errors import ImmutabilityViolation, StorageError
from src.ledger.types import ChainScope


async def _forge_record() -> None:
    raise ImmutabilityViolation(
        "audit_records is append-only: UPDATE rejected",
        table="audit_records",
        operation="UPDATE",
    )


@pytest.fixture
def forge_route(test_app: Any) -> str:
    path = "/api/v1/forge"
    test_app.add_api_route(path, _forge_record, methods=["POST"])
    return path


async def _violations(session_factory: Any) -> list[AuditRecord]:
    async with session_factory() as session:
        result = await session.execute(
            select(AuditRecord).where(AuditRecord.action == AuditAction.LEDGER_IMMUTABILITY_VIOLATION.value)
        )
        return list(result.scalars().all())


@pytest.mark.unit
class TestImmutabilityViolationHandler:
    async def test_violation_recorded_in_separate_transaction(
        self, client: Any, forge_route: str, session_factory: Any, ledger_service: Any
    ) -> None:
        resp = await client.post(forge_route, headers={"User-Agent": "forger/1.0"})

        assert resp.status_code == 403
        assert resp.json()["error_type"] == "ImmutabilityViolation"

        records = await _violations(session_factory)
        assert len(records) == 1
        assert records[0].workspace_id is None
        assert records[0].resource_type == "audit_records"
        assert records[0].user_agent == "forger/1.0"
        assert records[0].details == {"operation": "UPDATE", "method": "POST", "path": forge_route}

        async with session_factory() as session:
            report = await ledger_service.verify_chain(session, scope=ChainScope.GLOBAL)
        assert report.valid is True
        assert report.records_checked == 1

    async def test_recording_failure_still_forbidden(
        self,
        client: Any,
        forge_route: str,
        session_factory: Any,
        ledger_service: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(ledger_service, "record_violation", AsyncMock(side_effect=StorageError("database is down")))

        resp = await client.post(forge_route)

        assert resp.status_code == 403
        assert await _violations(session_factory) == []

    async def test_other_ledger_errors_not_recorded(
        self, client: Any, test_app: Any, session_factory: Any
    ) -> None:
        async def _unavailable() -> None:
            raise StorageError("database is down")

        test_app.add_api_route("/api/v1/unavailable", _unavailable, methods=["GET"])

        resp = await client.get("/api/v1/unavailable")

        assert resp.status_code == 503
        assert await _violations(session_factory) == []
