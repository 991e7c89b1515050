"""台帳の値オブジェクトテスト"""

from uuid import UUID

import pytest
from pydantic import ValidationError

from src.ledger.types import AuditEventInput, ChainScope, is_critical_action


@pytest.mark.unit
class TestChainScope:
    def test_global_key(self) -> None:
        assert ChainScope.GLOBAL.key == "global"
        assert ChainScope.GLOBAL.is_global

    def test_workspace_key(self) -> None:
        scope = ChainScope.for_workspace("ws-1")
        assert scope.key == "workspace:ws-1"
        assert not scope.is_global

    def test_none_is_global(self) -> None:
        assert ChainScope.for_workspace(None) is ChainScope.GLOBAL

    def test_uuid_normalized(self) -> None:
        scope = ChainScope.for_workspace(UUID("10000000-0000-0000-0000-000000000001"))
        assert scope.workspace_id == "10000000-0000-0000-0000-000000000001"

    def test_from_key_round_trip(self) -> None:
        for scope in (ChainScope.GLOBAL, ChainScope.for_workspace("ws-9")):
            assert ChainScope.from_key(scope.key) == scope

    def test_from_key_invalid(self) -> None:
        with pytest.raises(ValueError):
            ChainScope.from_key("tenant:1")

    def test_hashable(self) -> None:
        assert len({ChainScope.for_workspace("a"), ChainScope.for_workspace("a"), ChainScope.GLOBAL}) == 2


@pytest.mark.unit
class TestAuditEventInput:
    def test_minimal(self) -> None:
        event = AuditEventInput(action="auth.login")
        assert event.scope == ChainScope.GLOBAL
        assert event.details == {}

    def test_uuid_identifiers_lowercased(self) -> None:
        event = AuditEventInput(
            action="document.create",
            actor_user_id="ABCDEF00-0000-0000-0000-000000000001",
            workspace_id=UUID("10000000-0000-0000-0000-000000000001"),
        )
        assert event.actor_user_id == "abcdef00-0000-0000-0000-000000000001"
        assert event.workspace_id == "10000000-0000-0000-0000-000000000001"

    def test_non_uuid_resource_id_kept(self) -> None:
        event = AuditEventInput(action="document.create", resource_id="DOC-42")
        assert event.resource_id == "DOC-42"

    def test_blank_identifier_is_none(self) -> None:
        event = AuditEventInput(action="document.create", workspace_id="  ")
        assert event.workspace_id is None

    @pytest.mark.parametrize("action", ["", "login", "Document.Create", "document.", "a" * 101])
    def test_invalid_action(self, action: str) -> None:
        with pytest.raises(ValidationError):
            AuditEventInput(action=action)


@pytest.mark.unit
class TestCriticalActions:
    @pytest.mark.parametrize(
        "action",
        ["document.create", "auth.login_failed", "api_token.revoked", "ledger.maintenance_started", "search.view_denied"],
    )
    def test_critical(self, action: str) -> None:
        assert is_critical_action(action)

    @pytest.mark.parametrize("action", ["search.query", "ui.page_view"])
    def test_non_critical(self, action: str) -> None:
        assert not is_critical_action(action)
