"""ReadOnlyRepository テスト"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.db.models.audit_record import AuditRecord
from src.db.repositories.base import ReadOnlyRepository


@pytest.fixture
def mock_session() -> AsyncMock:
    session = AsyncMock()
    session.execute = AsyncMock()
    return session


@pytest.fixture
def repo(mock_session: AsyncMock) -> ReadOnlyRepository:
    return ReadOnlyRepository(model=AuditRecord, session=mock_session)


@pytest.mark.unit
class TestReadOnlyRepository:
    """読み取り専用リポジトリのテスト"""

    def test_no_mutation_methods(self, repo: ReadOnlyRepository) -> None:
        for name in ("create", "update", "delete"):
            assert not hasattr(repo, name)

    async def test_get_by_id(self, repo: ReadOnlyRepository, mock_session: AsyncMock) -> None:
        record = MagicMock(spec=AuditRecord)
        result = MagicMock()
        result.scalar_one_or_none.return_value = record
        mock_session.execute.return_value = result

        assert await repo.get_by_id("rec-1") is record
        mock_session.execute.assert_called_once()

    async def test_get_by_id_scoped_to_workspace(self, repo: ReadOnlyRepository, mock_session: AsyncMock) -> None:
        result = MagicMock()
        result.scalar_one_or_none.return_value = None
        mock_session.execute.return_value = result

        assert await repo.get_by_id("rec-1", workspace_id="ws-1") is None
        query = mock_session.execute.call_args.args[0]
        assert "workspace_id" in str(query)

    async def test_list(self, repo: ReadOnlyRepository, mock_session: AsyncMock) -> None:
        scalars = MagicMock()
        scalars.all.return_value = [MagicMock(), MagicMock()]
        result = MagicMock()
        result.scalars.return_value = scalars
        mock_session.execute.return_value = result

        items = await repo.list(workspace_id="ws-1", action="auth.login", limit=2)

        assert len(items) == 2
        query = str(mock_session.execute.call_args.args[0])
        assert "ORDER BY audit_records.created_at DESC" in query

    async def test_count(self, repo: ReadOnlyRepository, mock_session: AsyncMock) -> None:
        result = MagicMock()
        result.scalar_one.return_value = 7
        mock_session.execute.return_value = result

        assert await repo.count(action="auth.login") == 7
