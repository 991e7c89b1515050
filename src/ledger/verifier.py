"""チェーン検証

スコープごとに (created_at, id) 順でレコードを走査し、
前方リンクとレコードハッシュを検証する。1レコードにつき最大1件の Finding を返す。
読み取りのみでロックは取らない。
"""

from collections.abc import Iterable, Sequence
from typing import Protocol

from loguru import logger
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.constants import GENESIS_HASH, FindingReason
from src.db.repositories.audit_record import AuditRecordRepository
from src.ledger.errors import translate_db_error
from src.ledger.hashing import recompute_hash
from src.ledger.types import (
    ChainRecord,
    ChainScope,
    ChainWindow,
    CheckpointAnchor,
    Finding,
    VerificationReport,
)
from src.monitoring.metrics import ledger_findings_total, ledger_verifications_total


def _expected_origin(record: ChainRecord, checkpoints: Sequence[CheckpointAnchor]) -> str:
    """先行レコードがない場合に期待される previous_hash"""
    candidates = [c for c in checkpoints if c.last_record_created_at <= record.created_at]
    if not candidates:
        return GENESIS_HASH
    return max(candidates, key=lambda c: c.last_record_created_at).last_record_hash


def _finding(
    record: ChainRecord,
    scope: ChainScope,
    reason: FindingReason,
    expected: str | None,
    actual: str | None,
) -> Finding:
    return Finding(
        record_id=record.id,
        error_message=reason,
        scope=scope.key,
        created_at=record.created_at,
        expected=expected,
        actual=actual,
    )


def verify_window(window: ChainWindow) -> list[Finding]:
    """ウィンドウ内のレコードを検証する（純粋関数）"""
    findings: list[Finding] = []
    known_anchors = {GENESIS_HASH} | {c.last_record_hash for c in window.checkpoints}
    predecessor = window.predecessor

    for record in window.records:
        link_finding: Finding | None = None

        if predecessor is None:
            expected = _expected_origin(record, window.checkpoints)
            if record.previous_hash != expected:
                reason = (
                    FindingReason.PREVIOUS_HASH_MISMATCH
                    if record.previous_hash in known_anchors
                    else FindingReason.CHAIN_ORIGIN_NOT_FOUND
                )
                link_finding = _finding(record, window.scope, reason, expected, record.previous_hash)
        else:
            # 先行レコードの内容改ざんは先行レコード側で報告済みのため、
            # 格納値・再計算値のどちらと一致してもリンクは有効とみなす
            accepted = {predecessor.record_hash, recompute_hash(predecessor)}
            if record.previous_hash not in accepted:
                link_finding = _finding(
                    record,
                    window.scope,
                    FindingReason.PREVIOUS_HASH_MISMATCH,
                    predecessor.record_hash,
                    record.previous_hash,
                )

        if link_finding is not None:
            findings.append(link_finding)
        else:
            recomputed = recompute_hash(record)
            if recomputed != record.record_hash:
                findings.append(
                    _finding(
                        record,
                        window.scope,
                        FindingReason.RECORD_HASH_MISMATCH,
                        recomputed,
                        record.record_hash,
                    )
                )

        predecessor = record

    findings.sort(key=lambda f: (f.created_at, f.record_id))
    return findings


class RecordFetcher(Protocol):
    """検証対象レコードの取得元"""

    async def fetch_window(self, scope: ChainScope, limit: int | None) -> ChainWindow: ...

    async def list_scopes(self) -> list[ChainScope]: ...


class SqlRecordFetcher:
    """DBから検証ウィンドウを取得する"""

    def __init__(self, session: AsyncSession) -> None:
        self._repo = AuditRecordRepository(session)

    async def fetch_window(self, scope: ChainScope, limit: int | None) -> ChainWindow:
        try:
            records, predecessor = await self._repo.fetch_window(scope, limit)
            checkpoints = await self._repo.list_checkpoints(scope)
        except DBAPIError as e:
            raise translate_db_error(e) from e
        return ChainWindow(scope=scope, records=records, predecessor=predecessor, checkpoints=checkpoints)

    async def list_scopes(self) -> list[ChainScope]:
        try:
            return await self._repo.list_scopes()
        except DBAPIError as e:
            raise translate_db_error(e) from e


class InMemoryRecordFetcher:
    """メモリ上のレコードから検証ウィンドウを組み立てる（テスト・オフライン検証用）"""

    def __init__(
        self,
        records: Iterable[ChainRecord] = (),
        checkpoints: Iterable[CheckpointAnchor] = (),
    ) -> None:
        self._records = list(records)
        self._checkpoints = list(checkpoints)

    @staticmethod
    def _scope_of(item: ChainRecord | CheckpointAnchor) -> ChainScope:
        return ChainScope.for_workspace(getattr(item, "workspace_id", None))

    async def fetch_window(self, scope: ChainScope, limit: int | None) -> ChainWindow:
        records = sorted(
            (r for r in self._records if self._scope_of(r) == scope),
            key=lambda r: (r.created_at, r.id),
        )
        predecessor = None
        if limit is not None and len(records) > limit:
            predecessor = records[-limit - 1]
            records = records[-limit:]
        checkpoints = [c for c in self._checkpoints if self._scope_of(c) == scope]
        return ChainWindow(scope=scope, records=records, predecessor=predecessor, checkpoints=checkpoints)

    async def list_scopes(self) -> list[ChainScope]:
        scopes = {self._scope_of(item) for item in [*self._records, *self._checkpoints]}
        return sorted(scopes, key=lambda s: s.key)


class ChainVerifier:
    """スコープ単位のチェーン検証"""

    def __init__(self, fetcher: RecordFetcher) -> None:
        self._fetcher = fetcher

    async def verify(self, scope: ChainScope | None = None, limit: int | None = None) -> list[Finding]:
        report = await self.run(scope=scope, limit=limit)
        return report.findings

    async def run(self, scope: ChainScope | None = None, limit: int | None = None) -> VerificationReport:
        """検証を実行しレポートを返す

        scope 未指定時は全スコープを独立に検証する（limit はスコープごと）。
        """
        if limit is not None and limit < 1:
            raise ValueError("limit must be >= 1")

        scopes = [scope] if scope is not None else await self._fetcher.list_scopes()
        findings: list[Finding] = []
        records_checked = 0

        for target in scopes:
            window = await self._fetcher.fetch_window(target, limit)
            records_checked += len(window.records)
            findings.extend(verify_window(window))

        findings.sort(key=lambda f: (f.created_at, f.record_id))
        for f in findings:
            ledger_findings_total.labels(reason=f.error_message.value).inc()
        ledger_verifications_total.labels(result="findings" if findings else "clean").inc()

        if findings:
            logger.warning(
                "チェーン検証で不整合を検出",
                findings=len(findings),
                records_checked=records_checked,
                scopes=[s.key for s in scopes],
            )
        else:
            logger.info("チェーン検証完了", records_checked=records_checked, scopes=len(scopes))

        return VerificationReport(
            valid=not findings,
            records_checked=records_checked,
            findings=findings,
            scopes_checked=[s.key for s in scopes],
        )
