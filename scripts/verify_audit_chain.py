"""監査チェーン検証スクリプト.

使用方法:
    python scripts/verify_audit_chain.py [--workspace-id ID] [--limit N]

終了コード: 0 = 整合、1 = 不整合あり、2 = 実行エラー
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.config.settings import get_settings
from src.db.engine import build_engine
from src.db.session import build_session_factory
from src.ledger.errors import LedgerError
from src.ledger.service import AuditLedgerService
from src.ledger.types import ChainScope, VerificationReport
from src.monitoring.logging import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Verify the audit hash chain")
    parser.add_argument("--workspace-id", default=None, help="Verify a single workspace chain")
    parser.add_argument("--limit", type=int, default=None, help="Newest N records per scope (default: entire chain)")
    return parser


def print_report(report: VerificationReport) -> None:
    for finding in report.findings:
        print(
            f"[INVALID] {finding.created_at.isoformat()} {finding.scope} "
            f"{finding.record_id}: {finding.error_message}"
        )
    status = "VALID" if report.valid else "INVALID"
    print(f"=== {status}: {report.records_checked} records checked, {len(report.findings)} findings ===")


async def main(argv: list[str] | None = None) -> int:
    """メイン実行."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.limit is not None and args.limit < 1:
        parser.error("--limit must be >= 1")
    settings = get_settings()
    setup_logging(level=settings.app_log_level, json_output=settings.is_production)

    engine = build_engine(settings.database_url)
    service = AuditLedgerService(settings=settings)
    scope = ChainScope.for_workspace(args.workspace_id) if args.workspace_id else None

    try:
        async with build_session_factory(engine)() as session:
            report = await service.verify_chain(session, scope=scope, limit=args.limit)
    except LedgerError as e:
        print(f"[ERROR] Verification failed: {e}")
        return 2
    finally:
        await engine.dispose()

    print_report(report)
    return 0 if report.valid else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
