"""監査ログアーカイブスクリプト（定期ジョブ）.

保持期間を超えたレコードをS3にエクスポートし、チェックポイントを残して削除する。

使用方法:
    python scripts/archive_audit_logs.py [--dry-run] [--months 12] [--workspace-id ID] [--skip-export]
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger

from src.config.constants import SCHEDULED_JOB_ACTOR
from src.config.settings import get_settings
from src.db.engine import build_engine
from src.db.session import build_session_factory
from src.ledger.service import AuditLedgerService
from src.ledger.types import ArchiveResult, ChainScope
from src.monitoring.logging import setup_logging
from src.storage.s3 import S3ArchiveExporter


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Archive audit records past the retention period")
    parser.add_argument("--dry-run", action="store_true", help="Report what would be archived without writing")
    parser.add_argument("--months", type=int, default=None, help="Retention period in months")
    parser.add_argument("--workspace-id", default=None, help="Archive a single workspace chain")
    parser.add_argument("--skip-export", action="store_true", help="Do not export to S3 before deleting")
    return parser


def cutoff_for(months: int, now: datetime | None = None) -> datetime:
    """保持期間（月）からカットオフ日時を求める（1ヶ月 = 30日）."""
    return (now or datetime.now(UTC)) - timedelta(days=30 * months)


def print_result(result: ArchiveResult) -> None:
    mode = "DRY-RUN" if result.dry_run else "OK"
    print(
        f"[{mode}] scope={result.scope.key} archived={result.records_archived} "
        f"checkpoint={result.checkpoint_id or '-'} location={result.archive_location or '-'}"
    )


async def main(argv: list[str] | None = None) -> int:
    """メイン実行."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(level=settings.app_log_level, json_output=settings.is_production)

    months = args.months or settings.ledger_retention_months
    older_than = cutoff_for(months)

    exporter = None
    if not args.skip_export and not args.dry_run:
        if not settings.s3_bucket_audit_archive:
            print("[ERROR] S3_BUCKET_AUDIT_ARCHIVE is not set (use --skip-export to archive without export)")
            return 2
        exporter = S3ArchiveExporter()

    engine = build_engine(settings.database_url)
    service = AuditLedgerService(settings=settings, exporter=exporter)
    session_factory = build_session_factory(engine)

    try:
        print(f"=== Audit Log Archival (older than {older_than.isoformat()}) ===")
        async with session_factory() as session:
            if args.workspace_id:
                results = [
                    await service.archive(
                        session,
                        ChainScope.for_workspace(args.workspace_id),
                        older_than,
                        archived_by=SCHEDULED_JOB_ACTOR,
                        dry_run=args.dry_run,
                    )
                ]
            else:
                results = await service.archive_all(
                    session,
                    older_than,
                    archived_by=SCHEDULED_JOB_ACTOR,
                    dry_run=args.dry_run,
                )
        for result in results:
            print_result(result)
        print(f"=== Archived {sum(r.records_archived for r in results)} records ===")
        return 0
    except Exception as e:
        logger.exception("アーカイブジョブ失敗")
        print(f"[ERROR] Archival failed: {e}")
        return 1
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
