"""audit-ledger データベース初期化スクリプト.

台帳テーブルの作成と不変性トリガー（PostgreSQL・SQLite）の設定を行う。

使用方法:
    python -m infrastructure.scripts.init_db
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# プロジェクトルートをパスに追加
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from sqlalchemy.ext.asyncio import AsyncEngine

from src.config.settings import get_settings
from src.db import models  # noqa: F401  モデル登録
from src.db.base import Base
from src.db.engine import build_engine


async def init_schema(engine: AsyncEngine) -> None:
    """テーブル作成（不変性トリガーも同時に作成される）."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"[OK] Tables created: {', '.join(sorted(Base.metadata.tables))}")
    if engine.dialect.name == "postgresql":
        print("[OK] Immutability triggers installed on audit_records, archive_checkpoints")
    elif engine.dialect.name == "sqlite":
        print("[OK] Immutability triggers installed: UPDATE on audit_records, UPDATE/DELETE on archive_checkpoints")
        print("[INFO] audit_records DELETE is guarded by the ORM layer only on sqlite")
    else:
        print(f"[SKIP] No storage triggers for {engine.dialect.name}; ORM guard only")


async def main() -> None:
    """メイン実行."""
    settings = get_settings()
    engine = build_engine(settings.database_url, echo=True)

    try:
        print("=== audit-ledger Database Initialization ===")
        await init_schema(engine)
        print("=== Initialization Complete ===")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
