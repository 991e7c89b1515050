"""ヘルスチェックエンドポイント"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from src import __version__
from src.api.dependencies import get_ledger_service
from src.db.engine import get_engine
from src.ledger.service import AuditLedgerService
from src.monitoring.health import HealthChecker, HealthStatus

router = APIRouter()
_checker = HealthChecker()


@router.get("/health")
async def health_check(service: AuditLedgerService = Depends(get_ledger_service)) -> JSONResponse:
    """基本ヘルスチェック（ログ転送停止は 200 のまま degraded を返す）"""
    result = await _checker.check_all(dispatcher=service.dispatcher)

    status_code = 200 if result.status != HealthStatus.UNHEALTHY else 503

    return JSONResponse(
        status_code=status_code,
        content=result.to_dict(),
    )


@router.get("/health/ready")
async def readiness_check(service: AuditLedgerService = Depends(get_ledger_service)) -> JSONResponse:
    """Readinessプローブ — DB接続を含む"""
    result = await _checker.check_all(engine=get_engine(), dispatcher=service.dispatcher)

    status_code = 200 if result.status != HealthStatus.UNHEALTHY else 503

    return JSONResponse(
        status_code=status_code,
        content=result.to_dict(),
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Livenessプローブ — アプリケーション生存確認"""
    return {"status": "alive", "version": __version__}
