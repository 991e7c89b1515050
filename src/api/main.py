"""FastAPI メインアプリケーション"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from src import __version__
from src.api.dependencies import get_db_session, get_ledger_service
from src.api.middleware.correlation import CorrelationIdMiddleware
from src.api.routes import audit_logs, health
from src.config.settings import get_settings
from src.ledger.errors import (
    ArchivalInconsistency,
    ImmutabilityViolation,
    LedgerError,
    StorageError,
    WriteConflict,
)
from src.ledger.guard import install_immutability_guard
from src.monitoring.logging import setup_logging
from src.monitoring.metrics import app_info

# 台帳例外 → HTTPステータス
_ERROR_STATUS: dict[type[LedgerError], int] = {
    WriteConflict: status.HTTP_409_CONFLICT,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ArchivalInconsistency: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ImmutabilityViolation: status.HTTP_403_FORBIDDEN,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """アプリケーションライフサイクル管理"""
    settings = get_settings()

    setup_logging(
        level=settings.app_log_level,
        json_output=settings.is_production,
        log_dir=settings.app_log_dir or None,
    )
    install_immutability_guard()

    logger.info(
        "audit-ledger 起動",
        version=__version__,
        env=settings.app_env,
    )

    app_info.info(
        {
            "version": __version__,
            "environment": settings.app_env,
        }
    )

    yield

    logger.info("audit-ledger シャットダウン")


async def ledger_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """台帳例外をHTTPレスポンスに変換"""
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    logger.warning(
        "台帳エラー: {} {} -> {}",
        request.method,
        request.url.path,
        status_code,
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


async def immutability_violation_handler(request: Request, exc: Exception) -> JSONResponse:
    """台帳変更の拒否を別トランザクションで記録してから 403 を返す"""
    if isinstance(exc, ImmutabilityViolation):
        await _record_violation(request, exc)
    return await ledger_error_handler(request, exc)


async def _record_violation(request: Request, exc: ImmutabilityViolation) -> None:
    overrides = request.app.dependency_overrides
    session_provider = overrides.get(get_db_session, get_db_session)
    service = overrides.get(get_ledger_service, get_ledger_service)()
    try:
        async with asynccontextmanager(session_provider)() as session:
            await service.record_violation(
                session,
                exc,
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
                details={"method": request.method, "path": request.url.path},
            )
    except (LedgerError, SQLAlchemyError) as e:
        # 記録に失敗しても 403 は返す
        logger.error(
            "台帳変更拒否の記録失敗",
            table=exc.table,
            operation=exc.operation,
            error=str(e),
        )


def create_app() -> FastAPI:
    """FastAPIアプリケーションファクトリ"""
    settings = get_settings()

    app = FastAPI(
        title="audit-ledger API",
        description="改ざん検知可能な監査ハッシュチェーン",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # ── ミドルウェア ──────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    # ── 例外ハンドラー ────────────────────────────────
    for error_type in _ERROR_STATUS:
        if error_type is ImmutabilityViolation:
            app.add_exception_handler(error_type, immutability_violation_handler)
        else:
            app.add_exception_handler(error_type, ledger_error_handler)

    # ── ルーター ──────────────────────────────────────
    api_prefix = "/api/v1"
    app.include_router(health.router, prefix=api_prefix, tags=["health"])
    app.include_router(audit_logs.router, prefix=f"{api_prefix}/audit-logs", tags=["audit-logs"])

    # ── Prometheusメトリクス ──────────────────────────
    if settings.prometheus_enabled:
        app.mount("/metrics", make_asgi_app())

    return app


app = create_app()


def run() -> None:
    """開発サーバー起動"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.api.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_development,
        log_level=settings.app_log_level.lower(),
    )
