"""ヘルスチェック — 依存サービスの状態確認"""

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger
from sqlalchemy import text

from src.config.constants import ShippingStatus


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus
    details: dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0.0


@dataclass
class SystemHealth:
    status: HealthStatus
    components: list[ComponentHealth]
    version: str = ""
    cloudwatch_audit_status: str = ShippingStatus.DISABLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "version": self.version,
            "cloudwatch_audit_status": self.cloudwatch_audit_status,
            "components": [
                {
                    "name": c.name,
                    "status": c.status,
                    "latency_ms": round(c.latency_ms, 2),
                    "details": c.details,
                }
                for c in self.components
            ],
        }


class HealthChecker:
    """依存サービスのヘルスチェックを実行"""

    async def check_database(self, engine: Any) -> ComponentHealth:
        """DB接続チェック"""
        start = time.monotonic()
        name = engine.dialect.name
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            latency = (time.monotonic() - start) * 1000
            return ComponentHealth(
                name=name,
                status=HealthStatus.HEALTHY,
                latency_ms=latency,
                details={"pool": engine.pool.status()},
            )
        except Exception as e:
            latency = (time.monotonic() - start) * 1000
            logger.error("DB ヘルスチェック失敗", error=str(e))
            return ComponentHealth(
                name=name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=latency,
                details={"error": str(e)},
            )

    def check_log_shipping(self, dispatcher: Any) -> ComponentHealth:
        """外部ログ転送の状態（転送停止は台帳の可用性に影響しないため DEGRADED 止まり）"""
        shipping_status = dispatcher.status
        health = HealthStatus.DEGRADED if shipping_status == ShippingStatus.DEGRADED else HealthStatus.HEALTHY
        return ComponentHealth(
            name="cloudwatch_audit",
            status=health,
            details={"status": shipping_status},
        )

    async def check_all(
        self,
        engine: Any | None = None,
        dispatcher: Any | None = None,
    ) -> SystemHealth:
        """全依存サービスのヘルスチェック"""
        from src import __version__

        components: list[ComponentHealth] = []

        if engine is not None:
            components.append(await self.check_database(engine))
        shipping_status = ShippingStatus.DISABLED
        if dispatcher is not None:
            shipping = self.check_log_shipping(dispatcher)
            shipping_status = shipping.details["status"]
            components.append(shipping)

        # 総合ステータス判定
        if any(c.status == HealthStatus.UNHEALTHY for c in components):
            overall = HealthStatus.UNHEALTHY
        elif any(c.status == HealthStatus.DEGRADED for c in components):
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.HEALTHY

        return SystemHealth(
            status=overall,
            components=components,
            version=__version__,
            cloudwatch_audit_status=shipping_status,
        )
