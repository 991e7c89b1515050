"""外部ログ転送（CloudWatch Logs）

コミット済みレコードを読み取り専用で転送する。転送失敗は記録・握りつぶし、
台帳の書き込みや検証には一切影響させない。
"""

import asyncio
import time
from collections.abc import Sequence
from typing import Any, Protocol

import boto3
import orjson
from loguru import logger

from src.config.constants import ShippingStatus
from src.config.settings import Settings, get_settings
from src.db.models.audit_record import AuditRecord
from src.monitoring.metrics import shipping_events_total


class CircuitBreaker:
    """シンプルなサーキットブレーカー

    連続失敗が閾値を超えるとオープン状態になり、
    クールダウン期間中は転送をスキップする。
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        self._failure_count = 0
        self._last_failure_time: float = 0.0
        self._is_open = False

    @property
    def is_open(self) -> bool:
        """サーキットがオープン（遮断中）かどうか"""
        if not self._is_open:
            return False
        # クールダウン経過でハーフオープンに遷移
        if time.monotonic() - self._last_failure_time >= self._cooldown_seconds:
            self._is_open = False
            self._failure_count = 0
            return False
        return True

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    def record_success(self) -> None:
        self._failure_count = 0
        self._is_open = False

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()
        if self._failure_count >= self._failure_threshold:
            self._is_open = True


class LogShipper(Protocol):
    name: str

    async def ship(self, records: Sequence[AuditRecord]) -> None: ...


class NullShipper:
    """転送先未設定時のシッパー"""

    name = "null"

    async def ship(self, records: Sequence[AuditRecord]) -> None:
        return None


class CloudWatchShipper:
    """CloudWatch Logs への転送"""

    name = "cloudwatch"

    def __init__(self, log_group: str, log_stream: str, client: Any | None = None) -> None:
        settings = get_settings()
        self._client = client or boto3.client(
            "logs",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id or None,
            aws_secret_access_key=settings.aws_secret_access_key or None,
        )
        self._log_group = log_group
        self._log_stream = log_stream
        self._stream_ready = False

    def _ensure_stream(self) -> None:
        if self._stream_ready:
            return
        try:
            self._client.create_log_stream(logGroupName=self._log_group, logStreamName=self._log_stream)
        except self._client.exceptions.ResourceAlreadyExistsException:
            pass
        self._stream_ready = True

    @staticmethod
    def to_log_event(record: AuditRecord) -> dict[str, Any]:
        return {
            "timestamp": int(record.created_at.timestamp() * 1000),
            "message": orjson.dumps(record.to_dict()).decode(),
        }

    def _put_events(self, events: list[dict[str, Any]]) -> None:
        self._ensure_stream()
        self._client.put_log_events(
            logGroupName=self._log_group,
            logStreamName=self._log_stream,
            logEvents=events,
        )

    async def ship(self, records: Sequence[AuditRecord]) -> None:
        if not records:
            return
        events = sorted((self.to_log_event(r) for r in records), key=lambda e: e["timestamp"])
        # boto3 は同期I/Oのためイベントループ外で実行
        await asyncio.to_thread(self._put_events, events)


class ShippingDispatcher:
    """シッパーをサーキットブレーカーで保護し、例外を外に漏らさない"""

    def __init__(self, shipper: LogShipper, breaker: CircuitBreaker | None = None) -> None:
        self._shipper = shipper
        self._breaker = breaker or CircuitBreaker()

    @property
    def enabled(self) -> bool:
        return not isinstance(self._shipper, NullShipper)

    @property
    def status(self) -> ShippingStatus:
        if not self.enabled:
            return ShippingStatus.DISABLED
        if self._breaker.is_open:
            return ShippingStatus.DEGRADED
        return ShippingStatus.ENABLED

    async def ship(self, records: Sequence[AuditRecord]) -> bool:
        """転送を試み、成功したかを返す"""
        if not self.enabled or not records:
            return False
        if self._breaker.is_open:
            shipping_events_total.labels(status="skipped").inc(len(records))
            logger.debug("ログ転送スキップ（サーキットオープン）", records=len(records))
            return False
        try:
            await self._shipper.ship(records)
        except Exception as e:
            self._breaker.record_failure()
            shipping_events_total.labels(status="failed").inc(len(records))
            logger.warning(
                "ログ転送失敗 ({}/{}): {}",
                self._breaker.failure_count,
                self._breaker.failure_threshold,
                str(e),
            )
            return False
        self._breaker.record_success()
        shipping_events_total.labels(status="shipped").inc(len(records))
        return True


def build_dispatcher(settings: Settings | None = None) -> ShippingDispatcher:
    """設定に応じたディスパッチャーを返す"""
    settings = settings or get_settings()
    shipper: LogShipper
    if settings.shipping_enabled:
        shipper = CloudWatchShipper(
            log_group=settings.cloudwatch_audit_log_group,
            log_stream=settings.cloudwatch_audit_log_stream,
        )
    else:
        shipper = NullShipper()
    return ShippingDispatcher(
        shipper,
        CircuitBreaker(
            failure_threshold=settings.shipping_failure_threshold,
            cooldown_seconds=settings.shipping_cooldown_seconds,
        ),
    )
