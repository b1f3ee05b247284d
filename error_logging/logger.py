"""
Error logger facade.

Combines the context builder, the classifier and the queue/flusher behind
one object. Logging-path failures (context, classification, inserts) are
never raised to the caller; query and mutation paths (get_errors,
mark_error_resolved) raise so that callers such as the dashboard routes
can react.

One logger per client runtime is shared through get_global_error_logger();
server-side callers get a fresh instance per call from
create_server_error_logger() and close it with ``async with``.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from core.db import utcnow
from error_logging.classifier import categorize, determine_severity, extract_details
from error_logging.context import build_context, current_request_info
from error_logging.queue import BatchFlusher, ErrorQueue
from error_logging.store import ErrorLogStore
from schemas.error_log import (
    ErrorFilters,
    ErrorLogRead,
    ErrorLogRecord,
    ErrorSeverity,
    ReportingConfig,
)
from utils.exceptions import RecordNotFoundError, StoreError

logger = logging.getLogger(__name__)
console = logging.getLogger("error_logging.console")

CONSOLE_LEVELS = {
    ErrorSeverity.CRITICAL: (logging.ERROR, "CRITICAL ERROR"),
    ErrorSeverity.HIGH: (logging.ERROR, "HIGH ERROR"),
    ErrorSeverity.MEDIUM: (logging.WARNING, "MEDIUM ERROR"),
    ErrorSeverity.LOW: (logging.INFO, "LOW ERROR"),
}

ContextArg = Optional[Mapping[str, Any]]


def _make_config(config: Union[ReportingConfig, Mapping[str, Any], None]) -> ReportingConfig:
    if isinstance(config, ReportingConfig):
        return config
    return ReportingConfig(**dict(config or {}))


class ErrorLogger:
    def __init__(self, store=None, config: Union[ReportingConfig, Mapping[str, Any], None] = None,
                 client_side: bool = False):
        self.store = store if store is not None else ErrorLogStore()
        self.config = _make_config(config)
        self.client_side = client_side
        self.queue = ErrorQueue(self.config.batch_size, self.config.max_queue_size)
        self.flusher = BatchFlusher(self.queue, self.store, self.config)
        self._destroyed = False
        if self.config.enable_database_logging:
            self.flusher.start()

    # --- 레코드 생성 ---

    def build_record(self, error: Any, context: ContextArg = None) -> ErrorLogRecord:
        try:
            full_context = build_context(context, environment=self.config.environment, version=self.config.version)
        except Exception as e:
            logger.warning(f"Ignoring invalid error context: {e}")
            full_context = build_context(None, environment=self.config.environment, version=self.config.version)
        return ErrorLogRecord(
            severity=determine_severity(error),
            category=categorize(error, client_side=self.client_side),
            context=full_context,
            details=extract_details(error),
            resolved=False,
        )

    def _log_to_console(self, record: ErrorLogRecord) -> None:
        if not self.config.enable_console_logging:
            return
        level, label = CONSOLE_LEVELS[record.severity]
        console.log(
            level,
            f"{label}: [{record.category.value}] {record.details.message}",
            extra={"error_log": record.model_dump(mode="json")},
        )

    def _record(self, error: Any, context: ContextArg) -> Tuple[ErrorLogRecord, bool]:
        record = self.build_record(error, context)
        self._log_to_console(record)
        if not self.config.enable_database_logging:
            return record, False
        if not self._destroyed:
            self.flusher.start()
        return record, self.queue.enqueue(record)

    # --- 공개 API ---

    async def log_error(self, error: Any, context: ContextArg = None) -> ErrorLogRecord:
        record, should_flush = self._record(error, context)
        if should_flush:
            await self.flusher.flush()
        return record

    def log_error_nowait(self, error: Any, context: ContextArg = None) -> ErrorLogRecord:
        """동기 호출용: batch 도달 시 flush를 태스크로 예약"""
        record, should_flush = self._record(error, context)
        if should_flush:
            self.flusher.schedule_flush()
        return record

    async def log_client_error(self, error: Any, context: ContextArg = None) -> Optional[ErrorLogRecord]:
        if not self.config.enable_client_logging:
            return None
        client_context: Dict[str, Any] = dict(context or {})
        info = current_request_info()
        if info is not None:
            page_url = info.referer or info.url
            if page_url and not client_context.get("url"):
                client_context["url"] = page_url
            if info.user_agent and not client_context.get("user_agent"):
                client_context["user_agent"] = info.user_agent
        return await self.log_error(error, client_context)

    async def log_server_error(self, error: Any, context: ContextArg = None) -> Optional[ErrorLogRecord]:
        if not self.config.enable_server_logging:
            return None
        server_context = {**dict(context or {}), "environment": self.config.environment}
        return await self.log_error(error, server_context)

    async def mark_error_resolved(self, error_id: str) -> None:
        try:
            updated = await self.store.update_row(error_id, {"resolved": True, "updated_at": utcnow()})
        except StoreError as e:
            logger.error(f"Failed to mark error as resolved: {e}")
            raise
        if not updated:
            logger.error(f"Failed to mark error {error_id} as resolved: no matching record")
            raise RecordNotFoundError(f"Failed to mark error {error_id} as resolved: no matching record")

    async def get_errors(self, filters: Union[ErrorFilters, Mapping[str, Any], None] = None) -> List[ErrorLogRead]:
        if filters is not None and not isinstance(filters, ErrorFilters):
            filters = ErrorFilters(**dict(filters))
        try:
            rows = await self.store.query_rows(filters)
        except StoreError as e:
            logger.error(f"Failed to fetch errors: {e}")
            raise
        return [ErrorLogRead.model_validate(row) for row in rows]

    async def flush(self) -> int:
        return await self.flusher.flush()

    def destroy(self) -> None:
        """타이머를 멈추고 마지막 flush를 기다리지 않고 예약 (종료 시 유실 가능)"""
        self._destroyed = True
        self.flusher.destroy()

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """타이머를 멈추고 큐를 비울 때까지 대기 (timeout 초 제한)"""
        self._destroyed = True
        await self.flusher.shutdown(timeout)

    async def __aenter__(self) -> "ErrorLogger":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()


# --- 팩토리 ---

def create_error_logger(config=None, store=None) -> ErrorLogger:
    return ErrorLogger(store, config, client_side=True)


def create_server_error_logger(config=None, store=None) -> ErrorLogger:
    return ErrorLogger(store, config, client_side=False)


# 클라이언트 런타임 전역 인스턴스 (최초 접근 시 생성)
_global_error_logger: Optional[ErrorLogger] = None


def get_global_error_logger() -> ErrorLogger:
    global _global_error_logger
    if _global_error_logger is None:
        _global_error_logger = create_error_logger()
    return _global_error_logger


def get_server_error_logger(config=None) -> ErrorLogger:
    return create_server_error_logger(config)
