import copy
import functools
import inspect
import secrets
import time
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from error_logging.classifier import extract_details
from error_logging.context import build_context
from error_logging.logger import ErrorLogger, get_global_error_logger, get_server_error_logger
from schemas.error_log import ErrorContext

SENSITIVE_KEYS = ("password", "token", "secret", "key", "auth")


def create_error_context(context: Optional[Mapping[str, Any]] = None) -> ErrorContext:
    return build_context(context)


def _wrap(fn: Callable, log: Callable):
    if inspect.iscoroutinefunction(fn):
        @functools.wraps(fn)
        async def async_wrapper(*args, **kwargs):
            try:
                return await fn(*args, **kwargs)
            except Exception as e:
                await log(e)
                raise
        return async_wrapper

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            await log(e)
            raise
    return wrapper


def with_error_logging(fn: Callable, context: Optional[Mapping[str, Any]] = None):
    """예외를 전역 로거에 기록한 뒤 다시 던지는 async 래퍼"""
    async def log(error):
        await get_global_error_logger().log_error(error, context)
    return _wrap(fn, log)


def with_server_error_logging(fn: Callable, context: Optional[Mapping[str, Any]] = None):
    async def log(error):
        async with get_server_error_logger() as error_logger:
            await error_logger.log_server_error(error, context)
    return _wrap(fn, log)


class ErrorWrapper:
    def __init__(self, error_logger: ErrorLogger, context: Optional[Mapping[str, Any]] = None):
        self.error_logger = error_logger
        self.context = context

    def wrap(self, fn: Callable):
        async def log(error):
            await self.error_logger.log_error(error, self.context)
        return _wrap(fn, log)

    def wrap_sync(self, fn: Callable):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except Exception as e:
                self.error_logger.log_error_nowait(e, self.context)
                raise
        return wrapper


def create_error_wrapper(error_logger: ErrorLogger, context: Optional[Mapping[str, Any]] = None) -> ErrorWrapper:
    return ErrorWrapper(error_logger, context)


def format_error_for_logging(error: Any) -> Dict[str, Any]:
    details = extract_details(error)
    formatted = {"message": details.message, "metadata": dict(details.metadata or {})}
    if details.stack is not None:
        formatted["stack"] = details.stack
    if details.name is not None:
        formatted["name"] = details.name
    if details.cause is not None:
        formatted["metadata"]["cause"] = details.cause
    return formatted


def _is_sensitive(key: Any) -> bool:
    lowered = str(key).lower()
    return any(s in lowered for s in SENSITIVE_KEYS)


def _scrub(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _scrub(v) for k, v in value.items() if not _is_sensitive(k)}
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    return value


def sanitize_error_for_logging(error: Any) -> Any:
    """민감한 키(password, token 등)를 제거한 사본 반환"""
    if isinstance(error, BaseException):
        attached = getattr(error, "metadata", None)
        if not isinstance(attached, Mapping):
            return error
        sanitized = copy.copy(error)
        sanitized.metadata = _scrub(attached)
        return sanitized
    if isinstance(error, (Mapping, list)):
        return _scrub(error)
    return error


def create_error_id() -> str:
    return f"error_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def _field(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def _value(v: Any) -> Any:
    return getattr(v, "value", v)


def group_errors_by_category(errors: Iterable[Any]) -> Dict[str, Dict[str, Any]]:
    grouped: Dict[str, Dict[str, Any]] = {}
    for error in errors:
        category = _value(_field(error, "category"))
        severity = _value(_field(error, "severity"))
        bucket = grouped.setdefault(category, {"total": 0, "by_severity": {}})
        bucket["total"] += 1
        bucket["by_severity"][severity] = bucket["by_severity"].get(severity, 0) + 1
    return grouped


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def get_error_stats(errors: Iterable[Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    errors = list(errors)
    now = now or datetime.now(timezone.utc)
    last_24_hours = now - timedelta(hours=24)
    last_7_days = now - timedelta(days=7)
    created = [_as_datetime(_field(e, "created_at")) for e in errors]
    by_severity: Dict[str, int] = {}
    for e in errors:
        severity = _value(_field(e, "severity"))
        by_severity[severity] = by_severity.get(severity, 0) + 1
    return {
        "total": len(errors),
        "resolved": sum(1 for e in errors if _field(e, "resolved")),
        "unresolved": sum(1 for e in errors if not _field(e, "resolved")),
        "last_24_hours": sum(1 for c in created if c is not None and c > last_24_hours),
        "last_7_days": sum(1 for c in created if c is not None and c > last_7_days),
        "by_severity": by_severity,
    }
