"""
Error context builder.

Every logged error carries an ErrorContext. The builder always stamps the
current time and the runtime environment, and fills in request metadata
(url, method, user agent, client ip, request id) when the call happens
inside an HTTP request that RequestContextMiddleware has recorded.
"""
import contextvars
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from core import config
from schemas.error_log import ErrorContext


@dataclass(frozen=True)
class RequestInfo:
    url: Optional[str] = None
    method: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    request_id: Optional[str] = None
    referer: Optional[str] = None


request_context: contextvars.ContextVar[Optional[RequestInfo]] = contextvars.ContextVar(
    "error_logging_request", default=None
)


def current_request_info() -> Optional[RequestInfo]:
    return request_context.get()


def get_environment() -> str:
    return config.APP_ENV or "development"


def get_app_version() -> Optional[str]:
    return config.APP_VERSION


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_dict(partial: Any) -> Dict[str, Any]:
    if partial is None:
        return {}
    if isinstance(partial, ErrorContext):
        partial = partial.model_dump()
    if not isinstance(partial, Mapping):
        return {}
    # None 값은 생략한 것으로 취급
    return {k: v for k, v in partial.items() if v is not None}


def build_context(
    partial: Optional[Mapping[str, Any]] = None,
    *,
    environment: Optional[str] = None,
    version: Optional[str] = None,
) -> ErrorContext:
    """Assemble an ErrorContext; fields in ``partial`` win over computed ones."""
    base: Dict[str, Any] = {
        "timestamp": now_iso(),
        "environment": environment or get_environment(),
        "version": version if version is not None else get_app_version(),
    }
    info = current_request_info()
    if info is not None:
        base.update({
            "url": info.url,
            "method": info.method,
            "user_agent": info.user_agent,
            "ip_address": info.ip_address,
            "request_id": info.request_id,
        })
    merged = {**base, **_as_dict(partial)}
    return ErrorContext(**merged)
