from enum import Enum
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, AliasChoices

from core import config


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    DATABASE_ERROR = "database_error"
    AUTHENTICATION_ERROR = "authentication_error"
    VALIDATION_ERROR = "validation_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN_ERROR = "unknown_error"


class ErrorContext(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    url: Optional[str] = None
    method: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    timestamp: str
    environment: str
    version: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ErrorDetails(BaseModel):
    message: str
    stack: Optional[str] = None
    code: Optional[Union[int, str]] = None
    name: Optional[str] = None
    cause: Any = None
    metadata: Optional[Dict[str, Any]] = None


class ErrorLogRecord(BaseModel):
    id: Optional[str] = None
    severity: ErrorSeverity
    category: ErrorCategory
    context: ErrorContext
    details: ErrorDetails
    resolved: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        """error_logs 테이블의 컬럼 구조로 평탄화"""
        ctx = self.context
        details = self.details
        metadata = dict(details.metadata or {})
        if ctx.metadata:
            metadata["context"] = ctx.metadata
        return {
            "severity": self.severity.value,
            "category": self.category.value,
            "message": details.message,
            "stack": details.stack,
            "code": str(details.code) if details.code is not None else None,
            "name": details.name,
            "cause": details.cause,
            "metadata": metadata or None,
            "resolved": self.resolved,
            "url": ctx.url,
            "method": ctx.method,
            "user_id": ctx.user_id,
            "session_id": ctx.session_id,
            "request_id": ctx.request_id,
            "user_agent": ctx.user_agent,
            "ip_address": ctx.ip_address,
            "environment": ctx.environment,
            "version": ctx.version,
            "timestamp": ctx.timestamp,
        }


class ErrorLogRead(BaseModel):
    id: str
    severity: ErrorSeverity
    category: ErrorCategory
    message: str
    stack: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    cause: Any = None
    metadata: Optional[Any] = Field(default=None, validation_alias=AliasChoices("metadata_", "metadata"))
    resolved: bool
    url: Optional[str] = None
    method: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    environment: str
    version: Optional[str] = None
    timestamp: str
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True
    }


class ErrorFilters(BaseModel):
    severity: Optional[List[ErrorSeverity]] = None
    category: Optional[List[ErrorCategory]] = None
    resolved: Optional[bool] = None
    user_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, ge=1)
    offset: Optional[int] = Field(default=None, ge=0)


class ReportingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enable_client_logging: bool = True
    enable_server_logging: bool = True
    enable_console_logging: bool = True
    enable_database_logging: bool = True
    batch_size: int = Field(default_factory=lambda: config.ERROR_LOG_BATCH_SIZE, gt=0)
    # 밀리초 단위
    flush_interval: int = Field(default_factory=lambda: config.ERROR_LOG_FLUSH_INTERVAL_MS, gt=0)
    max_retries: int = Field(default=3, ge=0)
    max_queue_size: int = Field(default_factory=lambda: config.ERROR_LOG_MAX_QUEUE_SIZE, gt=0)
    shutdown_timeout: int = Field(default=5000, gt=0)
    environment: str = Field(default_factory=lambda: config.APP_ENV)
    version: Optional[str] = Field(default_factory=lambda: config.APP_VERSION)


class ClientErrorReport(BaseModel):
    """브라우저 등 클라이언트에서 보고한 에러"""
    message: str = Field(..., max_length=2000)
    name: Optional[str] = Field(None, max_length=255)
    stack: Optional[str] = Field(None, max_length=10000)
    url: Optional[str] = Field(None, max_length=2000)
    user_agent: Optional[str] = Field(None, max_length=500)
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ClientErrorAck(BaseModel):
    status: str
    request_id: Optional[str] = None


class ErrorStats(BaseModel):
    total: int
    resolved: int
    unresolved: int
    last_24_hours: int
    last_7_days: int
    by_severity: Dict[str, int]
    by_category: Dict[str, Dict[str, Any]] = {}
