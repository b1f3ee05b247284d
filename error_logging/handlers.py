import functools
import logging
import uuid
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders

from error_logging.context import RequestInfo, request_context
from error_logging.logger import create_server_error_logger
from utils.exceptions import CustomException

logger = logging.getLogger(__name__)

# 같은 예외가 핸들러에서 두 번 기록되지 않도록 표시
LOGGED_ATTR = "__error_logged__"


def request_info_from(request: Request) -> RequestInfo:
    request_id = getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or uuid.uuid4().hex
    return RequestInfo(
        url=str(request.url),
        method=request.method,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
        request_id=request_id,
        referer=request.headers.get("referer"),
    )


class RequestContextMiddleware:
    """요청 메타데이터를 contextvar에 기록하는 ASGI 미들웨어"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        request = Request(scope)
        info = request_info_from(request)
        request.state.request_id = info.request_id
        token = request_context.set(info)

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)["X-Request-ID"] = info.request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            request_context.reset(token)


def _mark_logged(error: BaseException) -> None:
    try:
        setattr(error, LOGGED_ATTR, True)
    except (AttributeError, TypeError):
        pass


def create_server_error_handler():
    async def handle(error: BaseException, request: Optional[Request] = None, url: Optional[str] = None,
                     method: Optional[str] = None, user_id: Optional[str] = None,
                     session_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None):
        context: Dict[str, Any] = {"user_id": user_id, "session_id": session_id}
        extra = {"serverError": True}
        if request is not None:
            info = request_info_from(request)
            context.update({
                "url": url or info.url,
                "method": method or info.method,
                "request_id": info.request_id,
                "ip_address": info.ip_address,
                "user_agent": info.user_agent,
                "user_id": user_id or getattr(request.state, "user_id", None),
            })
            extra.update({"userAgent": info.user_agent, "referer": info.referer})
        else:
            context.update({"url": url, "method": method})
        extra.update(metadata or {})
        context["metadata"] = extra
        try:
            async with create_server_error_logger() as error_logger:
                await error_logger.log_server_error(error, context)
        except Exception as e:
            logger.error(f"Server error logging failed: {e}")
        _mark_logged(error)
    return handle


def _find_request(args, kwargs) -> Optional[Request]:
    for value in list(args) + list(kwargs.values()):
        if isinstance(value, Request):
            return value
    return None


def with_api_error_handler(handler: Callable):
    """라우트 예외를 서버 로거에 기록한 뒤 다시 던짐 (라우트는 Request 인자를 받아야 함)"""
    @functools.wraps(handler)
    async def wrapper(*args, **kwargs):
        try:
            return await handler(*args, **kwargs)
        except Exception as e:
            server_error_handler = create_server_error_handler()
            await server_error_handler(e, request=_find_request(args, kwargs))
            raise
    return wrapper


def register_error_handlers(app: FastAPI) -> None:
    server_error_handler = create_server_error_handler()

    @app.exception_handler(CustomException)
    async def custom_exception_handler(request: Request, exc: CustomException):
        logger.error(f"[{exc.code}] {exc.dev_message or exc.message} | {request.url}")
        if not getattr(exc, LOGGED_ATTR, False):
            await server_error_handler(exc, request=request, metadata={"code": exc.code, "dev_message": exc.dev_message})
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict()
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url}")
        if not getattr(exc, LOGGED_ATTR, False):
            await server_error_handler(exc, request=request)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
