from fastapi import FastAPI, HTTPException, Depends, Request, UploadFile, File, Query, Response
from fastapi.responses import JSONResponse, RedirectResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from core.config import APP_ENV
from core.db import get_db, init_engine, init_models
from constants import APP_NAME
from models.user_profile import UserProfile
from profile_registry import ProfileRegistry
from auth_service import AuthService, MagicLinkSender, LoggingMagicLinkSender, safe_redirect
from avatar_storage import AvatarService, LocalObjectStorage
from api.auth import ACCESS_TOKEN_COOKIE, get_current_user
from schemas.auth import MagicLinkRequest, MagicLinkSent
from schemas.avatar import AvatarUploadResult
from schemas.error_log import (
    ClientErrorAck,
    ClientErrorReport,
    ErrorCategory,
    ErrorFilters,
    ErrorLogRead,
    ErrorSeverity,
    ErrorStats,
)
from schemas.user_profile import EmailExists, UserProfileRead, UserProfileUpdate
from error_logging.classifier import ReportedError
from error_logging.global_handlers import install_global_handlers
from error_logging.handlers import RequestContextMiddleware, register_error_handlers, with_api_error_handler
from error_logging.logger import ErrorLogger, get_global_error_logger
from error_logging.utils import get_error_stats, group_errors_by_category
from utils.exceptions import DatabaseError, RecordNotFoundError
import csv
import logging
from io import StringIO

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "id", "severity", "category", "message", "name", "code", "url", "method",
    "user_id", "request_id", "environment", "version", "resolved", "timestamp", "created_at",
]


def create_app(error_logger: Optional[ErrorLogger] = None,
               storage: Optional[LocalObjectStorage] = None,
               magic_link_sender: Optional[MagicLinkSender] = None) -> FastAPI:
    app = FastAPI(title=APP_NAME, description="Error reporting, user profiles and magic-link sign-in")

    # DI: 프로세스 공유 인스턴스는 app.state로 주입
    app.state.error_logger = error_logger or get_global_error_logger()
    app.state.storage = storage or LocalObjectStorage()
    app.state.magic_link_sender = magic_link_sender or LoggingMagicLinkSender()
    app.state.uninstall_global_handlers = None

    app.add_middleware(RequestContextMiddleware)
    register_error_handlers(app)
    app.mount("/storage", StaticFiles(directory=app.state.storage.root, check_dir=False), name="storage")

    @app.on_event("startup")
    async def on_startup():
        init_engine()
        await init_models()
        app.state.uninstall_global_handlers = install_global_handlers(app.state.error_logger)
        logger.info(f"{APP_NAME} started ({APP_ENV})")

    @app.on_event("shutdown")
    async def on_shutdown():
        if app.state.uninstall_global_handlers is not None:
            app.state.uninstall_global_handlers()
        # 남은 에러 로그를 제한 시간 안에 저장
        await app.state.error_logger.shutdown()

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError):
        status_code = 404 if exc.code == "not_found" else 400
        return JSONResponse(status_code=status_code, content={"error": exc.message, **exc.to_dict()})

    # DI
    def get_error_logger(request: Request) -> ErrorLogger:
        return request.app.state.error_logger

    async def get_profile_registry(db: AsyncSession = Depends(get_db)):
        return ProfileRegistry(db)

    async def get_auth_service(request: Request, db: AsyncSession = Depends(get_db)):
        return AuthService(db, sender=request.app.state.magic_link_sender)

    async def get_avatar_service(request: Request, db: AsyncSession = Depends(get_db)):
        return AvatarService(request.app.state.storage, ProfileRegistry(db))

    def require_owner(profile_id: str, current_user: UserProfile):
        if current_user.id != profile_id:
            raise HTTPException(status_code=403, detail="Not allowed to modify another user's profile")

    def error_filters(
        severity: Optional[List[ErrorSeverity]] = Query(None),
        category: Optional[List[ErrorCategory]] = Query(None),
        resolved: Optional[bool] = None,
        user_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> ErrorFilters:
        return ErrorFilters(severity=severity, category=category, resolved=resolved, user_id=user_id,
                            date_from=date_from, date_to=date_to)

    # DB 연결 상태 확인 엔드포인트
    @app.get("/health/db")
    async def health_check(db: AsyncSession = Depends(get_db)):
        try:
            await db.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as e:
            return {"status": "error", "detail": str(e)}

    # --- 에러 리포팅 ---

    @app.post("/api/client-logs", response_model=ClientErrorAck, status_code=202)
    async def report_client_error(report: ClientErrorReport, request: Request,
                                  error_logger: ErrorLogger = Depends(get_error_logger)):
        error = ReportedError(report.message, name=report.name, stack=report.stack, metadata=report.metadata)
        context = {
            "url": report.url,
            "user_agent": report.user_agent,
            "user_id": report.user_id,
            "session_id": report.session_id,
            "metadata": {"source": "client"},
        }
        record = await error_logger.log_client_error(error, context)
        return ClientErrorAck(status="logged" if record is not None else "ignored",
                              request_id=getattr(request.state, "request_id", None))

    @app.get("/api/logs/errors", response_model=List[ErrorLogRead])
    async def get_error_logs(
        filters: ErrorFilters = Depends(error_filters),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        error_logger: ErrorLogger = Depends(get_error_logger),
    ):
        return await error_logger.get_errors(filters.model_copy(update={"limit": limit, "offset": offset}))

    @app.get("/api/logs/errors/download")
    async def download_error_logs(
        filters: ErrorFilters = Depends(error_filters),
        error_logger: ErrorLogger = Depends(get_error_logger),
    ):
        logs = await error_logger.get_errors(filters)
        # CSV 변환
        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(CSV_COLUMNS)
        for log in logs:
            row = log.model_dump(mode="json")
            writer.writerow([row[c] for c in CSV_COLUMNS])
        output.seek(0)
        return StreamingResponse(output, media_type="text/csv",
                                 headers={"Content-Disposition": "attachment; filename=error_logs.csv"})

    @app.get("/api/logs/errors/stats", response_model=ErrorStats)
    async def error_log_stats(
        filters: ErrorFilters = Depends(error_filters),
        error_logger: ErrorLogger = Depends(get_error_logger),
    ):
        logs = await error_logger.get_errors(filters)
        stats = get_error_stats(logs)
        stats["by_category"] = group_errors_by_category(logs)
        return stats

    @app.patch("/api/logs/errors/{error_id}/resolve")
    async def resolve_error_log(error_id: str, error_logger: ErrorLogger = Depends(get_error_logger)):
        try:
            await error_logger.mark_error_resolved(error_id)
        except RecordNotFoundError:
            raise HTTPException(status_code=404, detail="Error log not found")
        return {"id": error_id, "resolved": True}

    @app.get("/api/test-error")
    @with_api_error_handler
    async def test_error(request: Request, fail: bool = False):
        if fail:
            raise RuntimeError("Simulated API error for testing error logging")
        return {
            "message": "API route working correctly",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # --- 사용자 프로필 ---

    @app.get("/api/user_profiles", response_model=List[UserProfileRead])
    async def list_user_profiles(
        limit: Optional[int] = Query(None, ge=1, le=500),
        offset: Optional[int] = Query(None, ge=0),
        registry: ProfileRegistry = Depends(get_profile_registry),
    ):
        return await registry.list_profiles(limit=limit, offset=offset)

    @app.get("/api/user_profiles/exists", response_model=EmailExists)
    async def user_profile_email_exists(email: str, auth: AuthService = Depends(get_auth_service)):
        return EmailExists(email=email, exists=await auth.check_email_exists(email))

    @app.get("/api/user_profiles/{profile_id}", response_model=UserProfileRead)
    async def get_user_profile(profile_id: str, registry: ProfileRegistry = Depends(get_profile_registry)):
        profile = await registry.get_profile(profile_id)
        if not profile:
            raise HTTPException(status_code=404, detail="User profile not found")
        return profile

    @app.patch("/api/user_profiles/{profile_id}", response_model=UserProfileRead)
    async def update_user_profile(
        profile_id: str,
        updates: UserProfileUpdate,
        current_user: UserProfile = Depends(get_current_user),
        auth: AuthService = Depends(get_auth_service),
    ):
        require_owner(profile_id, current_user)
        return await auth.update_user_profile(profile_id, updates.model_dump(exclude_unset=True))

    @app.delete("/api/user_profiles/{profile_id}", status_code=204)
    async def delete_user_profile(
        profile_id: str,
        soft: bool = True,
        current_user: UserProfile = Depends(get_current_user),
        registry: ProfileRegistry = Depends(get_profile_registry),
    ):
        require_owner(profile_id, current_user)
        await registry.delete_profile(profile_id, soft=soft)
        return Response(status_code=204)

    @app.get("/users/me", response_model=UserProfileRead)
    async def read_users_me(current_user: UserProfile = Depends(get_current_user)):
        return current_user

    @app.patch("/users/me", response_model=UserProfileRead)
    async def update_users_me(
        updates: UserProfileUpdate,
        current_user: UserProfile = Depends(get_current_user),
        auth: AuthService = Depends(get_auth_service),
    ):
        return await auth.update_user_profile(current_user.id, updates.model_dump(exclude_unset=True))

    # --- 아바타 ---

    @app.post("/api/user_profiles/{profile_id}/avatar", response_model=AvatarUploadResult)
    async def upload_avatar(
        profile_id: str,
        file: Optional[UploadFile] = File(None),
        current_user: UserProfile = Depends(get_current_user),
        avatars: AvatarService = Depends(get_avatar_service),
    ):
        return await avatars.upload_user_avatar(profile_id, file, current_user.id)

    @app.put("/api/user_profiles/{profile_id}/avatar", response_model=AvatarUploadResult)
    async def replace_avatar(
        profile_id: str,
        file: Optional[UploadFile] = File(None),
        current_user: UserProfile = Depends(get_current_user),
        avatars: AvatarService = Depends(get_avatar_service),
    ):
        return await avatars.update_user_avatar(profile_id, file, current_user.id)

    @app.delete("/api/user_profiles/{profile_id}/avatar")
    async def delete_avatar(
        profile_id: str,
        current_user: UserProfile = Depends(get_current_user),
        avatars: AvatarService = Depends(get_avatar_service),
    ):
        await avatars.delete_user_avatar(profile_id, current_user.id)
        return {"success": True}

    # --- 매직 링크 로그인 ---

    @app.post("/auth/magic-link", response_model=MagicLinkSent, status_code=202)
    async def request_magic_link(body: MagicLinkRequest, auth: AuthService = Depends(get_auth_service)):
        return await auth.sign_in_with_magic_link(
            body.email, first_name=body.first_name, last_name=body.last_name, redirect_to=body.redirect_to
        )

    @app.get("/authentication/confirm")
    async def confirm_magic_link(code: str = "", next: Optional[str] = None,
                                 auth: AuthService = Depends(get_auth_service)):
        token, _ = await auth.exchange_code_for_session(code)
        response = RedirectResponse(url=safe_redirect(next or token.redirect_to), status_code=303)
        response.set_cookie(ACCESS_TOKEN_COOKIE, token.access_token, httponly=True, samesite="lax")
        return response

    @app.post("/auth/logout")
    async def logout(response: Response):
        response.delete_cookie(ACCESS_TOKEN_COOKIE)
        return {"success": True}

    return app


app = create_app()
