"""
Local magic-link sign-in.

A sign-in request stores the sha256 of a one-time code and hands the
confirmation link to a MagicLinkSender. Exchanging the code marks it used,
finds or creates the user's profile and returns a JWT whose ``sub`` is the
profile id.
"""
import hashlib
import logging
import secrets
import uuid
from datetime import timedelta
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from core.config import MAGIC_LINK_BASE_URL, MAGIC_LINK_TTL_MINUTES
from core.db import utcnow
from models.magic_link import MagicLinkToken
from models.user_profile import UserProfile
from profile_registry import ProfileRegistry
from schemas.auth import MagicLinkSent, Token
from utils.exceptions import CustomException, DatabaseError
from utils.jwt import create_access_token, decode_token

logger = logging.getLogger(__name__)


def hash_code(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


def safe_redirect(target: Optional[str]) -> str:
    # 같은 사이트 내부 경로만 허용
    if not target or not target.startswith("/") or target.startswith("//"):
        return "/"
    return target


class MagicLinkSender:
    async def send(self, email: str, link: str) -> None:
        raise NotImplementedError


class LoggingMagicLinkSender(MagicLinkSender):
    """메일 대신 로그로 링크 출력"""

    def __init__(self):
        self.sent: List[Tuple[str, str]] = []

    async def send(self, email: str, link: str) -> None:
        self.sent.append((email, link))
        logger.info(f"Magic link for {email}: {link}")


def _unauthorized(message: str, dev_message: str = "") -> CustomException:
    return CustomException(code="UNAUTHORIZED", message=message, dev_message=dev_message, status_code=401)


class AuthService:
    def __init__(self, db: AsyncSession, sender: Optional[MagicLinkSender] = None,
                 base_url: str = MAGIC_LINK_BASE_URL, ttl_minutes: int = MAGIC_LINK_TTL_MINUTES):
        self.db = db
        self.registry = ProfileRegistry(db)
        self.sender = sender or LoggingMagicLinkSender()
        self.base_url = base_url.rstrip("/")
        self.ttl_minutes = ttl_minutes

    async def sign_in_with_magic_link(self, email: str, first_name: Optional[str] = None,
                                      last_name: Optional[str] = None, redirect_to: Optional[str] = "/") -> MagicLinkSent:
        code = secrets.token_urlsafe(32)
        redirect_to = safe_redirect(redirect_to)
        token = MagicLinkToken(
            email=email,
            token_hash=hash_code(code),
            first_name=first_name,
            last_name=last_name,
            redirect_to=redirect_to,
            expires_at=utcnow() + timedelta(minutes=self.ttl_minutes),
        )
        self.db.add(token)
        await self.db.commit()
        link = f"{self.base_url}/authentication/confirm?code={code}&next={quote(redirect_to)}"
        await self.sender.send(email, link)
        return MagicLinkSent(email=email)

    async def exchange_code_for_session(self, code: str) -> Tuple[Token, UserProfile]:
        if not code:
            raise _unauthorized("Invalid or expired link", "missing code")
        result = await self.db.execute(select(MagicLinkToken).where(MagicLinkToken.token_hash == hash_code(code)))
        token = result.scalars().first()
        if token is None:
            raise _unauthorized("Invalid or expired link", "unknown code")
        if token.used_at is not None:
            raise _unauthorized("Invalid or expired link", f"code already used at {token.used_at}")
        if token.expires_at < utcnow():
            raise _unauthorized("Invalid or expired link", f"code expired at {token.expires_at}")
        token.used_at = utcnow()
        await self.db.commit()

        profile = await self.registry.get_by_email(token.email)
        if profile is None:
            profile = await self.registry.create_profile({
                "email": token.email,
                "auth_user_id": str(uuid.uuid4()),
                "first_name": token.first_name,
                "last_name": token.last_name,
            })
        elif profile.auth_user_id is None:
            profile = await self.registry.update_profile(profile.id, {"auth_user_id": str(uuid.uuid4())})
        access_token = create_access_token({"sub": profile.id, "email": profile.email})
        return Token(access_token=access_token, redirect_to=token.redirect_to), profile

    async def get_current_user(self, access_token: Optional[str]) -> UserProfile:
        if not access_token:
            raise _unauthorized("User not authenticated")
        try:
            payload = decode_token(access_token)
        except JWTError as e:
            raise _unauthorized("Could not validate credentials", str(e))
        profile_id = payload.get("sub")
        profile = await self.registry.get_profile(profile_id) if profile_id else None
        if profile is None:
            raise _unauthorized("User profile not found", f"sub={profile_id}")
        return profile

    async def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        return await self.registry.get_profile(user_id)

    async def check_email_exists(self, email: str) -> bool:
        try:
            return await self.registry.email_exists(email)
        except Exception as e:
            logger.warning(f"Email existence check failed: {e}")
            return False

    async def update_user_profile(self, user_id: str, updates: Dict[str, Optional[str]]) -> UserProfile:
        try:
            return await self.registry.update_profile(user_id, updates)
        except DatabaseError as e:
            raise CustomException(code="PROFILE_UPDATE_FAILED", message=e.message or "Failed to update user profile",
                                  dev_message=e.details or "", status_code=404 if e.code == "not_found" else 400)
