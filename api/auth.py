from fastapi import HTTPException, Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
from auth_service import AuthService
from core.db import get_db
from models.user_profile import UserProfile
from utils.exceptions import CustomException

ACCESS_TOKEN_COOKIE = "access_token"

# Security (헤더가 없으면 쿠키 확인)
security = HTTPBearer(auto_error=False)


def _token_from(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


async def get_current_user(request: Request,
                           credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
                           db=Depends(get_db)) -> UserProfile:
    try:
        user = await AuthService(db).get_current_user(_token_from(request, credentials))
    except CustomException as e:
        raise HTTPException(
            status_code=401,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    request.state.user_id = user.id
    return user


async def get_optional_user(request: Request,
                            credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
                            db=Depends(get_db)) -> Optional[UserProfile]:
    token = _token_from(request, credentials)
    if not token:
        return None
    try:
        user = await AuthService(db).get_current_user(token)
    except CustomException:
        return None
    request.state.user_id = user.id
    return user
