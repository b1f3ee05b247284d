from pydantic import BaseModel, EmailStr
from typing import Optional


class MagicLinkRequest(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    redirect_to: Optional[str] = "/"


class MagicLinkSent(BaseModel):
    email: str
    message: str = "Check your email for the sign-in link"


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    redirect_to: Optional[str] = None
