from pydantic import BaseModel, EmailStr
from datetime import datetime
from typing import List, Optional


class UserProfileBase(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_color: Optional[str] = None


class UserProfileCreate(UserProfileBase):
    auth_user_id: Optional[str] = None


class UserProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_color: Optional[str] = None


class UserProfileRead(UserProfileBase):
    id: str
    auth_user_id: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class UserProfileList(BaseModel):
    data: List[UserProfileRead]
    count: int


class EmailExists(BaseModel):
    email: str
    exists: bool
