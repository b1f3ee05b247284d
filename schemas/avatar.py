from pydantic import BaseModel
from typing import Optional


class AvatarUploadResult(BaseModel):
    avatar_url: str
    path: str
    content_type: Optional[str] = None
    size: int
