from typing import Any, Dict, List, Optional
from models.user_profile import UserProfile
from sqlalchemy.ext.asyncio import AsyncSession
from core.db_service import DatabaseService, QueryOptions


class ProfileRegistry:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.service = DatabaseService(db)

    async def list_profiles(self, limit: Optional[int] = None, offset: Optional[int] = None) -> List[UserProfile]:
        options = QueryOptions(limit=limit, offset=offset, order_by="created_at", ascending=False)
        return await self.service.find_many(UserProfile, options=options)

    async def count_profiles(self) -> int:
        return await self.service.count(UserProfile)

    async def get_profile(self, profile_id: str) -> Optional[UserProfile]:
        return await self.service.find_one(UserProfile, {"id": profile_id})

    async def get_by_email(self, email: str) -> Optional[UserProfile]:
        return await self.service.find_one(UserProfile, {"email": email})

    async def get_by_auth_user_id(self, auth_user_id: str) -> Optional[UserProfile]:
        return await self.service.find_one(UserProfile, {"auth_user_id": auth_user_id})

    async def create_profile(self, values: Dict[str, Any]) -> UserProfile:
        return await self.service.create(UserProfile, values)

    async def update_profile(self, profile_id: str, values: Dict[str, Any]) -> UserProfile:
        # None 값은 "변경 없음"
        patch = {k: v for k, v in values.items() if v is not None}
        return await self.service.update(UserProfile, profile_id, patch)

    async def delete_profile(self, profile_id: str, soft: bool = True) -> None:
        await self.service.delete(UserProfile, profile_id, soft=soft)

    async def email_exists(self, email: str) -> bool:
        # 소프트 삭제된 프로필도 주소를 점유
        found = await self.service.find_one(UserProfile, {"email": email}, include_deleted=True)
        return found is not None

    async def set_avatar_url(self, profile_id: str, avatar_url: Optional[str]) -> UserProfile:
        return await self.service.update(UserProfile, profile_id, {"avatar_url": avatar_url})
