import logging
import os
import shutil
from typing import List, Optional

from fastapi import UploadFile

from constants import ALLOWED_AVATAR_TYPES, MAX_AVATAR_SIZE, STORAGE_BUCKETS
from core.config import STORAGE_PUBLIC_URL, STORAGE_ROOT
from profile_registry import ProfileRegistry
from schemas.avatar import AvatarUploadResult
from utils.exceptions import CustomException

logger = logging.getLogger(__name__)

AVATAR_BUCKET = STORAGE_BUCKETS["USER_AVATARS"]

MIME_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


class LocalObjectStorage:
    """버킷 = 디렉터리인 로컬 파일 스토리지"""

    def __init__(self, root: str = STORAGE_ROOT, public_url: str = STORAGE_PUBLIC_URL):
        self.root = os.path.abspath(root)
        self.public_url = public_url.rstrip("/")
        os.makedirs(self.root, exist_ok=True)

    def _path(self, bucket: str, path: str) -> str:
        full = os.path.abspath(os.path.join(self.root, bucket, path))
        if not full.startswith(os.path.join(self.root, bucket) + os.sep):
            raise ValueError(f"Invalid storage path: {path}")
        return full

    def upload(self, bucket: str, path: str, data: bytes, upsert: bool = False) -> str:
        full = self._path(bucket, path)
        if os.path.exists(full) and not upsert:
            raise FileExistsError(f"{bucket}/{path} already exists")
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as f:
            f.write(data)
        return path

    def list(self, bucket: str, prefix: str) -> List[str]:
        directory = os.path.join(self.root, bucket, prefix)
        if not os.path.isdir(directory):
            return []
        return sorted(name for name in os.listdir(directory) if os.path.isfile(os.path.join(directory, name)))

    def remove(self, bucket: str, paths: List[str]) -> None:
        for path in paths:
            full = self._path(bucket, path)
            if os.path.exists(full):
                os.remove(full)

    def remove_bucket(self, bucket: str) -> None:
        shutil.rmtree(os.path.join(self.root, bucket), ignore_errors=True)

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_url}/{bucket}/{path}"


def _extension(file: UploadFile) -> str:
    name = file.filename or ""
    if "." in name:
        return name.rsplit(".", 1)[-1].lower()
    return MIME_EXTENSIONS.get(file.content_type, "bin")


class AvatarService:
    def __init__(self, storage: LocalObjectStorage, registry: ProfileRegistry):
        self.storage = storage
        self.registry = registry

    def _check_owner(self, user_id: str, current_user_id: Optional[str]) -> None:
        if current_user_id is None or current_user_id != user_id:
            raise CustomException(
                code="UNAUTHORIZED",
                message="Unauthorized",
                dev_message=f"user {current_user_id} cannot change the avatar of {user_id}",
                status_code=403,
            )

    async def upload_user_avatar(self, user_id: str, file: Optional[UploadFile],
                                 current_user_id: Optional[str]) -> AvatarUploadResult:
        if file is None:
            raise CustomException(code="NO_FILE", message="No file provided", status_code=400)
        data = await file.read()
        if len(data) > MAX_AVATAR_SIZE:
            raise CustomException(code="FILE_TOO_LARGE", message="File size exceeds 5MB limit", status_code=400)
        if file.content_type not in ALLOWED_AVATAR_TYPES:
            raise CustomException(
                code="INVALID_FILE_TYPE",
                message="Invalid file type. Only JPEG, PNG, GIF, and WebP are allowed",
                dev_message=f"content_type={file.content_type}",
                status_code=400,
            )
        self._check_owner(user_id, current_user_id)

        file_name = f"{user_id}/avatar.{_extension(file)}"
        try:
            self.storage.upload(AVATAR_BUCKET, file_name, data, upsert=True)
        except (OSError, ValueError) as e:
            logger.error(f"Upload error: {e}")
            raise CustomException(code="UPLOAD_FAILED", message="Failed to upload file", dev_message=str(e),
                                  status_code=500)
        avatar_url = self.storage.get_public_url(AVATAR_BUCKET, file_name)
        await self.registry.set_avatar_url(user_id, avatar_url)
        return AvatarUploadResult(avatar_url=avatar_url, path=file_name, content_type=file.content_type,
                                  size=len(data))

    async def delete_user_avatar(self, user_id: str, current_user_id: Optional[str]) -> None:
        self._check_owner(user_id, current_user_id)
        files = self.storage.list(AVATAR_BUCKET, user_id)
        if files:
            try:
                self.storage.remove(AVATAR_BUCKET, [f"{user_id}/{name}" for name in files])
            except OSError as e:
                logger.error(f"Delete error: {e}")
                raise CustomException(code="DELETE_FAILED", message="Failed to delete file", dev_message=str(e),
                                      status_code=500)
        await self.registry.set_avatar_url(user_id, None)

    async def update_user_avatar(self, user_id: str, file: Optional[UploadFile],
                                 current_user_id: Optional[str]) -> AvatarUploadResult:
        await self.delete_user_avatar(user_id, current_user_id)
        return await self.upload_user_avatar(user_id, file, current_user_id)
