APP_NAME = "Starter Service"

# 오브젝트 스토리지 버킷
STORAGE_BUCKETS = {
    "USER_AVATARS": "user_avatars",
}

# 아바타 업로드 제한
MAX_AVATAR_SIZE = 5 * 1024 * 1024
ALLOWED_AVATAR_TYPES = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/gif",
    "image/webp",
)

EMAIL_REGEX = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

EMAIL_CHECK_DELAY_MS = 500
EMAIL_CHECK_ERROR = "Failed to check email. Please try again."
