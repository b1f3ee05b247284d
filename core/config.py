import os
from dotenv import load_dotenv

# .env 파일에서 환경변수 로드
load_dotenv()

APP_ENV = os.getenv("APP_ENV", "development")
APP_VERSION = os.getenv("APP_VERSION")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# 에러 로깅
ERROR_LOG_BATCH_SIZE = int(os.getenv("ERROR_LOG_BATCH_SIZE", "10"))
ERROR_LOG_FLUSH_INTERVAL_MS = int(os.getenv("ERROR_LOG_FLUSH_INTERVAL_MS", "5000"))
ERROR_LOG_MAX_QUEUE_SIZE = int(os.getenv("ERROR_LOG_MAX_QUEUE_SIZE", "1000"))

# 매직 링크 / 세션
MAGIC_LINK_BASE_URL = os.getenv("MAGIC_LINK_BASE_URL", "http://localhost:8000")
MAGIC_LINK_TTL_MINUTES = int(os.getenv("MAGIC_LINK_TTL_MINUTES", "15"))

# 오브젝트 스토리지 (아바타)
STORAGE_ROOT = os.getenv("STORAGE_ROOT", "./storage")
STORAGE_PUBLIC_URL = os.getenv("STORAGE_PUBLIC_URL", "http://localhost:8000/storage")
