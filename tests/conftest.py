import os
import sys
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

import core.db as dbmod
from auth_service import LoggingMagicLinkSender
from avatar_storage import LocalObjectStorage
from error_logging.logger import create_error_logger
from models.user_profile import UserProfile
from utils.jwt import create_access_token


class FakeStore:
    """insert_rows 호출을 기록하는 메모리 저장소"""

    def __init__(self, fail_times: int = 0):
        self.batches = []
        self.fail_times = fail_times
        self.attempts = 0

    async def insert_rows(self, rows):
        self.attempts += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("insert failed")
        self.batches.append([r["message"] for r in rows])

    async def query_rows(self, filters=None):
        return []

    async def update_row(self, record_id, patch):
        return 0


@pytest.fixture
def fake_store():
    return FakeStore()


# 테스트마다 임시 SQLite 파일
@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    await dbmod.dispose_engine()
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = dbmod.init_engine(db_url)
    await dbmod.init_models()
    yield engine
    await dbmod.dispose_engine()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine):
    async with dbmod.get_sessionmaker()() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def fresh_app(db_engine, tmp_path):
    from api.rest import create_app
    error_logger = create_error_logger({"flush_interval": 60000})
    storage = LocalObjectStorage(str(tmp_path / "storage"), "http://test/storage")
    app = create_app(error_logger=error_logger, storage=storage, magic_link_sender=LoggingMagicLinkSender())
    yield app
    await error_logger.shutdown()


@pytest_asyncio.fixture(scope="function")
async def client(fresh_app):
    # 500 응답 검증을 위해 앱 예외를 다시 던지지 않음
    transport = ASGITransport(app=fresh_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def make_profile(session, email="user@example.com", **values):
    profile = UserProfile(email=email, **values)
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    return profile


def auth_headers(profile):
    token = create_access_token({"sub": profile.id, "email": profile.email})
    return {"Authorization": f"Bearer {token}"}
