import os
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from dotenv import load_dotenv

# .env 파일에서 환경변수 로드
load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./app.db")

# Base 정의 (모델에서 import)
Base = declarative_base()

# 싱글턴 엔진/세션
engine = None
SessionLocal = None


def init_engine(db_url=DATABASE_URL):
    global engine, SessionLocal
    if engine is None:
        connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
        engine = create_async_engine(db_url, future=True, connect_args=connect_args)
        SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine


async def dispose_engine():
    global engine, SessionLocal
    if engine is not None:
        await engine.dispose()
    engine = None
    SessionLocal = None


async def init_models():
    # 마이그레이션 없이 테이블 생성
    import models  # noqa: F401  모델 registry 등록
    async with init_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_db_url():
    return str(engine.url) if engine is not None else DATABASE_URL


def get_engine():
    return engine


def get_sessionmaker():
    if SessionLocal is None:
        init_engine()
    return SessionLocal


# FastAPI 의존성 주입용 세션 생성 함수
async def get_db():
    session_factory = get_sessionmaker()
    async with session_factory() as session:
        yield session


def utcnow() -> datetime:
    # DateTime 컬럼은 naive UTC로 저장
    return datetime.now(timezone.utc).replace(tzinfo=None)
