import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import and_, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.db import get_sessionmaker, utcnow
from models.error_log import ErrorLog
from schemas.error_log import ErrorFilters
from utils.exceptions import StoreError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


class ErrorLogStore:
    """error_logs 테이블에 대한 insert / query / update"""

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self._session_factory = session_factory

    @property
    def session_factory(self):
        return self._session_factory or get_sessionmaker()

    async def insert_rows(self, rows: Sequence[Dict[str, Any]]) -> None:
        if not rows:
            return
        try:
            async with self.session_factory() as session:
                await session.execute(insert(ErrorLog.__table__), [dict(r) for r in rows])
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to insert {len(rows)} error log rows: {e}") from e

    def build_query(self, filters: Optional[ErrorFilters] = None):
        filters = filters or ErrorFilters()
        conditions = []
        if filters.severity:
            conditions.append(ErrorLog.severity.in_([s.value for s in filters.severity]))
        if filters.category:
            conditions.append(ErrorLog.category.in_([c.value for c in filters.category]))
        if filters.resolved is not None:
            conditions.append(ErrorLog.resolved == filters.resolved)
        if filters.user_id:
            conditions.append(ErrorLog.user_id == filters.user_id)
        if filters.date_from:
            conditions.append(ErrorLog.created_at >= _naive_utc(filters.date_from))
        if filters.date_to:
            conditions.append(ErrorLog.created_at <= _naive_utc(filters.date_to))
        q = select(ErrorLog).where(and_(*conditions)) if conditions else select(ErrorLog)
        q = q.order_by(ErrorLog.created_at.desc(), ErrorLog.id.desc())
        if filters.offset:
            q = q.offset(filters.offset).limit(filters.limit or DEFAULT_PAGE_SIZE)
        elif filters.limit:
            q = q.limit(filters.limit)
        return q

    async def query_rows(self, filters: Optional[ErrorFilters] = None) -> List[ErrorLog]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(self.build_query(filters))
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to fetch errors: {e}") from e

    async def update_row(self, record_id: str, patch: Dict[str, Any]) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(ErrorLog).where(ErrorLog.id == record_id).values(**patch)
                )
                await session.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to update error {record_id}: {e}") from e


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
