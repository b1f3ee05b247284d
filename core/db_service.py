import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, NoResultFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.db import utcnow
from utils.exceptions import DatabaseError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10

# (sqlstate, sqlite 메시지 일부, message, details, hint)
_ERROR_TABLE = (
    ("23505", "unique constraint", "Duplicate entry",
     "A record with this information already exists", "Check for unique constraints"),
    ("23503", "foreign key constraint", "Foreign key constraint violation",
     "Referenced record does not exist", "Ensure the referenced record exists before creating this one"),
    ("23502", "not null constraint", "Required field missing",
     "A required field is null or empty", "Check that all required fields are provided"),
    ("42501", "permission denied", "Insufficient permissions",
     "You don't have permission to perform this action", "Check your authentication status and permissions"),
)


@dataclass
class QueryOptions:
    limit: Optional[int] = None
    offset: Optional[int] = None
    order_by: Optional[str] = None
    ascending: bool = True


def _sqlstate(error: BaseException) -> Optional[str]:
    orig = getattr(error, "orig", None)
    for attr in ("sqlstate", "pgcode"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def handle_error(error: BaseException) -> DatabaseError:
    """드라이버 예외를 DatabaseError로 변환"""
    if isinstance(error, DatabaseError):
        return error
    if isinstance(error, NoResultFound):
        return DatabaseError("No rows found", code="not_found", details="The requested record does not exist")
    code = _sqlstate(error)
    text = str(getattr(error, "orig", None) or error).lower()
    for sqlstate, needle, message, details, hint in _ERROR_TABLE:
        if code == sqlstate or needle in text:
            return DatabaseError(message, code=code or sqlstate, details=details, hint=hint)
    return DatabaseError(str(error) or "An unexpected error occurred", code=code)


class DatabaseService:
    """모델 단위 CRUD 헬퍼. 실패는 DatabaseError로 던짐"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _select(self, model, where: Optional[Dict[str, Any]] = None, include_deleted: bool = False):
        q = select(model)
        for column, value in (where or {}).items():
            q = q.where(getattr(model, column) == value)
        if not include_deleted and hasattr(model, "deleted_at"):
            q = q.where(model.deleted_at.is_(None))
        return q

    async def find_many(self, model: Type, where: Optional[Dict[str, Any]] = None,
                        options: Optional[QueryOptions] = None, include_deleted: bool = False) -> List[Any]:
        options = options or QueryOptions()
        q = self._select(model, where, include_deleted)
        if options.order_by:
            column = getattr(model, options.order_by)
            q = q.order_by(column.asc() if options.ascending else column.desc())
        if options.offset:
            q = q.offset(options.offset).limit(options.limit or DEFAULT_PAGE_SIZE)
        elif options.limit:
            q = q.limit(options.limit)
        try:
            result = await self.session.execute(q)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise handle_error(e) from e

    async def count(self, model: Type, where: Optional[Dict[str, Any]] = None, include_deleted: bool = False) -> int:
        q = select(func.count()).select_from(self._select(model, where, include_deleted).subquery())
        try:
            return (await self.session.execute(q)).scalar_one()
        except SQLAlchemyError as e:
            raise handle_error(e) from e

    async def find_one(self, model: Type, where: Dict[str, Any], include_deleted: bool = False):
        try:
            result = await self.session.execute(self._select(model, where, include_deleted))
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise handle_error(e) from e

    async def find_one_or_throw(self, model: Type, where: Dict[str, Any]):
        found = await self.find_one(model, where)
        if found is None:
            raise handle_error(NoResultFound())
        return found

    async def create(self, model: Type, values: Dict[str, Any]):
        obj = model(**values)
        self.session.add(obj)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(f"Failed to create {model.__tablename__}: {e.orig}")
            raise handle_error(e) from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise handle_error(e) from e
        await self.session.refresh(obj)
        return obj

    async def update(self, model: Type, record_id: Any, values: Dict[str, Any]):
        obj = await self.find_one_or_throw(model, {"id": record_id})
        for attr, value in values.items():
            setattr(obj, attr, value)
        if hasattr(model, "updated_at"):
            obj.updated_at = utcnow()
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise handle_error(e) from e
        await self.session.refresh(obj)
        return obj

    async def delete(self, model: Type, record_id: Any, soft: bool = True) -> None:
        obj = await self.find_one_or_throw(model, {"id": record_id})
        try:
            if soft and hasattr(model, "deleted_at"):
                obj.deleted_at = utcnow()
            else:
                await self.session.delete(obj)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise handle_error(e) from e
