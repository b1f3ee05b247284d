import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from datetime import datetime, timedelta, timezone
import pytest
from core.db import utcnow
from error_logging.logger import ErrorLogger
from error_logging.store import ErrorLogStore
from schemas.error_log import ErrorFilters


def test_date_filters_are_compared_as_naive_utc():
    aware = datetime(2024, 5, 1, 9, 0, tzinfo=timezone(timedelta(hours=9)))
    q = ErrorLogStore().build_query(ErrorFilters(date_from=aware, date_to=datetime(2024, 5, 2)))
    params = q.compile().params
    values = sorted(v for v in params.values() if isinstance(v, datetime))
    assert values == [datetime(2024, 5, 1, 0, 0), datetime(2024, 5, 2)]
    assert all(v.tzinfo is None for v in values)


@pytest.mark.asyncio
async def test_date_from_filters_stored_rows(db_engine):
    error_logger = ErrorLogger(config={"flush_interval": 60000, "enable_console_logging": False})
    await error_logger.log_error("recent")
    await error_logger.flush()
    store = error_logger.store
    assert [r.message for r in await store.query_rows(ErrorFilters(date_from=utcnow() - timedelta(hours=1)))] == ["recent"]
    assert await store.query_rows(ErrorFilters(date_from=utcnow() + timedelta(hours=1))) == []
    await error_logger.shutdown()
