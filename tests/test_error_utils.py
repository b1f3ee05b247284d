import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import asyncio
import re
from datetime import datetime, timedelta, timezone
import pytest
from conftest import FakeStore
from error_logging import utils
from error_logging.classifier import ReportedError
from error_logging.global_handlers import install_global_handlers
from error_logging.logger import ErrorLogger


def memory_logger():
    return ErrorLogger(FakeStore(), {"batch_size": 100, "flush_interval": 60000, "enable_console_logging": False})


def test_create_error_context_fills_defaults():
    ctx = utils.create_error_context({"user_id": "u1"})
    assert ctx.user_id == "u1"
    assert ctx.timestamp and ctx.environment


@pytest.mark.asyncio
async def test_with_error_logging_records_and_reraises(monkeypatch):
    error_logger = memory_logger()
    monkeypatch.setattr(utils, "get_global_error_logger", lambda: error_logger)

    async def failing():
        raise ValueError("nope")

    wrapped = utils.with_error_logging(failing, {"user_id": "u1"})
    with pytest.raises(ValueError):
        await wrapped()
    [record] = error_logger.queue.snapshot()
    assert record.details.message == "nope"
    assert record.context.user_id == "u1"
    error_logger.flusher.stop()


@pytest.mark.asyncio
async def test_with_error_logging_passes_results_through(monkeypatch):
    error_logger = memory_logger()
    monkeypatch.setattr(utils, "get_global_error_logger", lambda: error_logger)
    wrapped = utils.with_error_logging(lambda x: x * 2)
    assert await wrapped(21) == 42
    assert len(error_logger.queue) == 0
    error_logger.flusher.stop()


@pytest.mark.asyncio
async def test_error_wrapper_sync_and_async():
    error_logger = memory_logger()
    wrapper = utils.create_error_wrapper(error_logger, {"session_id": "s1"})

    def sync_fail():
        raise KeyError("k")

    async def async_fail():
        raise RuntimeError("r")

    with pytest.raises(KeyError):
        wrapper.wrap_sync(sync_fail)()
    with pytest.raises(RuntimeError):
        await wrapper.wrap(async_fail)()
    records = error_logger.queue.snapshot()
    assert [r.details.name for r in records] == ["KeyError", "RuntimeError"]
    assert all(r.context.session_id == "s1" for r in records)
    error_logger.flusher.stop()


def test_format_error_for_logging():
    formatted = utils.format_error_for_logging(ReportedError("bad", name="HttpError", stack="trace"))
    assert formatted["message"] == "bad"
    assert formatted["name"] == "HttpError"
    assert formatted["stack"] == "trace"
    assert formatted["metadata"]["constructor"] == "ReportedError"


def test_sanitize_error_for_logging_drops_sensitive_keys():
    payload = {"password": "x", "apiKey": "y", "user": {"auth_token": "z", "name": "kim"}, "items": [{"secret": 1}]}
    assert utils.sanitize_error_for_logging(payload) == {"user": {"name": "kim"}, "items": [{}]}

    error = ReportedError("bad", metadata={"token": "t", "page": "/x"})
    sanitized = utils.sanitize_error_for_logging(error)
    assert sanitized.metadata == {"page": "/x"}
    assert error.metadata == {"token": "t", "page": "/x"}


def test_create_error_id_format():
    first, second = utils.create_error_id(), utils.create_error_id()
    assert re.fullmatch(r"error_\d+_[0-9a-f]{9}", first)
    assert first != second


def test_group_errors_and_stats():
    now = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
    errors = [
        {"category": "server_error", "severity": "high", "resolved": False, "created_at": now - timedelta(hours=1)},
        {"category": "server_error", "severity": "low", "resolved": True, "created_at": now - timedelta(days=2)},
        {"category": "client_error", "severity": "high", "resolved": False,
         "created_at": (now - timedelta(days=10)).isoformat()},
    ]
    assert utils.group_errors_by_category(errors) == {
        "server_error": {"total": 2, "by_severity": {"high": 1, "low": 1}},
        "client_error": {"total": 1, "by_severity": {"high": 1}},
    }
    assert utils.get_error_stats(errors, now=now) == {
        "total": 3,
        "resolved": 1,
        "unresolved": 2,
        "last_24_hours": 1,
        "last_7_days": 2,
        "by_severity": {"high": 2, "low": 1},
    }


def test_install_global_handlers_chains_and_uninstalls(monkeypatch):
    calls = []
    monkeypatch.setattr(sys, "excepthook", lambda *args: calls.append(args[1]))
    error_logger = memory_logger()
    uninstall = install_global_handlers(error_logger)
    error = RuntimeError("uncaught")
    sys.excepthook(RuntimeError, error, None)
    assert calls == [error]
    [record] = error_logger.queue.snapshot()
    assert record.details.metadata["constructor"] == "RuntimeError"
    assert record.context.metadata == {"type": "unhandled_exception"}
    uninstall()
    sys.excepthook(RuntimeError, error, None)
    assert len(error_logger.queue) == 1


@pytest.mark.asyncio
async def test_install_global_handlers_records_loop_errors():
    loop = asyncio.get_running_loop()
    seen = []
    loop.set_exception_handler(lambda lp, context: seen.append(context["message"]))
    error_logger = memory_logger()
    uninstall = install_global_handlers(error_logger, loop)
    try:
        loop.call_exception_handler({"message": "Task exception was never retrieved",
                                     "exception": ValueError("lost")})
    finally:
        uninstall()
    assert seen == ["Task exception was never retrieved"]
    [record] = error_logger.queue.snapshot()
    assert record.details.message == "lost"
    assert record.context.metadata["type"] == "unhandled_rejection"
    loop.set_exception_handler(None)
    error_logger.flusher.stop()
