import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from datetime import datetime
from error_logging.context import RequestInfo, build_context, request_context
from core import config


def test_build_context_always_sets_timestamp_and_environment(monkeypatch):
    monkeypatch.setattr(config, "APP_ENV", "staging")
    ctx = build_context()
    assert ctx.environment == "staging"
    assert datetime.fromisoformat(ctx.timestamp)


def test_build_context_defaults_environment_to_development(monkeypatch):
    monkeypatch.setattr(config, "APP_ENV", "")
    assert build_context().environment == "development"


def test_partial_wins_and_none_counts_as_omitted():
    ctx = build_context({"environment": "test", "user_id": "u1", "timestamp": None, "url": None})
    assert ctx.environment == "test"
    assert ctx.user_id == "u1"
    assert ctx.timestamp


def test_explicit_environment_and_version():
    ctx = build_context(None, environment="production", version="1.2.3")
    assert ctx.environment == "production"
    assert ctx.version == "1.2.3"


def test_request_metadata_is_used_unless_supplied():
    token = request_context.set(RequestInfo(
        url="http://test/page", method="GET", user_agent="pytest", ip_address="10.0.0.1", request_id="req-1",
    ))
    try:
        ctx = build_context({"url": "http://test/other"})
    finally:
        request_context.reset(token)
    assert ctx.url == "http://test/other"
    assert ctx.method == "GET"
    assert ctx.user_agent == "pytest"
    assert ctx.ip_address == "10.0.0.1"
    assert ctx.request_id == "req-1"


def test_invalid_partial_is_ignored():
    ctx = build_context(["not", "a", "mapping"])
    assert ctx.environment
    assert ctx.url is None
