import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import pytest
from error_logging.classifier import (
    ReportedError,
    UNSERIALIZABLE,
    categorize,
    determine_severity,
    extract_details,
    js_typeof,
)
from schemas.error_log import ErrorCategory, ErrorSeverity


class AuthError(Exception):
    pass


@pytest.mark.parametrize("error,expected", [
    (AuthError("bad token"), ErrorCategory.AUTHENTICATION_ERROR),
    (RuntimeError("Authentication required"), ErrorCategory.AUTHENTICATION_ERROR),
    (ValueError("validation failed for field email"), ErrorCategory.VALIDATION_ERROR),
    (ConnectionError("network unreachable"), ErrorCategory.NETWORK_ERROR),
    (RuntimeError("Failed to fetch"), ErrorCategory.NETWORK_ERROR),
    (RuntimeError("sql syntax error"), ErrorCategory.DATABASE_ERROR),
    (ReportedError("connection lost", name="DatabaseError"), ErrorCategory.DATABASE_ERROR),
    (ReportedError("token expired", name="OAuthError"), ErrorCategory.AUTHENTICATION_ERROR),
    (ReportedError("login required", name="NotAuthenticated"), ErrorCategory.AUTHENTICATION_ERROR),
])
def test_categorize_rules(error, expected):
    assert categorize(error) == expected
    assert categorize(error, client_side=True) == expected


def test_categorize_first_rule_wins():
    # auth 규칙이 validation보다 먼저
    assert categorize(RuntimeError("auth validation failed")) == ErrorCategory.AUTHENTICATION_ERROR


def test_categorize_falls_back_to_runtime():
    assert categorize(RuntimeError("boom")) == ErrorCategory.SERVER_ERROR
    assert categorize(RuntimeError("boom"), client_side=True) == ErrorCategory.CLIENT_ERROR
    assert categorize("auth string is not an exception") == ErrorCategory.SERVER_ERROR
    assert categorize({"message": "auth"}, client_side=True) == ErrorCategory.CLIENT_ERROR


@pytest.mark.parametrize("error,expected", [
    (RuntimeError("fatal crash"), ErrorSeverity.CRITICAL),
    (RuntimeError("security violation"), ErrorSeverity.CRITICAL),
    (ReportedError("x", name="CriticalError"), ErrorSeverity.CRITICAL),
    (ReportedError("x", name="TypeError"), ErrorSeverity.HIGH),
    (RuntimeError("Forbidden"), ErrorSeverity.HIGH),
    (RuntimeError("user not found"), ErrorSeverity.HIGH),
    (ReportedError("request timeout", name="Timeout"), ErrorSeverity.MEDIUM),
    (UserWarning("careful"), ErrorSeverity.MEDIUM),
    (RuntimeError("boom"), ErrorSeverity.HIGH),
    (Exception("boom"), ErrorSeverity.LOW),
])
def test_determine_severity(error, expected):
    assert determine_severity(error) == expected


def test_non_exceptions_are_low_severity():
    assert determine_severity("fatal") == ErrorSeverity.LOW
    assert determine_severity(None) == ErrorSeverity.LOW
    assert determine_severity({"message": "critical"}) == ErrorSeverity.LOW


def test_unauthorized_access_scenario():
    error = RuntimeError("Unauthorized access")
    assert categorize(error, client_side=True) == ErrorCategory.CLIENT_ERROR
    assert categorize(error) == ErrorCategory.SERVER_ERROR
    assert determine_severity(error) == ErrorSeverity.HIGH


def test_classification_is_deterministic():
    error = ReportedError("network timeout", name="Timeout")
    results = {(categorize(error), determine_severity(error)) for _ in range(5)}
    assert results == {(ErrorCategory.NETWORK_ERROR, ErrorSeverity.MEDIUM)}


def test_extract_details_from_raised_exception():
    try:
        try:
            raise KeyError("inner")
        except KeyError as inner:
            raise RuntimeError("outer failure") from inner
    except RuntimeError as e:
        details = extract_details(e)
    assert details.message == "outer failure"
    assert details.name == "RuntimeError"
    assert "outer failure" in details.stack
    assert details.metadata["constructor"] == "RuntimeError"
    assert details.cause == {"name": "KeyError", "message": "'inner'"}


@pytest.mark.parametrize("error", [
    Exception(),
    ValueError(""),
    ReportedError("", name=""),
    KeyboardInterrupt(),
])
def test_extract_details_message_never_empty(error):
    details = extract_details(error)
    assert details.message


def test_extract_details_code_and_metadata():
    error = ReportedError("bad", name="HttpError", stack="at line 1", metadata={"page": "/x"}, code=502)
    details = extract_details(error)
    assert details.code == 502
    assert details.stack == "at line 1"
    assert details.metadata == {"page": "/x", "constructor": "ReportedError"}


def test_extract_details_string():
    details = extract_details("something broke")
    assert details.message == "something broke"
    assert details.metadata == {"type": "string"}


def test_extract_details_object():
    details = extract_details({"reason": "x", "count": 2})
    assert details.message == "Unknown error object"
    assert details.metadata["type"] == "object"
    assert details.metadata["keys"] == ["reason", "count"]
    assert details.metadata["stringified"] == '{"reason": "x", "count": 2}'


def test_extract_details_unserializable_object():
    circular = {}
    circular["self"] = circular
    details = extract_details(circular)
    assert details.metadata["stringified"] == UNSERIALIZABLE


@pytest.mark.parametrize("value,type_name", [
    (None, "object"),
    (42, "number"),
    (3.5, "number"),
    (True, "boolean"),
    (len, "function"),
])
def test_extract_details_primitives(value, type_name):
    details = extract_details(value)
    assert details.message == f"Unknown error: {value}"
    assert details.metadata == {"type": type_name}
    assert js_typeof(value) == type_name
