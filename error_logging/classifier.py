"""
Error classifier.

Any thrown or reported value is first normalised into a tagged
NormalizedError (exception / string / object / other). Category and
severity come from flat, ordered rule tables matched against the
lower-cased exception name and message; the first matching rule wins.
None of the functions here raise.
"""
import json
import re
import traceback
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from schemas.error_log import ErrorCategory, ErrorDetails, ErrorSeverity

EXCEPTION = "exception"
STRING = "string"
OBJECT = "object"
OTHER = "other"

UNSERIALIZABLE = "[Unserializable object]"


class ReportedError(Exception):
    """클라이언트가 보고한 에러 (원래 이름/스택 유지)"""

    def __init__(self, message: str, name: Optional[str] = None, stack: Optional[str] = None,
                 metadata: Optional[Dict[str, Any]] = None, code: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.name = name or "Error"
        self.stack = stack
        self.metadata = metadata
        self.code = code


@dataclass(frozen=True)
class NormalizedError:
    kind: str
    value: Any
    name: str = ""
    message: str = ""


def _exception_name(error: BaseException) -> str:
    if isinstance(error, ReportedError):
        return error.name
    return type(error).__name__


def _exception_message(error: BaseException) -> str:
    if isinstance(error, ReportedError):
        return error.message
    try:
        return str(error)
    except Exception:
        return ""


def normalize_error(raw: Any) -> NormalizedError:
    if isinstance(raw, BaseException):
        return NormalizedError(EXCEPTION, raw, _exception_name(raw), _exception_message(raw))
    if isinstance(raw, str):
        return NormalizedError(STRING, raw, message=raw)
    if raw is None or isinstance(raw, (bool, int, float, complex, Decimal, bytes)) or callable(raw):
        return NormalizedError(OTHER, raw)
    return NormalizedError(OBJECT, raw)


def js_typeof(value: Any) -> str:
    # JavaScript typeof 분류와 동일 (null -> "object")
    if value is None:
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float, complex, Decimal)):
        return "number"
    if isinstance(value, (str, bytes)):
        return "string"
    if callable(value):
        return "function"
    return "object"


Rule = Tuple[Any, Sequence[Pattern], Sequence[Pattern]]


def _terms(*words: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(re.escape(w)) for w in words)


# "unauthorized"는 인증 오류로 보지 않음
_AUTH = re.compile(r"(?<!un)auth")

CATEGORY_RULES: Tuple[Rule, ...] = (
    (ErrorCategory.AUTHENTICATION_ERROR, (_AUTH,), (_AUTH,)),
    (ErrorCategory.VALIDATION_ERROR, _terms("validation"), _terms("validation")),
    (ErrorCategory.NETWORK_ERROR, _terms("network"), _terms("network", "fetch")),
    (ErrorCategory.DATABASE_ERROR, _terms("database"), _terms("database", "sql")),
)

SEVERITY_RULES: Tuple[Rule, ...] = (
    (ErrorSeverity.CRITICAL, _terms("critical"), _terms("critical", "fatal", "security")),
    (ErrorSeverity.HIGH, _terms("error"), _terms("unauthorized", "forbidden", "not found")),
    (ErrorSeverity.MEDIUM, _terms("warning"), _terms("warning", "timeout")),
)


def _first_match(rules: Sequence[Rule], name: str, message: str):
    name = name.lower()
    message = message.lower()
    for result, name_terms, message_terms in rules:
        if any(p.search(name) for p in name_terms) or any(p.search(message) for p in message_terms):
            return result
    return None


def categorize(raw: Any, client_side: bool = False) -> ErrorCategory:
    normalized = normalize_error(raw)
    if normalized.kind == EXCEPTION:
        category = _first_match(CATEGORY_RULES, normalized.name, normalized.message)
        if category is not None:
            return category
    return ErrorCategory.CLIENT_ERROR if client_side else ErrorCategory.SERVER_ERROR


def determine_severity(raw: Any) -> ErrorSeverity:
    normalized = normalize_error(raw)
    if normalized.kind == EXCEPTION:
        severity = _first_match(SEVERITY_RULES, normalized.name, normalized.message)
        if severity is not None:
            return severity
    return ErrorSeverity.LOW


def to_jsonable(value: Any, _depth: int = 0) -> Any:
    """JSON 컬럼에 넣을 수 있는 형태로 변환"""
    if _depth > 8:
        return repr(value)
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, BaseException):
        return {"name": _exception_name(value), "message": _exception_message(value)}
    if isinstance(value, dict):
        return {str(k): to_jsonable(v, _depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v, _depth + 1) for v in value]
    try:
        return str(value)
    except Exception:
        return repr(value)


def _object_keys(value: Any) -> List[str]:
    if isinstance(value, dict):
        return [str(k) for k in value.keys()]
    if isinstance(value, (list, tuple)):
        return [str(i) for i in range(len(value))]
    if hasattr(value, "__dict__"):
        return [k for k in vars(value).keys() if not k.startswith("_")]
    return []


def _stringify(value: Any) -> str:
    target = value
    if not isinstance(value, (dict, list, tuple)) and hasattr(value, "__dict__"):
        target = {k: v for k, v in vars(value).items() if not k.startswith("_")}
    try:
        return json.dumps(target)
    except (TypeError, ValueError, RecursionError):
        return UNSERIALIZABLE


def _stack_of(error: BaseException) -> Optional[str]:
    if isinstance(error, ReportedError):
        return error.stack
    if error.__traceback__ is None:
        return None
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def _code_of(error: BaseException) -> Optional[Any]:
    code = getattr(error, "code", None)
    if isinstance(code, bool):
        return None
    if isinstance(code, (int, str)):
        return code
    return None


def extract_details(raw: Any) -> ErrorDetails:
    normalized = normalize_error(raw)

    if normalized.kind == EXCEPTION:
        error = normalized.value
        metadata: Dict[str, Any] = {}
        attached = getattr(error, "metadata", None)
        if isinstance(attached, dict):
            metadata.update(to_jsonable(attached))
        metadata["constructor"] = type(error).__name__
        cause = error.__cause__
        return ErrorDetails(
            message=normalized.message or normalized.name or type(error).__name__,
            stack=_stack_of(error),
            code=_code_of(error),
            name=normalized.name,
            cause=to_jsonable(cause) if cause is not None else None,
            metadata=metadata,
        )

    if normalized.kind == STRING:
        return ErrorDetails(message=normalized.value, metadata={"type": "string"})

    if normalized.kind == OBJECT:
        value = normalized.value
        return ErrorDetails(
            message="Unknown error object",
            metadata={
                "type": "object",
                "keys": _object_keys(value),
                "stringified": _stringify(value),
            },
        )

    value = normalized.value
    try:
        text = str(value)
    except Exception:
        text = repr(value)
    return ErrorDetails(message=f"Unknown error: {text}", metadata={"type": js_typeof(value)})
