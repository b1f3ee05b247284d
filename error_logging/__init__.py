from error_logging.classifier import ReportedError, categorize, determine_severity, extract_details
from error_logging.context import build_context
from error_logging.logger import (
    ErrorLogger,
    create_error_logger,
    create_server_error_logger,
    get_global_error_logger,
    get_server_error_logger,
)

__all__ = [
    "ErrorLogger",
    "ReportedError",
    "build_context",
    "categorize",
    "create_error_logger",
    "create_server_error_logger",
    "determine_severity",
    "extract_details",
    "get_global_error_logger",
    "get_server_error_logger",
]
