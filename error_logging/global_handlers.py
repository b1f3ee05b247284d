import asyncio
import logging
import sys
from typing import Callable, Optional

from error_logging.logger import ErrorLogger

logger = logging.getLogger(__name__)


def install_global_handlers(error_logger: ErrorLogger,
                            loop: Optional[asyncio.AbstractEventLoop] = None) -> Callable[[], None]:
    """
    처리되지 않은 예외를 error_logger로 보내는 훅 설치.

    - sys.excepthook: 동기 코드에서 잡히지 않은 예외
    - loop exception handler: 회수되지 않은 태스크 예외 등

    기존 훅은 기록 후 그대로 호출된다. 반환값을 호출하면 원래 훅으로 되돌린다.
    """
    previous_excepthook = sys.excepthook

    def excepthook(exc_type, exc_value, exc_tb):
        try:
            error_logger.log_error_nowait(exc_value, {"metadata": {"type": "unhandled_exception"}})
        except Exception as e:
            logger.error(f"Failed to record unhandled exception: {e}")
        previous_excepthook(exc_type, exc_value, exc_tb)

    sys.excepthook = excepthook

    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

    previous_loop_handler = loop.get_exception_handler() if loop is not None else None

    def loop_handler(event_loop, context):
        error = context.get("exception") or context.get("message", "Unhandled rejection")
        metadata = {"type": "unhandled_rejection"}
        if context.get("message"):
            metadata["loopMessage"] = context["message"]
        try:
            error_logger.log_error_nowait(error, {"metadata": metadata})
        except Exception as e:
            logger.error(f"Failed to record unhandled loop error: {e}")
        if previous_loop_handler is not None:
            previous_loop_handler(event_loop, context)
        else:
            event_loop.default_exception_handler(context)

    if loop is not None:
        loop.set_exception_handler(loop_handler)

    def uninstall() -> None:
        if sys.excepthook is excepthook:
            sys.excepthook = previous_excepthook
        if loop is not None and loop.get_exception_handler() is loop_handler:
            loop.set_exception_handler(previous_loop_handler)

    return uninstall
