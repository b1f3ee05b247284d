"""
Debounced e-mail existence check for sign-in forms.

Every ``set_email`` call re-arms a single timer; when the timer fires the
latest value is looked up remotely, unless it is empty, malformed, equal to
the last successfully checked address, or already being checked.
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

import httpx

from constants import EMAIL_CHECK_DELAY_MS, EMAIL_CHECK_ERROR
from validators import validate_email

logger = logging.getLogger(__name__)

EmailLookup = Callable[[str], Awaitable[bool]]


class CheckState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    CHECKING = "checking"
    RESOLVED = "resolved"


class HttpEmailLookup:
    """GET /api/user_profiles/exists?email= 호출"""

    def __init__(self, base_url: str = "", client: Optional[httpx.AsyncClient] = None, timeout: float = 5.0):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __call__(self, email: str) -> bool:
        response = await self.client.get("/api/user_profiles/exists", params={"email": email})
        response.raise_for_status()
        return bool(response.json().get("exists"))

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class EmailExistenceChecker:
    def __init__(self, lookup: EmailLookup, delay: int = EMAIL_CHECK_DELAY_MS,
                 on_email_exists: Optional[Callable[[bool], None]] = None):
        self.lookup = lookup
        self.delay = delay
        self.on_email_exists = on_email_exists
        self.email = ""
        self.email_exists: Optional[bool] = None
        self.error: Optional[str] = None
        self.last_checked: Optional[str] = None
        self.state = CheckState.IDLE
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Dict[str, asyncio.Task] = {}

    @property
    def is_checking(self) -> bool:
        return bool(self._in_flight)

    def set_email(self, value: str) -> None:
        self._cancel_timer()
        self.email = value
        self.error = None
        if value != self.last_checked:
            self.last_checked = None
            self.email_exists = None
        self.state = CheckState.PENDING
        self._timer = asyncio.get_running_loop().create_task(self._fire_after_delay(value))

    async def _fire_after_delay(self, value: str) -> None:
        await asyncio.sleep(self.delay / 1000)
        self._on_timer(value)

    def _on_timer(self, value: str) -> None:
        if not value:
            self.email_exists = None
            self.error = None
            self.last_checked = None
            self.state = CheckState.IDLE
            return
        if not validate_email(value):
            self.email_exists = None
            self.last_checked = None
            self.state = CheckState.IDLE
            return
        if value == self.last_checked:
            self.state = CheckState.RESOLVED
            return
        if value in self._in_flight:
            self.state = CheckState.CHECKING
            return
        self.state = CheckState.CHECKING
        task = asyncio.get_running_loop().create_task(self._check(value))
        self._in_flight[value] = task

    async def _check(self, value: str) -> None:
        try:
            exists = await self.lookup(value)
        except Exception as e:
            logger.error(f"Error checking email: {e}")
            if value == self.email:
                self.error = EMAIL_CHECK_ERROR
                self.email_exists = None
                self.last_checked = None
                self.state = CheckState.IDLE
            return
        finally:
            self._in_flight.pop(value, None)
        # 그 사이 입력이 바뀌었으면 결과 버림
        if value != self.email:
            return
        self.email_exists = exists
        self.last_checked = value
        self.state = CheckState.RESOLVED
        if self.on_email_exists is not None:
            self.on_email_exists(exists)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def wait(self) -> None:
        """대기 중인 타이머와 진행 중인 조회가 끝날 때까지 대기"""
        if self._timer is not None:
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    def close(self) -> None:
        self._cancel_timer()
        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()
        self.state = CheckState.IDLE
