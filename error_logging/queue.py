"""
In-memory error queue and its batch flusher.

Records are appended at the tail and drained from the head. A flush takes
up to ``batch_size`` records and writes them with one bulk insert; when the
insert fails the same batch goes back to the head in its original order and
is retried on the next tick. Delivery is at-least-once and best effort:
nothing survives a process exit, and a partially applied insert that still
reports failure will produce duplicate rows on retry.
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional

from schemas.error_log import ErrorLogRecord, ReportingConfig

logger = logging.getLogger(__name__)


@dataclass
class QueuedRecord:
    record: ErrorLogRecord
    attempts: int = 0


class ErrorQueue:
    def __init__(self, batch_size: int, max_size: Optional[int] = None):
        self.batch_size = batch_size
        self.max_size = max_size
        self._items: Deque[QueuedRecord] = deque()
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._items)

    def enqueue(self, record: ErrorLogRecord) -> bool:
        """꼬리에 추가하고, batch_size에 도달했는지 반환"""
        self._items.append(QueuedRecord(record))
        self._trim()
        return len(self._items) >= self.batch_size

    def take_batch(self, n: Optional[int] = None, max_retries: Optional[int] = None) -> List[QueuedRecord]:
        """머리에서 최대 n개를 꺼냄. 재시도 한도를 넘은 레코드는 버림"""
        n = self.batch_size if n is None else n
        batch = []
        while self._items and len(batch) < n:
            item = self._items.popleft()
            if max_retries is not None and item.attempts > max_retries:
                self.dropped += 1
                logger.warning(
                    f"Dropping error log after {item.attempts} failed attempt(s): {item.record.details.message}"
                )
                continue
            batch.append(item)
        return batch

    def requeue_front(self, batch: List[QueuedRecord]) -> None:
        # 원래 순서를 유지하며 머리에 다시 삽입
        self._items.extendleft(reversed(batch))
        self._trim()

    def snapshot(self) -> List[ErrorLogRecord]:
        return [item.record for item in self._items]

    def clear(self) -> None:
        self._items.clear()

    def _trim(self) -> None:
        if self.max_size is None:
            return
        overflow = len(self._items) - self.max_size
        if overflow <= 0:
            return
        for _ in range(overflow):
            self._items.popleft()
        self.dropped += overflow
        logger.warning(f"Error queue full (max {self.max_size}); dropped {overflow} oldest record(s)")


class BatchFlusher:
    """ErrorQueue를 주기적으로 저장소에 비우는 타이머"""

    def __init__(self, queue: ErrorQueue, store, config: ReportingConfig):
        self.queue = queue
        self.store = store
        self.config = config
        self._lock = asyncio.Lock()
        self._timer: Optional[asyncio.Task] = None
        self._pending: set = set()
        self.flush_count = 0

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> bool:
        """이벤트 루프가 있으면 타이머 시작, 없으면 False"""
        if self.running:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self._timer = loop.create_task(self._run())
        return True

    async def _run(self) -> None:
        interval = self.config.flush_interval / 1000
        while True:
            await asyncio.sleep(interval)
            await self.flush()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def flush(self) -> int:
        """배치 하나를 저장. 저장된 레코드 수 반환 (실패 시 0)"""
        async with self._lock:
            batch = self.queue.take_batch(self.config.batch_size, self.config.max_retries)
            if not batch:
                return 0
            self.flush_count += 1
            rows = [item.record.to_row() for item in batch]
            try:
                await self.store.insert_rows(rows)
            except Exception as e:
                logger.error(f"Failed to flush error queue: {e}")
                self._requeue(batch)
                return 0
            return len(batch)

    def _requeue(self, batch: List[QueuedRecord]) -> None:
        # 실패한 배치는 그대로 머리에 되돌림. 한도 초과분은 다음 take_batch에서 버려짐
        for item in batch:
            item.attempts += 1
        self.queue.requeue_front(batch)

    def schedule_flush(self) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return None
        task = loop.create_task(self.flush())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def destroy(self) -> Optional[asyncio.Task]:
        """타이머 중지 후 마지막 flush를 기다리지 않고 예약"""
        self.stop()
        task = self.schedule_flush()
        if task is None and len(self.queue):
            logger.warning(f"No running event loop; {len(self.queue)} queued error log(s) will not be flushed")
        return task

    async def drain(self) -> None:
        while len(self.queue):
            if not await self.flush():
                break

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        self.stop()
        timeout = self.config.shutdown_timeout / 1000 if timeout is None else timeout
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Error queue shutdown timed out with {len(self.queue)} record(s) left")
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
