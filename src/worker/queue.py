"""Очередь задач в памяти: приоритет, отложенный запуск, потолок параллельности."""
import asyncio
import heapq
import itertools
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from loguru import logger
from pydantic import BaseModel

Outcome = Literal["completed", "failed", "cancelled", "retried"]


@dataclass
class QueueEntry:
    """Задача в очереди. job_id одновременно id записи очереди."""

    job_id: str
    priority: int
    ready_at: float
    enqueued_at: float
    seq: int
    max_attempts: int = 3
    cancel_requested: bool = False


class QueueStats(BaseModel):
    pending_count: int
    running_count: int
    completed_count: int
    failed_count: int
    delayed_count: int = 0
    paused: bool = False


class JobQueue:
    """
    Очередь готовых к запуску задач.

    Готовые записи выдаются по (priority, порядок постановки), отложенные —
    не раньше ready_at. Одновременно выдано не больше concurrency записей;
    на паузе новые записи не выдаются, уже запущенные доживают.
    """

    def __init__(
        self,
        concurrency: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self._clock = clock
        self._cond = asyncio.Condition()
        self._seq = itertools.count()
        # Кучи с ленивым удалением: запись валидна, пока seq совпадает с _pending
        self._ready: list[tuple[int, int, str]] = []
        self._delayed: list[tuple[float, int, str]] = []
        self._pending: dict[str, QueueEntry] = {}
        self._running: dict[str, QueueEntry] = {}
        self._history: deque[tuple[float, Outcome]] = deque()
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    async def enqueue(
        self,
        job_id: str,
        priority: int = 5,
        delay: float = 0.0,
        max_attempts: int = 3,
    ) -> str:
        """Поставить задачу в очередь; delay в секундах."""
        async with self._cond:
            if job_id in self._pending or job_id in self._running:
                raise ValueError(f"Job {job_id} is already queued")
            entry = QueueEntry(
                job_id=job_id,
                priority=priority,
                ready_at=0.0,
                enqueued_at=0.0,
                seq=0,
                max_attempts=max_attempts,
            )
            self._push(entry, delay)
            self._cond.notify_all()
            return job_id

    async def retry(self, job_id: str, delay: float) -> None:
        """Вернуть выданную запись в очередь с задержкой, освободив слот."""
        async with self._cond:
            entry = self._running.pop(job_id, None)
            if entry is None:
                logger.warning(f"[queue] retry for unknown job {job_id}")
                return
            self._push(entry, delay)
            self._cond.notify_all()

    def _push(self, entry: QueueEntry, delay: float) -> None:
        now = self._clock()
        entry.enqueued_at = now
        entry.ready_at = now + max(delay, 0.0)
        entry.seq = next(self._seq)
        self._pending[entry.job_id] = entry
        if delay > 0:
            heapq.heappush(self._delayed, (entry.ready_at, entry.seq, entry.job_id))
        else:
            heapq.heappush(self._ready, (entry.priority, entry.seq, entry.job_id))

    def _is_live(self, job_id: str, seq: int) -> bool:
        entry = self._pending.get(job_id)
        return entry is not None and entry.seq == seq

    def _promote_due(self) -> None:
        now = self._clock()
        while self._delayed and self._delayed[0][0] <= now:
            _, seq, job_id = heapq.heappop(self._delayed)
            if self._is_live(job_id, seq):
                heapq.heappush(self._ready, (self._pending[job_id].priority, seq, job_id))

    def _seconds_until_next_delayed(self) -> float | None:
        while self._delayed and not self._is_live(self._delayed[0][2], self._delayed[0][1]):
            heapq.heappop(self._delayed)
        if not self._delayed:
            return None
        return max(self._delayed[0][0] - self._clock(), 0.0)

    def get_nowait(self) -> QueueEntry | None:
        """Выдать следующую готовую запись или None (пауза, потолок, пусто)."""
        self._promote_due()
        if self._paused or len(self._running) >= self.concurrency:
            return None
        while self._ready:
            _, seq, job_id = heapq.heappop(self._ready)
            if not self._is_live(job_id, seq):
                continue
            entry = self._pending.pop(job_id)
            self._running[job_id] = entry
            return entry
        return None

    async def get(self) -> QueueEntry:
        """Дождаться готовой записи с учётом потолка и паузы."""
        async with self._cond:
            while True:
                entry = self.get_nowait()
                if entry is not None:
                    return entry
                timeout = None if self._paused else self._seconds_until_next_delayed()
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout)
                except TimeoutError:
                    pass

    async def task_done(self, job_id: str, outcome: Outcome) -> None:
        """Освободить слот выданной записи."""
        async with self._cond:
            if self._running.pop(job_id, None) is None:
                logger.warning(f"[queue] task_done for unknown job {job_id}")
                return
            if outcome != "retried":
                self._history.append((self._clock(), outcome))
            self._cond.notify_all()

    async def cancel(self, job_id: str) -> bool:
        """
        Ожидающая запись удаляется сразу. Для выполняемой выставляется
        cancel_requested, остановка на совести обработчика. Неизвестный id → False.
        """
        async with self._cond:
            if self._pending.pop(job_id, None) is not None:
                self._history.append((self._clock(), "cancelled"))
                self._cond.notify_all()
                return True
            entry = self._running.get(job_id)
            if entry is not None:
                entry.cancel_requested = True
                return True
            return False

    def is_cancel_requested(self, job_id: str) -> bool:
        entry = self._running.get(job_id)
        return entry is not None and entry.cancel_requested

    async def pause(self) -> None:
        async with self._cond:
            self._paused = True
        logger.info("[queue] Paused")

    async def resume(self) -> None:
        async with self._cond:
            self._paused = False
            self._cond.notify_all()
        logger.info("[queue] Resumed")

    def is_queued(self, job_id: str) -> bool:
        return job_id in self._pending or job_id in self._running

    def running_ids(self) -> set[str]:
        return set(self._running)

    def stats(self) -> QueueStats:
        now = self._clock()
        delayed = sum(1 for e in self._pending.values() if e.ready_at > now)
        return QueueStats(
            pending_count=len(self._pending),
            running_count=len(self._running),
            completed_count=sum(1 for _, o in self._history if o == "completed"),
            failed_count=sum(1 for _, o in self._history if o == "failed"),
            delayed_count=delayed,
            paused=self._paused,
        )

    def clean(self, max_age_seconds: float) -> int:
        """Забыть историю завершённых записей старше max_age_seconds."""
        cutoff = self._clock() - max_age_seconds
        removed = 0
        while self._history and self._history[0][0] <= cutoff:
            self._history.popleft()
            removed += 1
        if removed:
            logger.debug(f"[queue] Cleaned {removed} finished entries")
        return removed
