"""Обработка одной задачи: машина состояний, прогресс, ретраи с backoff."""
from datetime import UTC, datetime
from typing import Any, get_args

from loguru import logger

from src.browser.session import FetchMode, SessionManager
from src.config import Settings
from src.database import JobStore, sanitize_error
from src.models.job import ScrapeJob
from src.notifier import Notifier, safe_broadcast
from src.strategies.base import ExtractionStrategy
from src.strategies.exceptions import ExtractionError, JobCancelledError, UnknownJobTypeError
from src.worker.queue import JobQueue, Outcome, QueueEntry

# Контрольные точки прогресса
PROGRESS_SESSION_READY = 10
PROGRESS_EXTRACTING = 20
PROGRESS_EXTRACTED = 80
PROGRESS_SAVING = 90
PROGRESS_DONE = 100


def get_backoff_seconds(attempts: int, base_backoff_ms: int) -> float:
    """Задержка перед повтором после попытки attempts: base * 2^(attempts-1)."""
    return base_backoff_ms * 2 ** max(attempts - 1, 0) / 1000


def _now() -> datetime:
    return datetime.now(UTC)


class JobProcessor:
    """Выполняет выданные очередью задачи и пишет каждое изменение статуса в JobStore."""

    def __init__(
        self,
        store: JobStore,
        queue: JobQueue,
        strategies: dict[str, ExtractionStrategy],
        sessions: SessionManager,
        settings: Settings,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.strategies = strategies
        self.sessions = sessions
        self.settings = settings
        self.notifier = notifier

    async def process(self, entry: QueueEntry) -> Outcome:
        """Обработать запись очереди. Слот освобождается при любом исходе."""
        outcome: Outcome = "failed"
        retry_delay = 0.0
        try:
            with logger.contextualize(job_id=entry.job_id):
                outcome, retry_delay = await self._run(entry)
        finally:
            if outcome == "retried":
                await self.queue.retry(entry.job_id, retry_delay)
            else:
                await self.queue.task_done(entry.job_id, outcome)
        return outcome

    async def _run(self, entry: QueueEntry) -> tuple[Outcome, float]:
        job = await self.store.get(entry.job_id)
        if job is None:
            logger.warning(f"Job {entry.job_id} not found in store, dropping")
            return "failed", 0.0
        if job.status != "pending":
            logger.info(f"Job {job.id} is {job.status}, skipping dispatch")
            return "cancelled", 0.0
        if job.attempts >= job.max_attempts:
            await self._fail(job, "Max attempts exhausted")
            return "failed", 0.0

        fields: dict[str, Any] = {
            "status": "running",
            "attempts": job.attempts + 1,
            "progress": 0,
        }
        if job.started_at is None:
            fields["started_at"] = _now()
        job = await self.store.update(job.id, fields)
        logger.info(f"Job {job.id} ({job.type}) started, attempt {job.attempts}/{job.max_attempts}")
        await self._notify(job, "running", 0, "Scraping started")

        try:
            payload = await self._extract(job)
        except Exception as e:
            return await self._handle_failure(job, e)

        await self._persist(job.id, {
            "status": "completed",
            "progress": PROGRESS_DONE,
            "result": payload,
            "error_message": None,
            "completed_at": _now(),
        })
        logger.info(f"Job {job.id} completed")
        await self._notify(job, "completed", PROGRESS_DONE, "Scraping completed")
        return "completed", 0.0

    async def _extract(self, job: ScrapeJob) -> dict[str, Any]:
        strategy = self.strategies.get(job.type)
        if strategy is None:
            raise UnknownJobTypeError(job.type)

        mode = job.options.get("fetch_mode", strategy.fetch_mode)
        if mode is not None and mode not in get_args(FetchMode):
            raise ExtractionError(f"Unsupported fetch mode: {mode}", retryable=False)

        async with self.sessions.open(mode) as session:
            await self._checkpoint(job, PROGRESS_SESSION_READY, "Session ready")
            await self._checkpoint(job, PROGRESS_EXTRACTING, "Extracting data")
            result = await strategy.execute(job.target_url, job.options, session)
            await self._checkpoint(job, PROGRESS_EXTRACTED, "Processing extracted data")

        await self._checkpoint(job, PROGRESS_SAVING, "Saving results")
        return result.model_dump(mode="json")

    async def _checkpoint(self, job: ScrapeJob, progress: int, message: str) -> None:
        """Проверить флаг отмены и записать прогресс."""
        if self.queue.is_cancel_requested(job.id):
            raise JobCancelledError(f"Job {job.id} cancelled")
        await self._persist(job.id, {"progress": progress})
        await self._notify(job, "running", progress, message)

    async def _handle_failure(self, job: ScrapeJob, error: Exception) -> tuple[Outcome, float]:
        message = sanitize_error(str(error)) or type(error).__name__

        if isinstance(error, JobCancelledError) or self.queue.is_cancel_requested(job.id):
            logger.info(f"Job {job.id} cancelled while running")
            await self._persist(job.id, {"status": "cancelled", "completed_at": _now()})
            await self._notify(job, "cancelled", job.progress, "Scraping cancelled")
            return "cancelled", 0.0

        retryable = getattr(error, "retryable", True)
        if retryable and job.attempts < job.max_attempts:
            delay = get_backoff_seconds(job.attempts, self.settings.base_backoff_ms)
            logger.warning(
                f"Job {job.id} attempt {job.attempts}/{job.max_attempts} failed: {message}. "
                f"Retry in {delay:.1f}s"
            )
            await self._persist(job.id, {"status": "pending", "error_message": None})
            await self._notify(job, "pending", 0, f"Retrying in {delay:.0f}s: {message}")
            return "retried", delay

        if retryable:
            logger.error(f"Job {job.id} failed after {job.attempts} attempts: {message}")
        else:
            logger.error(f"Job {job.id} failed permanently: {message}")
        await self._fail(job, message)
        return "failed", 0.0

    async def _fail(self, job: ScrapeJob, message: str) -> None:
        await self._persist(job.id, {
            "status": "failed",
            "error_message": message,
            "completed_at": _now(),
        })
        await self._notify(job, "failed", job.progress, message)

    async def _persist(self, job_id: str, fields: dict[str, Any]) -> None:
        """Запись в хранилище; ошибка логируется и не откатывает решение по задаче."""
        try:
            await self.store.update(job_id, fields)
        except Exception as e:
            logger.error(f"Failed to persist job {job_id} ({', '.join(fields)}): {e}")

    async def _notify(self, job: ScrapeJob, status: str, progress: int, message: str) -> None:
        await safe_broadcast(self.notifier, job.id, job.owner_id, status, progress, message)
