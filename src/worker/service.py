"""Оркестрация: постановка задач, порождение работы по расписанию, обслуживание, статистика."""
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel

from src.config import Settings
from src.database import JobStore, WorkCatalog
from src.models.job import ACTIVE_STATUSES, JOB_TYPES, TERMINAL_STATUSES, ScrapeJob
from src.notifier import Notifier, safe_broadcast
from src.worker.loop import recover_jobs
from src.worker.queue import JobQueue, QueueStats
from src.worker.scheduler import TaskInfo, TaskScheduler

# Приоритеты порождаемых задач (меньше значит срочнее)
FREQUENCY_PRIORITY: dict[str, int] = {"daily": 5, "weekly": 7}
TREND_PRIORITY = 7


class StoreStats(BaseModel):
    active_count: int
    pending_count: int
    completed_today_count: int


class SchedulerStats(BaseModel):
    queue: QueueStats
    store: StoreStats
    tasks: list[TaskInfo]


class CleanupReport(BaseModel):
    deleted: dict[str, int]
    recovered: dict[str, int]
    queue_cleaned: int


class ScrapingService:
    """Точка входа для API и планировщика: всё, что ставит задачи в очередь."""

    def __init__(
        self,
        store: JobStore,
        queue: JobQueue,
        settings: Settings,
        catalog: WorkCatalog | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.settings = settings
        self.catalog = catalog
        self.notifier = notifier

    async def schedule_job(
        self,
        job_type: str,
        target_url: str | None = None,
        *,
        owner_id: str | None = None,
        related_entity_id: str | None = None,
        priority: int = 5,
        delay: float = 0.0,
        max_attempts: int | None = None,
        options: dict[str, Any] | None = None,
    ) -> ScrapeJob:
        """Создать pending-задачу в хранилище и поставить её в очередь (delay в секундах)."""
        if job_type not in JOB_TYPES:
            raise ValueError(f"Unknown scraping type: {job_type}")
        job = ScrapeJob.model_validate({
            "id": str(uuid4()),
            "type": job_type,
            "target_url": target_url,
            "owner_id": owner_id,
            "related_entity_id": related_entity_id,
            "priority": priority,
            "max_attempts": max_attempts or self.settings.max_attempts,
            "options": options or {},
            "created_at": datetime.now(UTC),
        })
        job = await self.store.create(job)
        await self.queue.enqueue(job.id, job.priority, delay, job.max_attempts)
        logger.info(f"Scheduled {job.type} job {job.id} (target={job.target_url}, priority={job.priority})")
        await safe_broadcast(self.notifier, job.id, job.owner_id, "pending", 0, "Job queued")
        return job

    async def cancel_job(self, job_id: str) -> ScrapeJob | None:
        """
        Отменить задачу. pending → cancelled сразу; для running выставляется
        флаг, и задачу завершает обработчик на ближайшей контрольной точке.
        """
        job = await self.store.get(job_id)
        if job is None:
            return None
        if job.is_terminal:
            return job

        was_running = job_id in self.queue.running_ids()
        await self.queue.cancel(job_id)
        if was_running:
            logger.info(f"Cancellation requested for running job {job_id}")
            return job
        if job.status != "pending":
            logger.warning(f"Job {job_id} is {job.status} outside this worker, cannot cancel")
            return job

        job = await self.store.update(job_id, {
            "status": "cancelled",
            "completed_at": datetime.now(UTC),
        })
        logger.info(f"Job {job_id} cancelled")
        await safe_broadcast(self.notifier, job.id, job.owner_id, "cancelled", job.progress, "Job cancelled")
        return job

    async def _has_active_job(self, filters: dict[str, Any]) -> bool:
        existing = await self.store.query(
            {**filters, "status": list(ACTIVE_STATUSES)}, limit=1,
        )
        return bool(existing)

    async def schedule_competitor_scraping(self, frequency: str) -> int:
        """Поставить website-задачи для конкурентов с данной частотой, без дублей."""
        if self.catalog is None:
            logger.warning("No work catalog configured, skipping competitor scraping")
            return 0

        competitors = await self.catalog.due_competitors(
            frequency, self.settings.competitor_batch_limit,
        )
        created = 0
        skipped = 0
        for competitor in competitors:
            try:
                if await self._has_active_job({"related_entity_id": competitor.id}):
                    skipped += 1
                    continue
                await self.schedule_job(
                    "website",
                    competitor.website,
                    owner_id=competitor.user_id,
                    related_entity_id=competitor.id,
                    priority=FREQUENCY_PRIORITY.get(frequency, 5),
                    options={"frequency": frequency},
                )
                created += 1
            except Exception as e:
                logger.error(f"Failed to schedule scraping for competitor {competitor.id}: {e}")

        logger.info(
            f"Scheduled {created} {frequency} competitor scrapes "
            f"({skipped} skipped as already active)"
        )
        return created

    async def schedule_trend_monitoring(self) -> int:
        """Поставить trend_monitoring по горячим ключевым словам, одна активная задача на слово."""
        if self.catalog is None:
            logger.warning("No work catalog configured, skipping trend monitoring")
            return 0

        since = datetime.now(UTC) - timedelta(hours=self.settings.trend_window_hours)
        keywords = await self.catalog.hot_keywords(since, self.settings.trend_keyword_limit)
        if not keywords:
            logger.debug("No hot keywords for trend monitoring")
            return 0

        active = await self.store.query({
            "type": "trend_monitoring",
            "status": list(ACTIVE_STATUSES),
        })
        busy = {job.options.get("keyword") for job in active}

        created = 0
        for keyword in keywords:
            if keyword in busy:
                continue
            try:
                await self.schedule_job(
                    "trend_monitoring",
                    priority=TREND_PRIORITY,
                    options={"keyword": keyword, "sources": self.settings.trend_sources_list},
                )
                busy.add(keyword)
                created += 1
            except Exception as e:
                logger.error(f"Failed to schedule trend monitoring for '{keyword}': {e}")

        logger.info(f"Scheduled {created} trend monitoring jobs")
        return created

    async def run_scheduling_pass(self, frequency: str | None = None) -> dict[str, int]:
        """Ручной запуск порождения работы: одна частота или все сразу вместе с трендами."""
        if frequency is not None:
            return {frequency: await self.schedule_competitor_scraping(frequency)}
        return {
            "daily": await self.schedule_competitor_scraping("daily"),
            "weekly": await self.schedule_competitor_scraping("weekly"),
            "trend_monitoring": await self.schedule_trend_monitoring(),
        }

    async def perform_cleanup(self) -> CleanupReport:
        """Удалить старые завершённые задачи, вернуть зависшие, сжать историю очереди."""
        now = datetime.now(UTC)
        cutoff = now - timedelta(days=self.settings.job_retention_days)
        deleted = {
            status: await self.store.delete_older_than(status, cutoff)
            for status in TERMINAL_STATUSES
        }
        recovered = await recover_jobs(
            self.store,
            self.queue,
            stuck_before=now - timedelta(minutes=self.settings.stuck_job_minutes),
        )
        queue_cleaned = self.queue.clean(self.settings.queue_clean_age_seconds)

        logger.info(
            f"[cleanup] Deleted {sum(deleted.values())} old jobs, "
            f"cleaned {queue_cleaned} queue entries"
        )
        return CleanupReport(deleted=deleted, recovered=recovered, queue_cleaned=queue_cleaned)

    async def get_stats(self, scheduler: TaskScheduler | None = None) -> SchedulerStats:
        today = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
        store_stats = StoreStats(
            active_count=await self.store.count({"status": "running"}),
            pending_count=await self.store.count({"status": "pending"}),
            completed_today_count=await self.store.count({
                "status": "completed",
                "completed_at__gte": today,
            }),
        )
        return SchedulerStats(
            queue=self.queue.stats(),
            store=store_stats,
            tasks=scheduler.list_tasks() if scheduler else [],
        )
