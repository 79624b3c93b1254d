"""APScheduler cron-задачи: именованные периодические задачи, порождающие работу."""
import asyncio
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger
from pydantic import BaseModel

from src.config import Settings

if TYPE_CHECKING:
    from src.worker.service import ScrapingService

TaskAction = Callable[[], Awaitable[Any]]

CRON_PRESETS: dict[str, str] = {
    "every_minute": "* * * * *",
    "every_5_minutes": "*/5 * * * *",
    "every_15_minutes": "*/15 * * * *",
    "every_30_minutes": "*/30 * * * *",
    "hourly": "0 * * * *",
    "every_2_hours": "0 */2 * * *",
    "every_6_hours": "0 */6 * * *",
    "every_12_hours": "0 */12 * * *",
    "daily_at_midnight": "0 0 * * *",
    "daily_at_2am": "0 2 * * *",
    "weekly_sunday_3am": "0 3 * * 0",
    "monthly_1st_2am": "0 2 1 * *",
}

# Стандартный cron: 0 и 7 означают воскресенье. APScheduler 3 считает 0 понедельником,
# поэтому числовой день недели переводится в имя.
_WEEKDAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat", "sun")
_WEEKDAY_NUMBER = re.compile(r"(?<![/\d])\d+")


def every_n_hours(n: int) -> str:
    if not 1 <= n <= 23:
        raise ValueError(f"Hours interval must be between 1 and 23, got {n}")
    return f"0 */{n} * * *"


def _weekday_to_name(match: re.Match[str]) -> str:
    number = int(match.group(0))
    if number > 7:
        raise ValueError(f"Invalid day of week: {number}")
    return _WEEKDAY_NAMES[number]


def build_trigger(expression: str) -> CronTrigger:
    """5-полевой cron → CronTrigger с днём недели по стандарту cron."""
    fields = expression.split()
    if len(fields) != 5:
        raise ValueError(f"Invalid cron expression (expected 5 fields): {expression!r}")
    minute, hour, day, month, day_of_week = fields
    if day != "*" and day_of_week != "*":
        # CronTrigger объединяет day и day_of_week через И, cron через ИЛИ
        raise ValueError(f"Restricting both day of month and day of week is not supported: {expression!r}")
    day_of_week = _WEEKDAY_NUMBER.sub(_weekday_to_name, day_of_week)
    return CronTrigger(
        minute=minute, hour=hour, day=day, month=month, day_of_week=day_of_week,
    )


def resolve_schedule(expression: str) -> str:
    """Имя пресета или 5-полевой cron → проверенное cron-выражение. ValueError при ошибке."""
    expression = CRON_PRESETS.get(expression.strip(), expression.strip())
    build_trigger(expression)
    return expression


@dataclass
class ScheduledTask:
    name: str
    schedule: str
    action: TaskAction


class TaskInfo(BaseModel):
    name: str
    schedule: str
    running: bool
    next_run_time: datetime | None = None


class TaskScheduler:
    """
    Именованные cron-задачи поверх AsyncIOScheduler.

    Каждое срабатывание запускает action отдельной asyncio-задачей: срабатывания
    не копятся и не подавляются, если предыдущий запуск ещё идёт.
    Ошибка action логируется и не влияет на таймер и другие задачи.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self.scheduler = scheduler or AsyncIOScheduler(
            job_defaults={
                # Опоздавшие запуски не пропускаются
                "misfire_grace_time": None,
                "coalesce": True,
            }
        )
        self._tasks: dict[str, ScheduledTask] = {}
        self._in_flight: set[asyncio.Task[None]] = set()

    def register_task(self, name: str, schedule: str, action: TaskAction) -> ScheduledTask:
        """Зарегистрировать задачу; задача с тем же именем останавливается и заменяется."""
        expression = resolve_schedule(schedule)
        trigger = build_trigger(expression)

        if name in self._tasks:
            self.remove_task(name)
            logger.info(f"[scheduler] Replacing task {name}")

        task = ScheduledTask(name=name, schedule=expression, action=action)
        self._tasks[name] = task
        self.scheduler.add_job(
            self._fire,
            trigger,
            args=[name],
            id=name,
            name=name,
            replace_existing=True,
        )
        logger.info(f"[scheduler] Registered task {name} ({expression})")
        return task

    async def _fire(self, name: str) -> None:
        t = asyncio.create_task(self._run_action(name))
        self._in_flight.add(t)
        t.add_done_callback(self._in_flight.discard)

    async def _run_action(self, name: str) -> None:
        task = self._tasks.get(name)
        if task is None:
            return
        logger.debug(f"[scheduler] Running task {name}")
        try:
            await task.action()
        except Exception as e:
            logger.exception(f"[scheduler] Task {name} failed: {e}")

    def stop_task(self, name: str) -> bool:
        """Остановить таймер задачи (задача остаётся в списке)."""
        if name not in self._tasks:
            return False
        self.scheduler.pause_job(name)
        logger.info(f"[scheduler] Stopped task {name}")
        return True

    def start_task(self, name: str) -> bool:
        if name not in self._tasks:
            return False
        self.scheduler.resume_job(name)
        logger.info(f"[scheduler] Started task {name}")
        return True

    def remove_task(self, name: str) -> bool:
        if self._tasks.pop(name, None) is None:
            return False
        self.scheduler.remove_job(name)
        return True

    def stop_all(self) -> None:
        for name in self._tasks:
            self.stop_task(name)

    def start_all(self) -> None:
        for name in self._tasks:
            self.start_task(name)

    def is_running(self, name: str) -> bool:
        job = self.scheduler.get_job(name)
        return job is not None and self.scheduler.running and job.next_run_time is not None

    def list_tasks(self) -> list[TaskInfo]:
        tasks: list[TaskInfo] = []
        for name, task in self._tasks.items():
            job = self.scheduler.get_job(name)
            tasks.append(TaskInfo(
                name=name,
                schedule=task.schedule,
                running=self.is_running(name),
                next_run_time=getattr(job, "next_run_time", None),
            ))
        return tasks

    def start(self) -> None:
        self.scheduler.start()
        logger.info(f"[scheduler] Started with {len(self._tasks)} tasks")

    async def shutdown(self) -> None:
        """Остановить таймеры и дождаться уже запущенных action."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info("[scheduler] Shut down")


def create_scheduler(service: "ScrapingService", settings: Settings) -> TaskScheduler:
    """Создать планировщик со стандартными задачами сервиса."""
    scheduler = TaskScheduler()

    # Ежедневный скрапинг конкурентов
    scheduler.register_task(
        "daily_competitor_scraping",
        settings.daily_scrape_schedule,
        partial(service.schedule_competitor_scraping, "daily"),
    )

    # Еженедельный скрапинг конкурентов
    scheduler.register_task(
        "weekly_competitor_scraping",
        settings.weekly_scrape_schedule,
        partial(service.schedule_competitor_scraping, "weekly"),
    )

    # Мониторинг трендов по горячим ключевым словам
    scheduler.register_task(
        "trend_monitoring",
        settings.trend_schedule,
        service.schedule_trend_monitoring,
    )

    # Очистка старых задач и сверка очереди
    scheduler.register_task(
        "daily_cleanup",
        settings.cleanup_schedule,
        service.perform_cleanup,
    )

    return scheduler
