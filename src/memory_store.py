"""In-process хранилище задач — для локального запуска без Supabase и для тестов."""
import asyncio
from datetime import datetime
from typing import Any

from src.database import Competitor, JobNotFoundError, split_filter_key
from src.models.job import ScrapeJob

_COMPARATORS = {
    "gte": lambda a, b: a >= b,
    "gt": lambda a, b: a > b,
    "lte": lambda a, b: a <= b,
    "lt": lambda a, b: a < b,
    "neq": lambda a, b: a != b,
}


def _matches(job: ScrapeJob, filters: dict[str, Any]) -> bool:
    for key, expected in filters.items():
        field, op = split_filter_key(key)
        actual = getattr(job, field)
        if op == "eq":
            if isinstance(expected, list | tuple | set):
                if actual not in expected:
                    return False
            elif actual != expected:
                return False
        else:
            # NULL не проходит range-фильтр, как в SQL
            if actual is None or not _COMPARATORS[op](actual, expected):
                return False
    return True


class MemoryJobStore:
    """JobStore в памяти. Запись сериализуется одним asyncio.Lock."""

    def __init__(self) -> None:
        self._jobs: dict[str, ScrapeJob] = {}
        self._lock = asyncio.Lock()

    async def create(self, job: ScrapeJob) -> ScrapeJob:
        async with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")
            self._jobs[job.id] = job
            return job

    async def update(self, job_id: str, fields: dict[str, Any]) -> ScrapeJob:
        async with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            updated = ScrapeJob.model_validate({**current.model_dump(), **fields})
            self._jobs[job_id] = updated
            return updated

    async def get(self, job_id: str) -> ScrapeJob | None:
        return self._jobs.get(job_id)

    async def query(
        self,
        filters: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[ScrapeJob]:
        jobs = [job for job in self._jobs.values() if _matches(job, filters)]
        if order_by:
            # None в конец при любом направлении сортировки
            present = [j for j in jobs if getattr(j, order_by) is not None]
            missing = [j for j in jobs if getattr(j, order_by) is None]
            present.sort(key=lambda j: getattr(j, order_by), reverse=descending)
            jobs = present + missing
        if limit is not None:
            jobs = jobs[:limit]
        return jobs

    async def count(self, filters: dict[str, Any]) -> int:
        return sum(1 for job in self._jobs.values() if _matches(job, filters))

    async def delete_older_than(self, status: str, cutoff: datetime) -> int:
        async with self._lock:
            doomed = [
                job_id for job_id, job in self._jobs.items()
                if job.status == status
                and job.completed_at is not None
                and job.completed_at < cutoff
            ]
            for job_id in doomed:
                del self._jobs[job_id]
            return len(doomed)


class StaticWorkCatalog:
    """Каталог работы из фиксированных списков (memory-бэкенд)."""

    def __init__(
        self,
        competitors: dict[str, list[Competitor]] | None = None,
        keywords: list[str] | None = None,
    ) -> None:
        self.competitors = competitors or {}
        self.keywords = keywords or []

    async def due_competitors(self, frequency: str, limit: int) -> list[Competitor]:
        return self.competitors.get(frequency, [])[:limit]

    async def hot_keywords(self, since: datetime, limit: int) -> list[str]:
        return self.keywords[:limit]
