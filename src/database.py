"""Хранилище задач скрапинга (Supabase) и каталог порождаемой работы."""
import asyncio
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from loguru import logger
from postgrest.types import CountMethod
from supabase import Client

from src.models.job import ScrapeJob

JOBS_TABLE = "scraping_jobs"

# Поле модели → колонка таблицы (где имена расходятся)
_FIELD_TO_COLUMN: dict[str, str] = {
    "owner_id": "user_id",
    "related_entity_id": "competitor_id",
    "result": "results",
}
_COLUMN_TO_FIELD: dict[str, str] = {v: k for k, v in _FIELD_TO_COLUMN.items()}


class JobNotFoundError(LookupError):
    """Задачи с таким id нет в хранилище."""


@dataclass(frozen=True)
class Competitor:
    """Конкурент, сайт которого пора скрапить."""

    id: str
    website: str
    user_id: str | None = None


class JobStore(Protocol):
    """Интерфейс хранилища задач — единственный источник правды о статусах."""

    async def create(self, job: ScrapeJob) -> ScrapeJob:
        ...

    async def update(self, job_id: str, fields: dict[str, Any]) -> ScrapeJob:
        ...

    async def get(self, job_id: str) -> ScrapeJob | None:
        ...

    async def query(
        self,
        filters: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[ScrapeJob]:
        ...

    async def count(self, filters: dict[str, Any]) -> int:
        ...

    async def delete_older_than(self, status: str, cutoff: datetime) -> int:
        ...


class WorkCatalog(Protocol):
    """Источник порождаемой работы: конкуренты и горячие ключевые слова."""

    async def due_competitors(self, frequency: str, limit: int) -> list[Competitor]:
        ...

    async def hot_keywords(self, since: datetime, limit: int) -> list[str]:
        ...


async def run_in_thread(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Выполнить синхронный вызов Supabase в отдельном потоке."""
    return await asyncio.to_thread(func, *args, **kwargs)


def sanitize_error(error: str) -> str:
    """Убрать потенциальные креденшалы из сообщения об ошибке."""
    return re.sub(r"://[^@\s]+@", "://***:***@", error)


def split_filter_key(key: str) -> tuple[str, str]:
    """'completed_at__gte' → ('completed_at', 'gte'); без суффикса → ('status', 'eq')."""
    field, _, op = key.partition("__")
    return field, op or "eq"


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def job_to_row(fields: dict[str, Any]) -> dict[str, Any]:
    """Поля модели → строка таблицы (переименование колонок + ISO-даты)."""
    return {_FIELD_TO_COLUMN.get(k, k): _serialize(v) for k, v in fields.items()}


def row_to_job(row: dict[str, Any]) -> ScrapeJob:
    """Строка таблицы → ScrapeJob. Лишние колонки (updated_at) игнорируются."""
    data = {_COLUMN_TO_FIELD.get(k, k): v for k, v in row.items()}
    if data.get("options") is None:
        data["options"] = {}
    return ScrapeJob.model_validate(data)


def _apply_filters(query: Any, filters: dict[str, Any]) -> Any:
    for key, value in filters.items():
        field, op = split_filter_key(key)
        column = _FIELD_TO_COLUMN.get(field, field)
        if op == "eq" and isinstance(value, list | tuple | set):
            query = query.in_(column, list(value))
        elif op == "eq" and value is None:
            query = query.is_(column, "null")
        elif op in ("eq", "gte", "gt", "lte", "lt", "neq"):
            query = getattr(query, op)(column, _serialize(value))
        else:
            raise ValueError(f"Unsupported filter operator: {key}")
    return query


class SupabaseJobStore:
    """JobStore поверх таблицы scraping_jobs в Supabase."""

    def __init__(self, db: Client) -> None:
        self.db = db

    async def create(self, job: ScrapeJob) -> ScrapeJob:
        row = job_to_row(job.model_dump(mode="json"))
        row["updated_at"] = datetime.now(UTC).isoformat()
        result = await run_in_thread(self.db.table(JOBS_TABLE).insert(row).execute)
        return row_to_job(result.data[0]) if result.data else job

    async def update(self, job_id: str, fields: dict[str, Any]) -> ScrapeJob:
        row = job_to_row(fields)
        row["updated_at"] = datetime.now(UTC).isoformat()
        result = await run_in_thread(
            self.db.table(JOBS_TABLE).update(row).eq("id", job_id).execute
        )
        if not result.data:
            raise JobNotFoundError(job_id)
        return row_to_job(result.data[0])

    async def get(self, job_id: str) -> ScrapeJob | None:
        result = await run_in_thread(
            self.db.table(JOBS_TABLE).select("*").eq("id", job_id).limit(1).execute
        )
        if not result.data:
            return None
        return row_to_job(result.data[0])

    async def query(
        self,
        filters: dict[str, Any],
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[ScrapeJob]:
        query = _apply_filters(self.db.table(JOBS_TABLE).select("*"), filters)
        if order_by:
            query = query.order(_FIELD_TO_COLUMN.get(order_by, order_by), desc=descending)
        if limit is not None:
            query = query.limit(limit)
        result = await run_in_thread(query.execute)
        return [row_to_job(row) for row in result.data]

    async def count(self, filters: dict[str, Any]) -> int:
        query = _apply_filters(
            self.db.table(JOBS_TABLE).select("id", count=CountMethod.exact), filters
        )
        result = await run_in_thread(query.execute)
        return result.count or 0

    async def delete_older_than(self, status: str, cutoff: datetime) -> int:
        result = await run_in_thread(
            self.db.table(JOBS_TABLE)
            .delete()
            .eq("status", status)
            .lt("completed_at", cutoff.isoformat())
            .execute
        )
        deleted = len(result.data or [])
        if deleted:
            logger.debug(f"Deleted {deleted} {status} jobs older than {cutoff.isoformat()}")
        return deleted


class SupabaseWorkCatalog:
    """Каталог работы из таблиц competitors и trends."""

    def __init__(self, db: Client) -> None:
        self.db = db

    async def due_competitors(self, frequency: str, limit: int) -> list[Competitor]:
        """Активные конкуренты с данной частотой, давно не скрапленные — первыми."""
        result = await run_in_thread(
            self.db.table("competitors")
            .select("id, website, user_id")
            .eq("status", "active")
            .eq("scraping_frequency", frequency)
            .order("last_scraped", desc=False)
            .limit(limit)
            .execute
        )
        return [
            Competitor(id=row["id"], website=row["website"], user_id=row.get("user_id"))
            for row in result.data
            if row.get("website")
        ]

    async def hot_keywords(self, since: datetime, limit: int) -> list[str]:
        """Ключевые слова трендов за окно, по убыванию trend_score (без дублей)."""
        result = await run_in_thread(
            self.db.table("trends")
            .select("keyword")
            .gte("created_at", since.isoformat())
            .order("trend_score", desc=True)
            .limit(limit)
            .execute
        )
        keywords: list[str] = []
        for row in result.data:
            keyword = (row.get("keyword") or "").strip()
            if keyword and keyword not in keywords:
                keywords.append(keyword)
        return keywords
