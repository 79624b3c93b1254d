"""Pydantic-модель задачи скрапинга."""
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

JobType = Literal["website", "content_analysis", "asset_discovery", "trend_monitoring"]
JobStatus = Literal["pending", "running", "completed", "failed", "cancelled"]

JOB_TYPES: tuple[str, ...] = ("website", "content_analysis", "asset_discovery", "trend_monitoring")
ACTIVE_STATUSES: tuple[str, ...] = ("pending", "running")
TERMINAL_STATUSES: tuple[str, ...] = ("completed", "failed", "cancelled")


class ScrapeJob(BaseModel):
    """Задача из таблицы scraping_jobs."""

    id: str
    type: str  # неизвестный тип завершается failed в обработчике
    target_url: str | None = None  # None для системных задач (trend_monitoring)
    owner_id: str | None = None
    related_entity_id: str | None = None  # competitor_id
    priority: int = 5
    attempts: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    status: JobStatus = "pending"
    progress: int = Field(default=0, ge=0, le=100)
    options: dict[str, Any] = {}
    result: dict[str, Any] | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
