"""Pydantic-схемы для admin API оркестратора."""
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from src.models.job import JobType


class JobRequest(BaseModel):
    """Запрос на разовую задачу скрапинга."""

    type: JobType
    target_url: str | None = None
    owner_id: str | None = None
    related_entity_id: str | None = None
    priority: int = Field(default=5, ge=1, le=10)
    delay_ms: int = Field(default=0, ge=0)
    max_attempts: int | None = Field(default=None, ge=1, le=10)
    options: dict[str, Any] = {}

    @field_validator("target_url")
    @classmethod
    def check_url(cls, v: str | None) -> str | None:
        """Только http(s)-адреса."""
        if v is None:
            return None
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("target_url must be an http(s) URL")
        return v

    @model_validator(mode="after")
    def check_target(self) -> "JobRequest":
        if self.type == "trend_monitoring":
            if not str(self.options.get("keyword") or "").strip():
                raise ValueError("trend_monitoring requires options.keyword")
        elif not self.target_url:
            raise ValueError(f"{self.type} requires target_url")
        return self


class JobResponse(BaseModel):
    job_id: str
    status: str


class RunPassRequest(BaseModel):
    """Ручной прогон порождения работы; без frequency — все частоты и тренды."""

    frequency: Literal["daily", "weekly"] | None = None


class RunPassResponse(BaseModel):
    scheduled: dict[str, int]


class SchedulerActionResponse(BaseModel):
    status: str


class HealthResponse(BaseModel):
    status: str
    queue_running: int
    queue_pending: int
    queue_paused: bool
    jobs_running: int
    jobs_pending: int
