"""Конфигурация оркестратора скрапинга из переменных окружения."""
from functools import cached_property
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def _split_comma(value: str) -> list[str]:
    """Парсит строку 'a,b,c' → ['a', 'b', 'c']."""
    if not value or not value.strip():
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Настройки сервиса — парсятся из env или .env файла."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Хранилище задач
    job_store_backend: Literal["supabase", "memory"] = "supabase"
    supabase_url: str = ""
    supabase_service_key: SecretStr = SecretStr("")

    # Очередь и воркер
    concurrency: int = Field(default=5, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    base_backoff_ms: int = Field(default=1000, ge=0)
    fetch_timeout_ms: int = Field(default=30_000, ge=1)

    # Обслуживание
    job_retention_days: int = 30
    queue_clean_age_ms: int = 86_400_000
    stuck_job_minutes: int = 30

    # Браузер
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    render_wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "networkidle"
    selector_timeout_ms: int = 10_000

    # Расписания (5-полевой cron или имя пресета)
    daily_scrape_schedule: str = "daily_at_2am"
    weekly_scrape_schedule: str = "weekly_sunday_3am"
    trend_schedule: str = "hourly"
    cleanup_schedule: str = "0 1 * * *"

    # Порождение работы
    competitor_batch_limit: int = 200
    trend_keyword_limit: int = 20
    trend_window_hours: int = 24
    trend_sources: str = "google_news,reddit"

    log_level: str = "INFO"

    # API
    scraper_api_key: SecretStr
    scraper_port: int = Field(
        default=8001,
        validation_alias=AliasChoices("SCRAPER_PORT", "PORT"),
    )

    @property
    def fetch_timeout_seconds(self) -> float:
        return self.fetch_timeout_ms / 1000

    @property
    def queue_clean_age_seconds(self) -> float:
        return self.queue_clean_age_ms / 1000

    @cached_property
    def trend_sources_list(self) -> list[str]:
        """Парсит TREND_SOURCES='google_news,reddit' → ['google_news', 'reddit']."""
        return _split_comma(self.trend_sources)


def load_settings() -> Settings:
    """Создать Settings из переменных окружения (.env файла).

    Фабричная функция — обходит ограничение pyright, который не знает,
    что pydantic-settings заполняет обязательные поля из окружения.
    """
    return Settings.model_validate({})
