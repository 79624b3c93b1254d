"""Pydantic-модели результатов извлечения."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class LinkInfo(BaseModel):
    """Ссылка со страницы (URL уже абсолютный)."""

    url: str
    text: str = ""
    title: str = ""


class ImageInfo(BaseModel):
    """Изображение со страницы."""

    url: str
    alt: str = ""
    title: str = ""
    width: str | None = None
    height: str | None = None


class PageMetadata(BaseModel):
    """Метаданные страницы: title/description/canonical/Open Graph."""

    title: str = ""
    description: str = ""
    keywords: str = ""
    og_image: str = ""
    og_url: str = ""
    og_type: str = ""
    author: str = ""
    canonical: str = ""


class Heading(BaseModel):
    """Заголовок h1–h6."""

    level: int
    text: str
    id: str = ""


class ContactInfo(BaseModel):
    """Контакты, найденные на странице по шаблонам."""

    emails: list[str] = []
    phones: list[str] = []
    address: str | None = None


class SiteOverview(BaseModel):
    """Результат website-задачи."""

    url: str
    metadata: PageMetadata
    content: str = ""
    links: list[LinkInfo] = []
    images: list[ImageInfo] = []
    headings: list[Heading] = []
    social_links: dict[str, str] = {}
    contact_info: ContactInfo = ContactInfo()
    technologies: list[str] = []
    scraped_at: datetime


class ArticleContent(BaseModel):
    """Результат content_analysis-задачи."""

    url: str
    content_type: str = "blog"
    title: str = ""
    content: str = ""
    author: str = ""
    publish_date: datetime | None = None
    tags: list[str] = []
    category: str = ""
    word_count: int = 0
    reading_time: int = 0  # минуты, 200 слов/мин
    images: list[ImageInfo] = []
    links: list[LinkInfo] = []
    metadata: PageMetadata
    scraped_at: datetime


class AssetInventory(BaseModel):
    """Результат asset_discovery-задачи — ассеты по видам."""

    url: str
    assets: dict[str, list[str]] = {}
    counts: dict[str, int] = {}
    total: int = 0
    scraped_at: datetime


class TrendSourceReport(BaseModel):
    """Сводка по одному источнику тренда."""

    source: str
    url: str
    items: int = 0
    mentions: int = 0
    headlines: list[str] = []


class TrendSnapshot(BaseModel):
    """Результат trend_monitoring-задачи."""

    keyword: str
    sources: list[TrendSourceReport] = []
    total_mentions: int = 0
    timeline: list[dict[str, Any]] = []  # [{"date": "2026-10-01", "value": 3}]
    average: int = 0
    trend: int = 0  # % изменения последних 7 дней к предыдущим 7
    errors: dict[str, str] = {}
    scraped_at: datetime
