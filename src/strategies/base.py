"""Базовый интерфейс стратегии извлечения и таблица стратегий по типу задачи."""
from typing import Any, Protocol

from pydantic import BaseModel

from src.browser.session import FetchedPage, FetchMode, PageSession
from src.config import Settings
from src.strategies.exceptions import ExtractionError, SessionError


class ExtractionStrategy(Protocol):
    """Превращает загруженную страницу в структурированный результат."""

    # None: стратегии сессия не нужна
    fetch_mode: FetchMode | None

    async def execute(
        self,
        target: str | None,
        options: dict[str, Any],
        session: PageSession | None,
    ) -> BaseModel:
        ...


async def fetch_target(
    session: PageSession | None,
    target: str | None,
    options: dict[str, Any],
) -> FetchedPage:
    """Загрузить целевую страницу задачи с опциями ожидания из options."""
    if not target:
        raise ExtractionError("Job has no target URL", retryable=False)
    if session is None:
        raise SessionError("No page session provided")
    return await session.fetch(
        target,
        wait_for_selector=options.get("wait_for_selector"),
        script=options.get("script"),
    )


def build_strategies(settings: Settings) -> dict[str, ExtractionStrategy]:
    """Таблица тип задачи → стратегия."""
    from src.strategies.article_content import ArticleContentStrategy
    from src.strategies.asset_discovery import AssetDiscoveryStrategy
    from src.strategies.site_overview import SiteOverviewStrategy
    from src.strategies.trend_snapshot import TrendSnapshotStrategy

    return {
        "website": SiteOverviewStrategy(),
        "content_analysis": ArticleContentStrategy(),
        "asset_discovery": AssetDiscoveryStrategy(),
        "trend_monitoring": TrendSnapshotStrategy(default_sources=settings.trend_sources_list),
    }
