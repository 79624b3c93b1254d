"""Снимок тренда ключевого слова по новостным/социальным RSS-лентам."""
import calendar
import re
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any
from urllib.parse import quote_plus

import feedparser
from loguru import logger

from src.browser.session import FetchMode, PageSession
from src.models.results import TrendSnapshot, TrendSourceReport
from src.strategies.exceptions import ExtractionError, SessionError

TREND_FEEDS: dict[str, str] = {
    "google_news": "https://news.google.com/rss/search?q={query}&hl=en-US&gl=US&ceid=US:en",
    "reddit": "https://www.reddit.com/search.rss?q={query}&sort=new",
    "bing_news": "https://www.bing.com/news/search?q={query}&format=rss",
}

TIMELINE_DAYS = 14
MAX_HEADLINES = 10


@dataclass
class FeedItem:
    title: str
    published: datetime | None


def feed_url(source: str, keyword: str) -> str | None:
    """Имя ленты или URL-шаблон с {query} → URL запроса; None для неизвестного имени."""
    template = TREND_FEEDS.get(source)
    if template is None:
        if not source.startswith(("http://", "https://")):
            return None
        template = source
    return template.replace("{query}", quote_plus(keyword))


def entry_published(entry: Any) -> datetime | None:
    """Дата публикации записи feedparser (published, иначе updated) в UTC."""
    struct = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if struct is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(struct), tz=UTC)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_feed(xml: str) -> list[FeedItem]:
    """Записи RSS/Atom ленты."""
    feed = feedparser.parse(xml)
    return [
        FeedItem(title=(entry.get("title") or "").strip(), published=entry_published(entry))
        for entry in feed.entries
    ]


def count_mentions(text: str, keyword: str) -> int:
    return len(re.findall(re.escape(keyword), text, flags=re.IGNORECASE))


def calculate_average(values: list[int]) -> int:
    if not values:
        return 0
    return round(sum(values) / len(values))


def calculate_trend(values: list[int]) -> int:
    """% изменения среднего за последние 7 точек относительно предыдущих 7."""
    if len(values) < 2:
        return 0
    recent = calculate_average(values[-7:])
    previous = calculate_average(values[-14:-7])
    if previous == 0:
        return 0
    return round((recent - previous) / previous * 100)


def build_timeline(mention_dates: list[date], today: date, days: int = TIMELINE_DAYS) -> list[dict[str, Any]]:
    """Упоминания по дням за последние days дней, пропуски — нули."""
    counts = Counter(mention_dates)
    start = today - timedelta(days=days - 1)
    return [
        {"date": (start + timedelta(days=i)).isoformat(), "value": counts.get(start + timedelta(days=i), 0)}
        for i in range(days)
    ]


class TrendSnapshotStrategy:
    """trend_monitoring: упоминания ключевого слова в лентах и динамика по дням."""

    fetch_mode: FetchMode | None = "lightweight"

    def __init__(self, default_sources: list[str] | None = None) -> None:
        self.default_sources = default_sources or list(TREND_FEEDS)

    async def execute(
        self,
        target: str | None,
        options: dict[str, Any],
        session: PageSession | None,
    ) -> TrendSnapshot:
        keyword = (options.get("keyword") or "").strip()
        if not keyword:
            raise ExtractionError("Trend monitoring job has no keyword", retryable=False)
        if session is None:
            raise SessionError("No page session provided")

        sources = list(options.get("sources") or self.default_sources)
        if target:
            sources.append(target)

        reports: list[TrendSourceReport] = []
        errors: dict[str, str] = {}
        mention_dates: list[date] = []
        fetch_failed = False

        for source in sources:
            url = feed_url(source, keyword)
            if url is None:
                errors[source] = "unknown source"
                continue
            try:
                page = await session.fetch(url)
            except ExtractionError as e:
                logger.warning(f"[trend] {source} failed for '{keyword}': {e}")
                errors[source] = str(e)
                fetch_failed = True
                continue

            items = parse_feed(page.html)
            mentions = 0
            headlines: list[str] = []
            for item in items:
                hits = count_mentions(item.title, keyword)
                if not hits:
                    continue
                mentions += hits
                if len(headlines) < MAX_HEADLINES:
                    headlines.append(item.title)
                if item.published is not None:
                    mention_dates.extend([item.published.astimezone(UTC).date()] * hits)

            reports.append(TrendSourceReport(
                source=source, url=url, items=len(items),
                mentions=mentions, headlines=headlines,
            ))

        if not reports:
            raise ExtractionError(
                f"All trend sources failed for '{keyword}'", retryable=fetch_failed,
            )

        now = datetime.now(UTC)
        timeline = build_timeline(mention_dates, now.date())
        values = [point["value"] for point in timeline]

        return TrendSnapshot(
            keyword=keyword,
            sources=reports,
            total_mentions=sum(r.mentions for r in reports),
            timeline=timeline,
            average=calculate_average(values),
            trend=calculate_trend(values),
            errors=errors,
            scraped_at=now,
        )
