"""Извлечение статьи: основной текст, автор, дата, теги, время чтения."""
import math
from datetime import UTC, datetime
from typing import Any

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from src.browser.session import FetchMode, PageSession
from src.models.results import ArticleContent
from src.strategies.base import fetch_target
from src.strategies.parsing import (
    element_text,
    extract_array,
    extract_attribute,
    extract_images,
    extract_links,
    extract_metadata,
    first_non_empty,
    first_text,
    load_html,
    longest_text,
)

WORDS_PER_MINUTE = 200

# Порядок важен: при равной длине текста выигрывает более ранний селектор
CONTENT_SELECTORS = (
    "article",
    ".entry-content",
    ".post-content",
    ".article-content",
    ".content",
    '[role="main"]',
)
TITLE_SELECTORS = ("h1", ".entry-title", ".post-title", "title")
AUTHOR_SELECTORS = (".author", ".by-author", '[rel="author"]')
DATE_SELECTORS = (
    "time[datetime]",
    ".published",
    ".post-date",
    ".entry-date",
    '[itemprop="datePublished"]',
)
TAG_SELECTOR = '.tags a, .tag a, .post-tags a, [rel="tag"]'
CATEGORY_SELECTORS = (".category", ".post-category", '[rel="category"]')

# Регионы страницы, чьи картинки и ссылки не относятся к статье
IMAGE_EXCLUDED_REGIONS = "nav, footer, aside, .sidebar, .navigation"
LINK_EXCLUDED_REGIONS = "nav, footer, .navigation, .menu"


def parse_date(value: str) -> datetime | None:
    """Дата в любом распознаваемом dateutil формате → aware datetime (naive считаем UTC)."""
    value = value.strip()
    if not value:
        return None
    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def extract_publish_date(soup: BeautifulSoup) -> datetime | None:
    for selector in DATE_SELECTORS:
        element = soup.select_one(selector)
        if element is None:
            continue
        raw = element.get("datetime") or element.get("content") or element_text(element)
        if isinstance(raw, list):
            raw = " ".join(raw)
        parsed = parse_date(raw or "")
        if parsed is not None:
            return parsed
    return None


def count_words(text: str) -> int:
    return len(text.split())


def reading_time(word_count: int) -> int:
    """Минуты чтения при 200 словах в минуту, округление вверх."""
    return math.ceil(word_count / WORDS_PER_MINUTE)


class ArticleContentStrategy:
    """content_analysis: статья/пост со страницы конкурента."""

    fetch_mode: FetchMode | None = "rendered"

    async def execute(
        self,
        target: str | None,
        options: dict[str, Any],
        session: PageSession | None,
    ) -> ArticleContent:
        page = await fetch_target(session, target, options)
        soup = load_html(page.html)
        base_url = page.final_url or page.url

        content = longest_text(soup, CONTENT_SELECTORS)
        words = count_words(content)

        return ArticleContent(
            url=page.url,
            content_type=options.get("content_type") or "blog",
            title=first_non_empty(*(first_text(soup, s) for s in TITLE_SELECTORS)),
            content=content,
            author=first_non_empty(
                *(first_text(soup, s) for s in AUTHOR_SELECTORS),
                extract_attribute(soup, 'meta[name="author"]', "content"),
            ),
            publish_date=extract_publish_date(soup),
            tags=list(dict.fromkeys(extract_array(soup, TAG_SELECTOR))),
            category=first_non_empty(*(first_text(soup, s) for s in CATEGORY_SELECTORS)),
            word_count=words,
            reading_time=reading_time(words),
            images=extract_images(soup, base_url, exclude_within=IMAGE_EXCLUDED_REGIONS),
            links=extract_links(soup, base_url, exclude_within=LINK_EXCLUDED_REGIONS),
            metadata=extract_metadata(soup),
            scraped_at=datetime.now(UTC),
        )
