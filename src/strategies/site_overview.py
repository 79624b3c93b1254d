"""Обзор сайта конкурента: метаданные, ссылки, контакты, технологии."""
import re
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from bs4 import BeautifulSoup
from loguru import logger

from src.browser.session import FetchMode, PageSession
from src.models.results import ContactInfo, Heading, SiteOverview
from src.strategies.base import fetch_target
from src.strategies.parsing import (
    element_text,
    extract_attribute,
    extract_images,
    extract_links,
    extract_metadata,
    extract_text,
    load_html,
    longest_text,
)

MAIN_CONTENT_SELECTORS = (
    "main",
    '[role="main"]',
    ".main-content",
    "#main-content",
    ".content",
    "#content",
    "article",
    ".post-content",
    ".entry-content",
)

SOCIAL_PLATFORMS = (
    "facebook.com",
    "twitter.com",
    "x.com",
    "linkedin.com",
    "instagram.com",
    "youtube.com",
    "tiktok.com",
    "pinterest.com",
    "github.com",
)

ADDRESS_SELECTORS = ('[itemprop="address"]', ".address", "#address", ".contact-address")

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PHONE_RE = re.compile(r"(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")


def _unique(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def extract_headings(soup: BeautifulSoup) -> list[Heading]:
    headings: list[Heading] = []
    for level in range(1, 7):
        for element in soup.find_all(f"h{level}"):
            text = element_text(element)
            if text:
                headings.append(Heading(level=level, text=text, id=element.get("id") or ""))
    return headings


def extract_social_links(soup: BeautifulSoup) -> dict[str, str]:
    """Ссылки на профили в соцсетях, ключ — имя платформы (последняя ссылка выигрывает)."""
    social: dict[str, str] = {}
    for element in soup.select("a[href]"):
        href = element.get("href") or ""
        host = re.sub(r"^https?://(www\.)?", "", href.strip().lower()).split("/", 1)[0]
        for platform in SOCIAL_PLATFORMS:
            if host == platform or host.endswith(f".{platform}"):
                social[platform.split(".")[0]] = href.strip()
    return social


def extract_contact_info(soup: BeautifulSoup) -> ContactInfo:
    body_text = extract_text(soup, "body")
    address = None
    for selector in ADDRESS_SELECTORS:
        text = extract_text(soup, selector)
        if text:
            address = text
            break
    mailto = [
        href[len("mailto:"):].split("?", 1)[0]
        for href in (a.get("href") or "" for a in soup.select('a[href^="mailto:"]'))
    ]
    return ContactInfo(
        emails=_unique(EMAIL_RE.findall(body_text) + [m for m in mailto if m]),
        phones=_unique(m.strip() for m in PHONE_RE.findall(body_text)),
        address=address,
    )


def detect_technologies(soup: BeautifulSoup) -> list[str]:
    """Best-effort отпечаток стека по разметке и скриптам."""
    inline_scripts = " ".join(s.get_text() for s in soup.find_all("script"))
    script_srcs = " ".join(s.get("src", "") for s in soup.find_all("script", src=True)).lower()
    stylesheets = " ".join(
        link.get("href", "") for link in soup.select('link[rel="stylesheet"]')
    ).lower()
    generator = (extract_attribute(soup, 'meta[name="generator"]', "content") or "").lower()

    def has_attr_prefix(prefix: str) -> bool:
        return any(
            any(attr.startswith(prefix) for attr in el.attrs)
            for el in soup.find_all(True)
        )

    indicators = {
        "React": lambda: "react" in script_srcs or bool(soup.select("[data-reactroot]")),
        "Next.js": lambda: "/_next/" in script_srcs or bool(soup.select("#__next")),
        "Vue.js": lambda: "vue" in script_srcs or has_attr_prefix("data-v-"),
        "Angular": lambda: "angular" in script_srcs or has_attr_prefix("ng-"),
        "jQuery": lambda: "jquery" in script_srcs or "jQuery(" in inline_scripts,
        "Bootstrap": lambda: "bootstrap" in stylesheets or "bootstrap" in script_srcs,
        "WordPress": lambda: "wordpress" in generator or "wp-content" in script_srcs + stylesheets,
        "Shopify": lambda: "shopify" in script_srcs or "Shopify" in inline_scripts,
        "Google Analytics": lambda: (
            "googletagmanager.com" in script_srcs
            or "gtag(" in inline_scripts
            or "ga(" in inline_scripts
        ),
    }

    technologies: list[str] = []
    for name, detector in indicators.items():
        try:
            if detector():
                technologies.append(name)
        except Exception as e:
            logger.debug(f"Technology detector {name} failed: {e}")
    return technologies


class SiteOverviewStrategy:
    """website: полный снимок главной страницы сайта."""

    fetch_mode: FetchMode | None = "rendered"

    async def execute(
        self,
        target: str | None,
        options: dict[str, Any],
        session: PageSession | None,
    ) -> SiteOverview:
        page = await fetch_target(session, target, options)
        soup = load_html(page.html)
        base_url = page.final_url or page.url

        content = longest_text(soup, MAIN_CONTENT_SELECTORS) or extract_text(soup, "body")

        return SiteOverview(
            url=page.url,
            metadata=extract_metadata(soup),
            content=content,
            links=extract_links(soup, base_url),
            images=extract_images(soup, base_url),
            headings=extract_headings(soup),
            social_links=extract_social_links(soup),
            contact_info=extract_contact_info(soup),
            technologies=detect_technologies(soup),
            scraped_at=datetime.now(UTC),
        )
