"""Инвентаризация ассетов страницы: картинки, скрипты, стили, шрифты, медиа, документы."""
import re
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from src.browser.session import FetchMode, PageSession
from src.models.results import AssetInventory
from src.strategies.base import fetch_target
from src.strategies.parsing import extract_array, load_html, resolve_url

DOCUMENT_EXTENSIONS = (".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".zip", ".csv")
FONT_EXTENSIONS = (".woff", ".woff2", ".ttf", ".otf", ".eot")
CSS_URL_RE = re.compile(r"url\(\s*['\"]?([^'\")]+)['\"]?\s*\)")

ASSET_KINDS = ("images", "scripts", "stylesheets", "fonts", "icons", "media", "documents", "og_images")


def _srcset_urls(value: str | None) -> list[str]:
    """'a.jpg 1x, b.jpg 2x' → ['a.jpg', 'b.jpg']."""
    if not value:
        return []
    return [part.strip().split(" ")[0] for part in value.split(",") if part.strip()]


def _path_endswith(url: str, extensions: tuple[str, ...]) -> bool:
    return urlparse(url).path.lower().endswith(extensions)


def collect_assets(soup: BeautifulSoup, base_url: str) -> dict[str, list[str]]:
    """Сырые URL ассетов по видам (ещё не абсолютные и с дублями)."""
    images = extract_array(soup, "img[src]", "src")
    for srcset in extract_array(soup, "img[srcset], source[srcset]", "srcset"):
        images.extend(_srcset_urls(srcset))

    inline_css = " ".join(style.get_text() for style in soup.find_all("style"))
    css_urls = CSS_URL_RE.findall(inline_css)

    fonts = extract_array(soup, 'link[rel~="preload"][as="font"]', "href")
    fonts.extend(u for u in css_urls if _path_endswith(resolve_url(u, base_url), FONT_EXTENSIONS))
    images.extend(
        u for u in css_urls
        if not u.startswith("data:") and not _path_endswith(resolve_url(u, base_url), FONT_EXTENSIONS)
    )

    documents = [
        href for href in extract_array(soup, "a[href]", "href")
        if _path_endswith(resolve_url(href, base_url), DOCUMENT_EXTENSIONS)
    ]

    return {
        "images": [u for u in images if not u.startswith("data:")],
        "scripts": extract_array(soup, "script[src]", "src"),
        "stylesheets": extract_array(soup, 'link[rel~="stylesheet"]', "href"),
        "fonts": fonts,
        "icons": extract_array(
            soup, 'link[rel~="icon"], link[rel~="apple-touch-icon"], link[rel~="mask-icon"]', "href",
        ),
        "media": (
            extract_array(soup, "video[src], audio[src], source[src]", "src")
            + extract_array(soup, "video[poster]", "poster")
        ),
        "documents": documents,
        "og_images": extract_array(
            soup, 'meta[property="og:image"], meta[name="twitter:image"]', "content",
        ),
    }


class AssetDiscoveryStrategy:
    """asset_discovery: все ассеты страницы с абсолютными URL без дублей."""

    fetch_mode: FetchMode | None = "rendered"

    async def execute(
        self,
        target: str | None,
        options: dict[str, Any],
        session: PageSession | None,
    ) -> AssetInventory:
        page = await fetch_target(session, target, options)
        soup = load_html(page.html)
        base_url = page.final_url or page.url

        kinds = options.get("asset_types") or ASSET_KINDS
        raw = collect_assets(soup, base_url)

        assets: dict[str, list[str]] = {}
        for kind in kinds:
            urls = [resolve_url(u, base_url) for u in raw.get(kind, [])]
            assets[kind] = list(dict.fromkeys(urls))

        counts = {kind: len(urls) for kind, urls in assets.items()}
        return AssetInventory(
            url=page.url,
            assets=assets,
            counts=counts,
            total=sum(counts.values()),
            scraped_at=datetime.now(UTC),
        )
