"""Общие примитивы разбора HTML для всех стратегий извлечения."""
import re
from collections.abc import Callable, Iterable
from urllib.parse import urljoin

import soupsieve as sv
from bs4 import BeautifulSoup, Tag
from bs4.element import NavigableString, PreformattedString

from src.models.results import ImageInfo, LinkInfo, PageMetadata

_INVISIBLE_TAGS = frozenset({"script", "style", "noscript", "template"})

Extractor = str | Callable[[Tag], str | None]


def load_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def sanitize_text(text: str) -> str:
    """Схлопнуть пробельные последовательности в один пробел."""
    return re.sub(r"\s+", " ", text).strip()


def first_non_empty(*values: str | None) -> str:
    """Первое непустое значение из цепочки фолбэков или ''."""
    for value in values:
        if value and value.strip():
            return value.strip()
    return ""


def element_text(element: Tag) -> str:
    """Видимый текст элемента (без script/style и комментариев)."""
    parts: list[str] = []
    for node in element.find_all(string=True):
        if isinstance(node, PreformattedString) or not isinstance(node, NavigableString):
            continue
        if node.parent is not None and node.parent.name in _INVISIBLE_TAGS:
            continue
        parts.append(str(node))
    return sanitize_text(" ".join(parts))


def _attr_value(element: Tag, attribute: str) -> str | None:
    value = element.get(attribute)
    # class/rel у bs4 хранятся списками
    if isinstance(value, list):
        value = " ".join(value)
    if value is None:
        return None
    value = value.strip()
    return value or None


def extract_text(soup: BeautifulSoup | Tag, selector: str) -> str:
    """Текст всех совпадений селектора одной строкой."""
    return sanitize_text(" ".join(element_text(el) for el in soup.select(selector)))


def first_text(soup: BeautifulSoup | Tag, selector: str) -> str:
    """Текст первого совпадения с непустым текстом."""
    for element in soup.select(selector):
        text = element_text(element)
        if text:
            return text
    return ""


def extract_attribute(soup: BeautifulSoup | Tag, selector: str, attribute: str) -> str | None:
    """Атрибут первого элемента, у которого он есть."""
    for element in soup.select(selector):
        value = _attr_value(element, attribute)
        if value:
            return value
    return None


def extract_array(
    soup: BeautifulSoup | Tag,
    selector: str,
    extractor: Extractor = "text",
) -> list[str]:
    """Значения по всем совпадениям: текст, атрибут или результат функции."""
    results: list[str] = []
    for element in soup.select(selector):
        if extractor == "text":
            value = element_text(element)
        elif isinstance(extractor, str):
            value = _attr_value(element, extractor)
        else:
            value = extractor(element)
        if value:
            results.append(value)
    return results


def longest_text(soup: BeautifulSoup | Tag, selectors: Iterable[str]) -> str:
    """Самый длинный текст среди кандидатов; при равной длине выигрывает более ранний."""
    best = ""
    for selector in selectors:
        text = extract_text(soup, selector)
        if len(text) > len(best):
            best = text
    return best


def resolve_url(href: str, base_url: str) -> str:
    """Относительный URL → абсолютный относительно страницы."""
    href = href.strip()
    if href.startswith(("http://", "https://")):
        return href
    if href.startswith("//"):
        scheme = base_url.split(":", 1)[0] if "://" in base_url else "https"
        return f"{scheme}:{href}"
    return urljoin(base_url, href) if base_url else href


def has_ancestor(element: Tag, selector: str) -> bool:
    """Лежит ли элемент внутри блока, подходящего под селектор."""
    matcher = sv.compile(selector)
    for parent in element.parents:
        if isinstance(parent, BeautifulSoup):
            break
        if matcher.match(parent):
            return True
    return False


def extract_links(
    soup: BeautifulSoup | Tag,
    base_url: str = "",
    exclude_within: str | None = None,
) -> list[LinkInfo]:
    links: list[LinkInfo] = []
    for element in soup.select("a[href]"):
        href = _attr_value(element, "href")
        if not href or href.lower().startswith("javascript:"):
            continue
        if exclude_within and has_ancestor(element, exclude_within):
            continue
        links.append(LinkInfo(
            url=resolve_url(href, base_url),
            text=element_text(element),
            title=_attr_value(element, "title") or "",
        ))
    return links


def extract_images(
    soup: BeautifulSoup | Tag,
    base_url: str = "",
    exclude_within: str | None = None,
) -> list[ImageInfo]:
    images: list[ImageInfo] = []
    for element in soup.select("img[src]"):
        src = _attr_value(element, "src")
        if not src:
            continue
        if exclude_within and has_ancestor(element, exclude_within):
            continue
        images.append(ImageInfo(
            url=resolve_url(src, base_url),
            alt=_attr_value(element, "alt") or "",
            title=_attr_value(element, "title") or "",
            width=_attr_value(element, "width"),
            height=_attr_value(element, "height"),
        ))
    return images


def extract_metadata(soup: BeautifulSoup | Tag) -> PageMetadata:
    """Метаданные с упорядоченными фолбэками: <title> → og:title → twitter:title и т.д."""

    def meta(selector: str) -> str | None:
        return extract_attribute(soup, selector, "content")

    return PageMetadata(
        title=first_non_empty(
            extract_text(soup, "title"),
            meta('meta[property="og:title"]'),
            meta('meta[name="twitter:title"]'),
        ),
        description=first_non_empty(
            meta('meta[name="description"]'),
            meta('meta[property="og:description"]'),
            meta('meta[name="twitter:description"]'),
        ),
        keywords=first_non_empty(meta('meta[name="keywords"]')),
        og_image=first_non_empty(meta('meta[property="og:image"]')),
        og_url=first_non_empty(meta('meta[property="og:url"]')),
        og_type=first_non_empty(meta('meta[property="og:type"]')),
        author=first_non_empty(meta('meta[name="author"]')),
        canonical=first_non_empty(extract_attribute(soup, 'link[rel="canonical"]', "href")),
    )
