"""Сессии загрузки страниц: rendered (Playwright Chromium) и lightweight (httpx)."""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import httpx
from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Route
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from src.config import Settings
from src.strategies.exceptions import FetchError, SessionError

FetchMode = Literal["rendered", "lightweight"]

# Подресурсы, которые не нужны для извлечения, не грузим
BLOCKED_RESOURCE_TYPES = frozenset({"stylesheet", "font", "image"})

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]


@dataclass
class FetchedPage:
    """Загруженная страница."""

    url: str
    final_url: str
    status_code: int | None
    html: str


class PageSession(Protocol):
    """Общий интерфейс сессии загрузки."""

    async def fetch(
        self,
        url: str,
        *,
        wait_for_selector: str | None = None,
        script: str | None = None,
    ) -> FetchedPage:
        ...

    async def close(self) -> None:
        ...


class HttpSession:
    """Lightweight-загрузка: прямой GET без выполнения скриптов."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=settings.fetch_timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": settings.user_agent},
        )

    async def fetch(
        self,
        url: str,
        *,
        wait_for_selector: str | None = None,
        script: str | None = None,
    ) -> FetchedPage:
        if wait_for_selector or script:
            logger.debug(f"Lightweight fetch ignores wait_for_selector/script for {url}")
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as e:
            raise FetchError(url, "timeout") from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"request error: {e}") from e

        if not response.is_success:
            raise FetchError(url, f"HTTP {response.status_code}", response.status_code)
        html = response.text
        if not html.strip():
            raise FetchError(url, "empty response", response.status_code)
        return FetchedPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            html=html,
        )

    async def close(self) -> None:
        await self._client.aclose()


async def _block_heavy_resources(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserSession:
    """Rendered-загрузка через headless Chromium.

    Одна сессия = playwright + browser + context + page, живёт в рамках
    одной задачи. Создавать через ``BrowserSession.launch``: при ошибке
    запуска уже поднятые части закрываются.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    @classmethod
    async def launch(cls, settings: Settings) -> "BrowserSession":
        session = cls(settings)
        try:
            session._playwright = await async_playwright().start()
            session._browser = await session._playwright.chromium.launch(
                headless=settings.headless, args=BROWSER_ARGS,
            )
            session._context = await session._browser.new_context(
                user_agent=settings.user_agent,
                viewport={"width": 1366, "height": 768},
            )
            session._page = await session._context.new_page()
            await session._page.route("**/*", _block_heavy_resources)
        except Exception as e:
            await session.close()
            raise SessionError(f"Failed to start browser session: {e}") from e
        logger.debug("Browser session started")
        return session

    async def fetch(
        self,
        url: str,
        *,
        wait_for_selector: str | None = None,
        script: str | None = None,
    ) -> FetchedPage:
        if self._page is None:
            raise SessionError("Browser session is closed")
        page = self._page
        try:
            response = await page.goto(
                url,
                wait_until=self.settings.render_wait_until,
                timeout=self.settings.fetch_timeout_ms,
            )
        except PlaywrightTimeoutError as e:
            raise FetchError(url, "render timeout") from e
        except PlaywrightError as e:
            raise FetchError(url, str(e)) from e

        if response is None:
            raise FetchError(url, "No response")
        if not response.ok:
            raise FetchError(url, f"HTTP {response.status}", response.status)

        try:
            if wait_for_selector:
                await page.wait_for_selector(
                    wait_for_selector, timeout=self.settings.selector_timeout_ms,
                )
            if script:
                await page.evaluate(script)
            html = await page.content()
        except PlaywrightTimeoutError as e:
            raise FetchError(url, f"timeout waiting for {wait_for_selector}") from e
        except PlaywrightError as e:
            raise FetchError(url, str(e)) from e

        if not html.strip():
            raise FetchError(url, "empty response", response.status)
        return FetchedPage(url=url, final_url=page.url, status_code=response.status, html=html)

    async def close(self) -> None:
        """Закрыть всё, что успели открыть. Ошибки закрытия только логируются."""
        closers = [
            ("page", self._page, "close"),
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        ]
        self._page = self._context = self._browser = self._playwright = None
        for name, resource, method in closers:
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as e:
                logger.warning(f"Error closing browser {name}: {e}")


class SessionManager:
    """Выдаёт сессию на время выполнения задачи и гарантированно её освобождает."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.active = 0

    async def acquire(self, mode: FetchMode) -> PageSession:
        if mode == "rendered":
            return await BrowserSession.launch(self.settings)
        if mode == "lightweight":
            return HttpSession(self.settings)
        raise SessionError(f"Unknown fetch mode: {mode}")

    @asynccontextmanager
    async def open(self, mode: FetchMode | None) -> AsyncIterator[PageSession | None]:
        """Сессия нужного режима; mode=None — стратегии загрузка не нужна."""
        if mode is None:
            yield None
            return

        session = await self.acquire(mode)
        self.active += 1
        try:
            yield session
        finally:
            self.active -= 1
            try:
                await session.close()
            except Exception as e:
                logger.error(f"Failed to release {mode} session: {e}")
