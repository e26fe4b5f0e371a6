"""Playwright-backed implementation of BrowserSurface."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    async_playwright,
)

from bosspilot.browser.base import ResponsePredicate
from bosspilot.exceptions import BrowserLaunchError

logger = logging.getLogger(__name__)


class PlaywrightElement:
    """ElementHandle over a Playwright ``Locator``."""

    def __init__(self, locator: Locator) -> None:
        self._locator = locator

    async def count(self) -> int:
        return await self._locator.count()

    async def is_visible(self) -> bool:
        return await self._locator.is_visible()

    async def click(self, *, timeout: float = 5_000) -> None:
        await self._locator.click(timeout=timeout)

    async def fill(self, value: str) -> None:
        await self._locator.fill(value)

    async def text_content(self) -> str | None:
        return await self._locator.text_content()

    async def get_attribute(self, name: str) -> str | None:
        return await self._locator.get_attribute(name)

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        return await self._locator.evaluate(expression, arg)

    async def set_input_files(self, files: str | list[str]) -> None:
        await self._locator.set_input_files(files)

    def nth(self, index: int) -> "PlaywrightElement":
        return PlaywrightElement(self._locator.nth(index))

    def first(self) -> "PlaywrightElement":
        return PlaywrightElement(self._locator.first)

    def locate(self, selector: str) -> "PlaywrightElement":
        return PlaywrightElement(self._locator.locator(selector))


class PlaywrightSurface:
    """BrowserSurface over a single Playwright page."""

    def __init__(self, page: Page, context: BrowserContext) -> None:
        self._page = page
        self._context = context

    @property
    def page(self) -> Page:
        return self._page

    # --- navigation ---

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> None:
        await self._page.goto(url, wait_until=wait_until)

    def url(self) -> str:
        return self._page.url

    async def wait_for_selector(self, selector: str, *, timeout: float = 10_000) -> bool:
        try:
            await self._page.wait_for_selector(selector, state="visible", timeout=timeout)
            return True
        except PlaywrightError:
            return False

    async def wait_for_url(self, fragment: str, *, timeout: float = 15_000) -> bool:
        try:
            await self._page.wait_for_url(lambda u: fragment in u, timeout=timeout)
            return True
        except PlaywrightError:
            return False

    # --- querying ---

    def locate(self, selector: str) -> PlaywrightElement:
        return PlaywrightElement(self._page.locator(selector))

    # --- events ---

    def on_response(self, predicate: ResponsePredicate) -> asyncio.Future:
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _handler(response: Any) -> None:
            if future.done():
                return
            try:
                matched = predicate(response.url, response.request.method)
            except Exception as exc:
                logger.debug("Response predicate failed on %s: %s", response.url, exc)
                return
            if matched:
                future.set_result(response)

        self._page.on("response", _handler)
        future.add_done_callback(lambda _: self._page.remove_listener("response", _handler))
        return future

    def on_file_chooser(self) -> asyncio.Future:
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def _handler(chooser: Any) -> None:
            if not future.done():
                future.set_result(chooser)

        self._page.on("filechooser", _handler)
        future.add_done_callback(lambda _: self._page.remove_listener("filechooser", _handler))
        return future

    def on_navigation(self, callback: Callable[[str], None]) -> None:
        def _handler(frame: Any) -> None:
            if frame == self._page.main_frame:
                callback(frame.url)

        self._page.on("framenavigated", _handler)

    # --- scrolling ---

    async def scroll_by(self, dx: int, dy: int) -> None:
        await self._page.evaluate("([dx, dy]) => window.scrollBy(dx, dy)", [dx, dy])

    async def scroll_to_bottom(self) -> None:
        await self._page.evaluate("() => window.scrollTo(0, document.body.scrollHeight)")

    async def viewport_height(self) -> int:
        return int(await self._page.evaluate("() => window.innerHeight"))

    # --- pages ---

    async def open_page(self, url: str) -> "PlaywrightSurface":
        page = await self._context.new_page()
        try:
            await page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError:
            await page.close()
            raise
        return PlaywrightSurface(page, self._context)

    async def close(self) -> None:
        if not self._page.is_closed():
            await self._page.close()

    # --- session state ---

    async def cookies(self) -> list[dict[str, Any]]:
        return [dict(c) for c in await self._context.cookies()]

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        await self._context.add_cookies(cookies)


class PlaywrightBrowser:
    """Owns the Playwright process, browser and context for one session."""

    def __init__(self) -> None:
        self._pw: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._surface: PlaywrightSurface | None = None

    @property
    def surface(self) -> PlaywrightSurface:
        assert self._surface is not None, "Browser not launched; call launch() first."
        return self._surface

    async def launch(self, headless: bool = False, slow_mo: int = 0) -> PlaywrightSurface:
        try:
            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(
                headless=headless,
                slow_mo=slow_mo,
                args=["--start-maximized", "--disable-blink-features=AutomationControlled"],
            )
            self._context = await self._browser.new_context(
                viewport={"width": 1440, "height": 900},
                locale="zh-CN",
                extra_http_headers={"Accept-Language": "zh-CN,zh;q=0.9"},
            )
            page = await self._context.new_page()
            page.set_default_timeout(30_000)
            self._surface = PlaywrightSurface(page, self._context)
            logger.info("Browser launched (headless=%s).", headless)
            return self._surface
        except Exception as exc:
            raise BrowserLaunchError(f"Failed to start Playwright Chromium: {exc}") from exc

    async def close(self) -> None:
        if self._context:
            await self._context.close()
        if self._browser:
            await self._browser.close()
        if self._pw:
            await self._pw.stop()
        logger.info("Browser closed.")
