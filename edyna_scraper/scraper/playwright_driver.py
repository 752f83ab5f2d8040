"""Utilities for launching and interacting with Playwright browsers."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from edyna_scraper import config
from edyna_scraper.scraper.errors import ExtractionFailed, NavigationFailed

logger = logging.getLogger(__name__)


@asynccontextmanager
async def with_browser(headless: Optional[bool] = None) -> AsyncIterator[Browser]:
    """Async context manager yielding a configured Chromium browser instance."""
    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=config.PLAYWRIGHT_HEADLESS if headless is None else headless,
            args=list(config.PLAYWRIGHT_LAUNCH_ARGS),
        )
        try:
            yield browser
        finally:
            await browser.close()


@asynccontextmanager
async def with_context(
    browser: Browser,
    *,
    user_agent: str | None = None,
    locale: str | None = None,
    timezone_id: str | None = None,
    viewport: dict | None = None,
) -> AsyncIterator[BrowserContext]:
    """Create a new browser context with project defaults applied."""
    context = await browser.new_context(
        user_agent=user_agent or config.PLAYWRIGHT_USER_AGENT,
        locale=locale or config.PLAYWRIGHT_LOCALE,
        timezone_id=timezone_id or config.SITE_TIMEZONE,
        viewport=viewport or config.PLAYWRIGHT_VIEWPORT,
    )
    try:
        yield context
    finally:
        await context.close()


async def new_page(context: BrowserContext) -> Page:
    """Open a new page with sensible defaults."""
    page = await context.new_page()
    page.set_default_timeout(60_000)
    page.set_default_navigation_timeout(90_000)
    return page


async def wait_for_network_idle(page: Page, timeout: float = 30_000) -> None:
    """Wait for the network to be idle to stabilise the DOM."""
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout)
    except PlaywrightTimeoutError:
        logger.debug(f"Network did not go idle within {timeout} ms")
        # Fallback: small delay to allow async data to settle.
        await asyncio.sleep(2)


class PageActions:
    """The browser capabilities the portal flow relies on, bound to one page.

    Soft waits report False on timeout. Every other Playwright failure is
    raised as NavigationFailed or ExtractionFailed, so callers never see
    Playwright exception types.
    """

    def __init__(self, page: Page):
        self.page = page

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            raise NavigationFailed(f"Could not open {url}: {exc}") from exc

    async def wait_for_element(self, selector: str, timeout: float) -> bool:
        try:
            await self.page.wait_for_selector(selector, timeout=timeout)
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as exc:
            raise NavigationFailed(f"Waiting for {selector} failed: {exc}") from exc
        return True

    async def exists(self, selector: str) -> bool:
        try:
            return await self.page.query_selector(selector) is not None
        except PlaywrightError as exc:
            # A postback can tear down the document mid-query; nothing is there yet.
            logger.debug(f"Presence check for {selector} failed: {exc}")
            return False

    async def read_subtree(self, selector: str) -> Optional[str]:
        """Outer HTML of the first element matching selector, if any."""
        try:
            locator = self.page.locator(selector)
            if await locator.count() == 0:
                return None
            return await locator.first.evaluate("node => node.outerHTML")
        except PlaywrightError as exc:
            raise ExtractionFailed(f"Could not read {selector}: {exc}") from exc

    async def click(self, selector: str) -> None:
        try:
            await self.page.click(selector)
        except PlaywrightError as exc:
            raise NavigationFailed(f"Click on {selector} failed: {exc}") from exc

    async def click_nth(self, selector: str, index: int) -> bool:
        """Click the index-th match of selector; False when it does not exist."""
        try:
            locator = self.page.locator(selector)
            if index < 0 or index >= await locator.count():
                return False
            await locator.nth(index).click()
        except PlaywrightError as exc:
            raise NavigationFailed(f"Click on {selector} #{index} failed: {exc}") from exc
        return True

    async def fill(self, selector: str, text: str, *, delay_ms: float = 0) -> None:
        try:
            await self.page.click(selector, click_count=3)
            await self.page.type(selector, text, delay=delay_ms)
        except PlaywrightError as exc:
            raise NavigationFailed(f"Typing into {selector} failed: {exc}") from exc

    async def current_url(self) -> str:
        return self.page.url

    async def wait_for_idle(self, timeout: float) -> None:
        try:
            await wait_for_network_idle(self.page, timeout=timeout)
        except PlaywrightError as exc:
            raise NavigationFailed(f"Page failed while settling: {exc}") from exc

    async def wait_for_url_change(self, before_url: str, timeout: float) -> bool:
        try:
            await self.page.wait_for_url(lambda url: url != before_url, timeout=timeout)
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as exc:
            raise NavigationFailed(f"Waiting for navigation failed: {exc}") from exc
        await self.wait_for_idle(timeout)
        return True

    async def pause(self, ms: float) -> None:
        if ms <= 0:
            return
        try:
            await self.page.wait_for_timeout(ms)
        except PlaywrightError as exc:
            raise NavigationFailed(f"Page closed during pause: {exc}") from exc

    async def screenshot(self, path: Path) -> None:
        try:
            await self.page.screenshot(path=str(path), full_page=True)
        except PlaywrightError as exc:
            raise NavigationFailed(f"Screenshot {path} failed: {exc}") from exc
