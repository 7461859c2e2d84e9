from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, Protocol

from playwright.async_api import Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import BrowserConfig
from ..models import SessionCredential


logger = logging.getLogger(__name__)

UrlPredicate = Callable[[str], bool]

# Read-only: collects the rendered text of every element matching the selector.
_TEXT_SNIPPETS_JS = """
(selector) => Array.from(document.querySelectorAll(selector))
  .map(el => (el.innerText || '').trim())
  .filter(t => t.length > 0)
"""


class BrowserSession(Protocol):
    """
    What the login flow and the balance reader need from a browser tab.

    The wait_* methods return False on timeout instead of raising, so callers decide whether a timeout is fatal.
    """

    @property
    def url(self) -> str: ...

    async def goto(self, url: str, *, wait_until: str = "networkidle", timeout_ms: int = 60_000) -> None: ...

    async def settle(self, *, timeout_ms: int = 10_000) -> None: ...

    async def fill(self, selector: str, value: str) -> None: ...

    async def click(self, selector: str) -> None: ...

    async def press(self, selector: str, key: str) -> None: ...

    async def wait_for_url(self, predicate: UrlPredicate, *, timeout_ms: int) -> bool: ...

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool: ...

    async def wait_for_text(self, text: str, *, timeout_ms: int) -> bool: ...

    async def cookies(self) -> list[dict[str, Any]]: ...

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None: ...

    async def screenshot(self, path: str) -> None: ...

    async def text_snippets(self, selector: str) -> list[str]: ...


class PlaywrightSession:
    """
    `BrowserSession` over a Playwright page.
    """

    def __init__(self, page: Page) -> None:
        self._page = page

    @property
    def url(self) -> str:
        return self._page.url or ""

    async def goto(self, url: str, *, wait_until: str = "networkidle", timeout_ms: int = 60_000) -> None:
        await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def settle(self, *, timeout_ms: int = 10_000) -> None:
        try:
            await self._page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            pass
        await self._page.wait_for_timeout(500)

    async def fill(self, selector: str, value: str) -> None:
        await self._page.fill(selector, value)

    async def click(self, selector: str) -> None:
        await self._page.click(selector)

    async def press(self, selector: str, key: str) -> None:
        await self._page.press(selector, key)

    async def wait_for_url(self, predicate: UrlPredicate, *, timeout_ms: int) -> bool:
        try:
            await self._page.wait_for_url(predicate, timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    async def wait_for_selector(self, selector: str, *, timeout_ms: int) -> bool:
        try:
            await self._page.wait_for_selector(selector, state="visible", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    async def wait_for_text(self, text: str, *, timeout_ms: int) -> bool:
        try:
            await self._page.get_by_text(text, exact=False).first.wait_for(state="visible", timeout=timeout_ms)
            return True
        except PlaywrightTimeoutError:
            return False

    async def cookies(self) -> list[dict[str, Any]]:
        return [dict(c) for c in await self._page.context.cookies()]

    async def add_cookies(self, cookies: list[dict[str, Any]]) -> None:
        await self._page.context.add_cookies(cookies)

    async def screenshot(self, path: str) -> None:
        await self._page.screenshot(path=path, full_page=True)

    async def text_snippets(self, selector: str) -> list[str]:
        result = await self._page.evaluate(_TEXT_SNIPPETS_JS, selector)
        return [str(s) for s in (result or [])]


@asynccontextmanager
async def open_browser(
    cfg: BrowserConfig,
    credential: Optional[SessionCredential] = None,
) -> AsyncIterator[BrowserSession]:
    """
    Launch headless Chromium, optionally pre-seeded with the cached GitHub session cookie.

    The context and browser are closed on every exit path.
    """
    launch_args = ["--no-sandbox", "--disable-setuid-sandbox"]
    async with async_playwright() as p:
        try:
            browser = await p.chromium.launch(headless=cfg.headless, args=launch_args)
        except Exception as e:
            if "Executable doesn't exist" not in str(e):
                raise
            logger.warning("Playwright Chromium executable missing; falling back to system Chrome. (%s)", e)
            browser = await p.chromium.launch(headless=cfg.headless, args=launch_args, channel="chrome")
        try:
            ctx = await browser.new_context(user_agent=cfg.user_agent, color_scheme="light")
            try:
                if credential is not None:
                    await ctx.add_cookies([credential.to_cookie()])
                page = await ctx.new_page()
                yield PlaywrightSession(page)
            finally:
                try:
                    await ctx.close()
                except Exception:
                    logger.debug("Failed to close browser context.", exc_info=True)
        finally:
            try:
                await browser.close()
            except Exception:
                logger.debug("Failed to close browser.", exc_info=True)
