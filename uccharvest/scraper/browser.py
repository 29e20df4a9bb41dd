"""Browser automation capability surface.

Scrapers depend only on the small Protocols below. :class:`PlaywrightEngine`
is the production implementation; tests and minimal deployments inject
their own engine instead.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from . import config
from .logging_utils import _scraper_event


class PageHandle(Protocol):
    url: str

    async def goto(self, url: str, *, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> Any: ...

    async def content(self) -> str: ...

    async def evaluate(self, expression: str, arg: Any = None) -> Any: ...

    async def query_selector(self, selector: str) -> Any: ...

    async def fill(self, selector: str, value: str, *, timeout: Optional[float] = None) -> None: ...

    async def click(self, selector: str, *, timeout: Optional[float] = None) -> None: ...

    async def press(self, selector: str, key: str, *, timeout: Optional[float] = None) -> None: ...

    async def wait_for_selector(self, selector: str, *, timeout: Optional[float] = None) -> Any: ...

    async def wait_for_load_state(self, state: str = "load", *, timeout: Optional[float] = None) -> None: ...

    async def screenshot(self, *, path: str, full_page: bool = False) -> Any: ...

    async def close(self) -> None: ...

    def is_closed(self) -> bool: ...


class BrowserSession(Protocol):
    async def new_page(self) -> PageHandle: ...

    async def close(self) -> None: ...


class BrowserEngine(Protocol):
    async def launch(self) -> BrowserSession: ...


def is_target_closed_error(exc: BaseException) -> bool:
    """Return ``True`` if *exc* indicates the browser target is gone."""

    message = str(exc)
    return any(
        marker in message
        for marker in (
            "Target closed",
            "Target crashed",
            "has been closed",
            "Execution context was destroyed",
        )
    )


class PlaywrightSession:
    """One Chromium browser plus a single context, owned by one scraper."""

    def __init__(self, playwright: Playwright, browser: Browser, context: BrowserContext, *, timeout_ms: int) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._timeout_ms = timeout_ms
        self._closed = False

    async def new_page(self) -> PageHandle:
        page = await self._context.new_page()
        page.set_default_timeout(self._timeout_ms)
        return page

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._context.close()
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightEngine:
    def __init__(
        self,
        *,
        headless: Optional[bool] = None,
        user_agent: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        args: Sequence[str] = config.BROWSER_ARGS,
    ) -> None:
        self.headless = config.HEADLESS if headless is None else headless
        self.user_agent = user_agent or config.USER_AGENT
        self.timeout_ms = timeout_ms or int(config.NAV_TIMEOUT_SECONDS * 1000)
        self.args = list(args)

    async def launch(self) -> PlaywrightSession:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=self.headless, args=self.args)
            context = await browser.new_context(
                user_agent=self.user_agent,
                viewport=config.VIEWPORT,
                locale="en-US",
            )
        except Exception:
            await playwright.stop()
            raise
        _scraper_event("state", phase="browser", kind="launched", headless=self.headless)
        return PlaywrightSession(playwright, browser, context, timeout_ms=self.timeout_ms)


__all__ = [
    "BrowserEngine",
    "BrowserSession",
    "PageHandle",
    "PlaywrightEngine",
    "PlaywrightSession",
    "is_target_closed_error",
]
