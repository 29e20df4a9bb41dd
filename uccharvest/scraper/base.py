"""The contract every portal scraper honours.

``BaseScraper.search`` validates the query, applies the per-portal warm-up
delay, runs one attempt at a time through :func:`retry_with_backoff` and
turns every outcome into a :class:`ScraperResult`. Browser-backed
implementations borrow a page through :meth:`BaseScraper.page_scope`, which
captures diagnostics on the final failure and always closes the page.
"""

from __future__ import annotations

import asyncio
import itertools
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Optional

from . import config
from .browser import BrowserEngine, BrowserSession, PageHandle, PlaywrightEngine, is_target_closed_error
from .diagnostics import DiagnosticsArtifacts, capture_diagnostics
from .logging_utils import _scraper_event
from .models import ScraperConfig, ScraperResult
from .retry_policy import is_retryable_error, retry_with_backoff
from .utils import log_line, sanitize_filename, short_error_message

INVALID_COMPANY_NAME = "Invalid company name"

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class SearchAttempt:
    company_name: str
    search_url: str
    number: int
    max_attempts: int

    @property
    def is_final(self) -> bool:
        return self.number >= self.max_attempts


class BaseScraper(ABC):
    def __init__(
        self,
        scraper_config: ScraperConfig,
        *,
        engine: Optional[BrowserEngine] = None,
        sleep: SleepFn = asyncio.sleep,
        diagnostics_dir: Optional[Path] = None,
        capture_diagnostics_on_failure: Optional[bool] = None,
    ) -> None:
        self.config = scraper_config
        self._engine = engine
        self._session: Optional[BrowserSession] = None
        self._session_lock = asyncio.Lock()
        self._sleep = sleep
        self.diagnostics_dir = Path(diagnostics_dir or config.DIAGNOSTICS_DIR)
        self.capture_diagnostics_on_failure = (
            config.CAPTURE_DIAGNOSTICS
            if capture_diagnostics_on_failure is None
            else capture_diagnostics_on_failure
        )
        self.last_diagnostics: Optional[DiagnosticsArtifacts] = None

    @property
    def state(self) -> str:
        return self.config.state

    @property
    def warmup_seconds(self) -> float:
        return config.warmup_seconds(self.config.rate_limit_per_minute)

    @abstractmethod
    def get_manual_search_url(self, company_name: str) -> str:
        """Return a URL a person can open to run the same search by hand."""

    @abstractmethod
    async def perform_search(self, attempt: SearchAttempt) -> ScraperResult:
        """Run one search attempt; raise to signal failure."""

    async def search(self, company_name: str) -> ScraperResult:
        query = (company_name or "").strip()
        if not query:
            _scraper_event("search", state=self.state, outcome="invalid_input")
            return ScraperResult.failure(INVALID_COMPANY_NAME)

        search_url = self.get_manual_search_url(query)
        label = f"{self.state} UCC search for {query}"
        max_attempts = max(1, self.config.retry_attempts)
        attempt_numbers = itertools.count(1)
        retries = 0

        def _count_retry(attempt: int, exc: BaseException, delay: float) -> None:
            nonlocal retries
            retries += 1

        async def _operation() -> ScraperResult:
            attempt = SearchAttempt(
                company_name=query,
                search_url=search_url,
                number=next(attempt_numbers),
                max_attempts=max_attempts,
            )
            return await self.perform_search(attempt)

        _scraper_event("search", state=self.state, outcome="started", query=query)
        if self.warmup_seconds > 0:
            await self._sleep(self.warmup_seconds)

        try:
            outcome = await retry_with_backoff(
                _operation,
                label,
                max_attempts=max_attempts,
                sleep=self._sleep,
                on_retry=_count_retry,
            )
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__
            _scraper_event(
                "search",
                state=self.state,
                outcome="failed",
                query=query,
                retry_count=retries,
                error=short_error_message(exc),
            )
            return ScraperResult.failure(message, search_url=search_url, retry_count=retries)

        result = outcome.result
        result.retry_count = outcome.retry_count
        if result.search_url is None:
            result.search_url = search_url
        _scraper_event(
            "search",
            state=self.state,
            outcome="success" if result.success else "failed",
            query=query,
            filings=len(result.filings),
            retry_count=result.retry_count,
            parsing_errors=len(result.parsing_errors or []),
        )
        return result

    async def _ensure_session(self) -> BrowserSession:
        async with self._session_lock:
            if self._session is None:
                if self._engine is None:
                    self._engine = PlaywrightEngine(timeout_ms=self.config.timeout_ms)
                self._session = await self._engine.launch()
        return self._session

    @asynccontextmanager
    async def page_scope(self, attempt: SearchAttempt) -> AsyncIterator[PageHandle]:
        """Yield a fresh page for ``attempt`` and close it on every exit path."""

        session = await self._ensure_session()
        page = await session.new_page()
        try:
            yield page
        except Exception as exc:
            if self.capture_diagnostics_on_failure and (attempt.is_final or not is_retryable_error(exc)):
                basename = sanitize_filename(f"{self.state}_{attempt.company_name}_attempt{attempt.number}")
                self.last_diagnostics = await capture_diagnostics(page, self.diagnostics_dir, basename)
            raise
        finally:
            await self._close_page(page)

    async def _close_page(self, page: PageHandle) -> None:
        try:
            if not page.is_closed():
                await page.close()
        except Exception as exc:  # noqa: BLE001
            if not is_target_closed_error(exc):
                log_line(f"[BROWSER] Failed to close page: {short_error_message(exc)}")

    async def close_browser(self) -> None:
        """Release the browser session; calling it again is a no-op."""

        session, self._session = self._session, None
        if session is None:
            return
        try:
            await session.close()
        except Exception as exc:  # noqa: BLE001
            log_line(f"[BROWSER] Error while closing browser for {self.state}: {short_error_message(exc)}")
        else:
            _scraper_event("state", phase="browser", kind="closed", state=self.state)

    async def __aenter__(self) -> "BaseScraper":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close_browser()


__all__ = ["BaseScraper", "INVALID_COMPANY_NAME", "SearchAttempt"]
