"""One browser-driven search algorithm shared by every portal.

Everything that differs between portals (URLs, selectors, text markers,
column layouts) lives in a :class:`PortalProfile`; :class:`PortalScraper`
only walks the steps: open the search page, bail out on CAPTCHA / offline /
login walls, submit the query unless results are already shown, then page
through the listing and validate what was extracted.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from bs4 import BeautifulSoup

from . import config
from .auth import DEFAULT_LOGIN_SELECTORS, LoginSelectors, PortalCredentials, load_credentials, perform_login
from .base import BaseScraper, SearchAttempt, SleepFn
from .browser import BrowserEngine, PageHandle
from .errors import AuthenticationRequiredError, CaptchaDetectedError, PortalOfflineError, TransientNetworkError
from .extraction import (
    DEFAULT_EXTRACTION_PROFILE,
    ExtractionProfile,
    contains_any,
    extract_filings,
    has_no_results_message,
    has_result_rows,
    page_text,
    parse_html,
)
from .logging_utils import _scraper_event
from .models import ScraperConfig, ScraperResult
from .pagination import DEFAULT_PAGINATION_SELECTORS, PaginationConfig, PaginationEngine, PaginationSelectors
from .utils import log_line, short_error_message
from .validation import validate_filings

STRUCTURAL_DRIFT_WARNING = (
    "No filings extracted and no 'no results' message found; portal structure may have changed"
)


@dataclass(frozen=True)
class EntryStep:
    """A click needed to reach the search form (landing pages, terms boxes)."""

    selectors: Tuple[str, ...]
    description: str
    required: bool = False


@dataclass(frozen=True)
class PortalProfile:
    """Per-portal configuration consumed by :class:`PortalScraper`."""

    scraper_config: ScraperConfig
    name: str
    # ``{query}`` is replaced with the URL-encoded company name.
    manual_url_template: str
    search_input_selectors: Tuple[str, ...] = (
        "input[name*='debtor' i]",
        "input[name*='name' i]",
        "input[placeholder*='name' i]",
        "input[type='search']",
        "input[type='text']",
    )
    submit_selectors: Tuple[str, ...] = (
        "button[type='submit']",
        "input[type='submit']",
        'button:has-text("Search")',
        'button:has-text("Find")',
    )
    entry_steps: Tuple[EntryStep, ...] = ()
    results_ready_selectors: Tuple[str, ...] = ()
    extraction: ExtractionProfile = DEFAULT_EXTRACTION_PROFILE
    pagination_selectors: PaginationSelectors = DEFAULT_PAGINATION_SELECTORS
    detect_infinite_scroll: bool = False
    captcha_markers: Tuple[str, ...] = (
        "captcha",
        "i'm not a robot",
        "i am not a robot",
        "verify you are human",
    )
    captcha_selectors: Tuple[str, ...] = (
        "iframe[src*='recaptcha']",
        "iframe[src*='hcaptcha']",
        ".g-recaptcha",
        ".h-captcha",
    )
    offline_markers: Tuple[str, ...] = (
        "temporarily unavailable",
        "service unavailable",
        "under maintenance",
        "scheduled maintenance",
        "system is currently unavailable",
    )
    login_markers: Tuple[str, ...] = ()
    login_selectors: Tuple[str, ...] = ("input[type='password']",)
    login: LoginSelectors = DEFAULT_LOGIN_SELECTORS
    uses_credentials: bool = False
    # Free-form notes surfaced by the CLI (e.g. "requires account login").
    notes: str = ""

    @property
    def state(self) -> str:
        return self.scraper_config.state

    def manual_search_url(self, company_name: str) -> str:
        return self.manual_url_template.format(
            base_url=self.scraper_config.base_url,
            query=quote(company_name.strip(), safe=""),
        )


class PortalScraper(BaseScraper):
    def __init__(
        self,
        profile: PortalProfile,
        *,
        credentials: Optional[PortalCredentials] = None,
        engine: Optional[BrowserEngine] = None,
        sleep: SleepFn = asyncio.sleep,
        pagination_config: Optional[PaginationConfig] = None,
        diagnostics_dir: Optional[Path] = None,
        capture_diagnostics_on_failure: Optional[bool] = None,
    ) -> None:
        super().__init__(
            profile.scraper_config,
            engine=engine,
            sleep=sleep,
            diagnostics_dir=diagnostics_dir,
            capture_diagnostics_on_failure=capture_diagnostics_on_failure,
        )
        self.profile = profile
        if credentials is None and profile.uses_credentials:
            credentials = load_credentials(profile.state)
        self.credentials = credentials
        self.pagination_config = pagination_config or PaginationConfig(
            detect_infinite_scroll=profile.detect_infinite_scroll
        )

    def get_manual_search_url(self, company_name: str) -> str:
        return self.profile.manual_search_url(company_name)

    async def perform_search(self, attempt: SearchAttempt) -> ScraperResult:
        async with self.page_scope(attempt) as page:
            return await self._scrape(page, attempt)

    async def _scrape(self, page: PageHandle, attempt: SearchAttempt) -> ScraperResult:
        timeout_ms = self.config.timeout_ms
        _scraper_event("nav", step="goto", state=self.state, url=attempt.search_url, attempt=attempt.number)
        await page.goto(attempt.search_url, wait_until="networkidle", timeout=timeout_ms)

        html = await page.content()
        html = await self._handle_portal_signals(page, html)

        extraction = self.profile.extraction
        if has_result_rows(html, extraction, fallback=False) or has_no_results_message(html, extraction):
            log_line(f"[SEARCH] {self.profile.name}: results already rendered; skipping search form")
        else:
            await self._submit_search(page, attempt.company_name)
            html = await page.content()
            html = await self._handle_portal_signals(page, html, allow_login=False, check_text=False)

        if not has_result_rows(html, extraction) and has_no_results_message(html, extraction):
            log_line(f"[SEARCH] {self.profile.name}: no filings found for {attempt.company_name!r}")
            return ScraperResult(success=True, filings=[], search_url=attempt.search_url)

        return await self._collect_results(page, attempt)

    def _is_captcha(self, soup: BeautifulSoup, text: str) -> bool:
        if text and contains_any(text, self.profile.captcha_markers):
            return True
        return any(soup.select_one(selector) is not None for selector in self.profile.captcha_selectors)

    def _is_login_wall(self, soup: BeautifulSoup, text: str) -> bool:
        if text and self.profile.login_markers and contains_any(text, self.profile.login_markers):
            return True
        return any(soup.select_one(selector) is not None for selector in self.profile.login_selectors)

    async def _handle_portal_signals(
        self,
        page: PageHandle,
        html: str,
        *,
        allow_login: bool = True,
        check_text: bool = True,
    ) -> str:
        """Raise for terminal portal states; log in first when credentials allow.

        With ``check_text`` off only selectors are checked, so debtor names in
        a results listing cannot trip the text markers.

        Returns the markup of the page to continue from.
        """

        soup = parse_html(html)
        text = page_text(html) if check_text else ""
        name = self.profile.name

        if self._is_captcha(soup, text):
            raise CaptchaDetectedError(f"CAPTCHA detected on {name} portal - manual search required")
        if text and contains_any(text, self.profile.offline_markers):
            raise PortalOfflineError(f"{name} portal is offline or temporarily unavailable")
        if not self._is_login_wall(soup, text):
            return html

        if not allow_login or self.credentials is None:
            raise AuthenticationRequiredError(
                f"{name} UCC portal requires account login - automated search not available without credentials"
            )

        await perform_login(
            page,
            self.credentials,
            portal=name,
            selectors=self.profile.login,
            timeout_ms=self.config.timeout_ms,
        )
        html = await page.content()
        return await self._handle_portal_signals(page, html, allow_login=False)

    async def _run_entry_steps(self, page: PageHandle) -> None:
        for step in self.profile.entry_steps:
            selector = await self._first_present(page, step.selectors)
            if selector is None:
                if step.required:
                    raise TransientNetworkError(
                        f"{step.description} not found on {self.profile.name} portal; portal structure may have changed"
                    )
                log_line(f"[SEARCH] {self.profile.name}: {step.description} not found; continuing")
                continue
            await page.click(selector, timeout=config.CLICK_TIMEOUT_MS)
            _scraper_event("nav", step="entry", state=self.state, description=step.description)
            await self._sleep(config.POST_LOAD_SETTLE_SECONDS)

    async def _submit_search(self, page: PageHandle, company_name: str) -> None:
        await self._run_entry_steps(page)
        candidates = self.profile.search_input_selectors
        try:
            await page.wait_for_selector(
                ", ".join(candidates),
                timeout=config.SELECTOR_TIMEOUT_SECONDS * 1000,
            )
        except Exception as exc:  # noqa: BLE001
            raise TransientNetworkError(
                f"Search form not found on {self.profile.name} portal: {short_error_message(exc)}"
            ) from exc

        input_selector = await self._first_present(page, candidates)
        if input_selector is None:
            raise TransientNetworkError(f"Search form not found on {self.profile.name} portal")

        await page.fill(input_selector, company_name, timeout=config.CLICK_TIMEOUT_MS)
        submit_selector = await self._first_present(page, self.profile.submit_selectors)
        _scraper_event(
            "nav",
            step="submit",
            state=self.state,
            input_selector=input_selector,
            submit_selector=submit_selector,
        )
        if submit_selector is not None:
            await page.click(submit_selector, timeout=config.CLICK_TIMEOUT_MS)
        else:
            await page.press(input_selector, "Enter", timeout=config.CLICK_TIMEOUT_MS)
        await page.wait_for_load_state("networkidle", timeout=self.config.timeout_ms)

        if self.profile.results_ready_selectors:
            try:
                await page.wait_for_selector(
                    ", ".join(self.profile.results_ready_selectors),
                    timeout=config.RESULTS_TIMEOUT_SECONDS * 1000,
                )
            except Exception as exc:  # noqa: BLE001
                # Absent results are judged by the no-results and drift checks.
                log_line(f"[SEARCH] {self.profile.name}: results container not seen ({short_error_message(exc)})")
        await self._sleep(config.POST_LOAD_SETTLE_SECONDS)

    @staticmethod
    async def _first_present(page: PageHandle, candidates: Tuple[str, ...]) -> Optional[str]:
        for selector in candidates:
            if await page.query_selector(selector) is not None:
                return selector
        return None

    async def _collect_results(self, page: PageHandle, attempt: SearchAttempt) -> ScraperResult:
        engine = PaginationEngine(
            self.pagination_config,
            selectors=self.profile.pagination_selectors,
            sleep=self._sleep,
        )
        raw_records: List[Dict[str, str]] = []
        extraction_errors: List[str] = []
        seen: set[Tuple[Tuple[str, str], ...]] = set()
        last_html = ""

        async def _extract_page(current: PageHandle, page_number: int) -> int:
            nonlocal last_html
            last_html = await current.content()
            extracted = extract_filings(last_html, self.profile.extraction)
            prefix = f"Page {page_number}: " if page_number > 1 else ""
            extraction_errors.extend(prefix + error for error in extracted.errors)
            added = 0
            for record in extracted.records:
                # Load-more and infinite-scroll pages re-render earlier rows.
                key = tuple(sorted(record.items()))
                if key in seen:
                    continue
                seen.add(key)
                raw_records.append(record)
                added += 1
            return added

        run = await engine.collect(page, _extract_page)
        outcome = validate_filings(raw_records, extraction_errors)
        parsing_errors = list(outcome.validation_errors)
        if not outcome.validated_filings and not has_no_results_message(last_html, self.profile.extraction):
            parsing_errors.append(STRUCTURAL_DRIFT_WARNING)

        log_line(
            f"[SEARCH] {self.profile.name}: {len(outcome.validated_filings)} filings "
            f"from {run.pages_visited} page(s) for {attempt.company_name!r}"
        )
        return ScraperResult(
            success=True,
            filings=outcome.validated_filings,
            search_url=attempt.search_url,
            parsing_errors=parsing_errors or None,
        )


__all__ = ["EntryStep", "PortalProfile", "PortalScraper", "STRUCTURAL_DRIFT_WARNING"]
