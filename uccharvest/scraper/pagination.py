"""Pagination detection and navigation for portal result listings.

Handles the pagination idioms seen across state portals:

- Numbered page links (1, 2, 3, ...)
- Next/Previous controls
- "Load More" buttons
- URL parameter-based pagination (``?page=2``)
- Infinite scroll (opt-in, see ``PaginationConfig.detect_infinite_scroll``)

Detection parses the page markup; navigation drives the live page. Every
navigation failure is reported as "cannot go further" instead of raising.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Tuple, TypeVar
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from . import config
from .browser import PageHandle
from .extraction import parse_html
from .logging_utils import _scraper_event
from .models import PaginationState, PaginationType
from .utils import collapse_whitespace, log_line, short_error_message

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]

# Appended to click candidates so disabled controls are never chosen.
_ENABLED_SUFFIX = ':not([disabled]):not(.disabled):not([aria-disabled="true"])'
_VISIBLE_SUFFIX = " >> visible=true"

SCROLL_METRICS_JS = """
() => ({
  scrollHeight: document.body ? document.body.scrollHeight : 0,
  innerHeight: window.innerHeight,
  scrollY: window.scrollY,
})
"""
SCROLL_HEIGHT_JS = "() => document.body ? document.body.scrollHeight : 0"
SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"


@dataclass(frozen=True)
class PaginationSelectors:
    """Markup hints for detection (BeautifulSoup CSS) and navigation (Playwright)."""

    numbered_links: Tuple[str, ...] = (
        ".pagination a",
        ".pager a",
        "a[class*='page']",
        "a[class*='pagination']",
        "a[href*='page=']",
        "a[href*='pageNumber=']",
        "a[href*='pageNum=']",
    )
    current_page: Tuple[str, ...] = (
        ".pagination .active",
        ".pagination .current",
        ".pager .active",
        ".pager .current",
        "[aria-current='page']",
    )
    next_texts: Tuple[str, ...] = ("next", "next page", "›", "→", "»")
    next_markers: Tuple[str, ...] = (".next", ".next-page", "[aria-label*='next' i]")
    load_more_texts: Tuple[str, ...] = ("load more", "show more")
    load_more_markers: Tuple[str, ...] = (".load-more", ".show-more")
    detect_url_params: Tuple[str, ...] = ("page", "pageNum", "pageNumber")
    navigate_url_params: Tuple[str, ...] = ("page", "pageNum", "pageNumber", "p")

    numbered_click: Tuple[str, ...] = (".pagination a", ".pager a", "a[class*='page']")
    next_click: Tuple[str, ...] = (
        'a:has-text("Next")',
        'button:has-text("Next")',
        ".next",
        ".next-page",
        '[aria-label*="next" i]',
        'a:has-text("›")',
        'a:has-text("→")',
        'a:has-text("»")',
    )
    load_more_click: Tuple[str, ...] = (
        'button:has-text("Load More")',
        'button:has-text("Show More")',
        'a:has-text("Load More")',
        ".load-more",
        ".show-more",
    )


DEFAULT_PAGINATION_SELECTORS = PaginationSelectors()


@dataclass
class PaginationConfig:
    max_pages: int = field(default_factory=lambda: config.MAX_PAGES)
    wait_between_pages: float = field(default_factory=lambda: config.WAIT_BETWEEN_PAGES_SECONDS)
    navigation_timeout_ms: int = field(
        default_factory=lambda: int(config.PAGINATION_NAV_TIMEOUT_SECONDS * 1000)
    )
    detect_infinite_scroll: bool = False
    infinite_scroll_min_growth: int = field(default_factory=lambda: config.INFINITE_SCROLL_MIN_GROWTH_PX)

    def __post_init__(self) -> None:
        self.max_pages = max(1, int(self.max_pages or 1))


@dataclass
class PaginationRun(Generic[T]):
    pages: List[T] = field(default_factory=list)
    pages_visited: int = 0
    last_state: Optional[PaginationState] = None


def _int_or_none(text: str) -> Optional[int]:
    text = text.strip()
    return int(text) if text.isdigit() else None


def _is_disabled(node: Tag) -> bool:
    for candidate in (node, node.parent):
        if not isinstance(candidate, Tag):
            continue
        classes = candidate.get("class") or []
        if (
            candidate.has_attr("disabled")
            or "disabled" in classes
            or str(candidate.get("aria-disabled", "")).lower() == "true"
        ):
            return True
    return False


def _is_active(node: Tag) -> bool:
    for candidate in (node, node.parent):
        if not isinstance(candidate, Tag):
            continue
        classes = candidate.get("class") or []
        if "active" in classes or "current" in classes or candidate.get("aria-current") == "page":
            return True
    return False


def _select_unique(soup: BeautifulSoup, selectors: Tuple[str, ...]) -> List[Tag]:
    seen: set[int] = set()
    found: List[Tag] = []
    for selector in selectors:
        for node in soup.select(selector):
            if id(node) in seen:
                continue
            seen.add(id(node))
            found.append(node)
    return found


def _find_control(soup: BeautifulSoup, texts: Tuple[str, ...], markers: Tuple[str, ...]) -> Optional[Tag]:
    for node in soup.select("a, button"):
        label = collapse_whitespace(node.get_text(" ")).lower()
        if label and (label in texts or label.strip(" <>‹›«»←→") in texts):
            return node
    for selector in markers:
        node = soup.select_one(selector)
        if node is not None:
            return node
    return None


def detect_from_html(
    html: str,
    url: str = "",
    selectors: PaginationSelectors = DEFAULT_PAGINATION_SELECTORS,
) -> PaginationState:
    """Classify the pagination idiom present in ``html``.

    Priority: numbered links, next/previous control, load-more control,
    page-number URL parameter, otherwise ``none``.
    """

    soup = parse_html(html)
    next_control = _find_control(soup, selectors.next_texts, selectors.next_markers)

    numbered: List[Tuple[int, Tag]] = []
    for link in _select_unique(soup, selectors.numbered_links):
        number = _int_or_none(collapse_whitespace(link.get_text(" ")))
        if number is not None:
            numbered.append((number, link))

    if numbered:
        current_page = 1
        for node in _select_unique(soup, selectors.current_page):
            number = _int_or_none(collapse_whitespace(node.get_text(" ")))
            if number is not None:
                current_page = number
                break
        else:
            for number, link in numbered:
                if _is_active(link):
                    current_page = number
                    break

        total_pages: Optional[int] = max(max(number for number, _ in numbered), current_page)
        has_next = current_page < total_pages
        if not has_next and next_control is not None and not _is_disabled(next_control):
            # Only a window of page links is shown; the real total is unknown.
            total_pages = None
            has_next = True
        return PaginationState(
            current_page=current_page,
            total_pages=total_pages,
            has_next_page=has_next,
            pagination_type=PaginationType.NUMBERED,
        )

    if next_control is not None:
        return PaginationState(
            current_page=1,
            has_next_page=not _is_disabled(next_control),
            pagination_type=PaginationType.NEXT_PREV,
        )

    load_more = _find_control(soup, selectors.load_more_texts, selectors.load_more_markers)
    if load_more is not None:
        return PaginationState(
            current_page=1,
            has_next_page=not _is_disabled(load_more),
            pagination_type=PaginationType.LOAD_MORE,
        )

    if url:
        params = dict(parse_qsl(urlparse(url).query, keep_blank_values=True))
        for name in selectors.detect_url_params:
            if name in params:
                return PaginationState(
                    current_page=_int_or_none(params[name]) or 1,
                    has_next_page=True,
                    pagination_type=PaginationType.URL_PARAM,
                )

    return PaginationState()


def next_page_url(url: str, next_page: int, param_names: Tuple[str, ...]) -> str:
    """Return ``url`` with its page-number parameter set to ``next_page``.

    The first known parameter present in the URL is rewritten; when none is
    present a ``page`` parameter is appended.
    """

    parsed = urlparse(url)
    query = parse_qsl(parsed.query, keep_blank_values=True)
    present = {name for name, _ in query}
    target = next((name for name in param_names if name in present), "page")

    updated: List[Tuple[str, str]] = []
    replaced = False
    for name, value in query:
        if name == target and not replaced:
            updated.append((name, str(next_page)))
            replaced = True
        elif name != target:
            updated.append((name, value))
    if not replaced:
        updated.append((target, str(next_page)))

    return urlunparse(parsed._replace(query=urlencode(updated)))


class PaginationEngine:
    def __init__(
        self,
        pagination_config: Optional[PaginationConfig] = None,
        *,
        selectors: PaginationSelectors = DEFAULT_PAGINATION_SELECTORS,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = pagination_config or PaginationConfig()
        self.selectors = selectors
        self._sleep = sleep

    async def detect(self, page: PageHandle, html: Optional[str] = None) -> PaginationState:
        """Detect pagination on the currently loaded page."""

        if html is None:
            html = await page.content()
        state = detect_from_html(html, page.url, self.selectors)

        if state.pagination_type is PaginationType.NONE and self.config.detect_infinite_scroll:
            try:
                metrics = await page.evaluate(SCROLL_METRICS_JS)
            except Exception as exc:  # noqa: BLE001
                log_line(f"[PAGINATION] Unable to read scroll metrics: {short_error_message(exc)}")
                return state
            metrics = metrics or {}
            visible_bottom = float(metrics.get("innerHeight") or 0) + float(metrics.get("scrollY") or 0)
            if float(metrics.get("scrollHeight") or 0) > visible_bottom:
                state = PaginationState(
                    current_page=1,
                    has_next_page=True,
                    pagination_type=PaginationType.INFINITE_SCROLL,
                )
        return state

    def should_continue(self, current_page: int, state: PaginationState) -> bool:
        """Return whether another page should be fetched after ``current_page``."""

        if current_page >= self.config.max_pages:
            return False
        if not state.has_next_page:
            return False
        if state.total_pages and current_page >= state.total_pages:
            return False
        return True

    async def go_to_next_page(self, page: PageHandle, state: PaginationState) -> bool:
        """Advance ``page`` by one page; ``False`` means no further page is reachable."""

        if not state.has_next_page:
            return False

        handlers = {
            PaginationType.NUMBERED: self._numbered,
            PaginationType.NEXT_PREV: self._next_prev,
            PaginationType.LOAD_MORE: self._load_more,
            PaginationType.URL_PARAM: self._url_param,
            PaginationType.INFINITE_SCROLL: self._infinite_scroll,
        }
        handler = handlers.get(state.pagination_type)
        if handler is None:
            return False

        try:
            return await handler(page, state)
        except Exception as exc:  # noqa: BLE001
            _scraper_event(
                "error",
                phase="pagination",
                step="navigate",
                pagination_type=state.pagination_type.value,
                current_page=state.current_page,
                error=short_error_message(exc),
            )
            return False

    async def collect(
        self,
        page: PageHandle,
        extract_page: Callable[[PageHandle, int], Awaitable[T]],
    ) -> PaginationRun[T]:
        """Extract the current page, then keep paging until a stop condition."""

        run: PaginationRun[T] = PaginationRun()
        current_page = 1
        while True:
            run.pages.append(await extract_page(page, current_page))
            run.pages_visited = current_page

            state = await self.detect(page)
            run.last_state = state
            _scraper_event(
                "page",
                phase="pagination",
                page=current_page,
                pagination_type=state.pagination_type.value,
                detected_page=state.current_page,
                total_pages=state.total_pages,
                has_next=state.has_next_page,
            )

            if not self.should_continue(current_page, state):
                log_line(f"[PAGINATION] Complete at page {current_page}")
                break
            if not await self.go_to_next_page(page, state):
                log_line(f"[PAGINATION] Could not navigate past page {current_page}; stopping")
                break
            current_page += 1
        return run

    async def _settle(self, page: PageHandle) -> None:
        await page.wait_for_load_state("networkidle", timeout=self.config.navigation_timeout_ms)
        await self._sleep(self.config.wait_between_pages)

    async def _click_first(self, page: PageHandle, candidates: List[str]) -> bool:
        for selector in candidates:
            handle = await page.query_selector(selector + _VISIBLE_SUFFIX)
            if handle is None:
                continue
            await handle.click(timeout=config.CLICK_TIMEOUT_MS)
            _scraper_event("nav", step="pagination_click", selector=selector)
            return True
        return False

    async def _numbered(self, page: PageHandle, state: PaginationState) -> bool:
        target = state.current_page + 1
        candidates = [f"{sel}:text-is('{target}')" for sel in self.selectors.numbered_click]
        if not await self._click_first(page, candidates):
            return False
        await self._settle(page)
        return True

    async def _next_prev(self, page: PageHandle, state: PaginationState) -> bool:
        candidates = [sel + _ENABLED_SUFFIX for sel in self.selectors.next_click]
        if not await self._click_first(page, candidates):
            return False
        await self._settle(page)
        return True

    async def _load_more(self, page: PageHandle, state: PaginationState) -> bool:
        candidates = [sel + _ENABLED_SUFFIX for sel in self.selectors.load_more_click]
        if not await self._click_first(page, candidates):
            return False
        await self._settle(page)
        return True

    async def _url_param(self, page: PageHandle, state: PaginationState) -> bool:
        url = next_page_url(page.url, state.current_page + 1, self.selectors.navigate_url_params)
        _scraper_event("nav", step="goto", operation="pagination", url=url)
        await page.goto(url, wait_until="networkidle", timeout=self.config.navigation_timeout_ms)
        await self._sleep(self.config.wait_between_pages)
        return True

    async def _infinite_scroll(self, page: PageHandle, state: PaginationState) -> bool:
        before = await page.evaluate(SCROLL_HEIGHT_JS)
        await page.evaluate(SCROLL_TO_BOTTOM_JS)
        await self._sleep(self.config.wait_between_pages)
        after = await page.evaluate(SCROLL_HEIGHT_JS)
        grown = float(after or 0) - float(before or 0)
        log_line(f"[PAGINATION] Scroll height {before} -> {after}")
        return grown > self.config.infinite_scroll_min_growth


__all__ = [
    "DEFAULT_PAGINATION_SELECTORS",
    "PaginationConfig",
    "PaginationEngine",
    "PaginationRun",
    "PaginationSelectors",
    "detect_from_html",
    "next_page_url",
]
