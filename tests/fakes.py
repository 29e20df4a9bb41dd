from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional


class FakeElement:
    def __init__(self, page: "FakePage", selector: str) -> None:
        self.page = page
        self.selector = selector

    async def click(self, timeout: Optional[float] = None) -> None:
        await self.page.click(self.selector, timeout=timeout)


class FakePage:
    """In-memory stand-in for a Playwright page.

    ``present`` holds selector prefixes that ``query_selector`` and
    ``wait_for_selector`` treat as matching, so suffixes such as
    ``:not([disabled]) >> visible=true`` still resolve.
    """

    def __init__(
        self,
        html: str = "",
        url: str = "https://portal.test/search",
        *,
        present: Iterable[str] = (),
        on_click: Optional[Callable[["FakePage", str], None]] = None,
        on_goto: Optional[Callable[["FakePage", str], None]] = None,
        evaluate: Optional[Callable[[str], Any]] = None,
    ) -> None:
        self.html = html
        self.url = url
        self.present = set(present)
        self.on_click = on_click
        self.on_goto = on_goto
        self.evaluate_handler = evaluate
        self.goto_urls: List[str] = []
        self.fills: List[tuple[str, str]] = []
        self.clicks: List[str] = []
        self.presses: List[tuple[str, str]] = []
        self.load_states: List[str] = []
        self.queried: List[str] = []
        self.closed = False
        self.goto_error: Optional[BaseException] = None
        self.screenshot_error: Optional[BaseException] = None
        self.content_error: Optional[BaseException] = None
        self.load_state_error: Optional[BaseException] = None

    def matches(self, selector: str) -> bool:
        return any(selector.startswith(prefix) for prefix in self.present)

    async def goto(self, url: str, *, wait_until: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.goto_urls.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url
        if self.on_goto is not None:
            self.on_goto(self, url)

    async def content(self) -> str:
        if self.content_error is not None:
            raise self.content_error
        return self.html

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        if self.evaluate_handler is None:
            return None
        return self.evaluate_handler(expression)

    async def query_selector(self, selector: str) -> Optional[FakeElement]:
        self.queried.append(selector)
        return FakeElement(self, selector) if self.matches(selector) else None

    async def fill(self, selector: str, value: str, *, timeout: Optional[float] = None) -> None:
        self.fills.append((selector, value))

    async def click(self, selector: str, *, timeout: Optional[float] = None) -> None:
        self.clicks.append(selector)
        if self.on_click is not None:
            self.on_click(self, selector)

    async def press(self, selector: str, key: str, *, timeout: Optional[float] = None) -> None:
        self.presses.append((selector, key))

    async def wait_for_selector(self, selector: str, *, timeout: Optional[float] = None) -> FakeElement:
        for part in selector.split(", "):
            if self.matches(part.strip()):
                return FakeElement(self, part.strip())
        raise TimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def wait_for_load_state(self, state: str = "load", *, timeout: Optional[float] = None) -> None:
        self.load_states.append(state)
        if self.load_state_error is not None:
            raise self.load_state_error

    async def screenshot(self, *, path: str, full_page: bool = False) -> None:
        if self.screenshot_error is not None:
            raise self.screenshot_error
        Path(path).write_bytes(b"\x89PNG fake")

    async def close(self) -> None:
        self.closed = True

    def is_closed(self) -> bool:
        return self.closed


class FakeSession:
    def __init__(self, page_factory: Callable[[], FakePage]) -> None:
        self.page_factory = page_factory
        self.pages: List[FakePage] = []
        self.close_calls = 0

    async def new_page(self) -> FakePage:
        page = self.page_factory()
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.close_calls += 1


class FakeEngine:
    def __init__(self, page_factory: Callable[[], FakePage]) -> None:
        self.page_factory = page_factory
        self.sessions: List[FakeSession] = []

    async def launch(self) -> FakeSession:
        session = FakeSession(self.page_factory)
        self.sessions.append(session)
        return session

    @property
    def pages(self) -> List[FakePage]:
        return [page for session in self.sessions for page in session.pages]


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def results_table(rows: Iterable[tuple[str, ...]], *, css_class: str = "results") -> str:
    body = "".join("<tr>" + "".join(f"<td>{cell}</td>" for cell in row) + "</tr>" for row in rows)
    return (
        f"<table class='{css_class}'><thead><tr><th>No.</th><th>Date</th><th>Debtor</th>"
        f"<th>Secured Party</th><th>Status</th></tr></thead><tbody>{body}</tbody></table>"
    )


class FakeClock:
    """Monotonic clock advanced only by the paired ``sleep`` coroutine."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
