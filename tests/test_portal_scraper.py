from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Iterable, Optional

from uccharvest.scraper.auth import PortalCredentials
from uccharvest.scraper.base import INVALID_COMPANY_NAME
from uccharvest.scraper.models import FilingStatus, ScraperConfig
from uccharvest.scraper.portal_scraper import STRUCTURAL_DRIFT_WARNING, PortalProfile, PortalScraper

from fakes import FakeEngine, FakePage, SleepRecorder, results_table

SEARCH_FORM = "<form><input type='text' name='debtorName'><button type='submit'>Search</button></form>"
FORM_PRESENT = ("input[name*='debtor' i]", "button[type='submit']")

PROFILE = PortalProfile(
    scraper_config=ScraperConfig(
        state="CA",
        base_url="https://portal.test/search",
        rate_limit_per_minute=60,
        timeout_ms=1000,
        retry_attempts=2,
    ),
    name="Test",
    manual_url_template="{base_url}?q={query}",
)


def _form_page(result_html: str, *, present: Iterable[str] = FORM_PRESENT) -> Callable[[], FakePage]:
    def _on_click(page: FakePage, selector: str) -> None:
        if selector == "button[type='submit']":
            page.html = result_html

    return lambda: FakePage(SEARCH_FORM, present=present, on_click=_on_click)


def _scraper(
    engine: FakeEngine,
    sleeps: SleepRecorder,
    *,
    profile: PortalProfile = PROFILE,
    credentials: Optional[PortalCredentials] = None,
    diagnostics_dir: Optional[Path] = None,
) -> PortalScraper:
    return PortalScraper(
        profile,
        credentials=credentials,
        engine=engine,
        sleep=sleeps,
        diagnostics_dir=diagnostics_dir,
        capture_diagnostics_on_failure=diagnostics_dir is not None,
    )


def test_empty_query_fails_without_network(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(FakePage)
    scraper = _scraper(engine, sleeps)

    for query in ("", "   "):
        result = asyncio.run(scraper.search(query))
        assert result.success is False
        assert result.error == INVALID_COMPANY_NAME
        assert result.filings == []

    assert engine.sessions == []
    assert sleeps.calls == []


def test_captcha_short_circuits_without_retry(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(lambda: FakePage("<p>Please complete the CAPTCHA below</p>"))
    scraper = _scraper(engine, sleeps)

    result = asyncio.run(scraper.search("Acme Corp"))

    assert result.success is False
    assert "CAPTCHA" in result.error
    assert not result.retry_count
    assert result.search_url == "https://portal.test/search?q=Acme%20Corp"
    assert len(engine.pages) == 1
    assert engine.pages[0].closed is True
    # Only the warm-up delay; no backoff.
    assert sleeps.calls == [1.0]


def test_recaptcha_iframe_is_detected(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(lambda: FakePage("<iframe src='https://www.google.com/recaptcha/api2/anchor'></iframe>"))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert "CAPTCHA" in result.error


def test_offline_portal_is_terminal(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(lambda: FakePage("<h1>Service Unavailable</h1><p>Scheduled maintenance tonight</p>"))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert result.success is False
    assert "offline" in result.error
    assert len(engine.pages) == 1


def test_form_search_extracts_and_validates(sleeps: SleepRecorder) -> None:
    html = results_table(
        [
            ("U240001", "01/05/2024", "Acme Corp", "First Bank", "Active"),
            ("U240002", "02/06/2024", "Acme Corp", "Second Bank", "Terminated"),
            ("", "", "", "", ""),
        ]
    )
    engine = FakeEngine(_form_page(html))

    result = asyncio.run(_scraper(engine, sleeps).search("  Acme Corp "))

    assert result.success is True
    assert result.retry_count == 0
    assert [f.filing_number for f in result.filings] == ["U240001", "U240002"]
    assert result.filings[0].filing_date == "2024-01-05"
    assert result.filings[1].status is FilingStatus.TERMINATED
    assert result.parsing_errors is None
    page = engine.pages[0]
    assert page.goto_urls == ["https://portal.test/search?q=Acme%20Corp"]
    assert page.fills == [("input[name*='debtor' i]", "Acme Corp")]
    assert page.closed is True


def test_enter_is_pressed_when_no_submit_button(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(lambda: FakePage(SEARCH_FORM, present=("input[name*='debtor' i]",)))

    asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert engine.pages[0].presses == [("input[name*='debtor' i]", "Enter")]


def test_numbered_pagination_collects_all_pages(sleeps: SleepRecorder) -> None:
    def _page_html(number: int) -> str:
        rows = [(f"U24000{number}{i}", "01/05/2024", "Acme Corp", "Bank", "Active") for i in range(2)]
        links = "".join(
            f"<li class='{'active' if n == number else ''}'><a href='#'>{n}</a></li>" for n in range(1, 4)
        )
        return results_table(rows) + f"<ul class='pagination'>{links}</ul>"

    def _on_click(page: FakePage, selector: str) -> None:
        if selector == "button[type='submit']":
            page.html = _page_html(1)
        elif ":text-is('" in selector:
            page.html = _page_html(int(selector.split(":text-is('")[1][0]))

    present = FORM_PRESENT + (".pagination a:text-is('2')", ".pagination a:text-is('3')")
    engine = FakeEngine(lambda: FakePage(SEARCH_FORM, present=present, on_click=_on_click))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert result.success is True
    assert len(result.filings) == 6
    assert result.filings[-1].filing_number == "U2400031"


def test_cumulative_pages_are_deduplicated(sleeps: SleepRecorder) -> None:
    first = [("U1", "01/05/2024", "Acme", "Bank", "Active")]
    second = first + [("U2", "01/06/2024", "Acme", "Bank", "Active")]

    def _on_click(page: FakePage, selector: str) -> None:
        if selector == "button[type='submit']":
            page.html = results_table(first) + "<button class='load-more'>Load more</button>"
        elif "load-more" in selector:
            page.html = results_table(second)

    present = FORM_PRESENT + (".load-more",)
    engine = FakeEngine(lambda: FakePage(SEARCH_FORM, present=present, on_click=_on_click))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert [f.filing_number for f in result.filings] == ["U1", "U2"]


def test_no_results_message_is_definite_empty(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(_form_page("<p>No records found for ACME</p>"))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert result.success is True
    assert result.filings == []
    assert result.parsing_errors is None


def test_zero_rows_without_message_reports_drift(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(_form_page("<div class='app-shell'>Loading…</div>"))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert result.success is True
    assert result.filings == []
    assert result.parsing_errors == [STRUCTURAL_DRIFT_WARNING]


def test_preloaded_results_skip_the_form(sleeps: SleepRecorder) -> None:
    html = results_table([("U7", "2024-03-01", "Acme", "Bank", "Lapsed")])
    engine = FakeEngine(lambda: FakePage(html))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert [f.filing_number for f in result.filings] == ["U7"]
    assert engine.pages[0].fills == []


def test_login_wall_without_credentials_is_terminal(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(lambda: FakePage("<form><input name='username'><input type='password'></form>"))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert result.success is False
    assert "requires account login" in result.error
    assert len(engine.pages) == 1


def test_login_with_credentials_then_search(sleeps: SleepRecorder) -> None:
    login_html = "<form><input name='username'><input type='password'><button type='submit'>Log In</button></form>"
    results = results_table([("U5", "2024-01-01", "Acme", "Bank", "Active")])

    def _on_click(page: FakePage, selector: str) -> None:
        if page.html == login_html:
            page.html = SEARCH_FORM
            page.present = set(FORM_PRESENT)
        else:
            page.html = results

    present = ("input[name*='user' i]", "input[type='password']", "button[type='submit']")
    engine = FakeEngine(lambda: FakePage(login_html, present=present, on_click=_on_click))
    credentials = PortalCredentials(username="clerk", password="s3cret")

    result = asyncio.run(_scraper(engine, sleeps, credentials=credentials).search("Acme"))

    assert result.success is True
    assert [f.filing_number for f in result.filings] == ["U5"]
    assert ("input[name*='user' i]", "clerk") in engine.pages[0].fills


def test_transient_failures_exhaust_retries_and_capture_once(sleeps: SleepRecorder, tmp_path: Path) -> None:
    def _factory() -> FakePage:
        page = FakePage("<p>slow</p>")
        page.goto_error = TimeoutError("Timeout 1000ms exceeded")
        return page

    engine = FakeEngine(_factory)
    scraper = _scraper(engine, sleeps, diagnostics_dir=tmp_path)

    result = asyncio.run(scraper.search("Acme"))

    assert result.success is False
    assert "Timeout" in result.error
    assert result.retry_count == 1
    assert result.search_url == "https://portal.test/search?q=Acme"
    assert len(engine.pages) == 2
    assert all(page.closed for page in engine.pages)
    assert sorted(p.name for p in tmp_path.iterdir()) == ["CA_Acme_attempt2.html", "CA_Acme_attempt2.png"]
    assert sleeps.calls == [1.0, 1.0]


def test_missing_search_form_is_retried(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(lambda: FakePage("<p>Welcome to the portal</p>"))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert result.success is False
    assert "Search form not found" in result.error
    assert result.retry_count == 1
    assert len(engine.pages) == 2


def test_terminal_failure_captures_diagnostics_on_first_attempt(sleeps: SleepRecorder, tmp_path: Path) -> None:
    engine = FakeEngine(lambda: FakePage("<p>captcha</p>"))
    scraper = _scraper(engine, sleeps, diagnostics_dir=tmp_path)

    asyncio.run(scraper.search("Acme"))

    assert scraper.last_diagnostics is not None
    assert scraper.last_diagnostics.html_path == tmp_path / "CA_Acme_attempt1.html"


def test_session_is_reused_and_close_is_idempotent(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(_form_page("<p>No results</p>"))
    scraper = _scraper(engine, sleeps)

    async def _main() -> None:
        await scraper.search("Acme")
        await scraper.search("Beta")
        await scraper.close_browser()
        await scraper.close_browser()

    asyncio.run(_main())

    assert len(engine.sessions) == 1
    assert len(engine.pages) == 2
    assert engine.sessions[0].close_calls == 1


def test_async_context_manager_closes_browser(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(_form_page("<p>No results</p>"))

    async def _main() -> None:
        async with _scraper(engine, sleeps) as scraper:
            await scraper.search("Acme")

    asyncio.run(_main())

    assert engine.sessions[0].close_calls == 1


def test_manual_search_url_is_encoded() -> None:
    scraper = PortalScraper(PROFILE, engine=FakeEngine(FakePage))
    assert scraper.get_manual_search_url("A&B Holdings") == "https://portal.test/search?q=A%26B%20Holdings"


def test_robot_in_debtor_names_is_not_a_captcha(sleeps: SleepRecorder) -> None:
    html = results_table(
        [
            ("U240001", "01/05/2024", "iRobot Corp", "First Bank", "Active"),
            ("U240002", "02/06/2024", "Captcha Robotics LLC", "Second Bank", "Active"),
        ]
    )
    engine = FakeEngine(_form_page(html))

    result = asyncio.run(_scraper(engine, sleeps).search("Robot"))

    assert result.success is True
    assert [f.debtor_name for f in result.filings] == ["iRobot Corp", "Captcha Robotics LLC"]


def test_preloaded_results_with_robot_debtor_are_extracted(sleeps: SleepRecorder) -> None:
    html = results_table([("U240001", "01/05/2024", "iRobot Corp", "First Bank", "Active")])
    engine = FakeEngine(lambda: FakePage(html))

    result = asyncio.run(_scraper(engine, sleeps).search("iRobot"))

    assert result.success is True
    assert [f.filing_number for f in result.filings] == ["U240001"]


def test_not_a_robot_checkbox_text_is_a_captcha(sleeps: SleepRecorder) -> None:
    engine = FakeEngine(lambda: FakePage("<label>I'm not a robot</label>"))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme"))

    assert result.success is False
    assert "CAPTCHA" in result.error


def test_result_count_in_landing_copy_does_not_skip_the_form(sleeps: SleepRecorder) -> None:
    landing = "<p>Searches return up to 500 results.</p>" + SEARCH_FORM
    html = results_table([("U240001", "01/05/2024", "Acme Corp", "First Bank", "Active")])

    def _on_click(page: FakePage, selector: str) -> None:
        if selector == "button[type='submit']":
            page.html = html

    engine = FakeEngine(lambda: FakePage(landing, present=FORM_PRESENT, on_click=_on_click))

    result = asyncio.run(_scraper(engine, sleeps).search("Acme Corp"))

    assert result.success is True
    assert engine.pages[0].fills == [("input[name*='debtor' i]", "Acme Corp")]
    assert [f.filing_number for f in result.filings] == ["U240001"]
