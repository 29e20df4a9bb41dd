from __future__ import annotations

import pytest

from uccharvest.scraper import config
from uccharvest.scraper.api_client import ApiScraper
from uccharvest.scraper.portal_scraper import PortalScraper
from uccharvest.scraper.portals import (
    PORTAL_PROFILES,
    SUPPORTED_STATES,
    create_scraper,
    get_profile,
    normalize_state,
)

from fakes import FakeEngine, FakePage


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("ca", "CA"),
        (" TX ", "TX"),
        ("Florida", "FL"),
        ("new_york", "NY"),
        ("New-York", "NY"),
        ("NEW YORK", "NY"),
        ("illinois", "IL"),
    ],
)
def test_normalize_state_accepts_codes_and_names(raw: str, expected: str) -> None:
    assert normalize_state(raw) == expected


@pytest.mark.parametrize("raw", ["", None, "ZZ", "Oregon"])
def test_normalize_state_rejects_unknown(raw) -> None:
    with pytest.raises(ValueError):
        normalize_state(raw)


def test_supported_states_cover_every_profile() -> None:
    assert SUPPORTED_STATES == ("CA", "FL", "IL", "NY", "TX")
    for code, profile in PORTAL_PROFILES.items():
        assert profile.state == code
        assert profile.scraper_config.rate_limit_per_minute > 0
        assert profile.scraper_config.timeout_ms > 0


@pytest.mark.parametrize(
    ("state", "expected"),
    [
        ("CA", "https://bizfileonline.sos.ca.gov/search/ucc?searchType=debtor&searchCriteria=Acme%20%26%20Sons"),
        ("TX", "https://www.sos.state.tx.us/ucc/index.shtml"),
        ("NY", "https://appext20.dos.ny.gov/pls/ucc_public/web_search.inhouse_search?p_name=Acme%20%26%20Sons"),
        ("IL", "https://www.ilsos.gov/corporatellc/?SearchName=Acme%20%26%20Sons"),
    ],
)
def test_manual_search_urls(state: str, expected: str) -> None:
    assert get_profile(state).manual_search_url("Acme & Sons") == expected


def test_florida_manual_url_carries_debtor_search_options() -> None:
    url = get_profile("FL").manual_search_url("Acme")
    assert url.startswith("https://floridaucc.com/search?text=Acme&")
    assert "searchOptionType=OrganizationDebtorName" in url


def test_politeness_limits_per_state() -> None:
    rates = {code: profile.scraper_config.rate_limit_per_minute for code, profile in PORTAL_PROFILES.items()}
    assert rates == {"CA": 4, "TX": 5, "FL": 4, "NY": 5, "IL": 5}
    assert get_profile("CA").scraper_config.timeout_ms == 45000


def test_create_scraper_browser_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "SCRAPER_IMPLEMENTATION", "browser")

    scraper = create_scraper("california", engine=FakeEngine(FakePage))

    assert isinstance(scraper, PortalScraper)
    assert scraper.state == "CA"


def test_create_scraper_api() -> None:
    scraper = create_scraper("NY", "api", api_key="k", endpoint="https://api.test/v1/")

    assert isinstance(scraper, ApiScraper)
    assert scraper.state == "NY"
    assert scraper.endpoint == "https://api.test/v1"
    assert scraper.get_manual_search_url("Acme").endswith("?p_name=Acme")


def test_create_scraper_rejects_unknown_implementation() -> None:
    with pytest.raises(ValueError, match="Unknown scraper implementation"):
        create_scraper("CA", "carrier-pigeon")


def test_create_scraper_rejects_unknown_state() -> None:
    with pytest.raises(ValueError, match="Unsupported state"):
        create_scraper("ZZ", "browser")


def test_texas_loads_credentials_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TX_UCC_USERNAME", "clerk")
    monkeypatch.setenv("TX_UCC_PASSWORD", "s3cret")

    scraper = create_scraper("TX", "browser", engine=FakeEngine(FakePage))

    assert scraper.credentials is not None
    assert scraper.credentials.username == "clerk"


def test_texas_without_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TX_UCC_USERNAME", raising=False)
    monkeypatch.delenv("TX_UCC_PASSWORD", raising=False)

    scraper = create_scraper("TX", "browser", engine=FakeEngine(FakePage))

    assert scraper.credentials is None
