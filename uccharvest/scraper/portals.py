"""State portal profiles and the scraper factory.

The profile values below are stable configuration: rates and timeouts are the
published politeness limits we agreed for each portal. Selector tuples are
tried in order, so put the most specific candidate first.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from . import config
from .api_client import ApiScraper
from .extraction import ExtractionProfile
from .models import ScraperConfig
from .portal_scraper import EntryStep, PortalProfile, PortalScraper
from .utils import log_line

CALIFORNIA = PortalProfile(
    scraper_config=ScraperConfig(
        state="CA",
        base_url="https://bizfileonline.sos.ca.gov/search/ucc",
        rate_limit_per_minute=4,
        timeout_ms=45000,
        retry_attempts=2,
    ),
    name="California",
    manual_url_template="{base_url}?searchType=debtor&searchCriteria={query}",
    search_input_selectors=(
        "input[name='debtorName']",
        "input[name='debtor_name']",
        "input[name='DebtorName']",
        "input[name='searchCriteria']",
        "input[name='SearchCriteria']",
        "input#debtorName",
        "input#searchCriteria",
        "input[placeholder*='debtor' i]",
        "input[placeholder*='name' i]",
        "input[type='text']",
    ),
    submit_selectors=(
        "button[type='submit']",
        "input[type='submit']",
        'button:has-text("Search")',
        'button:has-text("Find")',
    ),
    results_ready_selectors=("table", "div.result-item", "div.filing-item"),
)

TEXAS = PortalProfile(
    scraper_config=ScraperConfig(
        state="TX",
        base_url="https://www.sos.state.tx.us/ucc/index.shtml",
        rate_limit_per_minute=5,
        timeout_ms=30000,
        retry_attempts=2,
    ),
    name="Texas",
    # Searches need an SOS account, so the manual fallback is the portal itself.
    manual_url_template="{base_url}",
    search_input_selectors=(
        "input[name*='debtor' i]",
        "input[name*='name' i]",
        "input[type='text']",
    ),
    login_markers=("login required", "please log in", "sign in to continue"),
    uses_credentials=True,
    notes="requires SOS account login (TX_UCC_USERNAME / TX_UCC_PASSWORD)",
)

FLORIDA = PortalProfile(
    scraper_config=ScraperConfig(
        state="FL",
        base_url="https://floridaucc.com/search",
        rate_limit_per_minute=4,
        timeout_ms=45000,
        retry_attempts=2,
    ),
    name="Florida",
    manual_url_template=(
        "{base_url}?text={query}&searchOptionType=OrganizationDebtorName"
        "&searchOptionSubOption=FiledCompactDebtorNameList&searchCategory=Exact"
    ),
    entry_steps=(
        EntryStep(
            selectors=('button:text-is("UCC Search")', 'a:text-is("UCC Search")'),
            description="UCC search entry point",
        ),
        EntryStep(selectors=("input[type='checkbox']",), description="terms acknowledgement checkbox"),
        EntryStep(
            selectors=('button:text-is("Next"):not([disabled])',),
            description="terms Next button",
        ),
    ),
    search_input_selectors=(
        "input[name='keyword']",
        "input[placeholder*='organization' i]",
        "input[placeholder*='debtor' i]",
        "input[type='text']",
    ),
    extraction=ExtractionProfile(
        row_selectors=(
            "table.results tbody tr",
            "table.search-results tbody tr",
            "div.result-row",
            "div.filing-row",
        ),
        columns={
            "filing_number": (0,),
            "filing_date": (1, 2),
            "debtor_name": (2, 1),
            "secured_party": (3,),
            "status": (4, -1),
        },
    ),
)

NEW_YORK = PortalProfile(
    scraper_config=ScraperConfig(
        state="NY",
        base_url="https://appext20.dos.ny.gov/pls/ucc_public/web_search.inhouse_search",
        rate_limit_per_minute=5,
        timeout_ms=30000,
        retry_attempts=2,
    ),
    name="New York",
    manual_url_template="{base_url}?p_name={query}",
    search_input_selectors=("input[name='p_debtor_name']", "input[name='p_name']", "input[type='text']"),
    submit_selectors=("input[type='submit']", "button[type='submit']"),
    extraction=ExtractionProfile(
        row_selectors=("table.results tr",),
        min_cells=6,
        columns={
            "filing_number": (0,),
            "filing_date": (1,),
            "debtor_name": (2,),
            "secured_party": (3,),
            "filing_type": (4,),
            "status": (5,),
        },
        detect_swapped_columns=False,
        no_results_markers=("no records found", "no results"),
    ),
)

ILLINOIS = PortalProfile(
    scraper_config=ScraperConfig(
        state="IL",
        base_url="https://www.ilsos.gov/corporatellc/",
        rate_limit_per_minute=5,
        timeout_ms=30000,
        retry_attempts=2,
    ),
    name="Illinois",
    manual_url_template="{base_url}?SearchName={query}",
)

PORTAL_PROFILES: Dict[str, PortalProfile] = {
    profile.state: profile for profile in (CALIFORNIA, TEXAS, FLORIDA, NEW_YORK, ILLINOIS)
}

SUPPORTED_STATES = tuple(sorted(PORTAL_PROFILES))

_STATE_ALIASES = {
    "california": "CA",
    "texas": "TX",
    "florida": "FL",
    "new york": "NY",
    "newyork": "NY",
    "illinois": "IL",
}


def normalize_state(value: str | None) -> str:
    """Return the two-letter code for a supported state code or name.

    Raises ``ValueError`` for empty or unsupported values.
    """

    raw = " ".join((value or "").replace("_", " ").replace("-", " ").split()).lower()
    if not raw:
        raise ValueError("State is required")
    code = raw.upper() if raw.upper() in PORTAL_PROFILES else _STATE_ALIASES.get(raw)
    if code is None:
        raise ValueError(f"Unsupported state {value!r}; supported: {', '.join(SUPPORTED_STATES)}")
    return code


def get_profile(state: str) -> PortalProfile:
    return PORTAL_PROFILES[normalize_state(state)]


def create_scraper(
    state: str,
    implementation: Optional[str] = None,
    **kwargs: Any,
) -> Union[PortalScraper, ApiScraper]:
    """Build the scraper for ``state`` using the requested implementation.

    ``implementation`` defaults to ``SCRAPER_IMPLEMENTATION`` (``browser`` or
    ``api``); remaining keyword arguments go to the scraper constructor.
    """

    impl = (implementation or config.SCRAPER_IMPLEMENTATION).strip().lower()
    if impl not in config.IMPLEMENTATIONS:
        raise ValueError(
            f"Unknown scraper implementation {impl!r}; expected one of {', '.join(config.IMPLEMENTATIONS)}"
        )

    profile = get_profile(state)
    log_line(f"[FACTORY] Creating {impl} scraper for {profile.name} ({profile.state})")
    if impl == "api":
        return ApiScraper(profile, **kwargs)
    return PortalScraper(profile, **kwargs)


__all__ = [
    "CALIFORNIA",
    "FLORIDA",
    "ILLINOIS",
    "NEW_YORK",
    "PORTAL_PROFILES",
    "SUPPORTED_STATES",
    "TEXAS",
    "create_scraper",
    "get_profile",
    "normalize_state",
]
