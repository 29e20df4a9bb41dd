"""Configuration constants for the UCC filing scraper."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("UCCHARVEST_DATA_DIR", "data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
DIAGNOSTICS_DIR: Path = Path(os.getenv("UCCHARVEST_DIAGNOSTICS_DIR", str(DATA_DIR / "diagnostics")))
RUNS_DIR: Path = DATA_DIR / "runs"
LOG_LEVEL: str = os.getenv("UCCHARVEST_LOG_LEVEL", "INFO").strip().upper() or "INFO"


def _parse_timeout_seconds(env_var: str, default: float, *, minimum: float = 1) -> float:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = float(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


def _parse_flag(env_var: str, default: str) -> bool:
    return os.getenv(env_var, default).strip().lower() not in {"0", "false", "no"}


HEADLESS: bool = _parse_flag("UCCHARVEST_HEADLESS", "1")
# Console-only logging when off (e.g. containers that collect stdout).
LOG_TO_FILE: bool = _parse_flag("UCCHARVEST_LOG_TO_FILE", "1")
USER_AGENT: str = os.getenv(
    "UCCHARVEST_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
)
VIEWPORT: dict[str, int] = {"width": 1920, "height": 1080}
BROWSER_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
)

# Playwright timeouts (seconds)
# Navigation timeout for page.goto calls.
NAV_TIMEOUT_SECONDS: float = _parse_timeout_seconds("UCCHARVEST_NAV_TIMEOUT_SECONDS", 30)
# Selector waits (search form, result tables).
SELECTOR_TIMEOUT_SECONDS: float = _parse_timeout_seconds("UCCHARVEST_SELECTOR_TIMEOUT_SECONDS", 10)
# Post-submit settle wait for result pages.
RESULTS_TIMEOUT_SECONDS: float = _parse_timeout_seconds("UCCHARVEST_RESULTS_TIMEOUT_SECONDS", 20)
# Wait applied after each pagination click or URL rewrite.
PAGINATION_NAV_TIMEOUT_SECONDS: float = _parse_timeout_seconds(
    "UCCHARVEST_PAGINATION_NAV_TIMEOUT_SECONDS", 15
)
# Click-level timeout remains in milliseconds to match Playwright API expectations.
CLICK_TIMEOUT_MS: int = int(os.getenv("UCCHARVEST_CLICK_TIMEOUT_MS", "5000"))

WAIT_BETWEEN_PAGES_SECONDS: float = float(os.getenv("UCCHARVEST_WAIT_BETWEEN_PAGES_SECONDS", "2.0"))
POST_LOAD_SETTLE_SECONDS: float = float(os.getenv("UCCHARVEST_POST_LOAD_SETTLE_SECONDS", "2.0"))
MAX_PAGES: int = int(os.getenv("UCCHARVEST_MAX_PAGES", "10"))
# Minimum scrollHeight growth (px) that counts as new infinite-scroll content.
INFINITE_SCROLL_MIN_GROWTH_PX: int = int(os.getenv("UCCHARVEST_INFINITE_SCROLL_MIN_GROWTH_PX", "50"))

# Retry controls
DEFAULT_RETRY_ATTEMPTS: int = int(os.getenv("UCCHARVEST_RETRY_ATTEMPTS", "2"))
RETRY_BACKOFF_BASE_SECONDS: float = float(os.getenv("UCCHARVEST_RETRY_BACKOFF_BASE_SECONDS", "1.0"))
RETRY_BACKOFF_CAP_SECONDS: float = float(os.getenv("UCCHARVEST_RETRY_BACKOFF_CAP_SECONDS", "30"))

# Shared queue ceiling (requests per minute across all scrapers).
QUEUE_REQUESTS_PER_MINUTE: float = float(os.getenv("UCCHARVEST_QUEUE_REQUESTS_PER_MINUTE", "30"))

CAPTURE_DIAGNOSTICS: bool = _parse_flag("UCCHARVEST_CAPTURE_DIAGNOSTICS", "1")

SCRAPER_IMPLEMENTATION: str = (
    os.getenv("SCRAPER_IMPLEMENTATION", "browser").strip().lower() or "browser"
)
IMPLEMENTATIONS: tuple[str, ...] = ("browser", "api")

UCC_API_KEY: str = os.getenv("UCC_API_KEY", "")
UCC_API_ENDPOINT: str = os.getenv("UCC_API_ENDPOINT", "https://api.uccplus.com/v1")
API_TIMEOUT_SECONDS: float = _parse_timeout_seconds("UCCHARVEST_API_TIMEOUT_SECONDS", 10)
API_MAX_RESULTS: int = int(os.getenv("UCCHARVEST_API_MAX_RESULTS", "100"))

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": "UCC-Intelligence-Platform/1.0",
    "Accept": "application/json",
    "Content-Type": "application/json",
}


def warmup_seconds(rate_limit_per_minute: float) -> float:
    """Return the polite per-search delay derived from a requests/minute quota."""

    if rate_limit_per_minute <= 0:
        return 0.0
    return 60.0 / rate_limit_per_minute
