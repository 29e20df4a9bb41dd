"""Scraper backed by a commercial UCC data API instead of a browser."""

from __future__ import annotations

import asyncio
import urllib.parse
from typing import Any, Callable, Dict, List, Optional

import requests

from . import config
from .base import BaseScraper, SearchAttempt, SleepFn
from .error_codes import ErrorCode, classify_http_status
from .errors import ApiError
from .logging_utils import _scraper_event
from .models import ScraperConfig, ScraperResult
from .portal_scraper import PortalProfile
from .utils import log_line
from .validation import validate_filings

API_KEY_MISSING = "API key not configured. Set UCC_API_KEY environment variable."

HttpPost = Callable[..., Any]


def _redact_url(url: str) -> str:
    try:
        parsed = urllib.parse.urlparse(url)
        return urllib.parse.urlunparse(parsed._replace(query=""))
    except Exception:  # noqa: BLE001
        return url


def api_scraper_config(state: str, endpoint: str) -> ScraperConfig:
    # The API tolerates a far higher cadence than the state portals.
    return ScraperConfig(
        state=state,
        base_url=endpoint,
        rate_limit_per_minute=60,
        timeout_ms=int(config.API_TIMEOUT_SECONDS * 1000),
        retry_attempts=3,
    )


def map_api_response(data: Any) -> List[Dict[str, Any]]:
    """Return the raw filing dicts from a ``results`` or ``filings`` payload."""

    if not isinstance(data, dict):
        return []
    items = data.get("results")
    if not isinstance(items, list):
        items = data.get("filings")
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


class ApiScraper(BaseScraper):
    def __init__(
        self,
        profile: PortalProfile,
        *,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        http_client: Optional[HttpPost] = None,
        scraper_config: Optional[ScraperConfig] = None,
        max_results: Optional[int] = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.endpoint = (endpoint or config.UCC_API_ENDPOINT).rstrip("/")
        super().__init__(
            scraper_config or api_scraper_config(profile.state, self.endpoint),
            sleep=sleep,
            capture_diagnostics_on_failure=False,
        )
        self.profile = profile
        self.api_key = config.UCC_API_KEY if api_key is None else api_key
        self.max_results = config.API_MAX_RESULTS if max_results is None else max_results
        self._http_post = http_client or requests.post
        if not self.api_key:
            log_line("[API] No API key configured. Set UCC_API_KEY environment variable.")

    def get_manual_search_url(self, company_name: str) -> str:
        return self.profile.manual_search_url(company_name)

    async def search(self, company_name: str) -> ScraperResult:
        query = (company_name or "").strip()
        if query and not self.api_key:
            _scraper_event("search", state=self.state, outcome="failed", error=ErrorCode.HTTP_401)
            return ScraperResult.failure(API_KEY_MISSING, search_url=self.get_manual_search_url(query))
        return await super().search(company_name)

    def build_payload(self, company_name: str) -> Dict[str, Any]:
        return {
            "query": {"debtor_name": company_name, "state": self.state},
            "options": {
                "include_terminated": True,
                "include_lapsed": True,
                "max_results": self.max_results,
            },
        }

    def _post(self, payload: Dict[str, Any]) -> Any:
        url = f"{self.endpoint}/search"
        headers = dict(config.COMMON_HEADERS)
        headers["Authorization"] = f"Bearer {self.api_key}"
        timeout = self.config.timeout_ms / 1000

        try:
            response = self._http_post(url, json=payload, headers=headers, timeout=timeout)
        except requests.Timeout as exc:
            raise ApiError(f"API request timed out: {exc}", error_code=ErrorCode.TIMEOUT) from exc
        except requests.ConnectionError as exc:
            raise ApiError(f"API connection failed: {exc}", error_code=ErrorCode.NETWORK) from exc

        status = int(getattr(response, "status_code", 0) or 0)
        _scraper_event("nav", step="api_post", url=_redact_url(url), http_status=status)
        if status == 401:
            raise ApiError("Invalid API key", error_code=ErrorCode.HTTP_401, http_status=status)
        if status == 429:
            raise ApiError("Rate limit exceeded", error_code=ErrorCode.RATE_LIMITED, http_status=status)
        if status >= 400:
            reason = getattr(response, "reason", "") or ""
            raise ApiError(
                f"API error: {status} {reason}".strip(),
                error_code=classify_http_status(status),
                http_status=status,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise ApiError("API returned a malformed JSON body", error_code=ErrorCode.INTERNAL) from exc

    async def perform_search(self, attempt: SearchAttempt) -> ScraperResult:
        payload = self.build_payload(attempt.company_name)
        data = await asyncio.to_thread(self._post, payload)
        outcome = validate_filings(map_api_response(data))
        log_line(
            f"[API] {self.state} search for {attempt.company_name!r}: "
            f"{len(outcome.validated_filings)} filings, {len(outcome.validation_errors)} validation errors"
        )
        return ScraperResult(
            success=True,
            filings=outcome.validated_filings,
            search_url=attempt.search_url,
            parsing_errors=outcome.validation_errors or None,
        )


__all__ = ["API_KEY_MISSING", "ApiScraper", "api_scraper_config", "map_api_response"]
