"""Batch search runner and command-line entrypoint.

Every search in a batch goes through one shared :class:`RateLimitedQueue`,
so the queue ceiling applies across states on top of each portal's own
warm-up delay. Scrapers are created once per state and always closed.
"""

from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from . import config
from .auth import configured_states, credential_env_names
from .base import BaseScraper
from .config_validation import validate_runtime_config
from .logging_utils import _scraper_event
from .models import ScraperResult
from .portals import PORTAL_PROFILES, create_scraper, normalize_state
from .rate_limiter import RateLimitedQueue, create_rate_limiter
from .telemetry import SearchTelemetry
from .utils import log_line, setup_run_logger, short_error_message

ScraperFactory = Callable[..., BaseScraper]


@dataclass
class SearchJobResult:
    state: str
    company_name: str
    result: ScraperResult

    def to_dict(self) -> Dict[str, Any]:
        return {"state": self.state, "company_name": self.company_name, **self.result.to_dict()}


async def run_searches(
    jobs: Iterable[Tuple[str, str]],
    *,
    queue: Optional[RateLimitedQueue] = None,
    implementation: Optional[str] = None,
    scraper_factory: ScraperFactory = create_scraper,
    telemetry: Optional[SearchTelemetry] = None,
) -> List[SearchJobResult]:
    """Run ``(state, company_name)`` jobs in submission order through ``queue``."""

    if queue is None:
        queue = RateLimitedQueue()
    scrapers: Dict[str, BaseScraper] = {}
    pending: List[Tuple[str, str, Optional["asyncio.Future[ScraperResult]"], Optional[str]]] = []

    try:
        for raw_state, company_name in jobs:
            try:
                state = normalize_state(raw_state)
            except ValueError as exc:
                pending.append((str(raw_state), company_name, None, str(exc)))
                continue
            scraper = scrapers.get(state)
            if scraper is None:
                try:
                    scraper = scraper_factory(state, implementation)
                except Exception as exc:  # noqa: BLE001
                    message = f"Could not start {state} scraper: {short_error_message(exc)}"
                    log_line(f"[RUN] {message}")
                    pending.append((state, company_name, None, message))
                    continue
                scrapers[state] = scraper
            future = asyncio.ensure_future(queue.enqueue(partial(scraper.search, company_name)))
            pending.append((state, company_name, future, None))

        results: List[SearchJobResult] = []
        for state, company_name, future, error in pending:
            if future is None:
                result = ScraperResult.failure(error or "Unsupported state")
            else:
                try:
                    result = await future
                except Exception as exc:  # noqa: BLE001
                    result = ScraperResult.failure(str(exc) or type(exc).__name__)
            results.append(SearchJobResult(state=state, company_name=company_name, result=result))
            if telemetry is not None:
                telemetry.add(result, state, company_name)
        return results
    finally:
        unfinished = [future for _, _, future, _ in pending if future is not None and not future.done()]
        for future in unfinished:
            future.cancel()
        if unfinished:
            await asyncio.gather(*unfinished, return_exceptions=True)
        for scraper in scrapers.values():
            await scraper.close_browser()
        _scraper_event("queue", step="batch_complete", **queue.stats())


def missing_login_credentials(
    states: Iterable[str], environ: Optional[Mapping[str, str]] = None
) -> List[str]:
    """Return the login-walled states among ``states`` that have no credentials set."""

    login_states: List[str] = []
    for raw_state in states:
        try:
            state = normalize_state(raw_state)
        except ValueError:
            continue
        if PORTAL_PROFILES[state].uses_credentials and state not in login_states:
            login_states.append(state)
    ready = set(configured_states(login_states, environ))
    return [state for state in login_states if state not in ready]


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search state UCC portals for filings by debtor name")
    parser.add_argument("companies", nargs="+", help="Debtor / company names to search for")
    parser.add_argument("--state", action="append", required=True, help="State code or name (repeatable)")
    parser.add_argument(
        "--implementation",
        choices=list(config.IMPLEMENTATIONS),
        default=None,
        help="Scraper implementation (defaults to SCRAPER_IMPLEMENTATION)",
    )
    parser.add_argument("--rpm", type=float, default=config.QUEUE_REQUESTS_PER_MINUTE)
    parser.add_argument("--limiter-preset", choices=["conservative", "moderate", "aggressive"], default=None)
    parser.add_argument("--max-pages", type=int, default=config.MAX_PAGES)
    parser.add_argument("--no-telemetry", action="store_true")
    return parser.parse_args(argv)


def _cli_entrypoint(argv: Optional[Sequence[str]] = None) -> int:  # pragma: no cover
    args = _parse_args(argv)

    setup_run_logger()
    config.MAX_PAGES = args.max_pages
    config.QUEUE_REQUESTS_PER_MINUTE = args.rpm
    validate_runtime_config("cli")
    for state in missing_login_credentials(args.state):
        user_var, password_var, _ = credential_env_names(state)
        log_line(f"[RUN] {state} portal requires login; set {user_var} and {password_var} to search it")

    jobs = [(state, company) for state in args.state for company in args.companies]
    limiter = create_rate_limiter(args.limiter_preset) if args.limiter_preset else None
    queue = RateLimitedQueue(args.rpm, limiter=limiter, name="cli")
    telemetry = None if args.no_telemetry else SearchTelemetry(mode="cli")

    results = asyncio.run(
        run_searches(jobs, queue=queue, implementation=args.implementation, telemetry=telemetry)
    )

    print(json.dumps([item.to_dict() for item in results], indent=2, ensure_ascii=False))
    for item in results:
        if not item.result.success and item.result.search_url:
            log_line(f"[RUN] {item.state} {item.company_name!r}: search manually at {item.result.search_url}")

    if telemetry is not None:
        log_line(f"[RUN] Telemetry written to {telemetry.finalize()}")
    return 0 if all(item.result.success for item in results) else 1


__all__ = ["SearchJobResult", "missing_login_credentials", "run_searches", "_cli_entrypoint"]


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(_cli_entrypoint())
